"""Conversions between filesystem paths and root-relative URLs."""

from __future__ import annotations

import os
import posixpath
from pathlib import Path
from urllib.parse import unquote, urlsplit


def url_from_path(root: str | Path, path: str | Path) -> str:
    """Return the root-relative URL for ``path``."""
    root_str = os.path.normpath(os.fspath(root))
    path_str = os.path.normpath(os.fspath(path))
    relative = os.path.relpath(path_str, root_str)
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        raise ValueError(f"file path is not in root: {path_str} ({root_str})")
    if relative == os.curdir:
        return ""
    return relative.replace(os.sep, "/").lstrip("/")


def path_from_url(root: str | Path, url: str) -> str:
    """Return the absolute filesystem path for a root-relative ``url``."""
    # Anchoring at "/" keeps ".." segments from escaping root.
    anchored = posixpath.normpath(posixpath.join("/", unquote(url)))
    parts = [part for part in anchored.split("/") if part]
    return os.path.normpath(os.path.join(os.fspath(root), *parts))


def is_external_url(url: str) -> bool:
    """True for URLs with an explicit scheme or a protocol-relative prefix."""
    if url.startswith("//"):
        return True
    return bool(urlsplit(url).scheme)


def logical_path(path: str | Path) -> str:
    """Separator-normalized form of ``path`` for comparisons."""
    return posixpath.normpath(os.fspath(path).replace("\\", "/"))


__all__ = ["url_from_path", "path_from_url", "is_external_url", "logical_path"]
