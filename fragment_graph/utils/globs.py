"""Root-relative glob matching for source and dependency patterns."""

from __future__ import annotations

from typing import Sequence

from wcmatch import glob

# "*" stays inside one path segment; "**" spans directories.
GLOB_FLAGS = glob.GLOBSTAR | glob.BRACE


def _clean(pattern: str) -> str:
    cleaned = pattern.strip()
    if cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned


def glob_match(rel_path: str, pattern: str) -> bool:
    """Match a posix root-relative path against one glob pattern."""
    return glob.globmatch(rel_path, _clean(pattern), flags=GLOB_FLAGS)


def matches_all(rel_path: str, patterns: Sequence[str]) -> bool:
    """Apply ``patterns`` in order; ``!pattern`` entries exclude."""
    matched = False
    for pattern in patterns:
        if pattern.startswith("!"):
            if matched and glob_match(rel_path, pattern[1:]):
                matched = False
        elif not matched and glob_match(rel_path, pattern):
            matched = True
    return matched


__all__ = ["GLOB_FLAGS", "glob_match", "matches_all"]
