"""Async file streams and on-disk file enumeration."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Sequence

from fragment_graph.build.types import File
from fragment_graph.core.config import ProjectConfig
from fragment_graph.core.logging import get_logger
from fragment_graph.utils.globs import matches_all

logger = get_logger(__name__)

_END = object()


class FileStream:
    """Readable stream of files that finishes with an end or an error.

    Files are delivered in the order they were sent. A terminal failure is
    raised to the reader after every file queued before it.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._terminated = False
        self._final: object | None = None

    @property
    def terminated(self) -> bool:
        return self._terminated

    def send(self, file: File) -> None:
        if self._terminated:
            raise RuntimeError(f"{self.name} stream is already closed")
        self._queue.put_nowait(file)

    def end(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._queue.put_nowait(_END)

    def fail(self, exc: BaseException) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._queue.put_nowait(exc)

    def __aiter__(self) -> "FileStream":
        return self

    async def __anext__(self) -> File:
        if self._final is not None:
            return self._raise_final()
        item = await self._queue.get()
        if isinstance(item, File):
            return item
        self._final = item
        return self._raise_final()

    def _raise_final(self) -> File:
        if isinstance(self._final, BaseException):
            raise self._final
        raise StopAsyncIteration


async def read_file(path: Path) -> File:
    """Load a file from disk without blocking the event loop."""
    contents = await asyncio.to_thread(path.read_bytes)
    return File(path=path, contents=contents)


def list_matching_files(root: Path, patterns: Sequence[str]) -> list[Path]:
    """Files under ``root`` whose root-relative path matches ``patterns``."""
    if not patterns:
        return []
    matched: list[Path] = []
    for file_path in sorted(root.rglob("*")):
        if file_path.is_file() and matches_all(file_path.relative_to(root).as_posix(), patterns):
            matched.append(file_path)
    return matched


async def iter_matching_files(root: Path, patterns: Sequence[str]) -> AsyncIterator[File]:
    paths = await asyncio.to_thread(list_matching_files, root, patterns)
    logger.debug("Matched %s files under %s", len(paths), root)
    for path in paths:
        yield await read_file(path)


def iter_source_files(config: ProjectConfig) -> AsyncIterator[File]:
    """Source stream for a project: every file matching its source globs."""
    return iter_matching_files(config.root, config.source_globs)


__all__ = [
    "FileStream",
    "read_file",
    "list_matching_files",
    "iter_matching_files",
    "iter_source_files",
]
