"""URL loading for the document parser, backed by the build streams."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from fragment_graph.core.errors import DeferredLoadError
from fragment_graph.core.logging import get_logger
from fragment_graph.utils.paths import is_external_url, path_from_url, url_from_path

if TYPE_CHECKING:
    from fragment_graph.build.analyzer import BuildAnalyzer

logger = get_logger(__name__)


class DeferredLoadTable:
    """Content requests parked until the requested file is registered."""

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[str]] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def has(self, path: str) -> bool:
        return path in self._pending

    def is_empty(self) -> bool:
        return not self._pending

    def paths(self) -> list[str]:
        return list(self._pending)

    def get(self, path: str) -> asyncio.Future[str] | None:
        return self._pending.get(path)

    def create(self, path: str) -> asyncio.Future[str]:
        if path in self._pending:
            logger.warning("Replacing pending deferred load for %s", path)
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending[path] = future
        return future

    def resolve(self, path: str, contents: str) -> None:
        future = self._pending.pop(path, None)
        if future is None:
            raise DeferredLoadError(path)
        if not future.done():
            future.set_result(contents)

    def release(self, path: str) -> None:
        """Answer a request with empty content while keeping it pending."""
        future = self._pending.get(path)
        if future is not None and not future.done():
            future.set_result("")


class StreamLoader:
    """Answers the parser's content requests from the file registry.

    A request for a file that has not been seen yet is parked in the
    deferred table and the analyzer is asked to fetch it; the request
    completes once that file is registered.
    """

    def __init__(self, analyzer: "BuildAnalyzer", load_timeout: float | None = None) -> None:
        self.analyzer = analyzer
        self.config = analyzer.config
        self.load_timeout = load_timeout
        self.deferred = DeferredLoadTable()

    def has_deferred_file(self, path: str) -> bool:
        return self.deferred.has(path)

    def has_deferred_files(self) -> bool:
        return not self.deferred.is_empty()

    def resolve_deferred_file(self, path: str, contents: str) -> None:
        self.deferred.resolve(path, contents)

    def release_deferred_file(self, path: str) -> None:
        logger.debug("releasing unreachable file: %s", path)
        self.deferred.release(path)

    def can_load(self, url: str) -> bool:
        # External urls load too, as empty documents.
        return True

    async def load(self, url: str) -> str:
        logger.debug("loading: %s", url)
        if is_external_url(url):
            return ""

        file_path = path_from_url(self.config.root, urlsplit(url).path)
        file = self.analyzer.get_file(file_path)
        if file is not None:
            return file.text

        pending = self.deferred.get(file_path)
        if pending is None:
            pending = self.deferred.create(file_path)
            self.analyzer.push_dependency(url_from_path(self.config.root, file_path))
        return await self._wait_for(file_path, pending)

    async def _wait_for(self, file_path: str, pending: asyncio.Future[str]) -> str:
        if self.load_timeout is None:
            return await asyncio.shield(pending)
        try:
            return await asyncio.wait_for(asyncio.shield(pending), self.load_timeout)
        except asyncio.TimeoutError:
            # The entry stays pending; completion reports it as unresolved.
            logger.error("Timed out after %ss waiting for %s", self.load_timeout, file_path)
            self.deferred.release(file_path)
            return ""


__all__ = ["DeferredLoadTable", "StreamLoader"]
