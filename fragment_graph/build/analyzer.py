"""Build analysis: resolves the dependency graph of the application fragments."""

from __future__ import annotations

import asyncio
import os
from enum import Enum
from pathlib import Path
from typing import AsyncIterable, Awaitable, Callable, Coroutine

from fragment_graph.build.loader import StreamLoader
from fragment_graph.build.parser import HtmlDocumentParser, ParserFactory
from fragment_graph.build.streams import FileStream, iter_source_files, list_matching_files, read_file
from fragment_graph.build.types import (
    AnalysisWarning,
    DepsIndex,
    DocumentDeps,
    File,
    ReferenceKind,
    Severity,
)
from fragment_graph.core.config import ProjectConfig
from fragment_graph.core.errors import (
    AnalysisWarningsError,
    DependencyLoadError,
    FragmentStateError,
    UnresolvedReferencesError,
)
from fragment_graph.core.logging import get_logger, log_context
from fragment_graph.utils.paths import is_external_url, path_from_url, url_from_path

logger = get_logger(__name__)

FileReader = Callable[[Path], Awaitable[File]]


class BuildState(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BuildAnalyzer:
    """Coordinate the source stream, the dependency stream and the parser.

    Files from either stream are registered so the parser's content requests
    can be answered; fragments are analyzed as they arrive, and every local
    file they need that is not a source is fetched into the dependency stream.
    Once all fragments are analyzed the build completes or fails, and the
    outcome is reported on both output streams.
    """

    def __init__(
        self,
        config: ProjectConfig,
        parser_factory: ParserFactory = HtmlDocumentParser,
        file_reader: FileReader = read_file,
        load_timeout: float | None = None,
    ) -> None:
        self.config = config
        self.loader = StreamLoader(self, load_timeout=load_timeout)
        self.parser = parser_factory(self.loader)
        self.file_reader = file_reader

        self.files: dict[str, File] = {}
        self.warnings: set[AnalysisWarning] = set()
        self.fragments_to_analyze: set[str] = {os.fspath(path) for path in config.all_fragments}
        self.dependency_index = DepsIndex()
        self.state = BuildState.RUNNING

        self._sources = FileStream("sources")
        self._dependencies = FileStream("dependencies")
        self._dependency_paths: asyncio.Queue[Path | None] = asyncio.Queue()
        self._pushed: set[str] = set()
        self._analyzing: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._finished = asyncio.Event()
        self._analysis: asyncio.Future[DepsIndex] | None = None
        self._started = False
        self._sources_exhausted = False

    @property
    def sources(self) -> FileStream:
        """Source files, each yielded once it has been registered."""
        return self._sources

    @property
    def dependencies(self) -> FileStream:
        """Dependency files discovered by analysis, each yielded once."""
        return self._dependencies

    def start(self, source_files: AsyncIterable[File] | None = None) -> None:
        """Start reading sources; nothing flows before this is called."""
        if self._started:
            return
        self._started = True
        self._analysis_future()
        for extra_path in list_matching_files(self.config.root, self.config.extra_dependencies):
            # Fragments and other sources only arrive through the source stream.
            if self.config.matches_source(extra_path):
                logger.debug("extra dependency is a source file, ignoring: %s", extra_path)
                continue
            self._enqueue_dependency(url_from_path(self.config.root, extra_path), extra_path)
        self._spawn(self._pump_sources(source_files or iter_source_files(self.config)))
        self._spawn(self._pump_dependencies())
        if not self.fragments_to_analyze:
            self._done()

    async def analyze_dependencies(self) -> DepsIndex:
        """Wait for the completed dependency index."""
        return await self._analysis_future()

    async def aclose(self) -> None:
        """Cancel any outstanding work."""
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # Registry -----------------------------------------------------------

    def register_file(self, file: File) -> None:
        """Store ``file`` and release any content request waiting for it."""
        file_path = os.path.normpath(file.path)
        logger.debug("register_file: %s", file_path)
        self.files[url_from_path(self.config.root, file_path)] = file
        if self.loader.has_deferred_file(file_path):
            self.loader.resolve_deferred_file(file_path, file.text)

    # Generated files enter the registry the same way.
    add_file = register_file

    def get_file(self, file_path: str | Path) -> File | None:
        return self.get_file_by_url(url_from_path(self.config.root, file_path))

    def get_file_by_url(self, url: str) -> File | None:
        if url.startswith("/"):
            url = url[1:]
        return self.files.get(url)

    # Analysis -----------------------------------------------------------

    async def analyze_fragment(self, file: File) -> None:
        """Record the dependencies of one fragment."""
        file_path = os.path.normpath(file.path)
        url = url_from_path(self.config.root, file_path)
        with log_context(fragment=url):
            deps = await self._get_dependencies(url)
        self._add_dependencies(file_path, deps)
        self.fragments_to_analyze.discard(file_path)
        if not self.fragments_to_analyze:
            self._done()

    async def _get_dependencies(self, url: str) -> DocumentDeps:
        analysis = await self.parser.analyze(url)
        self.warnings.update(analysis.warnings)

        deps = DocumentDeps()
        seen: set[str] = set()
        for reference in analysis.references:
            if is_external_url(reference.url):
                logger.debug("ignoring external dependency: %s", reference.url)
                continue
            if reference.url in seen:
                continue
            seen.add(reference.url)
            if reference.kind == ReferenceKind.SCRIPT:
                deps.scripts.append(reference.url)
            elif reference.kind == ReferenceKind.STYLE:
                deps.styles.append(reference.url)
            elif reference.kind == ReferenceKind.IMPORT:
                deps.imports.append(reference.url)
            else:
                logger.debug("unexpected import type encountered: %s", reference.kind)
        logger.debug("dependencies analyzed for: %s", url, extra={"ctx_deps": deps.to_dict()})
        return deps

    def _add_dependencies(self, file_path: str, deps: DocumentDeps) -> None:
        if file_path not in self.fragments_to_analyze:
            raise FragmentStateError(file_path, "Dependency analysis incorrectly called")
        self.dependency_index.add(file_path, deps)

    def push_dependency(self, dependency_url: str) -> None:
        """Queue ``dependency_url`` for the dependency stream, at most once."""
        if self.state is not BuildState.RUNNING:
            logger.warning("Build is %s, dropping dependency %s", self.state.value, dependency_url)
            return
        url = dependency_url.lstrip("/")
        if self.get_file_by_url(url) is not None or url in self._pushed:
            logger.debug("dependency has already been pushed, ignoring: %s", url)
            return
        dependency_path = Path(path_from_url(self.config.root, url))
        if self.config.matches_source(dependency_path):
            logger.debug("dependency is a source file, ignoring: %s", url)
            if self._sources_exhausted:
                self.loader.release_deferred_file(os.fspath(dependency_path))
            return
        self._enqueue_dependency(url, dependency_path)

    def _enqueue_dependency(self, url: str, dependency_path: Path) -> None:
        if url in self._pushed:
            return
        logger.debug("new dependency found, pushing into dependency stream: %s", dependency_path)
        self._pushed.add(url)
        self._dependency_paths.put_nowait(dependency_path)

    # Completion ---------------------------------------------------------

    def print_warnings(self) -> None:
        for warning in self.warnings:
            message = warning.full_message()
            if warning.severity is Severity.ERROR:
                logger.error(message)
            elif warning.severity is Severity.WARNING:
                logger.warning(message)
            else:
                logger.debug(message)

    def count_warnings_by_severity(self) -> dict[Severity, int]:
        counts = {severity: 0 for severity in Severity}
        for warning in self.warnings:
            counts[warning.severity] += 1
        return counts

    def _done(self) -> None:
        if self.state is not BuildState.RUNNING:
            return
        self.print_warnings()
        error_count = self.count_warnings_by_severity()[Severity.ERROR]
        if error_count > 0:
            self._fail(AnalysisWarningsError(error_count))
            return

        if self.loader.has_deferred_files():
            unresolved = [url_from_path(self.config.root, path) for path in self.loader.deferred.paths()]
            for url in unresolved:
                logger.error("%s never loaded", url)
            self._fail(UnresolvedReferencesError(unresolved))
            return

        self.state = BuildState.SUCCEEDED
        logger.info(
            "Analyzed %s fragments, %s files registered",
            len(self.dependency_index.fragment_to_full_deps),
            len(self.files),
        )
        self._dependency_paths.put_nowait(None)
        self._analysis_future().set_result(self.dependency_index)
        self._finished.set()

    def _fail(self, exc: BaseException) -> None:
        if self.state is BuildState.FAILED:
            return
        self.state = BuildState.FAILED
        logger.error("Build failed: %s", exc)
        self._sources.fail(exc)
        self._dependencies.fail(exc)
        analysis = self._analysis_future()
        if not analysis.done():
            analysis.set_exception(exc)
        self._finished.set()
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()

    # Pumps --------------------------------------------------------------

    async def _pump_sources(self, source_files: AsyncIterable[File]) -> None:
        async for file in source_files:
            if self.state is BuildState.FAILED:
                return
            self.register_file(file)
            self._maybe_analyze(file)
            self._sources.send(file)
        self._on_sources_exhausted()
        await self._finished.wait()
        if self.state is BuildState.SUCCEEDED:
            self._sources.end()

    def _on_sources_exhausted(self) -> None:
        self._sources_exhausted = True
        # Fragments and source files can only arrive through the source stream.
        missing = sorted(self.fragments_to_analyze - self._analyzing)
        if missing:
            for fragment in missing:
                logger.error("fragment %s was not found among the sources", fragment)
            self._fail(FragmentStateError(missing[0], "Fragment never arrived in the source stream"))
            return
        for file_path in self.loader.deferred.paths():
            if self.config.matches_source(file_path):
                self.loader.release_deferred_file(file_path)

    async def _pump_dependencies(self) -> None:
        while True:
            dependency_path = await self._dependency_paths.get()
            if dependency_path is None:
                break
            try:
                file = await self.file_reader(dependency_path)
            except OSError as exc:
                logger.error("Failed to load dependency %s: %s", dependency_path, exc)
                error = DependencyLoadError(dependency_path)
                error.__cause__ = exc
                self._fail(error)
                return
            self.register_file(file)
            self._maybe_analyze(file)
            self._dependencies.send(file)
        if self.state is BuildState.SUCCEEDED:
            self._dependencies.end()

    def _maybe_analyze(self, file: File) -> None:
        file_path = os.path.normpath(file.path)
        if file_path in self.fragments_to_analyze and file_path not in self._analyzing:
            self._analyzing.add(file_path)
            self._spawn(self.analyze_fragment(file))

    def _spawn(self, coro: Coroutine[object, object, None]) -> None:
        task = asyncio.create_task(self._guard(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, coro: Coroutine[object, object, None]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Build task failed: %s", exc)
            self._fail(exc)

    def _analysis_future(self) -> asyncio.Future[DepsIndex]:
        if self._analysis is None:
            self._analysis = asyncio.get_running_loop().create_future()
        return self._analysis


__all__ = ["BuildAnalyzer", "BuildState", "FileReader"]
