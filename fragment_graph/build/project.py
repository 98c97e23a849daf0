"""Project-level build orchestration."""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, AsyncIterator

from fragment_graph.build.analyzer import BuildAnalyzer, FileReader
from fragment_graph.build.parser import HtmlDocumentParser, ParserFactory
from fragment_graph.build.splitter import HtmlSplitter, ScriptBoundary
from fragment_graph.build.streams import FileStream, read_file
from fragment_graph.build.types import DepsIndex, File
from fragment_graph.core.config import ProjectConfig, Settings
from fragment_graph.core.logging import get_logger, log_context
from fragment_graph.utils.paths import url_from_path

logger = get_logger(__name__)


class BuildProject:
    """One build of a project: its analyzer and its script splitter."""

    def __init__(
        self,
        config: ProjectConfig,
        settings: Settings | None = None,
        parser_factory: ParserFactory = HtmlDocumentParser,
        file_reader: FileReader = read_file,
        boundary: ScriptBoundary | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or Settings()
        self.analyzer = BuildAnalyzer(
            config,
            parser_factory=parser_factory,
            file_reader=file_reader,
            load_timeout=self.settings.load_timeout,
        )
        self.splitter = HtmlSplitter(boundary)

    def sources(self) -> FileStream:
        return self.analyzer.sources

    def dependencies(self) -> FileStream:
        return self.analyzer.dependencies

    def start_build(self, source_files: AsyncIterable[File] | None = None) -> None:
        self.analyzer.start(source_files)

    def split_html(self, files: AsyncIterable[File]) -> AsyncIterator[File]:
        return self.splitter.split(files)

    def rejoin_html(self, files: AsyncIterable[File]) -> AsyncIterator[File]:
        return self.splitter.rejoin(files)

    async def analyze_dependencies(self) -> DepsIndex:
        return await self.analyzer.analyze_dependencies()


@dataclass(slots=True)
class BuildSummary:
    sources: list[str]
    dependencies: list[str]
    index: DepsIndex
    duration_ms: int

    def to_dict(self) -> dict[str, object]:
        return {
            "sources": self.sources,
            "dependencies": self.dependencies,
            "duration_ms": self.duration_ms,
            "index": self.index.to_dict(),
        }


async def run_build(project: BuildProject, out_dir: Path | None = None, split_scripts: bool = False) -> BuildSummary:
    """Drive both streams to completion, writing files under ``out_dir``."""
    started = time.perf_counter()
    root = project.config.root

    async def drain(stream: AsyncIterable[File]) -> list[str]:
        if split_scripts:
            stream = project.rejoin_html(project.split_html(stream))
        urls: list[str] = []
        async for file in stream:
            urls.append(url_from_path(root, file.path))
            if out_dir is not None:
                await asyncio.to_thread(_write_file, out_dir, urls[-1], file.contents)
        return urls

    try:
        with log_context(project=os.fspath(root)):
            project.start_build()
            # The analysis future fails together with both streams.
            sources, dependencies, index = await asyncio.gather(
                drain(project.sources()),
                drain(project.dependencies()),
                project.analyze_dependencies(),
            )
    finally:
        await project.analyzer.aclose()
    duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info("Build finished: %s sources, %s dependencies in %sms", len(sources), len(dependencies), duration_ms)
    return BuildSummary(sources=sources, dependencies=dependencies, index=index, duration_ms=duration_ms)


def _write_file(out_dir: Path, url: str, contents: bytes) -> None:
    target = out_dir.joinpath(*url.split("/"))
    os.makedirs(target.parent, exist_ok=True)
    target.write_bytes(contents)


__all__ = ["BuildProject", "BuildSummary", "run_build"]
