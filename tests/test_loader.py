"""Tests for the deferred load table and the stream loader."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from fragment_graph.build.analyzer import BuildAnalyzer
from fragment_graph.build.loader import DeferredLoadTable
from fragment_graph.build.types import File
from fragment_graph.core.config import ProjectConfig
from fragment_graph.core.errors import DeferredLoadError


def test_deferred_table_resolves_once() -> None:
    async def scenario() -> str:
        table = DeferredLoadTable()
        assert table.is_empty()
        future = table.create("/app/a.html")
        assert table.has("/app/a.html")
        assert len(table) == 1
        table.resolve("/app/a.html", "contents")
        assert table.is_empty()
        with pytest.raises(DeferredLoadError):
            table.resolve("/app/a.html", "again")
        return await future

    assert asyncio.run(scenario()) == "contents"


def test_resolve_without_request_fails_loudly() -> None:
    table = DeferredLoadTable()
    with pytest.raises(DeferredLoadError) as excinfo:
        table.resolve("/app/never-requested.html", "")
    assert excinfo.value.path == "/app/never-requested.html"


def test_create_overwrites_pending_entry() -> None:
    async def scenario() -> None:
        table = DeferredLoadTable()
        first = table.create("/app/a.html")
        second = table.create("/app/a.html")
        assert table.get("/app/a.html") is second
        table.resolve("/app/a.html", "x")
        assert second.result() == "x"
        assert not first.done()

    asyncio.run(scenario())


def test_release_answers_empty_but_stays_pending() -> None:
    async def scenario() -> str:
        table = DeferredLoadTable()
        future = table.create("/app/a.html")
        table.release("/app/a.html")
        assert table.paths() == ["/app/a.html"]
        return await future

    assert asyncio.run(scenario()) == ""


def test_loader_resolves_external_urls_to_empty(tmp_path: Path) -> None:
    config = ProjectConfig(root=tmp_path, entrypoint=Path("index.html"), sources=[])

    async def scenario() -> list[str]:
        analyzer = BuildAnalyzer(config)
        assert analyzer.loader.can_load("https://example.com/x.html")
        results = [
            await analyzer.loader.load("https://example.com/x.html"),
            await analyzer.loader.load("//example.com/y.js"),
        ]
        assert analyzer.loader.deferred.is_empty()
        return results

    assert asyncio.run(scenario()) == ["", ""]


def test_loader_decodes_percent_escapes(tmp_path: Path) -> None:
    config = ProjectConfig(root=tmp_path, entrypoint=Path("index.html"), sources=[])

    async def scenario() -> list[str]:
        analyzer = BuildAnalyzer(config)
        task = asyncio.create_task(analyzer.loader.load("my%20dir/page.html?v=2"))
        await asyncio.sleep(0)
        paths = analyzer.loader.deferred.paths()
        task.cancel()
        return paths

    assert asyncio.run(scenario()) == [os.fspath(tmp_path / "my dir" / "page.html")]


def test_loader_keeps_undecodable_bytes(tmp_path: Path) -> None:
    config = ProjectConfig(root=tmp_path, entrypoint=Path("index.html"), sources=[])
    contents = b"<p>caf\xe9</p>\xff"

    async def scenario() -> str:
        analyzer = BuildAnalyzer(config)
        analyzer.register_file(File(path=tmp_path / "latin1.html", contents=contents))
        return await analyzer.loader.load("latin1.html")

    text = asyncio.run(scenario())
    assert text.startswith("<p>caf")
    assert text.encode("utf-8", "surrogateescape") == contents
