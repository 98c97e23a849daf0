from __future__ import annotations

import asyncio
import gc
from pathlib import Path

import pytest

from fragment_graph.build.project import BuildProject, run_build
from fragment_graph.core.config import ProjectConfig, Settings
from fragment_graph.core.errors import AnalysisWarningsError


def test_run_build_writes_both_streams(project_dir: Path, project_config: ProjectConfig, tmp_path: Path) -> None:
    out_dir = tmp_path / "out"
    summary = asyncio.run(run_build(BuildProject(project_config), out_dir=out_dir))

    assert sorted(summary.sources) == ["index.html", "shell.html", "source-dir/my-app.html"]
    assert sorted(summary.dependencies) == [
        "bower_components/dep.html",
        "bower_components/loads-external-dependencies.html",
    ]
    written = sorted(path.relative_to(out_dir).as_posix() for path in out_dir.rglob("*") if path.is_file())
    assert written == sorted(summary.sources + summary.dependencies)
    assert (out_dir / "shell.html").read_bytes() == (project_dir / "shell.html").read_bytes()

    payload = summary.to_dict()
    assert payload["index"]["deps_to_fragments"]["bower_components/dep.html"] == [str(project_dir / "shell.html")]


def test_run_build_with_split_scripts_round_trips(
    project_dir: Path, project_config: ProjectConfig, tmp_path: Path
) -> None:
    out_dir = tmp_path / "out"
    summary = asyncio.run(run_build(BuildProject(project_config), out_dir=out_dir, split_scripts=True))

    assert sorted(summary.sources) == ["index.html", "shell.html", "source-dir/my-app.html"]
    assert not list(out_dir.rglob("*.js"))
    assert (out_dir / "shell.html").read_bytes() == (project_dir / "shell.html").read_bytes()


def test_run_build_without_output_dir(project_config: ProjectConfig) -> None:
    project = BuildProject(project_config, Settings(load_timeout=5))
    summary = asyncio.run(run_build(project))
    assert project.analyzer.loader.load_timeout == 5
    assert summary.duration_ms >= 0
    assert sorted(summary.index.fragment_to_deps) == sorted(str(path) for path in project_config.all_fragments)


def test_run_build_propagates_failures(make_project) -> None:
    root = make_project({"index.html": "<script>never closed"})
    config = ProjectConfig(root=root, entrypoint=Path("index.html"), sources=[])

    with pytest.raises(AnalysisWarningsError) as excinfo:
        asyncio.run(run_build(BuildProject(config)))
    assert str(excinfo.value) == "1 error(s) occurred during build."


def test_failed_build_leaves_no_unretrieved_errors(make_project) -> None:
    root = make_project({"index.html": "<script>never closed"})
    config = ProjectConfig(root=root, entrypoint=Path("index.html"), sources=[])
    reported: list[dict] = []

    async def scenario() -> None:
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: reported.append(context))
        project = BuildProject(config)
        with pytest.raises(AnalysisWarningsError):
            await run_build(project)
        del project
        gc.collect()

    asyncio.run(scenario())
    assert reported == []
