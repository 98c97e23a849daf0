"""CLI entrypoint for fragment-graph."""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Optional

import orjson
import typer

from fragment_graph.build.project import BuildProject, BuildSummary, run_build
from fragment_graph.build.watcher import Watcher
from fragment_graph.core.config import ProjectConfig, Settings, load_project_config
from fragment_graph.core.errors import BuildError
from fragment_graph.core.logging import configure_logging, get_logger

app = typer.Typer(name="fgraph", help="Dependency graph builder for HTML fragment projects")

logger = get_logger(__name__)


def _load(config: Optional[Path], log_level: Optional[str]) -> tuple[ProjectConfig, Settings]:
    try:
        project_config = load_project_config(config)
        settings = Settings.from_yaml(config)
    except (OSError, ValueError) as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)
    if log_level:
        settings.log_level = log_level
    configure_logging(settings.log_level, use_json=settings.log_json)
    return project_config, settings


def _echo_json(payload: object) -> None:
    typer.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8"))


def _build_once(
    project_config: ProjectConfig,
    settings: Settings,
    out_dir: Optional[Path],
    split: bool,
) -> BuildSummary:
    project = BuildProject(project_config, settings)
    try:
        return asyncio.run(run_build(project, out_dir=out_dir, split_scripts=split))
    except BuildError as exc:
        typer.echo(f"Build failed: {exc}", err=True)
        raise typer.Exit(code=1)


@app.command()
def build(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to fragment-graph.yaml"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output directory"),
    split: Optional[bool] = typer.Option(None, "--split/--no-split", help="Pass HTML through script split/rejoin"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level"),
) -> None:
    """Analyze the project and write sources and dependencies to the output directory."""
    project_config, settings = _load(config, log_level)
    out_dir = out or project_config.root / settings.out_dir
    summary = _build_once(project_config, settings, out_dir, settings.split_scripts if split is None else split)
    _echo_json(
        {
            "out_dir": str(out_dir),
            "sources": len(summary.sources),
            "dependencies": summary.dependencies,
            "duration_ms": summary.duration_ms,
        }
    )


@app.command()
def deps(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to fragment-graph.yaml"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level"),
) -> None:
    """Print the dependency index of every fragment."""
    project_config, settings = _load(config, log_level)
    summary = _build_once(project_config, settings, None, False)
    _echo_json(summary.index.to_dict())


@app.command()
def watch(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to fragment-graph.yaml"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output directory"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override log level"),
) -> None:
    """Build, then rebuild whenever a project file changes."""
    project_config, settings = _load(config, log_level)
    out_dir = (out or project_config.root / settings.out_dir).absolute()
    changed = threading.Event()

    def on_change(kind: str, path: Path) -> None:
        logger.info("%s %s, rebuilding", kind, path)
        changed.set()

    exclude: list[str] = []
    if out_dir.is_relative_to(project_config.root):
        exclude.append(out_dir.relative_to(project_config.root).as_posix() + "/**")

    watcher = Watcher()
    watcher.watch(project_config.root, on_change, exclude=exclude)
    watcher.start()
    try:
        while True:
            try:
                _build_once(project_config, settings, out_dir, settings.split_scripts)
            except typer.Exit:
                logger.warning("Waiting for changes before rebuilding")
            changed.wait()
            changed.clear()
    except KeyboardInterrupt:
        typer.echo("Stopped watching")
    finally:
        watcher.close()


if __name__ == "__main__":
    app()
