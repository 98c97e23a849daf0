"""Test fixtures for fragment-graph."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

SAMPLE_FILES = {
    "index.html": "<!doctype html>\n<html><head><title>App</title></head><body><my-app></my-app></body></html>\n",
    "shell.html": (
        '<link rel="import" href="bower_components/dep.html">\n'
        '<link rel="import" href="source-dir/my-app.html">\n'
        "<dom-module id=\"app-shell\">\n"
        "  <script>console.log('shell');</script>\n"
        '  <script type="text/markdown">\n# I am markdown\n</script>\n'
        '  <script type="module">\nconsole.log(\'shell 2\');\n</script>\n'
        "</dom-module>\n"
    ),
    "source-dir/my-app.html": (
        '<link rel="import" href="../bower_components/loads-external-dependencies.html">\n'
        "<dom-module id=\"my-app\"></dom-module>\n"
    ),
    "bower_components/dep.html": "<div>dep</div>\n",
    "bower_components/loads-external-dependencies.html": (
        '<link rel="import" href="https://example.com/external.html">\n'
        '<script src="//example.com/external.js"></script>\n'
        '<link rel="stylesheet" href="http://example.com/external.css">\n'
    ),
    "bower_components/unreachable-dep.html": "<div>unreachable</div>\n",
}


def write_project(root: Path, files: dict[str, str]) -> Path:
    for name, text in files.items():
        target = root / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
    return root


@pytest.fixture(autouse=True)
def reset_state(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset cached settings and environment between tests."""
    monkeypatch.delenv("FGRAPH_CONFIG", raising=False)
    monkeypatch.delenv("FGRAPH_LOAD_TIMEOUT", raising=False)

    from fragment_graph.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_project(tmp_path: Path):
    """Write ``files`` into a fresh directory and return its path."""

    def _make(files: dict[str, str], name: str = "project") -> Path:
        return write_project(tmp_path / name, files)

    return _make


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    return write_project(tmp_path / "test-project", SAMPLE_FILES)


@pytest.fixture
def project_config(project_dir: Path):
    from fragment_graph.core.config import ProjectConfig

    return ProjectConfig(
        root=project_dir,
        entrypoint=Path("index.html"),
        shell=Path("shell.html"),
        sources=["source-dir/**"],
    )
