from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from fragment_graph.core.config import ProjectConfig, Settings, get_settings, load_project_config

SETTINGS_YAML = """
build:
  load_timeout: 2.5
  split_scripts: true
  out_dir: dist
logging:
  level: DEBUG
  json: false
"""

PROJECT_YAML = """
root: app
entrypoint: index.html
shell: shell.html
fragments:
  - views/list.html
sources:
  - "src/**"
  - "!src/**/*.md"
extra_dependencies:
  - "bower_components/polyfills/*.js"
"""


def test_settings_defaults() -> None:
    settings = Settings()
    assert settings.log_level == "INFO"
    assert settings.log_json is True
    assert settings.load_timeout is None
    assert settings.split_scripts is False


def test_settings_from_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "fragment-graph.yaml"
    config_file.write_text(SETTINGS_YAML, encoding="utf-8")

    settings = Settings.from_yaml(config_file)
    assert settings.load_timeout == 2.5
    assert settings.split_scripts is True
    assert settings.out_dir == Path("dist")
    assert settings.log_level == "DEBUG"
    assert settings.log_json is False


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "fragment-graph.yaml"
    config_file.write_text(SETTINGS_YAML, encoding="utf-8")
    monkeypatch.setenv("FGRAPH_CONFIG", str(config_file))
    monkeypatch.setenv("FGRAPH_LOAD_TIMEOUT", "4")

    settings = get_settings()
    assert settings.load_timeout == 4.0
    assert settings.split_scripts is True
    assert get_settings() is settings


def test_non_positive_timeout_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(load_timeout=0)


def test_load_project_config_anchors_root(tmp_path: Path) -> None:
    config_file = tmp_path / "fragment-graph.yaml"
    config_file.write_text(PROJECT_YAML, encoding="utf-8")

    config = load_project_config(config_file)
    root = tmp_path / "app"
    assert config.root == root
    assert config.entrypoint == root / "index.html"
    assert config.shell == root / "shell.html"
    assert config.all_fragments == [root / "index.html", root / "shell.html", root / "views/list.html"]
    assert config.source_globs == ["src/**", "!src/**/*.md", "index.html", "shell.html", "views/list.html"]


def test_missing_explicit_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_project_config(tmp_path / "nope.yaml")


def test_project_config_matching(tmp_path: Path) -> None:
    config = ProjectConfig(
        root=tmp_path,
        entrypoint=Path("index.html"),
        shell=Path("index.html"),
        sources=["src/**", "!src/**/*.md"],
        extra_dependencies=["bower_components/polyfills/*.js"],
    )

    assert config.all_fragments == [tmp_path / "index.html"]
    assert config.is_fragment(tmp_path / "src" / ".." / "index.html")
    assert not config.is_fragment(tmp_path / "other.html")
    assert config.matches_source(tmp_path / "src" / "app" / "main.js")
    assert config.matches_source(tmp_path / "index.html")
    assert not config.matches_source(tmp_path / "src" / "docs" / "README.md")
    assert not config.matches_source(tmp_path.parent / "elsewhere.js")
    assert config.matches_extra_dependency(tmp_path / "bower_components" / "polyfills" / "webcomponents.js")
    assert not config.matches_extra_dependency(tmp_path / "bower_components" / "other.js")
