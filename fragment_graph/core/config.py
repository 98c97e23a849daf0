"""Project and runtime configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from fragment_graph.utils.globs import matches_all
from fragment_graph.utils.paths import url_from_path

ENV_PREFIX = "FGRAPH_"
DEFAULT_CONFIG_NAME = "fragment-graph.yaml"

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("build", "load_timeout"): "load_timeout",
    ("build", "split_scripts"): "split_scripts",
    ("build", "out_dir"): "out_dir",
    ("logging", "level"): "log_level",
    ("logging", "json"): "log_json",
}

_PROJECT_KEYS = ("root", "entrypoint", "shell", "fragments", "sources", "extra_dependencies")


class Settings(BaseModel):
    """Runtime knobs loaded from the YAML file and environment variables."""

    log_level: str = "INFO"
    log_json: bool = True
    load_timeout: float | None = None
    split_scripts: bool = False
    out_dir: Path = Path("build")

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("load_timeout")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("load_timeout must be positive")
        return value

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            data.update(_flatten_yaml(_read_yaml(config_path)))
        data.update(_load_env_overrides())
        return cls(**data)


class ProjectConfig(BaseModel):
    """Layout of the application being built."""

    root: Path = Field(default_factory=Path.cwd)
    entrypoint: Path = Path("index.html")
    shell: Path | None = None
    fragments: list[Path] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=lambda: ["src/**/*"])
    extra_dependencies: list[str] = Field(default_factory=list)

    model_config = {
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _anchor_paths(self) -> "ProjectConfig":
        root = Path(os.path.normpath(self.root.expanduser().absolute()))
        self.root = root
        self.entrypoint = _under_root(root, self.entrypoint)
        if self.shell is not None:
            self.shell = _under_root(root, self.shell)
        self.fragments = [_under_root(root, fragment) for fragment in self.fragments]
        return self

    @property
    def all_fragments(self) -> list[Path]:
        """Entrypoint, shell and declared fragments, without duplicates."""
        ordered: list[Path] = []
        for candidate in (self.entrypoint, self.shell, *self.fragments):
            if candidate is not None and candidate not in ordered:
                ordered.append(candidate)
        return ordered

    @property
    def source_globs(self) -> list[str]:
        """Source patterns plus every fragment, root-relative."""
        patterns = list(self.sources)
        for fragment in self.all_fragments:
            url = url_from_path(self.root, fragment)
            if url not in patterns:
                patterns.append(url)
        return patterns

    def is_fragment(self, path: str | Path) -> bool:
        return Path(os.path.normpath(path)) in self.all_fragments

    def matches_source(self, path: str | Path) -> bool:
        return self._matches(path, self.source_globs)

    def matches_extra_dependency(self, path: str | Path) -> bool:
        return self._matches(path, self.extra_dependencies)

    def _matches(self, path: str | Path, patterns: list[str]) -> bool:
        try:
            url = url_from_path(self.root, path)
        except ValueError:
            return False
        return matches_all(url, patterns)


def load_project_config(path: Path | None = None) -> ProjectConfig:
    """Read the project section of the config file.

    A relative ``root`` is resolved against the directory holding the file.
    Without a file the current directory is the project root.
    """
    config_path = resolve_config_path(path)
    if config_path is None or not config_path.exists():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {path}")
        return ProjectConfig()
    raw = _read_yaml(config_path)
    data = {key: raw[key] for key in _PROJECT_KEYS if raw.get(key) is not None}
    base = config_path.parent.absolute()
    root = Path(data.get("root", "."))
    data["root"] = root if root.is_absolute() else base / root
    return ProjectConfig(**data)


def resolve_config_path(path: Path | None) -> Path | None:
    if path is not None:
        return path.expanduser()
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    local_default = Path.cwd() / DEFAULT_CONFIG_NAME
    return local_default if local_default.exists() else None


def _under_root(root: Path, path: Path) -> Path:
    path = path.expanduser()
    return Path(os.path.normpath(path if path.is_absolute() else root / path))


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return raw


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif not prefix and key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with FGRAPH_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor."""
    return Settings.from_yaml()


__all__ = [
    "Settings",
    "ProjectConfig",
    "get_settings",
    "load_project_config",
    "resolve_config_path",
]
