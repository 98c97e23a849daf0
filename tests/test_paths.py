from __future__ import annotations

import os
from pathlib import Path

import pytest

from fragment_graph.utils.globs import glob_match, matches_all
from fragment_graph.utils.paths import is_external_url, logical_path, path_from_url, url_from_path


def test_url_from_path(tmp_path: Path) -> None:
    assert url_from_path(tmp_path, tmp_path / "src" / "app.html") == "src/app.html"
    assert url_from_path(str(tmp_path) + os.sep, tmp_path / "index.html") == "index.html"
    assert url_from_path(tmp_path, tmp_path) == ""


def test_url_from_path_outside_root(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        url_from_path(tmp_path / "app", tmp_path / "other" / "index.html")


def test_path_from_url(tmp_path: Path) -> None:
    assert path_from_url(tmp_path, "src/app.html") == os.fspath(tmp_path / "src" / "app.html")
    assert path_from_url(tmp_path, "/src/app.html") == os.fspath(tmp_path / "src" / "app.html")
    assert path_from_url(tmp_path, "my%20dir/a.html") == os.fspath(tmp_path / "my dir" / "a.html")


def test_path_from_url_stays_under_root(tmp_path: Path) -> None:
    assert path_from_url(tmp_path, "../../etc/passwd") == os.fspath(tmp_path / "etc" / "passwd")


@pytest.mark.parametrize(
    ("url", "external"),
    [
        ("https://example.com/a.js", True),
        ("//cdn.example.com/a.js", True),
        ("data:text/plain,hi", True),
        ("lib/a.js", False),
        ("/lib/a.js", False),
        ("../a.html", False),
    ],
)
def test_is_external_url(url: str, external: bool) -> None:
    assert is_external_url(url) is external


def test_logical_path_normalizes_separators() -> None:
    assert logical_path("C:\\app\\src\\..\\index.html") == "C:/app/index.html"
    assert logical_path(Path("/app/./src/index.html")) == "/app/src/index.html"


def test_glob_match_braces() -> None:
    assert glob_match("src/a.html", "src/*.{html,js}")
    assert glob_match("src/a.js", "src/*.{html,js}")
    assert glob_match("b/d", "{a,b}/{c,d}")
    assert not glob_match("src/a.css", "src/*.{html,js}")


def test_glob_match_double_star() -> None:
    assert glob_match("index.html", "**/*.html")
    assert glob_match("a/b/c.html", "**/*.html")
    assert glob_match("src/a.js", "./src/*")
    assert glob_match("src/deep/tree/a.js", "src/**")
    assert not glob_match("lib/a.js", "src/**")
    assert glob_match("src/a.JS", "src/*.{js,JS}")


def test_single_star_stays_within_one_segment() -> None:
    assert glob_match("index.html", "*.html")
    assert not glob_match("bower_components/dep.html", "*.html")
    assert not glob_match("src/deep/a.js", "src/*")
    assert not matches_all("bower_components/dep.html", ["*.html"])


def test_matches_all_applies_patterns_in_order() -> None:
    assert not matches_all("src/a.js", [])
    assert not matches_all("src/a.js", ["src/**", "!src/*.js"])
    assert matches_all("src/a.js", ["src/**", "!**/*.css"])
    assert matches_all("src/a.js", ["!src/a.js", "src/**"])
