"""Dependency analysis and stream transforms for fragment builds."""

from .analyzer import BuildAnalyzer, BuildState
from .loader import DeferredLoadTable, StreamLoader
from .parser import HtmlDocumentParser
from .project import BuildProject, BuildSummary, run_build
from .splitter import HtmlSplitter, ScriptBoundary
from .streams import FileStream

__all__ = [
    "BuildAnalyzer",
    "BuildState",
    "DeferredLoadTable",
    "StreamLoader",
    "HtmlDocumentParser",
    "BuildProject",
    "BuildSummary",
    "run_build",
    "HtmlSplitter",
    "ScriptBoundary",
    "FileStream",
]
