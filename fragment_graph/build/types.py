"""Common build data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

from fragment_graph.core.errors import FragmentStateError

# Undecodable bytes survive a decode and re-encode round trip.
TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "surrogateescape"


@dataclass(slots=True)
class File:
    """A file flowing through the build streams."""

    path: Path
    contents: bytes

    @property
    def text(self) -> str:
        return self.contents.decode(TEXT_ENCODING, TEXT_ERRORS)


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class SourceRange:
    file: str
    line: int = 0
    column: int = 0


@dataclass(slots=True, frozen=True)
class AnalysisWarning:
    """A diagnostic reported while analyzing a document."""

    severity: Severity
    code: str
    message: str
    source_range: SourceRange

    def full_message(self) -> str:
        return f"In {self.source_range.file}: [{self.code}] - {self.message}"


class ReferenceKind(str, Enum):
    IMPORT = "html-import"
    SCRIPT = "html-script"
    STYLE = "html-style"


@dataclass(slots=True, frozen=True)
class Reference:
    """A URL referenced by a document, as reported by the parser."""

    url: str
    kind: str
    source_range: SourceRange | None = None


@dataclass(slots=True)
class DocumentAnalysis:
    """Parser output for one document."""

    url: str
    warnings: Sequence[AnalysisWarning] = ()
    references: Sequence[Reference] = ()


@dataclass(slots=True)
class DocumentDeps:
    """Direct non-external dependencies of a fragment, in document order."""

    imports: list[str] = field(default_factory=list)
    scripts: list[str] = field(default_factory=list)
    styles: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "imports": list(self.imports),
            "scripts": list(self.scripts),
            "styles": list(self.styles),
        }


@dataclass(slots=True)
class DepsIndex:
    """Fragment to dependency mappings computed by the analyzer."""

    # dependency url -> fragments that import it
    deps_to_fragments: dict[str, list[str]] = field(default_factory=dict)
    # fragment -> html imports only
    fragment_to_deps: dict[str, list[str]] = field(default_factory=dict)
    fragment_to_full_deps: dict[str, DocumentDeps] = field(default_factory=dict)

    def add(self, fragment: str, deps: DocumentDeps) -> None:
        if fragment in self.fragment_to_full_deps:
            raise FragmentStateError(fragment, "Fragment already present in dependency index")
        self.fragment_to_full_deps[fragment] = deps
        self.fragment_to_deps[fragment] = deps.imports
        for url in deps.imports:
            self.deps_to_fragments.setdefault(url, []).append(fragment)

    def to_dict(self) -> dict[str, object]:
        return {
            "deps_to_fragments": {url: list(frags) for url, frags in self.deps_to_fragments.items()},
            "fragment_to_deps": {frag: list(urls) for frag, urls in self.fragment_to_deps.items()},
            "fragment_to_full_deps": {
                frag: deps.to_dict() for frag, deps in self.fragment_to_full_deps.items()
            },
        }


__all__ = [
    "TEXT_ENCODING",
    "TEXT_ERRORS",
    "File",
    "Severity",
    "SourceRange",
    "AnalysisWarning",
    "ReferenceKind",
    "Reference",
    "DocumentAnalysis",
    "DocumentDeps",
    "DepsIndex",
]
