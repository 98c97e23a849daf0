"""Document parsing: discovers the references of an HTML document."""

from __future__ import annotations

import asyncio
import posixpath
from html.parser import HTMLParser
from typing import Callable, Protocol
from urllib.parse import urlsplit

from fragment_graph.build.types import (
    AnalysisWarning,
    DocumentAnalysis,
    Reference,
    ReferenceKind,
    Severity,
    SourceRange,
)
from fragment_graph.core.logging import get_logger
from fragment_graph.utils.paths import is_external_url

logger = get_logger(__name__)


class UrlLoader(Protocol):
    def can_load(self, url: str) -> bool: ...

    async def load(self, url: str) -> str: ...


class DocumentParser(Protocol):
    async def analyze(self, url: str) -> DocumentAnalysis: ...


ParserFactory = Callable[[UrlLoader], DocumentParser]


def resolve_reference(base_url: str, href: str) -> str | None:
    """Resolve ``href`` found in ``base_url`` to a root-relative URL.

    Returns ``None`` for hrefs without a path, such as ``#top`` or ``?v=2``.
    """
    href = href.strip()
    if is_external_url(href):
        return href
    path = urlsplit(href).path
    if not path:
        return None
    if path.startswith("/"):
        resolved = posixpath.normpath(path)
    else:
        resolved = posixpath.normpath(posixpath.join(posixpath.dirname(base_url), path))
    resolved = resolved.lstrip("/")
    # A bare directory is not a document.
    return resolved if resolved not in ("", ".") else None


class ReferenceCollector(HTMLParser):
    """HTML tokenizer that collects import, script and style references."""

    def __init__(self, url: str) -> None:
        super().__init__(convert_charrefs=True)
        self.url = url
        self.references: list[Reference] = []
        self.warnings: list[AnalysisWarning] = []
        self._open_script: SourceRange | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attr_map = {name.lower(): (value or "") for name, value in attrs if name}
        if tag == "link":
            rel = attr_map.get("rel", "").lower().split()
            if "import" in rel:
                kind = ReferenceKind.STYLE if attr_map.get("type", "").lower() == "css" else ReferenceKind.IMPORT
                self._add(attr_map.get("href"), kind, "missing-href", "HTML import has no href")
            elif "stylesheet" in rel:
                self._add(attr_map.get("href"), ReferenceKind.STYLE, "missing-href", "Stylesheet link has no href")
        elif tag == "script":
            self._open_script = self._here()
            if "src" in attr_map:
                self._add(attr_map["src"], ReferenceKind.SCRIPT, "missing-src", "Script src is empty")

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.handle_starttag(tag, attrs)
        if tag == "script":
            self._open_script = None

    def handle_endtag(self, tag: str) -> None:
        if tag == "script":
            self._open_script = None

    def close(self) -> None:
        super().close()
        if self._open_script is not None:
            self.warnings.append(
                AnalysisWarning(
                    severity=Severity.ERROR,
                    code="unterminated-script",
                    message="<script> element is never closed",
                    source_range=self._open_script,
                )
            )
            self._open_script = None

    def _add(self, href: str | None, kind: ReferenceKind, code: str, message: str) -> None:
        if not href or not href.strip():
            self.warnings.append(
                AnalysisWarning(severity=Severity.WARNING, code=code, message=message, source_range=self._here())
            )
            return
        url = resolve_reference(self.url, href)
        if url is None:
            logger.debug("ignoring reference without a path in %s: %s", self.url, href)
            return
        self.references.append(Reference(url=url, kind=kind, source_range=self._here()))

    def _here(self) -> SourceRange:
        line, column = self.getpos()
        return SourceRange(file=self.url, line=line, column=column)


class HtmlDocumentParser:
    """Transitively analyzes HTML documents through a URL loader.

    Every local reference is loaded, and HTML imports are scanned in turn,
    so the result lists the whole reference tree of the document in
    pre-order with duplicates removed.
    """

    def __init__(self, loader: UrlLoader) -> None:
        self.loader = loader

    async def analyze(self, url: str) -> DocumentAnalysis:
        warnings: list[AnalysisWarning] = []
        ordered = await self._scan(url, {url}, warnings)
        seen: set[str] = set()
        references: list[Reference] = []
        for reference in ordered:
            if reference.url in seen:
                continue
            seen.add(reference.url)
            references.append(reference)
        return DocumentAnalysis(url=url, warnings=warnings, references=references)

    async def _scan(self, url: str, visited: set[str], warnings: list[AnalysisWarning]) -> list[Reference]:
        contents = await self.loader.load(url)
        collector = ReferenceCollector(url)
        collector.feed(contents)
        collector.close()
        warnings.extend(collector.warnings)

        nested = await asyncio.gather(
            *(self._follow(reference, visited, warnings) for reference in collector.references)
        )
        ordered: list[Reference] = []
        for reference, children in zip(collector.references, nested):
            ordered.append(reference)
            ordered.extend(children)
        return ordered

    async def _follow(
        self, reference: Reference, visited: set[str], warnings: list[AnalysisWarning]
    ) -> list[Reference]:
        if is_external_url(reference.url) or not self.loader.can_load(reference.url):
            return []
        if reference.kind == ReferenceKind.IMPORT:
            if reference.url in visited:
                return []
            visited.add(reference.url)
            return await self._scan(reference.url, visited, warnings)
        await self.loader.load(reference.url)
        return []


__all__ = [
    "UrlLoader",
    "DocumentParser",
    "ParserFactory",
    "HtmlDocumentParser",
    "ReferenceCollector",
    "resolve_reference",
]
