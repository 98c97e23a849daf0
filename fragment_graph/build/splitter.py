"""Split inline scripts out of HTML documents, and join them back in.

Splitting turns each HTML carrier document into the carrier itself, with the
body of every inline script removed, followed by one synthetic file per
script named ``<carrier>_script_<n>.js``. The synthetic files can then be
processed in isolation by later stages. Rejoining collects a carrier and its
synthetic files again, in any order, and writes the scripts back.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser
from pathlib import Path
from typing import AsyncIterable, AsyncIterator

from fragment_graph.build.types import TEXT_ENCODING, TEXT_ERRORS, File
from fragment_graph.core.errors import SplitError
from fragment_graph.core.logging import get_logger
from fragment_graph.utils.paths import logical_path

logger = get_logger(__name__)

HTML_SUFFIXES = (".html", ".htm")
_NEWLINE = re.compile(r"\n")


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass(slots=True, frozen=True)
class ScriptBoundary:
    """Which elements count as inline script regions."""

    tag: str = "script"
    types: tuple[str, ...] = ("", "text/javascript", "application/javascript", "module")

    def matches(self, tag: str, attrs: dict[str, str]) -> bool:
        if tag != self.tag or "src" in attrs:
            return False
        return attrs.get("type", "").strip().lower() in self.types


@dataclass(slots=True, frozen=True)
class ScriptRegion:
    """Character range of one region body, plus its surrounding tags."""

    start: int
    end: int
    open_tag: str
    close_tag: str


@dataclass(slots=True, frozen=True)
class SplitPart:
    path: Path
    offset: int
    open_tag: str
    close_tag: str


@dataclass(slots=True)
class SplitRecord:
    """How a carrier was split, enough to splice its scripts back in."""

    path: Path
    digest: str
    parts: list[SplitPart] = field(default_factory=list)


class _RegionLocator(HTMLParser):
    def __init__(self, text: str, boundary: ScriptBoundary) -> None:
        super().__init__(convert_charrefs=False)
        self.boundary = boundary
        self.regions: list[ScriptRegion] = []
        self._line_starts = [0] + [match.end() for match in _NEWLINE.finditer(text)]
        self._text = text
        self._open: tuple[int, str] | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self._open is not None:
            return
        attr_map = {name.lower(): (value or "") for name, value in attrs if name}
        if self.boundary.matches(tag, attr_map):
            start_tag = self.get_starttag_text() or ""
            self._open = (self._offset() + len(start_tag), start_tag)

    def handle_endtag(self, tag: str) -> None:
        if self._open is None or tag != self.boundary.tag:
            return
        start, open_tag = self._open
        end = self._offset()
        close_end = self._text.find(">", end)
        close_tag = self._text[end : close_end + 1] if close_end != -1 else self._text[end:]
        self.regions.append(ScriptRegion(start=start, end=end, open_tag=open_tag, close_tag=close_tag))
        self._open = None

    def _offset(self) -> int:
        line, column = self.getpos()
        return self._line_starts[line - 1] + column


def locate_regions(text: str, boundary: ScriptBoundary) -> list[ScriptRegion]:
    """Inline script regions of ``text`` in document order."""
    locator = _RegionLocator(text, boundary)
    locator.feed(text)
    locator.close()
    return locator.regions


def synthetic_path(carrier: Path, index: int) -> Path:
    return carrier.with_name(f"{carrier.name}_script_{index}.js")


class HtmlSplitter:
    """Paired split and rejoin stream stages sharing their split records."""

    def __init__(self, boundary: ScriptBoundary | None = None) -> None:
        self.boundary = boundary or ScriptBoundary()
        self._records: dict[str, SplitRecord] = {}
        self._parents: dict[str, str] = {}

    def is_html(self, path: Path) -> bool:
        return path.suffix.lower() in HTML_SUFFIXES

    async def split(self, files: AsyncIterable[File]) -> AsyncIterator[File]:
        async for file in files:
            if not self.is_html(file.path):
                yield file
                continue
            for piece in self.split_file(file):
                yield piece

    async def rejoin(self, files: AsyncIterable[File]) -> AsyncIterator[File]:
        groups: dict[str, dict[str, File]] = {}
        async for file in files:
            key = logical_path(file.path)
            carrier_key = self._parents.get(key, key)
            record = self._records.get(carrier_key)
            if record is None:
                yield file
                continue
            group = groups.setdefault(carrier_key, {})
            group[key] = file
            if len(group) == len(record.parts) + 1 and carrier_key in group:
                del groups[carrier_key]
                yield self.join_files(record, group)
        if groups:
            missing = ", ".join(sorted(groups))
            raise SplitError(f"Split files never completed for: {missing}")

    def split_file(self, file: File) -> list[File]:
        """Split one carrier; the carrier comes first, then its scripts."""
        text = file.contents.decode(TEXT_ENCODING, TEXT_ERRORS)
        regions = locate_regions(text, self.boundary)

        pieces: list[str] = []
        scripts: list[File] = []
        parts: list[SplitPart] = []
        cursor = 0
        removed = 0
        for index, region in enumerate(regions):
            pieces.append(text[cursor : region.start])
            cursor = region.end
            part_path = synthetic_path(file.path, index)
            body = text[region.start : region.end]
            parts.append(
                SplitPart(
                    path=part_path,
                    offset=region.start - removed,
                    open_tag=region.open_tag,
                    close_tag=region.close_tag,
                )
            )
            removed += len(body)
            scripts.append(File(path=part_path, contents=body.encode(TEXT_ENCODING, TEXT_ERRORS)))
        pieces.append(text[cursor:])
        carrier_bytes = "".join(pieces).encode(TEXT_ENCODING, TEXT_ERRORS)

        carrier_key = logical_path(file.path)
        self._records[carrier_key] = SplitRecord(path=file.path, digest=_digest(carrier_bytes), parts=parts)
        for part in parts:
            self._parents[logical_path(part.path)] = carrier_key
        logger.debug("split %s into %s scripts", file.path, len(parts))
        return [File(path=file.path, contents=carrier_bytes), *scripts]

    def join_files(self, record: SplitRecord, group: dict[str, File]) -> File:
        """Rebuild a carrier from its current body and script files."""
        carrier_key = logical_path(record.path)
        carrier = group[carrier_key]
        text = carrier.contents.decode(TEXT_ENCODING, TEXT_ERRORS)
        bodies = [group[logical_path(part.path)].contents.decode(TEXT_ENCODING, TEXT_ERRORS) for part in record.parts]

        if _digest(carrier.contents) == record.digest:
            offsets = [(part.offset, part.offset) for part in record.parts]
        else:
            regions = locate_regions(text, self.boundary)
            if len(regions) != len(record.parts):
                raise SplitError(
                    f"{record.path} has {len(regions)} script regions, expected {len(record.parts)}"
                )
            offsets = [(region.start, region.end) for region in regions]

        pieces: list[str] = []
        cursor = 0
        for (start, end), body in zip(offsets, bodies):
            pieces.append(text[cursor:start])
            pieces.append(body)
            cursor = end
        pieces.append(text[cursor:])

        self._records.pop(carrier_key, None)
        for part in record.parts:
            self._parents.pop(logical_path(part.path), None)
        return File(path=record.path, contents="".join(pieces).encode(TEXT_ENCODING, TEXT_ERRORS))


__all__ = [
    "HtmlSplitter",
    "ScriptBoundary",
    "ScriptRegion",
    "SplitPart",
    "SplitRecord",
    "locate_regions",
    "synthetic_path",
]
