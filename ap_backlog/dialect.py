from __future__ import annotations

import csv
import io
import logging
from typing import Dict, Iterator, List, Optional

from ap_backlog.profiles import FormatProfile

logger = logging.getLogger(__name__)


def strip_bom(text: str) -> str:
    return text[1:] if text.startswith("\ufeff") else text


def detect_delimiter(text: str) -> str:
    """Tab when the header line has more tabs than commas, comma otherwise."""
    header = strip_bom(text).split("\n", 1)[0]
    if header.count("\t") > header.count(","):
        return "\t"
    return ","


class ParsedTable:
    def __init__(self, headers: List[str], rows: Iterator[List[str]]) -> None:
        self.headers = headers
        self.rows = rows


def read_rows(text: str, delimiter: Optional[str] = None) -> ParsedTable:
    """Split a delimited extract into trimmed headers and an iterator of body rows.

    Quoting is the same for both delimiters: ``"`` encloses a field and ``""``
    inside a quoted field is a literal quote. Blank lines are skipped.
    """
    text = strip_bom(text)
    delimiter = delimiter or detect_delimiter(text)
    reader = csv.reader(
        io.StringIO(text, newline=""),
        delimiter=delimiter,
        quotechar='"',
        doublequote=True,
        skipinitialspace=False,
    )

    headers: List[str] = []
    for first in reader:
        if any(cell.strip() for cell in first):
            headers = [cell.strip() for cell in first]
            break

    def _body() -> Iterator[List[str]]:
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            yield row

    return ParsedTable(headers, _body())


class RowView:
    """Read a parsed row by semantic field name."""

    def __init__(self, cells: List[str], index: Dict[str, int]) -> None:
        self._cells = cells
        self._index = index

    def get(self, field: str) -> str:
        position = self._index.get(field)
        if position is None or position >= len(self._cells):
            return ""
        return self._cells[position].strip()

    def __contains__(self, field: str) -> bool:
        return field in self._index


class FieldResolver:
    def __init__(self, profile: FormatProfile, headers: List[str]) -> None:
        self.profile = profile
        self.headers = headers
        if profile.mode == "positional":
            self.index = dict(profile.positions)
        else:
            self.index = _resolve_aliases(profile.aliases, headers)
        self.missing = sorted(field for field in _known_fields(profile) if field not in self.index)
        if self.missing:
            logger.debug("Unresolved fields for profile %s: %s", profile.name, ", ".join(self.missing))

    def view(self, cells: List[str]) -> RowView:
        return RowView(cells, self.index)


def _known_fields(profile: FormatProfile) -> set[str]:
    if profile.mode == "positional":
        return set(profile.positions)
    return set(profile.aliases)


def _resolve_aliases(aliases: Dict[str, List[str]], headers: List[str]) -> Dict[str, int]:
    exact = {}
    folded = {}
    for position, header in enumerate(headers):
        exact.setdefault(header, position)
        folded.setdefault(header.lower(), position)

    index: Dict[str, int] = {}
    for field, names in aliases.items():
        for name in names:
            if name in exact:
                index[field] = exact[name]
                break
        else:
            for name in names:
                if name.lower() in folded:
                    index[field] = folded[name.lower()]
                    break
    return index
