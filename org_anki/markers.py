"""
Flashcard marker detection.

Four equivalent notations mark a region of an Org document as a flashcard:

- inline-legacy: ``... ^{1234567890123}`` (optionally ``@^{...}``) at end of line
- inline-new:    ``... @anki`` or ``... ^{anki}`` at end of line
- block-legacy:  ``#+begin_flashcard 1234567890123`` ... ``#+end_flashcard``
- block-new:     ``#+begin_flashcard`` ... ``#+end_flashcard``

Anki note ids are millisecond timestamps, so an identified marker always
carries exactly 13 digits. Any line may additionally start with ``# `` to mark
the card as suspended.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Set

from org_anki.errors import DuplicateMarkerError, UnterminatedBlockError


class MarkerStyle(str, Enum):
    INLINE_LEGACY = "inline-legacy"
    INLINE_NEW = "inline-new"
    BLOCK_LEGACY = "block-legacy"
    BLOCK_NEW = "block-new"

    @property
    def is_block(self) -> bool:
        return self in (MarkerStyle.BLOCK_LEGACY, MarkerStyle.BLOCK_NEW)


# Identified markers are consumed before unidentified ones of the same family,
# otherwise a freshly written id would be picked up a second time.
SCAN_ORDER = (
    MarkerStyle.INLINE_LEGACY,
    MarkerStyle.INLINE_NEW,
    MarkerStyle.BLOCK_LEGACY,
    MarkerStyle.BLOCK_NEW,
)

NOTE_ID_DIGITS = 13

MARKER_PATTERNS = {
    MarkerStyle.INLINE_LEGACY: re.compile(r"@?\^\{(?P<id>\d{13})\} ?$", re.MULTILINE),
    MarkerStyle.INLINE_NEW: re.compile(r"(?:@?\^\{anki\}|@anki) ?$", re.MULTILINE),
    MarkerStyle.BLOCK_LEGACY: re.compile(
        r"^(?:# )?#\+begin_flashcard (?P<id>\d{13})(?!\d)",
        re.MULTILINE | re.IGNORECASE,
    ),
    MarkerStyle.BLOCK_NEW: re.compile(
        r"^(?:# )?#\+begin_flashcard[ \t]*$", re.MULTILINE | re.IGNORECASE
    ),
}

BLOCK_END_PATTERN = re.compile(r"^[ \t]*(?:# )?#\+end_flashcard\b", re.MULTILINE | re.IGNORECASE)

# Indentation, an optional comment glyph and a single list bullet.
INLINE_PREFIX_PATTERN = re.compile(r"[ \t]*(?:# )?[ \t]*(?:(?:[-+*]|\d+[.)])[ \t]+)?")

COMMENT_PATTERN = re.compile(r"[ \t]*# ")


@dataclass(frozen=True)
class MarkerOccurrence:
    """One flashcard region found in a document."""

    style: MarkerStyle
    note_id: Optional[int]  # None until Anki assigned an id
    field_begin: int
    field_end: int
    marker_begin: int
    marker_end: int
    source_line: int
    suspended: bool = False

    @property
    def is_new(self) -> bool:
        return self.note_id is None

    def body(self, text: str) -> str:
        return text[self.field_begin:self.field_end]


class LineClaims:
    """Source lines that already produced a marker during one push pass."""

    def __init__(self) -> None:
        self._lines: Set[int] = set()

    def claim(self, line: int) -> None:
        if line in self._lines:
            raise DuplicateMarkerError(line)
        self._lines.add(line)

    def __contains__(self, line: int) -> bool:
        return line in self._lines

    def __len__(self) -> int:
        return len(self._lines)


def line_number(text: str, pos: int) -> int:
    """1-based line number of offset ``pos``."""
    return text.count("\n", 0, pos) + 1


def line_start(text: str, pos: int) -> int:
    return text.rfind("\n", 0, pos) + 1


def line_end(text: str, pos: int) -> int:
    end = text.find("\n", pos)
    return len(text) if end == -1 else end


def find_marker(text: str, style: MarkerStyle, start: int = 0) -> Optional[MarkerOccurrence]:
    """Return the first ``style`` marker at or after ``start``, or None."""
    match = MARKER_PATTERNS[style].search(text, start)
    if match is None:
        return None

    raw_id = match.groupdict().get("id")
    note_id = int(raw_id) if raw_id else None
    begin_of_line = line_start(text, match.start())
    end_of_line = line_end(text, match.start())
    lineno = line_number(text, match.start())
    suspended = COMMENT_PATTERN.match(text, begin_of_line, end_of_line) is not None

    if style.is_block:
        field_begin = min(end_of_line + 1, len(text))
        closing = BLOCK_END_PATTERN.search(text, field_begin)
        if closing is None:
            raise UnterminatedBlockError(lineno)
        # Stop before the newline that precedes the closing line.
        field_end = max(field_begin, closing.start() - 1)
    else:
        prefix = INLINE_PREFIX_PATTERN.match(text, begin_of_line, match.start())
        field_begin = prefix.end() if prefix else begin_of_line
        field_end = match.start()

    return MarkerOccurrence(
        style=style,
        note_id=note_id,
        field_begin=field_begin,
        field_end=field_end,
        marker_begin=match.start(),
        marker_end=match.end(),
        source_line=lineno,
        suspended=suspended,
    )


def next_scan_position(text: str, occurrence: MarkerOccurrence) -> int:
    """Where the search for the next marker of the same style resumes."""
    return line_end(text, occurrence.marker_begin) + 1


def iter_markers(text: str, style: MarkerStyle) -> Iterator[MarkerOccurrence]:
    pos = 0
    while pos <= len(text):
        occurrence = find_marker(text, style, pos)
        if occurrence is None:
            return
        yield occurrence
        pos = next_scan_position(text, occurrence)


def scan_markers(text: str, claims: Optional[LineClaims] = None) -> List[MarkerOccurrence]:
    """Find every flashcard marker in ``text``, ordered by position.

    Raises:
        DuplicateMarkerError: if two markers start on the same line.
        UnterminatedBlockError: if a block is never closed.
    """
    if claims is None:
        claims = LineClaims()
    found: List[MarkerOccurrence] = []
    for style in SCAN_ORDER:
        for occurrence in iter_markers(text, style):
            claims.claim(occurrence.source_line)
            found.append(occurrence)
    found.sort(key=lambda occ: occ.marker_begin)
    return found


__all__ = [
    "MarkerStyle",
    "MarkerOccurrence",
    "LineClaims",
    "SCAN_ORDER",
    "NOTE_ID_DIGITS",
    "find_marker",
    "iter_markers",
    "scan_markers",
    "line_number",
    "next_scan_position",
]
