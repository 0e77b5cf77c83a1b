"""
In-place rewriting of flashcard markers.

Once Anki returned an id for a new note, the marker that produced it is
rewritten so the next scan sees an identified marker:

    ... @anki              ->  ... ^{1234567890123}
    ... ^{anki}            ->  ... ^{1234567890123}
    #+begin_flashcard      ->  #+begin_flashcard 1234567890123
"""

from __future__ import annotations

import re
from typing import Tuple

from org_anki.errors import WriteBackError

AT_SENTINEL_PATTERN = re.compile(r"@anki( ?)$")
PLACEHOLDER_PATTERN = re.compile(r"\^\{anki\}( ?)$")
BARE_BLOCK_PATTERN = re.compile(r"^((?:# )?#\+begin_flashcard)[ \t]*$", re.IGNORECASE)

INLINE_ID_PATTERN = re.compile(r"[ \t]*@?\^\{\d{13}\} ?$")
BLOCK_ID_PATTERN = re.compile(r"^((?:# )?#\+begin_flashcard) \d{13}(?!\d)", re.IGNORECASE)
BLOCK_END_PATTERN = re.compile(r"^[ \t]*(?:# )?#\+end_flashcard\b", re.MULTILINE | re.IGNORECASE)


def _line_bounds(text: str, line: int) -> Tuple[int, int]:
    if line < 1:
        raise WriteBackError(line, "line numbers start at 1")
    start = 0
    for _ in range(line - 1):
        newline = text.find("\n", start)
        if newline == -1:
            raise WriteBackError(line, "document is shorter than that")
        start = newline + 1
    end = text.find("\n", start)
    return start, len(text) if end == -1 else end


def write_back_identifier(text: str, line: int, note_id: int) -> str:
    """Return ``text`` with the new-note marker on ``line`` carrying ``note_id``.

    Raises:
        WriteBackError: if no new-note marker is found on that line.
    """
    start, end = _line_bounds(text, line)
    content = text[start:end]

    if AT_SENTINEL_PATTERN.search(content):
        rewritten = AT_SENTINEL_PATTERN.sub(rf"^{{{note_id}}}\1", content, count=1)
    elif PLACEHOLDER_PATTERN.search(content):
        rewritten = PLACEHOLDER_PATTERN.sub(rf"^{{{note_id}}}\1", content, count=1)
    elif BARE_BLOCK_PATTERN.match(content):
        rewritten = BARE_BLOCK_PATTERN.sub(rf"\1 {note_id}", content, count=1)
    else:
        raise WriteBackError(line, f"found {content.strip()!r}")

    return text[:start] + rewritten + text[end:]


def remove_marker(text: str, line: int) -> str:
    """Return ``text`` with the identified marker on ``line`` removed.

    Inline markers lose their ``^{id}`` token; blocks lose their opening and
    closing lines while keeping the body.

    Raises:
        WriteBackError: if no identified marker is found on that line.
    """
    start, end = _line_bounds(text, line)
    content = text[start:end]

    if INLINE_ID_PATTERN.search(content):
        return text[:start] + INLINE_ID_PATTERN.sub("", content, count=1) + text[end:]

    if BLOCK_ID_PATTERN.match(content):
        body_start = min(end + 1, len(text))
        closing = BLOCK_END_PATTERN.search(text, body_start)
        if closing is None:
            raise WriteBackError(line, "block has no #+end_flashcard")
        close_end = text.find("\n", closing.start())
        close_end = len(text) if close_end == -1 else close_end + 1
        return text[:start] + text[body_start:closing.start()] + text[close_end:]

    raise WriteBackError(line, f"found {content.strip()!r}")


__all__ = ["write_back_identifier", "remove_marker"]
