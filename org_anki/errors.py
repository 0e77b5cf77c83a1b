"""
Error taxonomy for org-anki.

Every error aborts the narrowest unit of work it concerns (one occurrence,
one document, or the whole run) and carries enough context to locate the
cause: a line number, a field name, or the note payload.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional


class OrgAnkiError(Exception):
    """Base class for all org-anki errors."""


class PreconditionError(OrgAnkiError):
    """A required service (AnkiConnect) is unavailable; nothing was scanned."""


class DocumentNotWritableError(OrgAnkiError):
    """The document cannot be written, so it must not be mutated."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Document is not writable: {path}")


class MarkerGrammarError(OrgAnkiError):
    """Flashcard markers are placed ambiguously or malformed."""

    def __init__(self, line: int, message: str):
        self.line = line
        super().__init__(f"line {line}: {message}")


class DuplicateMarkerError(MarkerGrammarError):
    def __init__(self, line: int):
        super().__init__(line, "more than one flashcard marker on this line")


class UnterminatedBlockError(MarkerGrammarError):
    def __init__(self, line: int):
        super().__init__(line, "#+begin_flashcard without a matching #+end_flashcard")


class WriteBackError(OrgAnkiError):
    """The marker to rewrite is no longer where the scan found it."""

    def __init__(self, line: int, detail: str = ""):
        self.line = line
        message = f"line {line}: no flashcard marker to write the note id into"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class FieldEvaluationError(OrgAnkiError):
    """A computed field raised while being evaluated."""

    def __init__(self, field: str, spec: Any, cause: BaseException):
        self.field = field
        self.spec = spec
        self.cause = cause
        super().__init__(f"field {field!r} ({spec!r}) failed: {cause}")


class RemoteNoteError(OrgAnkiError):
    """An AnkiConnect call for one note failed."""

    def __init__(
        self,
        action: str,
        note_id: Optional[int],
        payload: Any,
        cause: Optional[BaseException] = None,
        line: Optional[int] = None,
    ):
        self.action = action
        self.note_id = note_id
        self.payload = payload
        self.cause = cause
        self.line = line
        where = f"line {line}: " if line is not None else ""
        target = f"note {note_id}" if note_id is not None else "new note"
        reason = cause if cause is not None else "no note id returned"
        super().__init__(f"{where}{action} {target} failed: {reason}; payload={payload!r}")
