"""
Pushing the flashcards of one document to Anki.

For every marker, in scan order (inline-legacy, inline-new, block-legacy,
block-new): convert emphasis to clozes, skip regions without clozes, build
the note, create or update it, and write new ids back into the document.

Failure scope:
- grammar and write-back errors abort the document
- field and AnkiConnect errors abort one flashcard; they are logged and
  returned in the report, the remaining flashcards are still pushed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Set

from anki_connect import AnkiConnectError
from org_anki.cloze import convert_emphasis_to_cloze
from org_anki.config_types import PushConfig
from org_anki.document import OrgDocument
from org_anki.errors import (
    DocumentNotWritableError,
    FieldEvaluationError,
    OrgAnkiError,
    PreconditionError,
    RemoteNoteError,
    WriteBackError,
)
from org_anki.markers import (
    NOTE_ID_DIGITS,
    SCAN_ORDER,
    LineClaims,
    MarkerOccurrence,
    find_marker,
    next_scan_position,
    scan_markers,
)
from org_anki.notes import NotePayload, build_payload
from org_anki.render import org_to_anki_html
from org_anki.writeback import remove_marker, write_back_identifier

logger = logging.getLogger(__name__)


@dataclass
class PushReport:
    """Outcome of pushing one document."""

    document: str
    pushed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[OrgAnkiError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def check_preconditions(client: Any, config: PushConfig) -> None:
    """Make sure Anki is reachable before anything is scanned.

    Raises:
        PreconditionError: if AnkiConnect does not answer, or the configured
            note type lacks one of the configured fields.
    """
    if not client.check_connection():
        raise PreconditionError(
            f"Cannot connect to AnkiConnect at {config.anki_connect_url}. "
            "Make sure Anki is running with AnkiConnect plugin installed (code: 2055492159)."
        )
    try:
        field_names = client.get_model_field_names(config.note_type)
        if config.create_decks and config.deck not in client.get_deck_names():
            logger.info("Creating deck %s", config.deck)
            client.create_deck(config.deck)
    except (AnkiConnectError, ConnectionError) as e:
        raise PreconditionError(f"AnkiConnect at {config.anki_connect_url}: {e}") from e

    missing = [name for name in config.fields if name not in field_names]
    if missing:
        raise PreconditionError(
            f"Note type {config.note_type!r} has no field(s) {', '.join(missing)}; "
            f"available: {', '.join(field_names)}"
        )


def list_markers(document: OrgDocument) -> List[MarkerOccurrence]:
    """All flashcard markers of a document, without touching Anki."""
    return scan_markers(document.text)


def push_document(
    document: OrgDocument,
    client: Any,
    config: PushConfig,
    now: Optional[datetime] = None,
) -> PushReport:
    """Push every flashcard of ``document`` and write back new note ids.

    The document is saved afterwards only if it had no unsaved changes
    before the push started.

    Raises:
        DocumentNotWritableError: before anything changed.
        MarkerGrammarError: two markers on one line, or an unclosed block.
        WriteBackError: the marker of a created note could not be rewritten.
    """
    if not document.writable():
        raise DocumentNotWritableError(document.path)

    had_unrelated_changes = document.modified
    report = PushReport(document.name)
    claims = LineClaims()
    decks_ensured: Set[str] = set()

    try:
        for style in SCAN_ORDER:
            pos = 0
            while pos <= len(document.text):
                # Scan the live text: write-back shifts every later offset.
                occurrence = find_marker(document.text, style, pos)
                if occurrence is None:
                    break
                claims.claim(occurrence.source_line)
                try:
                    _push_occurrence(document, occurrence, client, config, report, decks_ensured, now)
                except (FieldEvaluationError, RemoteNoteError) as e:
                    logger.error("%s: %s", document.name, e)
                    report.errors.append(e)
                pos = next_scan_position(document.text, occurrence)
    finally:
        # Ids already written back must reach the disk even if the push aborted.
        if document.modified and document.path is not None:
            if had_unrelated_changes:
                logger.warning("%s had unsaved changes before the push; not saving", document.name)
            else:
                document.save()

    logger.info(
        "%s: pushed %d (created %d, updated %d), skipped %d, errors %d",
        document.name, report.pushed, report.created, report.updated, report.skipped, len(report.errors),
    )
    return report


def _push_occurrence(
    document: OrgDocument,
    occurrence: MarkerOccurrence,
    client: Any,
    config: PushConfig,
    report: PushReport,
    decks_ensured: Set[str],
    now: Optional[datetime],
) -> None:
    body = occurrence.body(document.text)
    converted = convert_emphasis_to_cloze(body, config.emphasis_marker, config.occlusion)
    if converted is None:
        logger.info("%s:%d: no clozes, skipping", document.name, occurrence.source_line)
        report.skipped += 1
        return

    rendered = org_to_anki_html(converted, config.render_options)
    payload = build_payload(occurrence, converted, rendered, document, config, now=now)

    if occurrence.is_new:
        note_id = _create(client, payload, occurrence, config, decks_ensured)
        document.text = write_back_identifier(document.text, occurrence.source_line, note_id)
        report.created += 1
        logger.info("%s:%d: created note %d", document.name, occurrence.source_line, note_id)
    else:
        _update(client, payload, occurrence)
        report.updated += 1
        logger.info("%s:%d: updated note %d", document.name, occurrence.source_line, payload.note_id)
    report.pushed += 1


def _create(
    client: Any,
    payload: NotePayload,
    occurrence: MarkerOccurrence,
    config: PushConfig,
    decks_ensured: Set[str],
) -> int:
    try:
        if config.create_decks and payload.deck not in decks_ensured:
            client.create_deck(payload.deck)
            decks_ensured.add(payload.deck)
        note_id = client.create_note(
            payload.deck, payload.note_type, payload.tags, payload.fields, payload.suspend
        )
    except (AnkiConnectError, ConnectionError) as e:
        raise RemoteNoteError("create", None, payload.to_anki(), e, line=occurrence.source_line) from e

    if not note_id:
        raise RemoteNoteError("create", None, payload.to_anki(), line=occurrence.source_line)
    if len(str(note_id)) != NOTE_ID_DIGITS:
        logger.warning(
            "Note id %s is not %d digits; the marker on line %d will not be recognised again",
            note_id, NOTE_ID_DIGITS, occurrence.source_line,
        )
    return int(note_id)


def _update(client: Any, payload: NotePayload, occurrence: MarkerOccurrence) -> None:
    try:
        client.update_note(
            payload.note_id, payload.deck, payload.note_type, payload.tags, payload.fields, payload.suspend
        )
    except (AnkiConnectError, ConnectionError) as e:
        raise RemoteNoteError(
            "update", payload.note_id, payload.to_anki(), e, line=occurrence.source_line
        ) from e


def delete_note_at_line(document: OrgDocument, line: int, client: Any) -> int:
    """Delete the Anki note of the marker on ``line`` and remove the marker.

    Returns:
        The deleted note id.

    Raises:
        WriteBackError: if ``line`` holds no identified marker.
        RemoteNoteError: if Anki refused; the document is left untouched.
    """
    if not document.writable():
        raise DocumentNotWritableError(document.path)

    matches = [occ for occ in scan_markers(document.text) if occ.source_line == line]
    if not matches or matches[0].is_new:
        raise WriteBackError(line, "no flashcard with a note id on this line")
    note_id = matches[0].note_id

    had_unrelated_changes = document.modified
    try:
        client.delete_notes([note_id])
    except (AnkiConnectError, ConnectionError) as e:
        raise RemoteNoteError("delete", note_id, {"notes": [note_id]}, e, line=line) from e

    document.text = remove_marker(document.text, line)
    if document.path is not None and not had_unrelated_changes:
        document.save()
    logger.info("%s:%d: deleted note %d", document.name, line, note_id)
    return note_id


__all__ = [
    "PushReport",
    "check_preconditions",
    "list_markers",
    "push_document",
    "delete_note_at_line",
]
