"""
Note payload construction.

Turns one converted flashcard region into the note sent to AnkiConnect:
deck, note type, tags, fields and suspension.

Field values come from field specs:

- ``FullBody``: the rendered card body (``@body``; ``@body-raw`` for the
  unrendered Org text)
- ``Literal``: a constant string
- ``Computed``: a function called with the document and the marker position
  (``@title``, ``@outline``, ``@source`` or ``@python:module:attr``)
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Union

from org_anki.document import OrgDocument
from org_anki.errors import FieldEvaluationError
from org_anki.markers import MarkerOccurrence

if TYPE_CHECKING:
    from org_anki.config_types import PushConfig

logger = logging.getLogger(__name__)

FieldFunction = Callable[[OrgDocument, int], Any]


@dataclass(frozen=True)
class FullBody:
    raw: bool = False

    def resolve(self, document: OrgDocument, position: int, body: str, rendered: str) -> str:
        return body if self.raw else rendered


@dataclass(frozen=True)
class Literal:
    value: str

    def resolve(self, document: OrgDocument, position: int, body: str, rendered: str) -> str:
        return self.value


@dataclass(frozen=True)
class Computed:
    func: FieldFunction
    name: str = ""

    def resolve(self, document: OrgDocument, position: int, body: str, rendered: str) -> str:
        value = self.func(document, position)
        return value if isinstance(value, str) else ""

    def __repr__(self) -> str:
        return f"Computed({self.name or getattr(self.func, '__name__', self.func)!r})"


FieldSpec = Union[FullBody, Literal, Computed]


def document_title(document: OrgDocument, position: int) -> str:
    return document.title()


def outline_path(document: OrgDocument, position: int) -> str:
    return " > ".join(document.outline_path(position))


def source_location(document: OrgDocument, position: int) -> str:
    return f"{document.name}:{document.line_at(position)}"


COMPUTED_FIELDS: Dict[str, FieldFunction] = {
    "title": document_title,
    "outline": outline_path,
    "source": source_location,
}


def _import_function(reference: str) -> FieldFunction:
    module_name, _, attr = reference.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Expected module:function, got {reference!r}")
    func = getattr(importlib.import_module(module_name), attr)
    if not callable(func):
        raise ValueError(f"{reference!r} is not callable")
    return func


def parse_field_spec(value: str) -> FieldSpec:
    """Parse a field spec from its config-file spelling."""
    if not value.startswith("@"):
        return Literal(value)
    key = value[1:]
    if key == "body":
        return FullBody()
    if key == "body-raw":
        return FullBody(raw=True)
    if key.startswith("python:"):
        reference = key[len("python:"):]
        return Computed(_import_function(reference), name=reference)
    if key in COMPUTED_FIELDS:
        return Computed(COMPUTED_FIELDS[key], name=key)
    raise ValueError(f"Unknown field spec: {value!r}")


def resolve_field(
    name: str,
    spec: FieldSpec,
    document: OrgDocument,
    position: int,
    body: str,
    rendered: str,
) -> str:
    try:
        return spec.resolve(document, position, body, rendered)
    except Exception as e:
        raise FieldEvaluationError(name, spec, e) from e


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


class TagPolicy(str, Enum):
    NONE = "none"
    ALL = "all"
    EXCEPT = "except"
    ONLY = "only"


def filter_tags(tags: Iterable[str], policy: TagPolicy, tag_list: Iterable[str] = ()) -> List[str]:
    """Apply the include/exclude policy; comparisons ignore case."""
    if policy is TagPolicy.NONE:
        return []
    listed = {tag.lower() for tag in tag_list}
    if policy is TagPolicy.EXCEPT:
        return [tag for tag in tags if tag.lower() not in listed]
    if policy is TagPolicy.ONLY:
        return [tag for tag in tags if tag.lower() in listed]
    return list(tags)


def dedupe_tags(tags: Iterable[str]) -> List[str]:
    """Drop case-insensitive repeats, keeping the first spelling."""
    seen = set()
    result = []
    for tag in tags:
        tag = tag.strip().replace(" ", "_")
        if tag and tag.lower() not in seen:
            seen.add(tag.lower())
            result.append(tag)
    return result


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------


@dataclass
class NotePayload:
    deck: str
    note_type: str
    note_id: Optional[int]
    tags: List[str] = field(default_factory=list)
    fields: Dict[str, str] = field(default_factory=dict)
    suspend: bool = False

    def to_anki(self) -> Dict[str, Any]:
        """AnkiConnect ``note`` object."""
        note: Dict[str, Any] = {
            "deckName": self.deck,
            "modelName": self.note_type,
            "fields": dict(self.fields),
            "tags": list(self.tags),
        }
        if self.note_id is not None:
            note["id"] = self.note_id
        return note


def build_payload(
    occurrence: MarkerOccurrence,
    body: str,
    rendered: str,
    document: OrgDocument,
    config: "PushConfig",
    now: Optional[datetime] = None,
) -> NotePayload:
    """Assemble the note for one flashcard region.

    Raises:
        FieldEvaluationError: if a computed field fails.
    """
    position = occurrence.marker_begin

    tags: List[str] = []
    if config.provenance_tag_format:
        tags.append((now or datetime.now()).strftime(config.provenance_tag_format))
    if config.tag_policy is not TagPolicy.NONE:
        document_tags = document.tags_at(position, inherit=config.inherit_tags)
        tags.extend(filter_tags(document_tags, config.tag_policy, config.tags))

    fields: Dict[str, str] = {}
    for name, spec in config.fields.items():
        value = resolve_field(name, spec, document, position, body, rendered)
        if value:
            fields[name] = value
        else:
            logger.debug("Omitting empty field %r at line %d", name, occurrence.source_line)

    return NotePayload(
        deck=document.keyword("anki_deck") or config.deck,
        note_type=document.keyword("anki_note_type") or config.note_type,
        note_id=occurrence.note_id,
        tags=dedupe_tags(tags),
        fields=fields,
        suspend=occurrence.suspended,
    )


__all__ = [
    "FieldSpec",
    "FullBody",
    "Literal",
    "Computed",
    "COMPUTED_FIELDS",
    "parse_field_spec",
    "resolve_field",
    "TagPolicy",
    "filter_tags",
    "dedupe_tags",
    "NotePayload",
    "build_payload",
]
