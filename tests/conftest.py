"""Shared pytest fixtures for org-anki tests."""

from typing import Dict, List, Optional

import pytest

from anki_connect import AnkiConnectError
from org_anki.config_types import PushConfig
from org_anki.document import OrgDocument


class FakeAnkiClient:
    """In-memory stand-in for AnkiConnectClient."""

    def __init__(self, first_id: int = 1700000000001):
        self.next_id = first_id
        self.notes: Dict[int, dict] = {}
        self.calls: List[tuple] = []
        self.decks = ["Default"]
        self.fail_update: Optional[str] = None
        self.return_no_id = False
        self.connected = True
        self.models = {"Cloze": ["Text", "Back Extra"]}

    def check_connection(self) -> bool:
        return self.connected

    def get_deck_names(self) -> List[str]:
        return list(self.decks)

    def get_model_field_names(self, model: str) -> List[str]:
        if model not in self.models:
            raise AnkiConnectError("model was not found: " + model)
        return list(self.models[model])

    def create_deck(self, deck: str) -> int:
        self.calls.append(("create_deck", deck))
        if deck not in self.decks:
            self.decks.append(deck)
        return 1

    def create_note(self, deck, note_type, tags, fields, suspend=False):
        self.calls.append(("create", deck, note_type, list(tags), dict(fields), suspend))
        if self.return_no_id:
            return None
        note_id = self.next_id
        self.next_id += 1
        self.notes[note_id] = {
            "deck": deck, "note_type": note_type, "tags": list(tags),
            "fields": dict(fields), "suspend": suspend,
        }
        return note_id

    def update_note(self, note_id, deck, note_type, tags, fields, suspend=False):
        self.calls.append(("update", note_id, deck, note_type, list(tags), dict(fields), suspend))
        if self.fail_update:
            raise AnkiConnectError(self.fail_update)
        self.notes[note_id] = {
            "deck": deck, "note_type": note_type, "tags": list(tags),
            "fields": dict(fields), "suspend": suspend,
        }

    def delete_notes(self, note_ids):
        self.calls.append(("delete", list(note_ids)))
        for note_id in note_ids:
            self.notes.pop(note_id, None)


@pytest.fixture
def fake_client():
    return FakeAnkiClient()


@pytest.fixture
def config():
    """Config without a date-dependent provenance tag."""
    return PushConfig(provenance_tag_format=None)


@pytest.fixture
def sample_org():
    return """#+TITLE: Geography
#+FILETAGS: :geo:

* Europe :europe:
** Capitals
- The capital of France is _Paris_. @anki
- The capital of Spain is _Madrid_. ^{1700000000000}
- No cloze here. @anki

* Rivers
#+begin_flashcard
The longest river in Europe is the _Volga_.
#+end_flashcard
"""


@pytest.fixture
def org_file(tmp_path, sample_org):
    path = tmp_path / "geo.org"
    path.write_text(sample_org, encoding="utf-8")
    return path


@pytest.fixture
def sample_document(org_file):
    return OrgDocument.load(org_file)
