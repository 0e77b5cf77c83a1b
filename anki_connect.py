#!/usr/bin/env python3
"""
AnkiConnect client for org-anki.

Provides programmatic access to Anki via the AnkiConnect plugin.
AnkiConnect must be installed and Anki must be running for this to work.

Installation:
1. Install AnkiConnect plugin in Anki (code: 2055492159)
2. Restart Anki
3. Ensure Anki is running when using these functions

Documentation: https://foosoft.net/projects/anki-connect/
"""

import http.client
import json
import logging
import urllib.request
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:8765"


class AnkiConnectError(Exception):
    """Raised when AnkiConnect API returns an error."""
    pass


class AnkiConnectClient:
    """Client for interacting with Anki via AnkiConnect plugin."""

    def __init__(self, url: str = DEFAULT_URL, timeout: float = 10):
        """
        Initialize AnkiConnect client.

        Args:
            url: AnkiConnect API endpoint (default: http://localhost:8765)
            timeout: Seconds to wait for a single request
        """
        self.url = url
        self.timeout = timeout
        self.version = 6

    def _invoke(self, action: str, **params) -> Any:
        """
        Invoke an AnkiConnect API action.

        Args:
            action: API action name
            **params: Parameters for the action

        Returns:
            API response result

        Raises:
            AnkiConnectError: If the API returns an error
            ConnectionError: If cannot connect to Anki
        """
        request_data = {
            'action': action,
            'version': self.version,
            'params': params
        }
        logger.debug("AnkiConnect %s %s", action, params)

        try:
            request = urllib.request.Request(
                self.url,
                data=json.dumps(request_data).encode('utf-8'),
                headers={'Content-Type': 'application/json'}
            )

            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read()

        # URLError and read timeouts are both OSError; a malformed URL is a ValueError
        except (OSError, http.client.HTTPException, ValueError) as e:
            raise ConnectionError(
                f"Could not connect to Anki at {self.url}. "
                f"Make sure Anki is running and AnkiConnect is installed. "
                f"Error: {e}"
            ) from e

        try:
            response_data = json.loads(body.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AnkiConnectError(f'{action}: response is not JSON: {body[:80]!r}') from e

        if not isinstance(response_data, dict) or set(response_data) != {'result', 'error'}:
            raise AnkiConnectError(f'{action}: invalid response format: {response_data!r}')

        if response_data['error'] is not None:
            raise AnkiConnectError(response_data['error'])

        return response_data['result']

    def check_connection(self) -> bool:
        """
        Check if AnkiConnect is available.

        Returns:
            True if connected, False otherwise
        """
        try:
            self._invoke('version')
            return True
        except (AnkiConnectError, ConnectionError):
            return False

    # ========================================================================
    # Deck Operations
    # ========================================================================

    def get_deck_names(self) -> List[str]:
        """Get list of all deck names."""
        return self._invoke('deckNames')

    def create_deck(self, deck: str) -> int:
        """
        Create a new deck.

        Args:
            deck: Deck name (can use :: for nested, e.g. "Parent::Child")

        Returns:
            Deck ID
        """
        return self._invoke('createDeck', deck=deck)

    # ========================================================================
    # Note/Card Operations
    # ========================================================================

    def create_note(
        self,
        deck: str,
        note_type: str,
        tags: List[str],
        fields: Dict[str, str],
        suspend: bool = False,
    ) -> Optional[int]:
        """
        Add a note to Anki.

        Args:
            deck: Deck name
            note_type: Note type (model) name, e.g. "Cloze"
            tags: List of tags
            fields: Mapping of field name to HTML value
            suspend: Suspend the cards of the new note

        Returns:
            Note ID reported by Anki (None if Anki reported no note)

        Raises:
            AnkiConnectError: If the operation fails
        """
        note = {
            'deckName': deck,
            'modelName': note_type,
            'fields': fields,
            'tags': tags,
            'options': {
                'allowDuplicate': True
            }
        }
        note_id = self._invoke('addNote', note=note)
        if note_id is not None and suspend:
            self.suspend_note(note_id, True)
        return note_id

    def update_note(
        self,
        note_id: int,
        deck: str,
        note_type: str,
        tags: List[str],
        fields: Dict[str, str],
        suspend: bool = False,
    ) -> None:
        """
        Update fields, tags, deck and suspension of an existing note.

        The note type of an existing note is not changed; a mismatch is
        logged so the caller can recreate the note by hand.

        Raises:
            AnkiConnectError: If the note does not exist or the update fails
        """
        info = self.get_notes_info([note_id])
        if not info or not info[0]:
            raise AnkiConnectError(f'Note {note_id} does not exist')
        current = info[0]
        if current.get('modelName') not in (None, note_type):
            logger.warning(
                "Note %s has note type %r, not %r; keeping the existing type",
                note_id, current.get('modelName'), note_type,
            )

        self._invoke('updateNote', note={
            'id': note_id,
            'fields': fields,
            'tags': tags,
        })

        card_ids = current.get('cards') or self.find_cards(f'nid:{note_id}')
        if card_ids:
            self._invoke('changeDeck', cards=card_ids, deck=deck)
            self._set_suspended(card_ids, suspend)

    def delete_notes(self, note_ids: List[int]) -> None:
        """Delete notes (and all their cards) by ID."""
        self._invoke('deleteNotes', notes=note_ids)

    def find_cards(self, query: str) -> List[int]:
        """Find card IDs matching a query."""
        return self._invoke('findCards', query=query)

    def get_notes_info(self, note_ids: List[int]) -> List[Dict]:
        """
        Get information about notes.

        Args:
            note_ids: List of note IDs

        Returns:
            List of note info dictionaries
        """
        return self._invoke('notesInfo', notes=note_ids)

    def suspend_note(self, note_id: int, suspend: bool = True) -> None:
        """Suspend or unsuspend every card of a note."""
        card_ids = self.find_cards(f'nid:{note_id}')
        if card_ids:
            self._set_suspended(card_ids, suspend)

    def _set_suspended(self, card_ids: List[int], suspend: bool) -> None:
        self._invoke('suspend' if suspend else 'unsuspend', cards=card_ids)

    # ========================================================================
    # Model (Note Type) Operations
    # ========================================================================

    def get_model_field_names(self, model: str) -> List[str]:
        """
        Get field names for a note type.

        Args:
            model: Note type name

        Returns:
            List of field names
        """
        return self._invoke('modelFieldNames', modelName=model)
