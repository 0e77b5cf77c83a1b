"""
Org document model.

A light view over an Org file: keywords (``#+TITLE:``, ``#+FILETAGS:``,
``#+ANKI_DECK:``), the headline outline with tags, and persistence that keeps
track of unsaved modifications. The outline is parsed on first use only, so
documents that never need tags or headings stay cheap to load.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(
    r"^(?P<stars>\*+)[ \t]+"
    r"(?:(?:TODO|DONE)[ \t]+)?"
    r"(?:\[#[A-Z0-9]\][ \t]+)?"
    r"(?P<title>.*?)"
    r"(?:[ \t]+(?P<tags>:(?:[\w@#%]+:)+))?[ \t]*$",
    re.MULTILINE,
)

KEYWORD_PATTERN = re.compile(r"^[ \t]*#\+(?P<key>[\w-]+):[ \t]*(?P<value>.*?)[ \t]*$", re.MULTILINE)


def split_tags(value: str) -> List[str]:
    """Split ``:a:b:`` or ``a b`` tag notation."""
    return [tag for tag in re.split(r"[:\s]+", value) if tag]


@dataclass
class Heading:
    level: int
    title: str
    begin: int
    tags: List[str] = field(default_factory=list)


class OrgDocument:
    """Text of one Org document plus the context flashcard fields draw on."""

    def __init__(
        self,
        text: str,
        path: Optional[Path] = None,
        saved_text: Optional[str] = None,
        newline: str = "\n",
    ):
        self.text = text
        self.path = Path(path) if path is not None else None
        self.saved_text = text if saved_text is None else saved_text
        self.newline = newline
        self._outline: Optional[Tuple[str, List[Heading]]] = None

    @classmethod
    def load(cls, path: Path) -> "OrgDocument":
        path = Path(path)
        with open(path, encoding="utf-8", newline="") as f:
            raw = f.read()
        logger.debug("Loaded %s (%d chars)", path, len(raw))
        # Scanning works on \n; save() writes the file's own line ending back
        newline = "\r\n" if "\r\n" in raw else "\n"
        return cls(raw.replace("\r\n", "\n"), path=path, newline=newline)

    @property
    def modified(self) -> bool:
        """True when the text differs from what is on disk."""
        return self.text != self.saved_text

    @property
    def name(self) -> str:
        return str(self.path) if self.path else "<buffer>"

    def writable(self) -> bool:
        if self.path is None:
            return True
        if self.path.exists():
            return os.access(self.path, os.W_OK)
        return os.access(self.path.parent, os.W_OK)

    def save(self) -> None:
        if self.path is None:
            raise ValueError("Document has no path to save to")
        with open(self.path, "w", encoding="utf-8", newline=self.newline) as f:
            f.write(self.text)
        self.saved_text = self.text
        logger.debug("Saved %s", self.path)

    # ------------------------------------------------------------------
    # Keywords
    # ------------------------------------------------------------------

    def keyword(self, name: str) -> Optional[str]:
        """Value of the first ``#+NAME:`` line (case-insensitive)."""
        wanted = name.lower()
        for match in KEYWORD_PATTERN.finditer(self.text):
            if match.group("key").lower() == wanted:
                return match.group("value")
        return None

    def title(self) -> str:
        title = self.keyword("title")
        if title:
            return title
        return self.path.stem if self.path else ""

    def file_tags(self) -> List[str]:
        tags: List[str] = []
        wanted = "filetags"
        for match in KEYWORD_PATTERN.finditer(self.text):
            if match.group("key").lower() == wanted:
                tags.extend(split_tags(match.group("value")))
        return tags

    # ------------------------------------------------------------------
    # Outline
    # ------------------------------------------------------------------

    @property
    def headings(self) -> List[Heading]:
        if self._outline is None or self._outline[0] != self.text:
            headings = [
                Heading(
                    level=len(match.group("stars")),
                    title=match.group("title").strip(),
                    begin=match.start(),
                    tags=split_tags(match.group("tags") or ""),
                )
                for match in HEADING_PATTERN.finditer(self.text)
            ]
            self._outline = (self.text, headings)
        return self._outline[1]

    def ancestors(self, pos: int) -> List[Heading]:
        """Headings enclosing ``pos``, outermost first."""
        stack: List[Heading] = []
        for heading in self.headings:
            if heading.begin > pos:
                break
            while stack and stack[-1].level >= heading.level:
                stack.pop()
            stack.append(heading)
        return stack

    def outline_path(self, pos: int) -> List[str]:
        return [heading.title for heading in self.ancestors(pos)]

    def tags_at(self, pos: int, inherit: bool = True) -> List[str]:
        """Tags in effect at ``pos``.

        With ``inherit`` the file tags and all enclosing headings contribute;
        otherwise only the nearest heading's own tags count.
        """
        ancestors = self.ancestors(pos)
        if not inherit:
            return list(ancestors[-1].tags) if ancestors else []
        tags = self.file_tags()
        for heading in ancestors:
            tags.extend(heading.tags)
        return tags

    def line_at(self, pos: int) -> int:
        return self.text.count("\n", 0, pos) + 1


__all__ = ["OrgDocument", "Heading", "split_tags"]
