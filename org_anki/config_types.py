"""Typed configuration and config-file loading."""

from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from anki_connect import DEFAULT_URL
from org_anki.cloze import Occlusion, log_dots, parse_occlusion
from org_anki.notes import FieldSpec, FullBody, Computed, COMPUTED_FIELDS, TagPolicy, parse_field_spec
from org_anki.render import RenderOptions

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS = [".*"]


def default_fields() -> Dict[str, FieldSpec]:
    return {
        "Text": FullBody(),
        "Back Extra": Computed(COMPUTED_FIELDS["outline"], name="outline"),
    }


@dataclass
class PushConfig:
    """Everything a push needs besides the document and the client."""

    anki_connect_url: str = DEFAULT_URL
    deck: str = "Default"
    note_type: str = "Cloze"
    emphasis_marker: str = "_"
    occlusion: Optional[Occlusion] = log_dots
    fields: Dict[str, FieldSpec] = field(default_factory=default_fields)
    tag_policy: TagPolicy = TagPolicy.ALL
    tags: List[str] = field(default_factory=list)
    inherit_tags: bool = True
    provenance_tag_format: Optional[str] = "org-anki-%Y%m%d"
    ignore_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    suffix: str = ".org"
    create_decks: bool = False
    render_options: RenderOptions = field(default_factory=RenderOptions)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PushConfig":
        """Create a config from a parsed JSON config file."""
        config = cls()
        for key in ("anki_connect_url", "deck", "note_type", "emphasis_marker", "suffix"):
            if key in data:
                setattr(config, key, str(data[key]))
        if "occlusion" in data:
            config.occlusion = parse_occlusion(data["occlusion"])
        if "fields" in data:
            config.fields = {name: parse_field_spec(str(spec)) for name, spec in data["fields"].items()}
        if "tag_policy" in data:
            config.tag_policy = TagPolicy(data["tag_policy"])
        if "tags" in data:
            config.tags = [str(tag) for tag in data["tags"]]
        if "inherit_tags" in data:
            config.inherit_tags = bool(data["inherit_tags"])
        if "provenance_tag_format" in data:
            config.provenance_tag_format = data["provenance_tag_format"] or None
        if "ignore_patterns" in data:
            config.ignore_patterns = [str(pattern) for pattern in data["ignore_patterns"]]
        if "create_decks" in data:
            config.create_decks = bool(data["create_decks"])
        return config

    @classmethod
    def from_namespace(cls, args: argparse.Namespace, data: Optional[Mapping[str, Any]] = None) -> "PushConfig":
        """Config-file values overridden by command line flags."""
        config = cls.from_mapping(data or {})
        if getattr(args, "anki_connect_url", None):
            config.anki_connect_url = args.anki_connect_url
        if getattr(args, "deck", None):
            config.deck = args.deck
        if getattr(args, "note_type", None):
            config.note_type = args.note_type
        if getattr(args, "ignore", None):
            config.ignore_patterns = config.ignore_patterns + list(args.ignore)
        if getattr(args, "create_decks", False):
            config.create_decks = True
        return config


def load_config_file() -> Tuple[Dict[str, Any], Optional[Path]]:
    """
    Load optional configuration.

    Search order:
    1. Path from ORG_ANKI_CONFIG (if set)
    2. ./org_anki_config.json in current working directory
    3. ~/.org_anki_config.json in the user home directory
    """
    candidates: List[Path] = []
    env_path = os.getenv("ORG_ANKI_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser())
    candidates.append(Path.cwd() / "org_anki_config.json")
    candidates.append(Path.home() / ".org_anki_config.json")

    for path in candidates:
        if not path.is_file():
            continue
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise SystemExit(f"Config file {path} is not valid JSON: {e}")
        logger.debug("Loaded config from %s", path)
        return data, path

    return {}, None


__all__ = ["PushConfig", "DEFAULT_IGNORE_PATTERNS", "default_fields", "load_config_file"]
