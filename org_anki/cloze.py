"""
Emphasis to cloze conversion.

Text emphasised with the configured marker (``_answer_`` by default) becomes
an Anki cloze deletion ``{{cN::answer::mask}}``. Clozes are numbered from 1 in
order of appearance across the whole field.
"""

from __future__ import annotations

import math
import re
from typing import Callable, Dict, Optional

Occlusion = Callable[[str], str]

MIN_OCCLUSION = 3

COMMENT_GLYPH_PATTERN = re.compile(r"^([ \t]*)# ", re.MULTILINE)


def log_dots(text: str) -> str:
    """Mask that grows with the log of the answer length, never below 3 dots."""
    return "." * max(MIN_OCCLUSION, 2 * round(math.log2(max(1, len(text)))))


def length_dots(text: str) -> str:
    """One dot per character, never below 3 dots."""
    return "." * max(MIN_OCCLUSION, len(text))


def fixed_dots(count: int) -> Occlusion:
    count = max(MIN_OCCLUSION, count)

    def occlude(text: str) -> str:
        return "." * count

    return occlude


OCCLUSIONS: Dict[str, Optional[Occlusion]] = {
    "log-dots": log_dots,
    "length-dots": length_dots,
    "anki": None,
}


def parse_occlusion(name: Optional[str]) -> Optional[Occlusion]:
    """Resolve an occlusion name from config.

    ``"anki"`` (or None) leaves masking to Anki; ``"dots:N"`` is a fixed mask.
    """
    if name is None:
        return None
    if name.startswith("dots:"):
        return fixed_dots(int(name.split(":", 1)[1]))
    if name not in OCCLUSIONS:
        available = ", ".join(sorted(OCCLUSIONS))
        raise ValueError(f"Unknown occlusion: {name}. Available: {available}, dots:N")
    return OCCLUSIONS[name]


def emphasis_pattern(marker: str) -> re.Pattern:
    """Org emphasis rules: the marker must sit between a boundary and non-space text."""
    if len(marker) != 1 or marker.isspace():
        raise ValueError(f"Emphasis marker must be a single non-space character: {marker!r}")
    m = re.escape(marker)
    return re.compile(
        rf"(?<=[\s\-('\"{{]){m}"
        rf"(?P<text>[^\s{m}](?:[^{m}\n]*?[^\s{m}])?)"
        rf"{m}(?=[\s\-.,;:!?'\")}}\[\\])"
    )


def strip_comment_glyphs(text: str) -> str:
    return COMMENT_GLYPH_PATTERN.sub(r"\1", text)


def format_cloze(number: int, text: str, mask: Optional[str] = None) -> str:
    if mask:
        return f"{{{{c{number}::{text}::{mask}}}}}"
    return f"{{{{c{number}::{text}}}}}"


def convert_emphasis_to_cloze(
    text: str,
    marker: str = "_",
    occlusion: Optional[Occlusion] = log_dots,
) -> Optional[str]:
    """Rewrite emphasised spans of ``text`` as numbered clozes.

    Args:
        text: Raw field text.
        marker: Single emphasis character.
        occlusion: Builds the mask for an answer; None lets Anki use its own.

    Returns:
        The converted text, or None when the field has no emphasis at all.
    """
    pattern = emphasis_pattern(marker)
    # Sentinel spaces let emphasis touch the start or end of the field.
    padded = " " + strip_comment_glyphs(text) + " "
    count = 0

    def replace(match: re.Match) -> str:
        nonlocal count
        count += 1
        answer = match.group("text")
        mask = occlusion(answer) if occlusion is not None else None
        return format_cloze(count, answer, mask)

    converted = pattern.sub(replace, padded)
    if count == 0:
        return None
    return converted[1:-1].strip()


__all__ = [
    "Occlusion",
    "OCCLUSIONS",
    "MIN_OCCLUSION",
    "log_dots",
    "length_dots",
    "fixed_dots",
    "parse_occlusion",
    "emphasis_pattern",
    "format_cloze",
    "convert_emphasis_to_cloze",
]
