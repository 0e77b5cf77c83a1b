"""
Org markup to Anki-compatible HTML.

Handles:
- *bold* → <b>, /italic/ → <i>, _underline_ → <u>, +strike+ → <del>
- =verbatim= and ~code~ → <code>
- #+begin_src / #+begin_example blocks → <pre>, #+begin_quote → <blockquote>
- [[target][description]] and [[target]] links → <a href>
- Plain lists (- item, + item, 1. item) → <ul>/<ol>
- Line breaks → <br>, blank lines → paragraphs

LaTeX (\\(...\\), \\[...\\], $...$, $$...$$) and cloze tokens are kept
verbatim for MathJax and Anki.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

# (target, description) -> HTML, or None for the default anchor
LinkHandler = Callable[[str, str], Optional[str]]


@dataclass
class RenderOptions:
    link_handler: Optional[LinkHandler] = None
    escape_html: bool = True


LINK_PATTERN = re.compile(r"\[\[(?P<target>[^\]]+)\](?:\[(?P<desc>[^\]]+)\])?\]")
BLOCK_PATTERN = re.compile(
    r"^[ \t]*#\+begin_(?P<kind>src|example|quote)\b[^\n]*\n(?P<body>.*?)^[ \t]*#\+end_(?P=kind)[^\n]*$",
    re.MULTILINE | re.DOTALL | re.IGNORECASE,
)
CLOZE_PATTERN = re.compile(r"\{\{c\d+::.*?\}\}", re.DOTALL)

EMPHASIS_TAGS = (
    ("*", "b"),
    ("/", "i"),
    ("_", "u"),
    ("+", "del"),
)


def _emphasis_pattern(char: str) -> re.Pattern:
    c = re.escape(char)
    return re.compile(
        rf"(?:^|(?<=[\s\-('\"{{])){c}"
        rf"([^\s{c}](?:[^{c}\n]*?[^\s{c}])?)"
        rf"{c}(?=$|[\s\-.,;:!?'\")}}\[\\])",
        re.MULTILINE,
    )


def _default_link(target: str, description: str) -> str:
    return f'<a href="{html.escape(target)}">{description}</a>'


def org_to_anki_html(text: str, options: Optional[RenderOptions] = None) -> str:
    """Convert Org formatting to Anki-compatible HTML."""
    if not text:
        return text
    options = options or RenderOptions()

    # Protect content that must not be touched by the markup rules
    placeholders: List[str] = []

    def protect(value: str) -> str:
        placeholders.append(value)
        return f"\x00{len(placeholders) - 1}\x00"

    def protect_match(match: re.Match) -> str:
        return protect(match.group(0))

    text = re.sub(r'\\\[.*?\\\]', protect_match, text, flags=re.DOTALL)
    text = re.sub(r'\\\(.*?\\\)', protect_match, text, flags=re.DOTALL)
    text = re.sub(r'\$\$.*?\$\$', protect_match, text, flags=re.DOTALL)
    text = re.sub(r'\$[^$\n]+\$', protect_match, text)
    text = CLOZE_PATTERN.sub(protect_match, text)

    def render_block(match: re.Match) -> str:
        kind = match.group("kind").lower()
        body = match.group("body").rstrip("\n")
        if options.escape_html:
            body = html.escape(body, quote=False)
        if kind == "quote":
            return protect(f"<blockquote>{body}</blockquote>")
        return protect(f"<pre>{body}</pre>")

    text = BLOCK_PATTERN.sub(render_block, text)

    def render_link(match: re.Match) -> str:
        target = match.group("target")
        description = match.group("desc") or target
        if options.escape_html:
            description = html.escape(description, quote=False)
        rendered = None
        if options.link_handler is not None:
            rendered = options.link_handler(target, description)
        return protect(rendered if rendered is not None else _default_link(target, description))

    text = LINK_PATTERN.sub(render_link, text)

    def render_code(match: re.Match) -> str:
        code = match.group(1)
        if options.escape_html:
            code = html.escape(code, quote=False)
        return protect(f"<code>{code}</code>")

    text = _emphasis_pattern("=").sub(render_code, text)
    text = _emphasis_pattern("~").sub(render_code, text)

    if options.escape_html:
        text = html.escape(text, quote=False)

    for char, tag in EMPHASIS_TAGS:
        text = _emphasis_pattern(char).sub(rf"<{tag}>\1</{tag}>", text)

    text = _render_lists(text)

    # Restore protected content; blocks may themselves hold placeholders
    for _ in range(2):
        text = re.sub(r"\x00(\d+)\x00", lambda m: placeholders[int(m.group(1))], text)

    return text


def _render_lists(text: str) -> str:
    lines = text.split('\n')
    result_lines = []
    in_ul = False
    in_ol = False

    for line in lines:
        stripped = line.strip()

        # "* " at column 0 is a headline, not a list item
        ul_match = re.match(r'^(?:[ \t]*[-+]|[ \t]+\*)[ \t]+(.+)$', line)
        ol_match = re.match(r'^\d+[.)]\s+(.+)$', stripped)

        if ul_match:
            if not in_ul:
                if in_ol:
                    result_lines.append('</ol>')
                    in_ol = False
                result_lines.append('<ul>')
                in_ul = True
            result_lines.append(f'<li>{ul_match.group(1)}</li>')
        elif ol_match:
            if not in_ol:
                if in_ul:
                    result_lines.append('</ul>')
                    in_ul = False
                result_lines.append('<ol>')
                in_ol = True
            result_lines.append(f'<li>{ol_match.group(1)}</li>')
        else:
            if in_ul:
                result_lines.append('</ul>')
                in_ul = False
            if in_ol:
                result_lines.append('</ol>')
                in_ol = False
            if stripped:
                result_lines.append(stripped + '<br>')
            else:
                result_lines.append('')

    if in_ul:
        result_lines.append('</ul>')
    if in_ol:
        result_lines.append('</ol>')

    text = '\n'.join(result_lines).strip('\n')

    # Convert double+ newlines to paragraph breaks
    text = re.sub(r'\n\n+', '</p><p>', text)
    text = re.sub(r'\n', '', text)
    # Clean up trailing <br> before block elements
    text = re.sub(r'<br>(</?(?:ul|ol|li|p)>)', r'\1', text)
    text = re.sub(r'<br>$', '', text)

    if '</p><p>' in text:
        text = '<p>' + text + '</p>'
    return text


__all__ = ["RenderOptions", "LinkHandler", "org_to_anki_html"]
