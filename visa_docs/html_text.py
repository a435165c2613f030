"""Rich-text template content -> plain text for the PDF terms sections.

One-way and best effort: tables, links and inline styling are flattened.
Conversion is table driven so every tag has exactly one rule regardless of
how the markup is nested.
"""

from __future__ import annotations

import re
from enum import Enum
from html.parser import HTMLParser


class TagRule(str, Enum):
    DROP = "drop"          # element and its content removed
    BLOCK = "block"        # line break before and after
    HEADING = "heading"    # blank line before, line break after
    BREAK = "break"        # single line break
    BULLET = "bullet"      # new line starting with a bullet
    INLINE = "inline"      # tag removed, text kept


BULLET = "• "

TAG_RULES: dict[str, TagRule] = {
    "script": TagRule.DROP,
    "style": TagRule.DROP,
    "head": TagRule.DROP,
    "h1": TagRule.HEADING,
    "h2": TagRule.HEADING,
    "h3": TagRule.HEADING,
    "h4": TagRule.HEADING,
    "h5": TagRule.HEADING,
    "h6": TagRule.HEADING,
    "p": TagRule.BLOCK,
    "div": TagRule.BLOCK,
    "section": TagRule.BLOCK,
    "article": TagRule.BLOCK,
    "blockquote": TagRule.BLOCK,
    "ul": TagRule.BLOCK,
    "ol": TagRule.BLOCK,
    "table": TagRule.BLOCK,
    "tr": TagRule.BLOCK,
    "br": TagRule.BREAK,
    "hr": TagRule.BREAK,
    "li": TagRule.BULLET,
}

_START_EMIT = {
    TagRule.BLOCK: "\n",
    TagRule.HEADING: "\n\n",
    TagRule.BREAK: "\n",
    TagRule.BULLET: "\n" + BULLET,
}
_END_EMIT = {
    TagRule.BLOCK: "\n",
    TagRule.HEADING: "\n",
    TagRule.BULLET: "\n",
}

_INLINE_SPACE_RE = re.compile(r"[ \t\f\v\u00a0]+")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def rule_for(tag: str) -> TagRule:
    return TAG_RULES.get(tag.lower(), TagRule.INLINE)


class _TextCollector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._drop_depth = 0

    def handle_starttag(self, tag, attrs):
        rule = rule_for(tag)
        if rule is TagRule.DROP:
            self._drop_depth += 1
            return
        if self._drop_depth:
            return
        emitted = _START_EMIT.get(rule)
        # <li><p>..</p></li> keeps the paragraph on the bullet line
        if emitted and rule is TagRule.BLOCK and self.parts and self.parts[-1].endswith(BULLET):
            return
        if emitted:
            self.parts.append(emitted)

    def handle_endtag(self, tag):
        rule = rule_for(tag)
        if rule is TagRule.DROP:
            self._drop_depth = max(0, self._drop_depth - 1)
            return
        if self._drop_depth:
            return
        emitted = _END_EMIT.get(rule)
        if emitted:
            self.parts.append(emitted)

    def handle_data(self, data):
        if not self._drop_depth:
            self.parts.append(data)


def normalize_whitespace(text: str) -> str:
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    collapsed = _EXCESS_NEWLINES_RE.sub("\n\n", "\n".join(lines))
    return collapsed.strip()


def html_to_text(content: str) -> str:
    """Convert template markup to plain text lines."""
    if not content:
        return ""
    collector = _TextCollector()
    collector.feed(content.replace("\r\n", "\n").replace("\r", "\n"))
    collector.close()
    return normalize_whitespace("".join(collector.parts))
