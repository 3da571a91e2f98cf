"""Heading matcher strategies.

Two interchangeable strategies behind one interface:

- :class:`ExplicitTemplateMatcher` — the configured template's levels,
  tested shallowest first. High confidence.
- :class:`HeuristicMatcher` — no template supplied. Infers at most two
  depths from short, visually distinct lines (ALL CAPS -> depth 0,
  Title Case -> depth 1). Lower confidence; numbers are assigned
  sequentially by the detector.

``select_matcher`` picks the strategy from whether a template was given.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from sectionizer.parsing_types import MODE_HEURISTIC, MODE_TEMPLATE, ParserConfig
from sectionizer.templates import HierarchyTemplate, LevelDefinition


@dataclass(frozen=True, slots=True)
class HeadingMatch:
    """A line recognized as a heading by a matcher."""
    depth: int
    number: int | None    # None = assign sequentially (heuristic mode)
    label_end: int        # Offset where the title/inline content starts


class HeadingMatcher(Protocol):
    template: HierarchyTemplate
    mode: str

    def match(self, lines: list[str], index: int) -> HeadingMatch | None: ...


# ---------------------------------------------------------------------------
# Explicit template
# ---------------------------------------------------------------------------

class ExplicitTemplateMatcher:
    """Match headings against a configured template."""

    mode = MODE_TEMPLATE

    def __init__(self, template: HierarchyTemplate) -> None:
        self.template = template

    def match(self, lines: list[str], index: int) -> HeadingMatch | None:
        found = self.template.match_line(lines[index])
        if found is None:
            return None
        depth, m = found
        return HeadingMatch(depth=depth, number=m.number, label_end=m.label_end)


# ---------------------------------------------------------------------------
# Heuristic (no template)
# ---------------------------------------------------------------------------

HEURISTIC_TEMPLATE = HierarchyTemplate("heuristic", (
    LevelDefinition(name="Heading", depth=0, numbering="numeric", prefix=""),
    LevelDefinition(name="Subheading", depth=1, numbering="numeric", prefix=""),
))

_TERMINAL_PUNCT = (".", ",", ";", ":", "?", "!")
_SMALL_WORDS = frozenset({
    "a", "an", "and", "as", "at", "by", "for", "in", "of", "on", "or",
    "the", "to", "with",
})
_WORD_TOKEN_RE = re.compile(r"[A-Za-z][A-Za-z'&-]*")


def is_all_caps(text: str) -> bool:
    letters = [c for c in text if c.isalpha()]
    return len(letters) >= 2 and all(c.isupper() for c in letters)


def is_title_case(text: str) -> bool:
    words = _WORD_TOKEN_RE.findall(text)
    if not words or not words[0][0].isupper():
        return False
    return all(w[0].isupper() or w.lower() in _SMALL_WORDS for w in words)


class HeuristicMatcher:
    """Best-effort heading inference for documents without a template."""

    mode = MODE_HEURISTIC

    def __init__(self, config: ParserConfig | None = None) -> None:
        self.config = config or ParserConfig()
        self.template = HEURISTIC_TEMPLATE

    def _next_content_line(self, lines: list[str], index: int) -> str | None:
        for j in range(index + 1, len(lines)):
            if lines[j].strip():
                return lines[j].strip()
        return None

    def match(self, lines: list[str], index: int) -> HeadingMatch | None:
        text = lines[index].strip()
        if not text or len(text) > self.config.heuristic_max_chars:
            return None
        if len(text.split()) > self.config.heuristic_max_words:
            return None
        if text.endswith(_TERMINAL_PUNCT):
            return None
        if not any(c.isalpha() for c in text):
            return None
        following = self._next_content_line(lines, index)
        if following is None or len(following) <= len(text):
            return None
        if is_all_caps(text):
            depth = 0
        elif is_title_case(text):
            depth = 1
        else:
            return None
        return HeadingMatch(depth=depth, number=None, label_end=0)


def select_matcher(
    template: HierarchyTemplate | None,
    config: ParserConfig | None = None,
) -> ExplicitTemplateMatcher | HeuristicMatcher:
    """Explicit matcher when a template is given, heuristic otherwise."""
    if template is not None:
        return ExplicitTemplateMatcher(template)
    return HeuristicMatcher(config)
