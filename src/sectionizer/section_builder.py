"""Build the section tree from detected headings.

Walks the lines once with a stack of open sections (one per depth):

- A heading at depth d closes every open section at depth >= d and opens
  a new one under the nearest shallower open section. A skipped depth is
  recorded as a DepthJump.
- The heading line is split into label (prefix + number), title, and the
  first chunk of body content.
- Every other line that is neither suppressed nor consumed as a title is
  appended to the innermost open section's body. Content before the first
  heading becomes a root "Preamble" section.

Word conservation is checked at the end: every input word is either in a
title, in a body, or counted under a suppression category.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sectionizer.detector import DetectionResult, HierarchyDetector
from sectionizer.matchers import is_all_caps, select_matcher
from sectionizer.parsing_types import (
    KIND_HEADING,
    KIND_PREAMBLE,
    PREAMBLE_CITATION,
    SUPPRESS_HEADING,
    SUPPRESSION_CATEGORIES,
    DepthJump,
    DetectedHeading,
    ParseDiagnostics,
    ParserConfig,
    Section,
    compute_section_id,
    count_words,
)
from sectionizer.section_tree import SectionTree
from sectionizer.templates import HierarchyTemplate, resolve_template

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Heading line splitting
# ---------------------------------------------------------------------------

_LEADING_SEP_RE = re.compile(r"^[\s.:;,\-–—)]+")

# Earliest of: period before whitespace/EOL (kept), colon, em-dash,
# spaced en-dash (dropped).
_TITLE_END_RE = re.compile(r"\.(?=\s|$)|:|—|\s–\s")


def split_heading_text(text: str) -> tuple[str, str]:
    """Split the text after a heading label into ``(title, inline_body)``.

    >>> split_heading_text(": Mission. The mission is X.")
    ('Mission.', 'The mission is X.')
    """
    rest = _LEADING_SEP_RE.sub("", text)
    m = _TITLE_END_RE.search(rest)
    if m is None:
        return _normalize(rest), ""
    if m.group(0) == ".":
        title, body = rest[:m.end()], rest[m.end():]
    else:
        title, body = rest[:m.start()], rest[m.end():]
    return _normalize(title), _normalize(body)


def _normalize(text: str) -> str:
    return " ".join(text.split())


def split_lines(text: str) -> list[str]:
    """Split raw text into lines with normalized line endings."""
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ParseResult:
    """Tree plus diagnostics for one parsed document."""
    tree: SectionTree
    diagnostics: ParseDiagnostics

    @property
    def sections(self) -> list[Section]:
        return self.tree.sections

    def to_dict(self) -> dict[str, Any]:
        template = self.tree.template
        return {
            "document_id": self.tree.document_id,
            "template": None if template is None else template.to_dict(),
            "sections": self.tree.to_dicts(),
            "diagnostics": self.diagnostics.to_dict(),
        }


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class _OpenSection:
    section: Section
    path: tuple[int, ...]
    child_count: int = 0
    paragraphs: list[str] = field(default_factory=list)
    current: list[str] = field(default_factory=list)

    def add_line(self, text: str) -> None:
        self.current.append(text)

    def paragraph_break(self) -> None:
        if self.current:
            self.paragraphs.append(" ".join(self.current))
            self.current = []

    def finalize(self) -> None:
        self.paragraph_break()
        self.section.body = "\n\n".join(self.paragraphs)


class SectionBuilder:
    """Turn a DetectionResult into a SectionTree and diagnostics."""

    def __init__(
        self,
        template: HierarchyTemplate,
        document_id: str = "doc",
        config: ParserConfig | None = None,
    ) -> None:
        self.template = template
        self.document_id = document_id
        self.config = config or ParserConfig()

    def _adopt_next_line_title(
        self,
        lines: list[str],
        index: int,
        heading_lines: set[int],
        detection: DetectionResult,
    ) -> int | None:
        """Index of an ALL-CAPS title line following a bare heading, if any."""
        j = index + 1
        while j < len(lines) and not lines[j].strip():
            j += 1
        if j >= len(lines) or j in heading_lines or j in detection.suppressed:
            return None
        candidate = lines[j].strip()
        if not is_all_caps(candidate):
            return None
        if len(candidate.split()) > self.config.next_line_title_max_words:
            return None
        return j

    def build(self, lines: list[str], detection: DetectionResult) -> ParseResult:
        headings: dict[int, DetectedHeading] = {h.line_index: h for h in detection.headings}
        heading_lines = set(headings)
        consumed: set[int] = set()

        sections: list[Section] = []
        stack: list[_OpenSection] = []
        root_count = 0
        preamble: _OpenSection | None = None
        depth_jumps: list[DepthJump] = []
        label_words = 0

        for i, line in enumerate(lines):
            if i in detection.suppressed or i in consumed:
                continue

            heading = headings.get(i)
            if heading is None:
                target = stack[-1] if stack else preamble
                if not line.strip():
                    if target is not None:
                        target.paragraph_break()
                    continue
                if target is None:
                    preamble = self._open_preamble(i)
                    sections.append(preamble.section)
                    target = preamble
                target.add_line(_normalize(line))
                continue

            if preamble is not None:
                preamble.finalize()
                preamble = None

            depth = heading.depth
            while stack and stack[-1].section.depth >= depth:
                stack.pop().finalize()
            parent = stack[-1] if stack else None

            parent_depth = parent.section.depth if parent is not None else -1
            if parent_depth != depth - 1:
                depth_jumps.append(DepthJump(
                    line_index=i, depth=depth, parent_depth=parent_depth,
                ))

            if parent is None:
                root_count += 1
                ordinal = root_count
                path: tuple[int, ...] = (ordinal,)
                citation_prefix = ""
            else:
                parent.child_count += 1
                ordinal = parent.child_count
                path = (*parent.path, ordinal)
                citation_prefix = parent.section.citation + ", "

            label_words += count_words(heading.raw_text[:heading.label_end])
            title, inline = split_heading_text(heading.title_hint)
            if not title and not inline and self.config.adopt_next_line_title:
                j = self._adopt_next_line_title(lines, i, heading_lines, detection)
                if j is not None:
                    title = _normalize(lines[j])
                    consumed.add(j)

            level = self.template.level(depth)
            section = Section(
                id=compute_section_id(self.document_id, path),
                parent_id=None if parent is None else parent.section.id,
                depth=depth,
                number=heading.number,
                title=title,
                body="",
                citation=citation_prefix + level.label(heading.number),
                ordinal=ordinal,
                level_name=level.name,
                line_index=i,
                kind=KIND_HEADING,
            )
            sections.append(section)
            opened = _OpenSection(section=section, path=path)
            if inline:
                opened.add_line(inline)
            stack.append(opened)

        # End of input: close innermost first
        while stack:
            stack.pop().finalize()
        if preamble is not None:
            preamble.finalize()

        tree = SectionTree(sections, self.template, self.document_id)
        diagnostics = self._diagnostics(lines, detection, sections, depth_jumps, label_words)
        return ParseResult(tree=tree, diagnostics=diagnostics)

    def _open_preamble(self, line_index: int) -> _OpenSection:
        path = (0,)
        section = Section(
            id=compute_section_id(self.document_id, path),
            parent_id=None,
            depth=0,
            number=0,
            title="",
            body="",
            citation=PREAMBLE_CITATION,
            ordinal=0,
            level_name=PREAMBLE_CITATION,
            line_index=line_index,
            kind=KIND_PREAMBLE,
        )
        return _OpenSection(section=section, path=path)

    def _diagnostics(
        self,
        lines: list[str],
        detection: DetectionResult,
        sections: list[Section],
        depth_jumps: list[DepthJump],
        label_words: int,
    ) -> ParseDiagnostics:
        total = sum(count_words(line) for line in lines)
        parsed = sum(count_words(s.title) + count_words(s.body) for s in sections)

        suppressed = dict.fromkeys(SUPPRESSION_CATEGORIES, 0)
        for i, category in detection.suppressed.items():
            suppressed[category] += count_words(lines[i])
        suppressed[SUPPRESS_HEADING] += label_words

        diagnostics = ParseDiagnostics(
            total_words=total,
            parsed_words=parsed,
            suppressed=suppressed,
            empty_section_ids=frozenset(s.id for s in sections if not s.body),
            continuity_warnings=tuple(detection.continuity_warnings),
            depth_jumps=tuple(depth_jumps),
            heading_count=len(detection.headings),
            mode=detection.mode,
        )
        if not diagnostics.is_conserved:
            log.error(
                "Word conservation violated for %s: total=%d parsed=%d suppressed=%d (delta %d)",
                self.document_id, total, parsed, diagnostics.suppressed_words,
                diagnostics.unaccounted_words,
            )
        if depth_jumps:
            log.debug("%d depth jump(s) in %s", len(depth_jumps), self.document_id)
        return diagnostics


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def parse_document(
    source: str | list[str],
    template: HierarchyTemplate | str | list[dict[str, Any]] | None = None,
    *,
    document_id: str = "doc",
    config: ParserConfig | None = None,
) -> ParseResult:
    """Parse linearized document text into a section tree.

    Args:
        source: Raw text or an ordered list of lines.
        template: A HierarchyTemplate, a preset name, an explicit list of
            level dicts, or None for heuristic mode.
        document_id: Scope for deterministic section ids.
        config: Parser tunables (defaults if omitted).

    Raises:
        TemplateConfigError: if the template is malformed or unknown.
    """
    config = config or ParserConfig()
    lines = split_lines(source) if isinstance(source, str) else [
        line.rstrip("\r\n") for line in source
    ]
    resolved = resolve_template(template)
    matcher = select_matcher(resolved, config)
    detection = HierarchyDetector(matcher, config).detect(lines)
    builder = SectionBuilder(matcher.template, document_id=document_id, config=config)
    result = builder.build(lines, detection)
    log.debug(
        "Parsed %s: %d sections, retention %.3f",
        document_id, len(result.tree), result.diagnostics.retention_rate,
    )
    return result
