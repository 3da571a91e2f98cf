"""Heading detection over a sequence of text lines.

One left-to-right pass (plus a counting pre-pass for running headers):

1. Table-of-contents runs are found first and suppressed, so TOC entries
   that look like headings ("Article I .......... 3") never open sections.
2. Page-number footers and running headers repeated at page edges are
   suppressed as boilerplate.
3. Every remaining line is offered to the matcher; at most one heading per
   line.
4. Each heading's number is checked against the previous sibling at the
   same depth. Breaks are recorded as advisory ContinuityWarnings, never
   rejected.

Output is deterministic for a given (lines, matcher, config).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from sectionizer.matchers import (
    ExplicitTemplateMatcher,
    HeadingMatcher,
    is_all_caps,
    is_title_case,
)
from sectionizer.parsing_types import (
    MODE_TEMPLATE,
    SUPPRESS_BOILERPLATE,
    SUPPRESS_TOC,
    ContinuityWarning,
    DetectedHeading,
    ParserConfig,
)
from sectionizer.templates import HierarchyTemplate

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Line shapes
# ---------------------------------------------------------------------------

_TOC_HEADER_RE = re.compile(r"^\s*(?:table\s+of\s+contents|contents)\s*:?\s*$", re.IGNORECASE)

_PAGE_FOOTER_RE = re.compile(
    r"^\s*(?:"
    r"page\s+\d{1,4}(?:\s+of\s+\d{1,4})?"
    r"|[-–—]\s*\d{1,4}\s*[-–—]"
    r"|\d{1,4}"
    r")\s*$",
    re.IGNORECASE,
)

_SENTENCE_END = (".", "?", "!", ":", ";")

_FORM_FEED = "\f"
_DIGITS = "0123456789"


def toc_entry_text(line: str) -> str | None:
    """Entry text of a "<text><leader><page>" TOC line, else None.

    The leader is a run of dot leaders, an ellipsis, a tab, or two or more
    spaces. Scans right to left from the page number, so the cost is linear
    in the line length.
    """
    stripped = line.rstrip()
    i = len(stripped)
    while i > 0 and stripped[i - 1] in _DIGITS:
        i -= 1
    if not 1 <= len(stripped) - i <= 4:
        return None
    head = stripped[:i]
    core = head.rstrip()
    gap = head[len(core):]
    if core.endswith("."):
        j = len(core)
        while j > 0 and core[j - 1] in ". ":
            j -= 1
        if core.count(".", j) < 2:
            return None
        text = core[:j]
    elif core.endswith("…"):
        text = core.rstrip("… ")
    elif "\t" in gap or len(gap) >= 2:
        text = core
    else:
        return None
    text = text.strip()
    return text or None


def _is_blank(line: str) -> bool:
    return not line.strip() and _FORM_FEED not in line


@dataclass(slots=True)
class DetectionResult:
    """Headings plus the line-level suppression map."""
    headings: list[DetectedHeading]
    suppressed: dict[int, str] = field(default_factory=dict)   # line -> category
    toc_runs: list[tuple[int, int]] = field(default_factory=list)  # [start, end)
    mode: str = MODE_TEMPLATE

    @property
    def continuity_warnings(self) -> list[ContinuityWarning]:
        return [h.continuity_warning for h in self.headings if h.continuity_warning is not None]


class HierarchyDetector:
    """Find headings in linearized document text."""

    def __init__(
        self,
        matcher: HeadingMatcher,
        config: ParserConfig | None = None,
    ) -> None:
        self.matcher = matcher
        self.config = config or ParserConfig()
        self._extra_boilerplate = [
            re.compile(p) for p in self.config.extra_boilerplate_patterns
        ]

    @property
    def template(self) -> HierarchyTemplate:
        return self.matcher.template

    # -- TOC -----------------------------------------------------------------

    def _heading_like(self, text: str) -> bool:
        if isinstance(self.matcher, ExplicitTemplateMatcher):
            return self.matcher.template.match_line(text) is not None
        return is_all_caps(text) or is_title_case(text)

    def _find_toc_runs(self, lines: list[str]) -> list[tuple[int, int]]:
        runs: list[tuple[int, int]] = []
        i = 0
        n = len(lines)
        while i < n:
            text = toc_entry_text(lines[i])
            if text is None or not self._heading_like(text):
                i += 1
                continue
            start = i
            entries = 0
            last_entry = i
            j = i
            while j < n:
                if toc_entry_text(lines[j]) is not None:
                    entries += 1
                    last_entry = j
                elif lines[j].strip():
                    break
                j += 1
            end = last_entry + 1

            # A "TABLE OF CONTENTS" line just above the run (blank lines allowed)
            header = start - 1
            while header >= 0 and not lines[header].strip():
                header -= 1
            has_header = header >= 0 and bool(_TOC_HEADER_RE.match(lines[header]))

            if entries >= self.config.toc_min_run or has_header:
                runs.append((header if has_header else start, end))
                log.debug(
                    "TOC run at lines %d-%d (%d entries, header=%s)",
                    start, end - 1, entries, has_header,
                )
            i = end
        return runs

    # -- Boilerplate ---------------------------------------------------------

    def _is_page_footer(self, line: str) -> bool:
        if self.config.strip_page_numbers and _PAGE_FOOTER_RE.match(line):
            return True
        return any(p.search(line) for p in self._extra_boilerplate)

    @staticmethod
    def _page_edges(lines: list[str], breaks: set[int]) -> set[int]:
        """Lines at the top or bottom of a page.

        Page boundaries are footer lines, form-feed lines, and both ends of
        the document. A line sits at a page edge when it carries a form feed
        or when the nearest non-blank line above or below it is a boundary.
        """
        filled = [i for i, line in enumerate(lines) if not _is_blank(line)]
        edges: set[int] = set()
        for k, i in enumerate(filled):
            above = filled[k - 1] if k > 0 else None
            below = filled[k + 1] if k + 1 < len(filled) else None
            if (
                _FORM_FEED in lines[i]
                or above is None or above in breaks
                or below is None or below in breaks
            ):
                edges.add(i)
        return edges

    def _running_headers(self, lines: list[str], skip: set[int], edges: set[int]) -> set[int]:
        """Page-edge lines whose short text recurs at enough page edges.

        Headings (template or heuristic) are never running headers, and a
        line repeated only inside page bodies stays content.
        """
        if not self.config.strip_running_headers:
            return set()
        occurrences: dict[str, list[int]] = {}
        for i in sorted(edges - skip):
            text = " ".join(lines[i].split())
            if not text or text.endswith(_SENTENCE_END):
                continue
            if len(text.split()) > self.config.running_header_max_words:
                continue
            if _TOC_HEADER_RE.match(text):
                continue
            if self.matcher.match(lines, i) is not None:
                continue
            occurrences.setdefault(text, []).append(i)
        repeated = {
            text: found for text, found in occurrences.items()
            if len(found) >= self.config.running_header_min_repeats
        }
        if repeated:
            log.debug("Running headers: %s", sorted(repeated))
        return {i for found in repeated.values() for i in found}

    # -- Main pass -----------------------------------------------------------

    def detect(self, lines: list[str]) -> DetectionResult:
        suppressed: dict[int, str] = {}

        toc_runs = self._find_toc_runs(lines)
        for start, end in toc_runs:
            for i in range(start, end):
                suppressed[i] = SUPPRESS_TOC

        for i, line in enumerate(lines):
            if i not in suppressed and line.strip() and self._is_page_footer(line):
                suppressed[i] = SUPPRESS_BOILERPLATE

        breaks = {i for i, c in suppressed.items() if c == SUPPRESS_BOILERPLATE}
        breaks.update(i for i, line in enumerate(lines) if _FORM_FEED in line)
        edges = self._page_edges(lines, breaks)
        for i in self._running_headers(lines, set(suppressed), edges):
            suppressed[i] = SUPPRESS_BOILERPLATE

        headings: list[DetectedHeading] = []
        last_number: dict[int, int] = {}    # depth -> previous sibling number
        for i, line in enumerate(lines):
            if i in suppressed:
                continue
            m = self.matcher.match(lines, i)
            if m is None:
                continue
            depth = m.depth

            # Siblings deeper than this heading belong to a closed parent
            for d in [d for d in last_number if d > depth]:
                del last_number[d]

            number = m.number
            if number is None:
                number = last_number.get(depth, 0) + 1

            warning: ContinuityWarning | None = None
            previous = last_number.get(depth)
            if previous is not None and number != previous + 1:
                warning = ContinuityWarning(
                    line_index=i, depth=depth, expected=previous + 1, found=number,
                )
            last_number[depth] = number

            headings.append(DetectedHeading(
                line_index=i,
                depth=depth,
                number=number,
                raw_text=line,
                label_end=m.label_end,
                title_hint=line[m.label_end:],
                continuity_warning=warning,
            ))

        result = DetectionResult(
            headings=headings,
            suppressed=suppressed,
            toc_runs=toc_runs,
            mode=self.matcher.mode,
        )
        warnings = result.continuity_warnings
        log.debug(
            "Detected %d headings (%s mode), %d suppressed lines",
            len(headings), result.mode, len(suppressed),
        )
        if warnings:
            log.warning(
                "%d numbering continuity break(s); first at %s",
                len(warnings), warnings[0],
            )
        return result
