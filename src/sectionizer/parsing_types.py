"""Core types shared by the detector, builder, store, and range validator.

Every layer in the pipeline shares these types. Line coordinates are always
indices into the caller's original line sequence (never renumbered after
suppression). All dataclasses use slots=True.

Type hierarchy:
  DetectedHeading    — One heading occurrence found by the detector
  ContinuityWarning  — Advisory: heading number does not follow its sibling
  DepthJump          — Advisory: heading nested below a skipped depth
  Section            — Node of the parsed section tree
  ParseDiagnostics   — Word-conservation and quality report for one parse
  ContiguityWarning  — Advisory: a section range has numbering gaps
  RangeValidation    — Result of validating/locking a section range
  ParserConfig       — Tunables for detection and building (loaded from JSON)
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from sectionizer.io_utils import load_json

# ---------------------------------------------------------------------------
# Word counting
# ---------------------------------------------------------------------------

# A word is a maximal run of letters/digits. Title/body splits only ever cut
# at non-alphanumeric characters, so counts over the pieces always sum to the
# count over the whole line.
_WORD_RE = re.compile(r"[^\W_]+")


def count_words(text: str) -> int:
    """Count words (maximal alphanumeric runs) in ``text``."""
    return len(_WORD_RE.findall(text))


# Suppression categories (words excluded from titles/bodies, but accounted for)
SUPPRESS_TOC = "toc"
SUPPRESS_BOILERPLATE = "boilerplate"
SUPPRESS_HEADING = "heading"       # prefix + number label words ("Article IV")

SUPPRESSION_CATEGORIES = (SUPPRESS_TOC, SUPPRESS_BOILERPLATE, SUPPRESS_HEADING)

# Section kinds
KIND_HEADING = "heading"
KIND_PREAMBLE = "preamble"

PREAMBLE_CITATION = "Preamble"

# Parse modes
MODE_TEMPLATE = "template"
MODE_HEURISTIC = "heuristic"


def compute_section_id(document_id: str, ordinal_path: tuple[int, ...]) -> str:
    """Stable section id: SHA256 of the document id and the ordinal path.

    The ordinal path is the chain of sibling ordinals from the root
    (``(2, 1)`` = first child of the second root). Ids are assigned once at
    parse time and never recomputed, so later edits that move a section do
    not change its id.
    """
    payload = document_id + "\x00" + ".".join(str(o) for o in ordinal_path)
    return "sec_" + hashlib.sha256(payload.encode()).hexdigest()[:16]


# ---------------------------------------------------------------------------
# Detector output
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ContinuityWarning:
    """A heading number that does not follow the previous sibling's number."""
    line_index: int
    depth: int
    expected: int
    found: int

    def __str__(self) -> str:
        return (
            f"line {self.line_index}: depth {self.depth} expected "
            f"{self.expected}, found {self.found}"
        )


@dataclass(frozen=True, slots=True)
class DetectedHeading:
    """One heading occurrence. Ordered by ``line_index``; never persisted."""
    line_index: int
    depth: int
    number: int
    raw_text: str         # The full original line
    label_end: int        # Offset in raw_text where prefix+number ends
    title_hint: str = ""  # raw_text[label_end:], before title/body split
    continuity_warning: ContinuityWarning | None = None


@dataclass(frozen=True, slots=True)
class DepthJump:
    """A heading attached to a shallower ancestor because a depth was skipped."""
    line_index: int
    depth: int
    parent_depth: int     # -1 when attached as a root


# ---------------------------------------------------------------------------
# Section (tree node)
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class Section:
    """A titled section of the document.

    ``parent_id`` is a lookup-only back-reference; the owning
    :class:`~sectionizer.section_tree.SectionTree` holds children by index.
    ``body`` is the one canonical content attribute.
    """
    id: str
    parent_id: str | None
    depth: int
    number: int
    title: str
    body: str
    citation: str         # "Article II, Section 1"
    ordinal: int          # 1-based position among siblings (0 for preamble)
    level_name: str       # "Section"
    line_index: int       # Heading line (first content line for preamble)
    kind: str = KIND_HEADING

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Section:
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


# ---------------------------------------------------------------------------
# ParseDiagnostics
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ParseDiagnostics:
    """Fidelity report for one parse.

    Conservation invariant::

        total_words == parsed_words + sum(suppressed.values())

    ``parsed_words`` counts title and body words only; heading labels,
    TOC runs, and boilerplate are explicitly classified in ``suppressed``.
    """
    total_words: int
    parsed_words: int
    suppressed: dict[str, int]
    empty_section_ids: frozenset[str]
    continuity_warnings: tuple[ContinuityWarning, ...] = ()
    depth_jumps: tuple[DepthJump, ...] = ()
    heading_count: int = 0
    mode: str = MODE_TEMPLATE

    @property
    def retention_rate(self) -> float:
        if self.total_words == 0:
            return 1.0
        return self.parsed_words / self.total_words

    @property
    def suppressed_words(self) -> int:
        return sum(self.suppressed.values())

    @property
    def unaccounted_words(self) -> int:
        return self.total_words - self.parsed_words - self.suppressed_words

    @property
    def is_conserved(self) -> bool:
        return self.unaccounted_words == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_words": self.total_words,
            "parsed_words": self.parsed_words,
            "retention_rate": round(self.retention_rate, 6),
            "suppressed": dict(sorted(self.suppressed.items())),
            "unaccounted_words": self.unaccounted_words,
            "empty_section_ids": sorted(self.empty_section_ids),
            "continuity_warnings": [asdict(w) for w in self.continuity_warnings],
            "depth_jumps": [asdict(j) for j in self.depth_jumps],
            "heading_count": self.heading_count,
            "mode": self.mode,
        }


# ---------------------------------------------------------------------------
# Range validation results
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ContiguityWarning:
    """Advisory: the numbers of a section range do not form a consecutive run.

    Never raised. The caller decides whether to proceed.
    """
    parent_id: str | None
    numbers: tuple[int, ...]      # Sorted numbers of the supplied sections
    missing: tuple[int, ...]      # Numbers absent from the run
    duplicates: tuple[int, ...] = ()

    def __str__(self) -> str:
        parts: list[str] = []
        if self.missing:
            parts.append("missing " + ", ".join(str(n) for n in self.missing))
        if self.duplicates:
            parts.append("duplicated " + ", ".join(str(n) for n in self.duplicates))
        return "Sections are not contiguous: " + "; ".join(parts)


@dataclass(frozen=True, slots=True)
class RangeValidation:
    """Outcome of a successful validate/lock call on a section range."""
    document_id: str
    parent_id: str | None
    section_ids: tuple[str, ...]      # Ordered by number
    numbers: tuple[int, ...]
    contiguity_warning: ContiguityWarning | None = None
    locked_by: str | None = None

    @property
    def is_contiguous(self) -> bool:
        return self.contiguity_warning is None

    def to_dict(self) -> dict[str, Any]:
        warning = self.contiguity_warning
        return {
            "document_id": self.document_id,
            "parent_id": self.parent_id,
            "section_ids": list(self.section_ids),
            "numbers": list(self.numbers),
            "contiguous": self.is_contiguous,
            "contiguity_warning": None if warning is None else {
                "message": str(warning),
                "missing": list(warning.missing),
                "duplicates": list(warning.duplicates),
            },
            "locked_by": self.locked_by,
        }


# ---------------------------------------------------------------------------
# ParserConfig
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ParserConfig:
    """Parser tunables loaded from JSON.

    Defaults reproduce the behaviour documented for explicit templates; the
    heuristic_* fields only apply when no template is supplied.
    """
    toc_min_run: int = 3                    # Entries needed to call a run a TOC
    adopt_next_line_title: bool = True      # "ARTICLE I" / "NAME" on two lines
    next_line_title_max_words: int = 12
    strip_page_numbers: bool = True
    strip_running_headers: bool = True
    running_header_min_repeats: int = 3
    running_header_max_words: int = 10
    heuristic_max_words: int = 10
    heuristic_max_chars: int = 80
    extra_boilerplate_patterns: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.toc_min_run < 1:
            raise ValueError(f"toc_min_run must be >= 1, got {self.toc_min_run}")
        if self.running_header_min_repeats < 2:
            raise ValueError(
                "running_header_min_repeats must be >= 2, "
                f"got {self.running_header_min_repeats}"
            )
        if self.heuristic_max_words < 1 or self.heuristic_max_chars < 1:
            raise ValueError("heuristic thresholds must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParserConfig:
        names = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - names)
        if unknown:
            raise ValueError(f"Unknown parser config keys: {', '.join(unknown)}")
        payload = dict(data)
        if "extra_boilerplate_patterns" in payload:
            payload["extra_boilerplate_patterns"] = tuple(payload["extra_boilerplate_patterns"])
        return cls(**payload)

    @classmethod
    def from_json(cls, path: Path) -> ParserConfig:
        """Load from a parser_config.json file."""
        data = load_json(path)
        if not isinstance(data, dict):
            raise ValueError(f"Parser config must be a JSON object: {path}")
        return cls.from_dict(data)
