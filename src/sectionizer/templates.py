"""Hierarchy templates: depth-indexed numbering conventions for headings.

A template is an ordered list of levels ("Article" / roman / "Article ",
"Section" / numeric / "Section ", ...). Each level compiles to one
:class:`LevelMatcher` that recognizes that level's heading label at the
start of a line. When several levels match the same line, the shallowest
one wins.

Preset catalog (process-wide, immutable):
    standard-bylaws, legal-document, policy-manual, technical-standard

Templates are validated at construction, so a malformed template fails
before any document is parsed.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import orjson

from sectionizer import numbering
from sectionizer.errors import ParseError, TemplateConfigError
from sectionizer.io_utils import load_json

# ---------------------------------------------------------------------------
# Level matching
# ---------------------------------------------------------------------------

# Optional Markdown header marker ("## Section 1").
_MD_MARKER = r"(?:#{1,6}\s+)?"

# What may follow a prefixed number token. A period directly followed by a
# digit continues a dotted number ("1.01"), so it is not a terminator.
_TOKEN_END = r"(?=$|\s|[:;,)\-–—]|\.(?!\d))"

# In-text references ("Section 3 of these Bylaws", "Article II and III").
_XREF_RE = re.compile(
    r"(?:of|and|or|through|to|above|below|here(?:of|in|under|to|by))\b"
)


def _prefix_pattern(prefix: str) -> str:
    """Case-insensitive, whitespace-flexible regex for a level prefix."""
    words = prefix.split()
    if not words:
        return ""
    body = r"\s+".join(re.escape(w) for w in words)
    gap = r"\s+" if prefix[-1].isspace() else r"\s*"
    return f"(?i:{body}){gap}"


@dataclass(frozen=True, slots=True)
class LevelMatch:
    """A level's label found at the start of a line."""
    number: int
    token: str
    label_end: int     # Offset just past the label (and closing paren, if any)


class LevelMatcher:
    """Compiled recognizer for one template level."""

    def __init__(self, level: LevelDefinition) -> None:
        self.level = level
        token = numbering.TOKEN_PATTERNS[level.numbering]
        prefix = level.prefix.strip()
        head = r"^\s*" + _MD_MARKER + _prefix_pattern(level.prefix)
        if prefix.endswith("("):
            pattern = head + rf"(?P<token>{token})\s*\)"
        elif not prefix:
            # Bare enumerator: "1. Membership", "iv) Terms", "(1) Regular"
            pattern = head + (
                rf"(?:\(\s*(?P<paren>{token})\s*\)|(?P<token>{token})[.)])(?=\s|$)"
            )
        elif level.numbering == numbering.SCHEME_NUMERIC:
            # Dotted numbers ("Section 1.01") are cited by their last part
            pattern = head + rf"(?P<token>{token}(?:\.{token})*){_TOKEN_END}"
        else:
            pattern = head + rf"(?P<token>{token}){_TOKEN_END}"
        self.regex = re.compile(pattern)

    def match(self, line: str) -> LevelMatch | None:
        m = self.regex.match(line)
        if m is None:
            return None
        groups = m.groupdict()
        label = groups.get("token") or groups["paren"]
        token = label.rsplit(".", 1)[-1]
        if self.level.numbering == numbering.SCHEME_ROMAN:
            token = token.upper()
        try:
            number = numbering.parse(token, self.level.numbering)
        except ParseError:
            return None
        end = m.end()
        if _XREF_RE.match(line[end:].lstrip()):
            return None
        return LevelMatch(number=number, token=label, label_end=end)

    def __repr__(self) -> str:
        return f"LevelMatcher({self.level.name!r}, {self.regex.pattern!r})"


# ---------------------------------------------------------------------------
# Template types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LevelDefinition:
    """One depth of a hierarchy template."""
    name: str          # "Article"
    depth: int         # 0 = top level
    numbering: str     # One of numbering.SCHEMES
    prefix: str        # Text before the number ("Article ", "(", "")

    def label(self, number: int) -> str:
        """Citation label for a section at this level ("Article IV")."""
        return f"{self.name} {numbering.format(number, self.numbering)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "depth": self.depth,
            "numbering": self.numbering,
            "prefix": self.prefix,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LevelDefinition:
        missing = [k for k in ("name", "depth", "numbering") if k not in data]
        if missing:
            raise TemplateConfigError(
                f"Level definition missing keys: {', '.join(missing)}"
            )
        depth = data["depth"]
        if not isinstance(depth, int) or isinstance(depth, bool):
            raise TemplateConfigError(f"Level depth must be an integer, got {depth!r}")
        return cls(
            name=str(data["name"]),
            depth=depth,
            numbering=str(data["numbering"]),
            prefix=str(data.get("prefix", "")),
        )


@dataclass(frozen=True, slots=True)
class HierarchyTemplate:
    """Ordered levels plus their compiled matchers.

    Invariants (checked in ``__post_init__``):
    - at least one level
    - depths unique and contiguous from 0
    - every numbering scheme known, every name non-empty
    """
    name: str
    levels: tuple[LevelDefinition, ...]
    _matchers: tuple[LevelMatcher, ...] = field(
        init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        if not self.levels:
            raise TemplateConfigError(f"Template {self.name!r} has no levels")
        ordered = tuple(sorted(self.levels, key=lambda lv: lv.depth))
        depths = [lv.depth for lv in ordered]
        if len(set(depths)) != len(depths):
            dupes = sorted({d for d in depths if depths.count(d) > 1})
            raise TemplateConfigError(
                f"Template {self.name!r} has duplicate depths: {dupes}"
            )
        if depths != list(range(len(depths))):
            raise TemplateConfigError(
                f"Template {self.name!r} depths must be contiguous from 0, got {depths}"
            )
        for lv in ordered:
            if not lv.name.strip():
                raise TemplateConfigError(
                    f"Template {self.name!r} depth {lv.depth} has an empty name"
                )
            if lv.numbering not in numbering.SCHEMES:
                raise TemplateConfigError(
                    f"Template {self.name!r} depth {lv.depth}: unknown numbering "
                    f"scheme {lv.numbering!r} (expected one of {sorted(numbering.SCHEMES)})"
                )
        object.__setattr__(self, "levels", ordered)
        object.__setattr__(self, "_matchers", tuple(LevelMatcher(lv) for lv in ordered))

    @property
    def depth_count(self) -> int:
        return len(self.levels)

    def level(self, depth: int) -> LevelDefinition:
        if not 0 <= depth < len(self.levels):
            raise IndexError(f"Template {self.name!r} has no depth {depth}")
        return self.levels[depth]

    def matcher_for(self, depth: int) -> LevelMatcher:
        if not 0 <= depth < len(self._matchers):
            raise IndexError(f"Template {self.name!r} has no depth {depth}")
        return self._matchers[depth]

    def match_line(self, line: str) -> tuple[int, LevelMatch] | None:
        """Match ``line`` against every level, shallowest first."""
        for depth, matcher in enumerate(self._matchers):
            m = matcher.match(line)
            if m is not None:
                return depth, m
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "levels": [lv.to_dict() for lv in self.levels]}


# ---------------------------------------------------------------------------
# Preset catalog
# ---------------------------------------------------------------------------

def _levels(*rows: tuple[str, str, str]) -> tuple[LevelDefinition, ...]:
    return tuple(
        LevelDefinition(name=name, depth=depth, numbering=scheme, prefix=prefix)
        for depth, (name, scheme, prefix) in enumerate(rows)
    )


PRESETS: dict[str, HierarchyTemplate] = {
    "standard-bylaws": HierarchyTemplate("standard-bylaws", _levels(
        ("Article", "roman", "Article "),
        ("Section", "numeric", "Section "),
        ("Subsection", "numeric", ""),
        ("Paragraph", "alphaLower", "("),
        ("Subparagraph", "numeric", ""),
        ("Clause", "alphaLower", "("),
        ("Subclause", "roman", ""),
        ("Item", "numeric", "•"),
        ("Subitem", "alpha", "◦"),
        ("Point", "numeric", "-"),
    )),
    "legal-document": HierarchyTemplate("legal-document", _levels(
        ("Chapter", "roman", "Chapter "),
        ("Section", "numeric", "Section "),
        ("Clause", "numeric", "Clause "),
        ("Subclause", "numeric", ""),
        ("Paragraph", "alphaLower", "("),
        ("Subparagraph", "numeric", ""),
        ("Item", "alphaLower", "("),
        ("Subitem", "roman", ""),
        ("Point", "numeric", "•"),
        ("Subpoint", "alpha", "◦"),
    )),
    "policy-manual": HierarchyTemplate("policy-manual", _levels(
        ("Part", "roman", "Part "),
        ("Section", "numeric", "Section "),
        ("Paragraph", "numeric", ""),
        ("Subparagraph", "alphaLower", "("),
        ("Item", "numeric", ""),
        ("Subitem", "alphaLower", "("),
        ("Clause", "roman", ""),
        ("Subclause", "numeric", "•"),
        ("Point", "alpha", "◦"),
        ("Detail", "numeric", "-"),
    )),
    "technical-standard": HierarchyTemplate("technical-standard", _levels(
        *((f"Level {i}", "numeric", "") for i in range(1, 11))
    )),
}


def get_template(name: str) -> HierarchyTemplate:
    """Look up a preset by name."""
    try:
        return PRESETS[name]
    except KeyError:
        raise TemplateConfigError(
            f"Unknown template preset {name!r} (available: {', '.join(sorted(PRESETS))})"
        ) from None


def template_from_levels(
    levels: list[dict[str, Any]] | list[LevelDefinition],
    name: str = "custom",
) -> HierarchyTemplate:
    """Build and validate a template from explicit level definitions."""
    parsed = tuple(
        lv if isinstance(lv, LevelDefinition) else LevelDefinition.from_dict(lv)
        for lv in levels
    )
    return HierarchyTemplate(name=name, levels=parsed)


def load_template(path: Path) -> HierarchyTemplate:
    """Load a template from JSON.

    Accepted shapes::

        "standard-bylaws"
        {"preset": "standard-bylaws"}
        {"name": "my-rules", "levels": [{"name": ..., "depth": ..., ...}, ...]}
        [{"name": ..., "depth": ..., "numbering": ..., "prefix": ...}, ...]
    """
    try:
        data = load_json(path)
    except orjson.JSONDecodeError as exc:
        raise TemplateConfigError(f"Malformed template JSON in {path}: {exc}") from exc
    if isinstance(data, str):
        return get_template(data)
    if isinstance(data, list):
        return template_from_levels(data, name=path.stem)
    if isinstance(data, dict):
        if "preset" in data:
            return get_template(str(data["preset"]))
        if isinstance(data.get("levels"), list):
            return template_from_levels(data["levels"], name=str(data.get("name", path.stem)))
    raise TemplateConfigError(
        f"Template file {path} must be a preset name, a levels list, "
        "or an object with 'preset' or 'levels'"
    )


def resolve_template(
    template: HierarchyTemplate | str | list[dict[str, Any]] | None,
) -> HierarchyTemplate | None:
    """Normalize the accepted template arguments; ``None`` means heuristic mode."""
    if template is None or isinstance(template, HierarchyTemplate):
        return template
    if isinstance(template, str):
        return get_template(template)
    return template_from_levels(template)
