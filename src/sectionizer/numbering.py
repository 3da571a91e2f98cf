"""Numbering schemes: parse and format the number tokens used in headings.

Scheme kinds:
  roman      — I, II, III, IV, ..., MMMCMXCIX (strict subtractive notation)
  numeric    — 1, 2, 3, ...
  alpha      — A, B, ..., Z, AA, AB, ... (spreadsheet-column style, no zero)
  alphaLower — a, b, ..., z, aa, ab, ...

``parse`` and ``format`` are exact inverses over each scheme's supported
range (see ``SCHEME_LIMITS``). Both are pure.
"""

from __future__ import annotations

import re

from sectionizer.errors import ParseError

# ---------------------------------------------------------------------------
# Scheme identifiers
# ---------------------------------------------------------------------------

SCHEME_ROMAN = "roman"
SCHEME_NUMERIC = "numeric"
SCHEME_ALPHA = "alpha"
SCHEME_ALPHA_LOWER = "alphaLower"

SCHEMES: frozenset[str] = frozenset({
    SCHEME_ROMAN,
    SCHEME_NUMERIC,
    SCHEME_ALPHA,
    SCHEME_ALPHA_LOWER,
})

# Inclusive (min, max) values per scheme.
# Alpha sequences are capped at three letters (ZZZ = 18278) so that ordinary
# words are never read as numbers.
SCHEME_LIMITS: dict[str, tuple[int, int]] = {
    SCHEME_ROMAN: (1, 3999),
    SCHEME_NUMERIC: (1, 99999),
    SCHEME_ALPHA: (1, 18278),
    SCHEME_ALPHA_LOWER: (1, 18278),
}

# Token grammars, used both for validation here and by the template matchers.
TOKEN_PATTERNS: dict[str, str] = {
    SCHEME_ROMAN: r"[IVXLCDM]+|[ivxlcdm]+",
    SCHEME_NUMERIC: r"[0-9]{1,5}",
    SCHEME_ALPHA: r"[A-Z]{1,3}",
    SCHEME_ALPHA_LOWER: r"[a-z]{1,3}",
}

# ---------------------------------------------------------------------------
# Roman numerals
# ---------------------------------------------------------------------------

_ROMAN_STRICT_RE = re.compile(
    r"M{0,3}(CM|CD|D?C{0,3})(XC|XL|L?X{0,3})(IX|IV|V?I{0,3})"
)

_ROMAN_TABLE: tuple[tuple[int, str], ...] = (
    (1000, "M"), (900, "CM"), (500, "D"), (400, "CD"),
    (100, "C"), (90, "XC"), (50, "L"), (40, "XL"),
    (10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"),
)

_ROMAN_VALUES: dict[str, int] = {
    "I": 1, "V": 5, "X": 10, "L": 50, "C": 100, "D": 500, "M": 1000,
}


def _parse_roman(token: str) -> int:
    if not token or not _ROMAN_STRICT_RE.fullmatch(token):
        raise ParseError(token, SCHEME_ROMAN, "not a strict uppercase roman numeral")
    total = 0
    prev = 0
    for ch in reversed(token):
        value = _ROMAN_VALUES[ch]
        if value < prev:
            total -= value
        else:
            total += value
            prev = value
    return total


def _format_roman(n: int) -> str:
    parts: list[str] = []
    remaining = n
    for value, numeral in _ROMAN_TABLE:
        while remaining >= value:
            parts.append(numeral)
            remaining -= value
    return "".join(parts)


# ---------------------------------------------------------------------------
# Bijective base-26 letters (A..Z, AA..)
# ---------------------------------------------------------------------------

_ALPHA_RE: dict[str, re.Pattern[str]] = {
    SCHEME_ALPHA: re.compile(r"[A-Z]{1,3}"),
    SCHEME_ALPHA_LOWER: re.compile(r"[a-z]{1,3}"),
}


def _parse_alpha(token: str, scheme: str) -> int:
    if not _ALPHA_RE[scheme].fullmatch(token):
        case = "uppercase" if scheme == SCHEME_ALPHA else "lowercase"
        raise ParseError(token, scheme, f"expected 1-3 {case} letters")
    base = ord("A") if scheme == SCHEME_ALPHA else ord("a")
    total = 0
    for ch in token:
        total = total * 26 + (ord(ch) - base + 1)
    return total


def _format_alpha(n: int, scheme: str) -> str:
    base = ord("A") if scheme == SCHEME_ALPHA else ord("a")
    chars: list[str] = []
    remaining = n
    while remaining > 0:
        remaining, rem = divmod(remaining - 1, 26)
        chars.append(chr(base + rem))
    return "".join(reversed(chars))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def _check_scheme(scheme: str) -> None:
    if scheme not in SCHEMES:
        raise ValueError(f"Unknown numbering scheme: {scheme!r}")


def _check_range(value: int, scheme: str, token: str) -> int:
    lo, hi = SCHEME_LIMITS[scheme]
    if not lo <= value <= hi:
        raise ParseError(token, scheme, f"value {value} outside {lo}..{hi}")
    return value


def parse(token: str, scheme: str) -> int:
    """Parse a numbering token into its integer value.

    Raises:
        ParseError: if the token's grammar does not match the scheme or the
            value is outside the scheme's supported range.
    """
    _check_scheme(scheme)
    if scheme == SCHEME_ROMAN:
        value = _parse_roman(token)
    elif scheme == SCHEME_NUMERIC:
        if not re.fullmatch(r"[0-9]+", token):
            raise ParseError(token, scheme, "expected decimal digits")
        value = int(token)
    else:
        value = _parse_alpha(token, scheme)
    return _check_range(value, scheme, token)


def format(n: int, scheme: str) -> str:  # noqa: A001
    """Render an integer in the given scheme (inverse of :func:`parse`)."""
    _check_scheme(scheme)
    _check_range(n, scheme, str(n))
    if scheme == SCHEME_ROMAN:
        return _format_roman(n)
    if scheme == SCHEME_NUMERIC:
        return str(n)
    return _format_alpha(n, scheme)


def is_valid(token: str, scheme: str) -> bool:
    """True if ``token`` parses cleanly in ``scheme``."""
    try:
        parse(token, scheme)
    except ParseError:
        return False
    return True


def next_label(token: str, scheme: str) -> str:
    """Return the label following ``token`` in its scheme (``IV`` -> ``V``)."""
    return format(parse(token, scheme) + 1, scheme)
