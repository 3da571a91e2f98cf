"""Tests for sectionizer.numbering — parse/format for each numbering scheme."""
from __future__ import annotations

import pytest

from sectionizer import numbering
from sectionizer.errors import ParseError
from sectionizer.numbering import (
    SCHEME_ALPHA,
    SCHEME_ALPHA_LOWER,
    SCHEME_NUMERIC,
    SCHEME_ROMAN,
)


# ── Roman ────────────────────────────────────────────────────────────


class TestRoman:
    def test_basic_values(self) -> None:
        assert numbering.parse("I", SCHEME_ROMAN) == 1
        assert numbering.parse("IV", SCHEME_ROMAN) == 4
        assert numbering.parse("IX", SCHEME_ROMAN) == 9
        assert numbering.parse("XIV", SCHEME_ROMAN) == 14
        assert numbering.parse("MCMXCIV", SCHEME_ROMAN) == 1994
        assert numbering.parse("MMMCMXCIX", SCHEME_ROMAN) == 3999

    def test_format(self) -> None:
        assert numbering.format(4, SCHEME_ROMAN) == "IV"
        assert numbering.format(40, SCHEME_ROMAN) == "XL"
        assert numbering.format(1994, SCHEME_ROMAN) == "MCMXCIV"

    def test_rejects_non_canonical(self) -> None:
        for token in ("IIII", "VX", "IC", "IL", "MMMM", "VV"):
            with pytest.raises(ParseError):
                numbering.parse(token, SCHEME_ROMAN)

    def test_rejects_lowercase_and_empty(self) -> None:
        with pytest.raises(ParseError):
            numbering.parse("iv", SCHEME_ROMAN)
        with pytest.raises(ParseError):
            numbering.parse("", SCHEME_ROMAN)

    def test_format_out_of_range(self) -> None:
        with pytest.raises(ParseError):
            numbering.format(0, SCHEME_ROMAN)
        with pytest.raises(ParseError):
            numbering.format(4000, SCHEME_ROMAN)


# ── Numeric ──────────────────────────────────────────────────────────


class TestNumeric:
    def test_parse(self) -> None:
        assert numbering.parse("1", SCHEME_NUMERIC) == 1
        assert numbering.parse("042", SCHEME_NUMERIC) == 42

    def test_rejects_zero_and_garbage(self) -> None:
        for token in ("0", "", "1a", "-3", "1.5"):
            with pytest.raises(ParseError):
                numbering.parse(token, SCHEME_NUMERIC)

    def test_format(self) -> None:
        assert numbering.format(12, SCHEME_NUMERIC) == "12"


# ── Alpha ────────────────────────────────────────────────────────────


class TestAlpha:
    def test_single_letters(self) -> None:
        assert numbering.parse("A", SCHEME_ALPHA) == 1
        assert numbering.parse("Z", SCHEME_ALPHA) == 26
        assert numbering.parse("a", SCHEME_ALPHA_LOWER) == 1
        assert numbering.parse("z", SCHEME_ALPHA_LOWER) == 26

    def test_multi_letter_is_bijective_base26(self) -> None:
        assert numbering.parse("AA", SCHEME_ALPHA) == 27
        assert numbering.parse("AZ", SCHEME_ALPHA) == 52
        assert numbering.parse("BA", SCHEME_ALPHA) == 53
        assert numbering.parse("ZZZ", SCHEME_ALPHA) == 18278
        assert numbering.format(27, SCHEME_ALPHA_LOWER) == "aa"
        assert numbering.format(702, SCHEME_ALPHA) == "ZZ"
        assert numbering.format(703, SCHEME_ALPHA) == "AAA"

    def test_case_is_part_of_scheme(self) -> None:
        with pytest.raises(ParseError):
            numbering.parse("a", SCHEME_ALPHA)
        with pytest.raises(ParseError):
            numbering.parse("A", SCHEME_ALPHA_LOWER)

    def test_rejects_four_letters(self) -> None:
        with pytest.raises(ParseError):
            numbering.parse("AAAA", SCHEME_ALPHA)
        with pytest.raises(ParseError):
            numbering.format(18279, SCHEME_ALPHA)


# ── Round trip and helpers ───────────────────────────────────────────


class TestRoundTrip:
    @pytest.mark.parametrize("scheme", sorted(numbering.SCHEMES))
    def test_parse_inverts_format(self, scheme: str) -> None:
        lo, hi = numbering.SCHEME_LIMITS[scheme]
        for n in [*range(lo, 60), 99, 702, 703, 1994, hi]:
            if n <= hi:
                assert numbering.parse(numbering.format(n, scheme), scheme) == n

    def test_unknown_scheme(self) -> None:
        with pytest.raises(ValueError, match="Unknown numbering scheme"):
            numbering.parse("1", "hex")

    def test_is_valid(self) -> None:
        assert numbering.is_valid("XIV", SCHEME_ROMAN)
        assert not numbering.is_valid("XIIII", SCHEME_ROMAN)

    def test_next_label(self) -> None:
        assert numbering.next_label("IV", SCHEME_ROMAN) == "V"
        assert numbering.next_label("z", SCHEME_ALPHA_LOWER) == "aa"
        assert numbering.next_label("9", SCHEME_NUMERIC) == "10"

    def test_parse_error_carries_token(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            numbering.parse("VX", SCHEME_ROMAN)
        assert exc_info.value.token == "VX"
        assert exc_info.value.scheme == SCHEME_ROMAN
