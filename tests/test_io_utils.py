"""Tests for sectionizer.io_utils and ParserConfig loading."""
from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from sectionizer.io_utils import dumps_json, load_json, read_document_lines
from sectionizer.parsing_types import ParserConfig


class TestJson:
    def test_pretty_sorts_keys(self, tmp_path: Path) -> None:
        encoded = dumps_json({"b": 1, "a": [1, 2]})
        assert encoded.index(b'"a"') < encoded.index(b'"b"')
        assert b"\n" in encoded
        path = tmp_path / "out.json"
        path.write_bytes(encoded)
        assert load_json(path) == {"a": [1, 2], "b": 1}

    def test_compact(self) -> None:
        assert dumps_json({"b": 1, "a": 2}, pretty=False) == b'{"a":2,"b":1}'


class TestReadDocumentLines:
    def test_normalizes_endings_and_bom(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.txt"
        path.write_bytes("\ufeffARTICLE I\r\nBody\rMore".encode())
        assert read_document_lines(path) == ["ARTICLE I", "Body", "More"]

    def test_undecodable_bytes_replaced(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.txt"
        path.write_bytes(b"caf\xe9 au lait")
        assert read_document_lines(path) == ["caf\ufffd au lait"]


class TestParserConfig:
    def test_defaults(self) -> None:
        config = ParserConfig()
        assert config.toc_min_run == 3
        assert config.adopt_next_line_title is True

    def test_from_json(self, tmp_path: Path) -> None:
        path = tmp_path / "parser_config.json"
        path.write_bytes(orjson.dumps({
            "toc_min_run": 2,
            "extra_boilerplate_patterns": ["^DRAFT$"],
        }))
        config = ParserConfig.from_json(path)
        assert config.toc_min_run == 2
        assert config.extra_boilerplate_patterns == ("^DRAFT$",)

    def test_unknown_keys_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "parser_config.json"
        path.write_bytes(orjson.dumps({"toc_min_runs": 2}))
        with pytest.raises(ValueError, match="Unknown parser config keys: toc_min_runs"):
            ParserConfig.from_json(path)

    def test_non_object_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "parser_config.json"
        path.write_bytes(b"[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            ParserConfig.from_json(path)

    def test_invalid_values(self) -> None:
        with pytest.raises(ValueError, match="toc_min_run"):
            ParserConfig(toc_min_run=0)
        with pytest.raises(ValueError, match="running_header_min_repeats"):
            ParserConfig(running_header_min_repeats=1)
