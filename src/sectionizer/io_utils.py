"""I/O utilities for JSON and document text files.

orjson for all JSON encoding; dataclasses and tuples serialize natively.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def load_json(path: Path) -> Any:
    """Load JSON from a file."""
    return orjson.loads(path.read_bytes())


def dumps_json(obj: Any, *, pretty: bool = True) -> bytes:
    """Encode an object as JSON bytes with sorted keys."""
    opts = orjson.OPT_SORT_KEYS
    if pretty:
        opts |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, option=opts)


def read_document_lines(path: Path) -> list[str]:
    """Read a linearized text document as lines.

    Line endings are normalized; a UTF-8 BOM is dropped. Undecodable bytes
    are replaced rather than failing the whole document.
    """
    text = path.read_bytes().decode("utf-8-sig", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
