#!/usr/bin/env python3
"""Validate (and optionally lock or unlock) a range of persisted sections.

Prints the validation result as JSON to stdout. Hard-stop errors (empty
range, unknown ids, sections under different parents, existing locks,
lock timeout) are printed to stderr with exit code 2. A contiguity
warning is advisory and does not change the exit code.

Usage:
    python3 scripts/validate_range.py --db data/sections.duckdb \
      --document-id bylaws --ids sec_a1 sec_b2 sec_c3

    # Lock the whole range for one editor, all or nothing
    python3 scripts/validate_range.py --db data/sections.duckdb \
      --document-id bylaws --ids sec_a1 sec_b2 --lock alice --timeout 5
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from sectionizer.errors import SectionizerError
from sectionizer.io_utils import dumps_json
from sectionizer.range_validator import RangeValidator
from sectionizer.section_store import SectionStore

log = logging.getLogger("validate_range")


def dump_json(obj: object) -> None:
    sys.stdout.buffer.write(dumps_json(obj))
    sys.stdout.buffer.write(b"\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate a range of sections for a grouped operation."
    )
    parser.add_argument("--db", required=True, type=Path, help="Path to sections DuckDB")
    parser.add_argument("--document-id", required=True, help="Document id")
    parser.add_argument("--ids", required=True, nargs="+", help="Section ids in the range")
    action = parser.add_mutually_exclusive_group()
    action.add_argument("--lock", default=None, metavar="OWNER", help="Lock the range for OWNER")
    action.add_argument("--unlock", action="store_true", help="Release locks on the range")
    parser.add_argument(
        "--owner", default=None,
        help="With --unlock: refuse if any section is held by someone else",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Lock wait in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    if not args.db.exists():
        print(f"Error: database not found: {args.db}", file=sys.stderr)
        return 1

    try:
        store = SectionStore(args.db)
    except SectionizerError as exc:
        print(f"Error: {type(exc).__name__}: {exc}", file=sys.stderr)
        return 2
    validator = RangeValidator(store)
    try:
        if args.unlock:
            validation = validator.validate(args.document_id, args.ids)
            released = validator.unlock(
                args.document_id, args.ids, args.owner, timeout=args.timeout,
            )
            payload = {**validation.to_dict(), "released": released}
        elif args.lock:
            payload = validator.lock(
                args.document_id, args.ids, args.lock, timeout=args.timeout,
            ).to_dict()
        else:
            payload = validator.validate(args.document_id, args.ids).to_dict()
    except SectionizerError as exc:
        print(f"Error: {type(exc).__name__}: {exc}", file=sys.stderr)
        return 2
    finally:
        store.close()

    warning = payload.get("contiguity_warning")
    if warning:
        log.warning("%s", warning["message"])
    dump_json(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
