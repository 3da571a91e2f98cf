#!/usr/bin/env python3
"""Parse a linearized text document into a section hierarchy.

Prints the section tree and parse diagnostics as JSON to stdout. Progress
and errors go to stderr.

Usage:
    # Parse with a preset template
    python3 scripts/parse_sections.py --input bylaws.txt --template standard-bylaws

    # Custom template file, persist to DuckDB
    python3 scripts/parse_sections.py --input policy.txt \
      --template-file my_levels.json --db data/sections.duckdb

    # No template: heuristic mode, nested table of contents only
    python3 scripts/parse_sections.py --input notes.txt --toc
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from sectionizer.errors import SectionizerError
from sectionizer.io_utils import dumps_json, read_document_lines
from sectionizer.parsing_types import ParserConfig
from sectionizer.section_builder import parse_document
from sectionizer.section_store import SectionStore
from sectionizer.templates import HierarchyTemplate, get_template, load_template

log = logging.getLogger("parse_sections")


def dump_json(obj: object) -> None:
    sys.stdout.buffer.write(dumps_json(obj))
    sys.stdout.buffer.write(b"\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Parse a text document into a nested section hierarchy."
    )
    parser.add_argument("--input", required=True, type=Path, help="Text file (one line per line)")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--template", default=None, help="Preset template name")
    source.add_argument(
        "--template-file", type=Path, default=None,
        help="JSON template (preset reference or levels list)",
    )
    parser.add_argument("--config", type=Path, default=None, help="Parser config JSON")
    parser.add_argument(
        "--document-id", default=None,
        help="Document id used for section ids (default: input file stem)",
    )
    parser.add_argument("--db", type=Path, default=None, help="Persist to this DuckDB file")
    parser.add_argument(
        "--toc", action="store_true",
        help="Print the nested table of contents instead of full sections",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _resolve_template(args: argparse.Namespace) -> HierarchyTemplate | None:
    if args.template_file is not None:
        return load_template(args.template_file)
    if args.template:
        return get_template(args.template)
    return None


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )

    if not args.input.exists():
        print(f"Error: input not found: {args.input}", file=sys.stderr)
        return 1

    try:
        template = _resolve_template(args)
        config = ParserConfig.from_json(args.config) if args.config else ParserConfig()
    except (SectionizerError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    document_id = args.document_id or args.input.stem
    lines = read_document_lines(args.input)
    result = parse_document(lines, template, document_id=document_id, config=config)
    diag = result.diagnostics

    print(
        f"{document_id}: {len(result.tree)} sections, {diag.heading_count} headings "
        f"({diag.mode}), retention {diag.retention_rate:.1%}",
        file=sys.stderr,
    )
    if not diag.is_conserved:
        log.error("%d words unaccounted for", diag.unaccounted_words)

    if args.db is not None:
        try:
            store = SectionStore(args.db, create_if_missing=True)
        except SectionizerError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2
        try:
            run_id = store.save_tree(result.tree, diag)
        except SectionizerError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2
        finally:
            store.close()
        print(f"Saved to {args.db} (run {run_id})", file=sys.stderr)

    if args.toc:
        dump_json({
            "document_id": document_id,
            "toc": result.tree.nested_toc(),
            "diagnostics": diag.to_dict(),
        })
    else:
        dump_json(result.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
