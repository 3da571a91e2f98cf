"""DuckDB read/write store for parsed section trees.

Tables:

* ``documents``  — one row per document: template JSON, section count
* ``sections``   — one row per section, keyed by (document_id, section_id),
  with document-order ``position`` and the group-lock columns
* ``parse_runs`` — one row per saved parse, with diagnostics JSON

Concurrency: one connection per store. Every store opened on the same
database file in this process shares one mutex, so their statements never
interleave. Group locks are all-or-nothing: conflicts are checked and rows
updated in a single transaction, and the update only claims rows that are
still unlocked, so overlapping lock attempts cannot both succeed. A DuckDB
write-write conflict on the lock update surfaces as AlreadyLockedError.
"""
from __future__ import annotations

import contextlib
import importlib
import logging
import threading
import uuid
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson

from sectionizer.errors import (
    AlreadyLockedError,
    LockTimeoutError,
    SectionNotFoundError,
    StoreUnavailableError,
)
from sectionizer.parsing_types import ParseDiagnostics, Section
from sectionizer.section_tree import SectionTree
from sectionizer.templates import HierarchyTemplate, template_from_levels

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

log = logging.getLogger(__name__)

# Owner reported when a concurrent writer's lock is not yet visible
_CONCURRENT_OWNER = "<concurrent writer>"

# resolved db path -> mutex shared by every SectionStore on that file
_PATH_MUTEXES: dict[str, threading.Lock] = {}
_PATH_MUTEXES_GUARD = threading.Lock()


def _mutex_for(db_path: Path) -> threading.Lock:
    key = str(db_path.resolve())
    with _PATH_MUTEXES_GUARD:
        return _PATH_MUTEXES.setdefault(key, threading.Lock())


def _json_dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _to_dict(cols: list[str], row: tuple[Any, ...]) -> dict[str, Any]:
    """Zip column names with a row tuple into a dict (strict length check)."""
    return dict(zip(cols, row, strict=True))


def _placeholders(items: list[str]) -> str:
    return ", ".join("?" for _ in items)


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

# (document_id, section_id) is unique by construction: save_tree replaces a
# document's rows wholesale.
_SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS documents (
    document_id VARCHAR PRIMARY KEY,
    template_json VARCHAR,
    section_count INTEGER,
    updated_at VARCHAR
);

CREATE TABLE IF NOT EXISTS sections (
    document_id VARCHAR NOT NULL,
    section_id VARCHAR NOT NULL,
    parent_id VARCHAR,
    depth INTEGER NOT NULL,
    number INTEGER NOT NULL,
    ordinal INTEGER NOT NULL,
    level_name VARCHAR,
    title VARCHAR,
    body VARCHAR,
    citation VARCHAR,
    kind VARCHAR,
    position INTEGER NOT NULL,
    line_index INTEGER,
    locked_by VARCHAR,
    locked_at VARCHAR,
    created_at VARCHAR,
    updated_at VARCHAR
);

CREATE TABLE IF NOT EXISTS parse_runs (
    run_id VARCHAR PRIMARY KEY,
    document_id VARCHAR NOT NULL,
    template_name VARCHAR,
    mode VARCHAR,
    section_count INTEGER,
    retention_rate DOUBLE,
    diagnostics_json VARCHAR,
    created_at VARCHAR
)
"""

_SECTION_COLS = (
    "section_id", "parent_id", "depth", "number", "title", "body",
    "citation", "ordinal", "level_name", "line_index", "kind",
)


def _row_to_section(row: tuple[Any, ...]) -> Section:
    d = _to_dict(list(_SECTION_COLS), row)
    return Section(
        id=d["section_id"],
        parent_id=d["parent_id"],
        depth=int(d["depth"]),
        number=int(d["number"]),
        title=d["title"] or "",
        body=d["body"] or "",
        citation=d["citation"] or "",
        ordinal=int(d["ordinal"]),
        level_name=d["level_name"] or "",
        line_index=int(d["line_index"] or 0),
        kind=d["kind"],
    )


# ---------------------------------------------------------------------------
# SectionStore class
# ---------------------------------------------------------------------------

class SectionStore:
    """Read/write interface to a sections DuckDB file."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        create_if_missing: bool = False,
    ) -> None:
        self._db_path = Path(db_path)
        if not self._db_path.exists() and not create_if_missing:
            raise FileNotFoundError(f"Sections database not found: {self._db_path}")
        if create_if_missing:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._mutex = _mutex_for(self._db_path)
        try:
            self._conn: Any = _duckdb_mod.connect(str(self._db_path))
        except _duckdb_mod.Error as exc:
            raise StoreUnavailableError(
                f"Cannot open sections database {self._db_path}: {exc}"
            ) from exc
        with self._mutex:
            self._create_schema()

    def _create_schema(self) -> None:
        """Create all tables if they don't exist."""
        for stmt in _SCHEMA_DDL.split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)

    @contextlib.contextmanager
    def _serialized(self, timeout: float | None = None) -> Iterator[None]:
        """Hold the connection mutex, giving up after ``timeout`` seconds."""
        acquired = self._mutex.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise LockTimeoutError(
                f"Could not acquire section store within {timeout:.3f}s"
            )
        try:
            yield
        finally:
            self._mutex.release()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[None]:
        self._conn.execute("BEGIN TRANSACTION")
        try:
            yield
            self._conn.execute("COMMIT")
        except Exception:
            with contextlib.suppress(Exception):
                self._conn.execute("ROLLBACK")
            raise

    def _lock_state(self, document_id: str, ids: list[str]) -> dict[str, str | None]:
        """section_id -> locked_by (None when unlocked) for ids that exist."""
        rows = self._conn.execute(
            f"SELECT section_id, locked_by FROM sections "
            f"WHERE document_id = ? AND section_id IN ({_placeholders(ids)})",
            [document_id, *ids],
        ).fetchall()
        return {row[0]: row[1] for row in rows}

    def _held(self, document_id: str, ids: list[str]) -> dict[str, str]:
        rows = self._conn.execute(
            f"SELECT section_id, locked_by FROM sections "
            f"WHERE document_id = ? AND locked_by IS NOT NULL "
            f"AND section_id IN ({_placeholders(ids)})",
            [document_id, *ids],
        ).fetchall()
        return {row[0]: row[1] for row in rows}

    def _fetch_sections(self, document_id: str, section_ids: list[str]) -> list[Section]:
        rows = self._conn.execute(
            f"SELECT {', '.join(_SECTION_COLS)} FROM sections "
            f"WHERE document_id = ? AND section_id IN ({_placeholders(section_ids)})",
            [document_id, *section_ids],
        ).fetchall()
        by_id = {row[0]: _row_to_section(row) for row in rows}
        return [by_id[sid] for sid in section_ids if sid in by_id]

    def _require(self, document_id: str, ids: list[str], found: dict[str, Any]) -> None:
        missing = [sid for sid in ids if sid not in found]
        if missing:
            raise SectionNotFoundError(document_id, missing)

    # ─── Documents / trees ────────────────────────────────────────

    def save_tree(
        self,
        tree: SectionTree,
        diagnostics: ParseDiagnostics | None = None,
    ) -> str:
        """Replace a document's sections with ``tree``; return the run id.

        Refuses (AlreadyLockedError) while any existing section of the
        document is locked.
        """
        document_id = tree.document_id
        run_id = _uuid()
        now = _now()
        template = tree.template
        with self._serialized(), self._transaction():
            locked = self._conn.execute(
                "SELECT section_id, locked_by FROM sections "
                "WHERE document_id = ? AND locked_by IS NOT NULL",
                [document_id],
            ).fetchall()
            if locked:
                raise AlreadyLockedError({row[0]: row[1] for row in locked})

            self._conn.execute("DELETE FROM sections WHERE document_id = ?", [document_id])
            for position, sec in enumerate(tree):
                self._conn.execute("""
                    INSERT INTO sections
                    (document_id, section_id, parent_id, depth, number, ordinal,
                     level_name, title, body, citation, kind, position, line_index,
                     locked_by, locked_at, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, ?, ?)
                """, [
                    document_id, sec.id, sec.parent_id, sec.depth, sec.number,
                    sec.ordinal, sec.level_name, sec.title, sec.body, sec.citation,
                    sec.kind, position, sec.line_index, now, now,
                ])

            self._conn.execute(
                "INSERT INTO documents (document_id, template_json, section_count, updated_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT (document_id) DO UPDATE SET "
                "template_json = excluded.template_json, "
                "section_count = excluded.section_count, "
                "updated_at = excluded.updated_at",
                [
                    document_id,
                    _json_dumps(template.to_dict()) if template is not None else None,
                    len(tree),
                    now,
                ],
            )

            self._conn.execute("""
                INSERT INTO parse_runs
                (run_id, document_id, template_name, mode, section_count,
                 retention_rate, diagnostics_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                run_id,
                document_id,
                template.name if template is not None else None,
                diagnostics.mode if diagnostics is not None else None,
                len(tree),
                diagnostics.retention_rate if diagnostics is not None else None,
                _json_dumps(diagnostics.to_dict()) if diagnostics is not None else None,
                now,
            ])
        log.debug("Saved %d sections for %s (run %s)", len(tree), document_id, run_id)
        return run_id

    def _template(self, document_id: str) -> HierarchyTemplate | None:
        row = self._conn.execute(
            "SELECT template_json FROM documents WHERE document_id = ?", [document_id]
        ).fetchone()
        if row is None or not row[0]:
            return None
        data = orjson.loads(row[0])
        return template_from_levels(data["levels"], name=data["name"])

    def _load_tree(self, document_id: str) -> SectionTree | None:
        rows = self._conn.execute(
            f"SELECT {', '.join(_SECTION_COLS)} FROM sections "
            "WHERE document_id = ? ORDER BY position",
            [document_id],
        ).fetchall()
        if not rows:
            return None
        sections = [_row_to_section(row) for row in rows]
        return SectionTree(sections, self._template(document_id), document_id)

    def get_tree(self, document_id: str) -> SectionTree | None:
        with self._serialized():
            return self._load_tree(document_id)

    def get_sections(self, document_id: str, section_ids: list[str]) -> list[Section]:
        """Sections for the given ids, in input order. Unknown ids are omitted."""
        if not section_ids:
            return []
        with self._serialized():
            return self._fetch_sections(document_id, section_ids)

    def get_locks(self, document_id: str) -> dict[str, str]:
        """section_id -> locked_by for every locked section of a document."""
        with self._serialized():
            rows = self._conn.execute(
                "SELECT section_id, locked_by FROM sections "
                "WHERE document_id = ? AND locked_by IS NOT NULL ORDER BY position",
                [document_id],
            ).fetchall()
        return {row[0]: row[1] for row in rows}

    def get_runs(self, document_id: str | None = None, *, limit: int = 20) -> list[dict[str, Any]]:
        with self._serialized():
            if document_id:
                rows = self._conn.execute(
                    "SELECT * FROM parse_runs WHERE document_id = ? "
                    "ORDER BY created_at DESC LIMIT ?",
                    [document_id, limit],
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM parse_runs ORDER BY created_at DESC LIMIT ?", [limit]
                ).fetchall()
            cols = [d[0] for d in self._conn.description]
        runs = [_to_dict(cols, row) for row in rows]
        for run in runs:
            raw = run.pop("diagnostics_json", None)
            run["diagnostics"] = orjson.loads(raw) if raw else None
        return runs

    # ─── Group locks ──────────────────────────────────────────────

    def lock_sections(
        self,
        document_id: str,
        section_ids: list[str],
        locked_by: str,
        *,
        timeout: float | None = None,
        check: Callable[[list[Section]], None] | None = None,
    ) -> list[str]:
        """Lock every section in ``section_ids`` or none of them.

        ``check`` is called with the target sections inside the lock
        transaction, before existing locks are examined. Anything it raises
        aborts the attempt with nothing locked.

        Raises:
            SectionNotFoundError: an id does not exist in the document.
            AlreadyLockedError: any target already carries a lock, or a
                concurrent writer claimed one first.
            LockTimeoutError: the store could not be acquired in time.
        """
        ids = list(dict.fromkeys(section_ids))
        if not ids:
            return []
        try:
            with self._serialized(timeout), self._transaction():
                state = self._lock_state(document_id, ids)
                self._require(document_id, ids, state)
                if check is not None:
                    check(self._fetch_sections(document_id, ids))
                conflicts = {sid: owner for sid, owner in state.items() if owner is not None}
                if conflicts:
                    raise AlreadyLockedError(conflicts)
                now = _now()
                claimed = self._conn.execute(
                    f"UPDATE sections SET locked_by = ?, locked_at = ?, updated_at = ? "
                    f"WHERE document_id = ? AND locked_by IS NULL "
                    f"AND section_id IN ({_placeholders(ids)}) "
                    f"RETURNING section_id",
                    [locked_by, now, now, document_id, *ids],
                ).fetchall()
                if len(claimed) != len(ids):
                    raise AlreadyLockedError(
                        self._held(document_id, ids) or dict.fromkeys(ids, _CONCURRENT_OWNER)
                    )
        except _duckdb_mod.TransactionException as exc:
            held = {sid: owner for sid, owner in self.get_locks(document_id).items() if sid in ids}
            log.debug("Lock conflict in %s for %s: %s", document_id, locked_by, exc)
            raise AlreadyLockedError(held or dict.fromkeys(ids, _CONCURRENT_OWNER)) from exc
        log.debug("Locked %d section(s) in %s for %s", len(ids), document_id, locked_by)
        return ids

    def unlock_sections(
        self,
        document_id: str,
        section_ids: list[str],
        locked_by: str | None = None,
        *,
        timeout: float | None = None,
    ) -> int:
        """Release locks on every section in ``section_ids``; return how many were locked.

        With ``locked_by``, refuses (AlreadyLockedError) if any target is held
        by a different owner, leaving every lock in place.
        """
        ids = list(dict.fromkeys(section_ids))
        if not ids:
            return 0
        with self._serialized(timeout), self._transaction():
            state = self._lock_state(document_id, ids)
            self._require(document_id, ids, state)
            if locked_by is not None:
                foreign = {
                    sid: owner for sid, owner in state.items()
                    if owner is not None and owner != locked_by
                }
                if foreign:
                    raise AlreadyLockedError(foreign)
            held = [sid for sid, owner in state.items() if owner is not None]
            self._conn.execute(
                f"UPDATE sections SET locked_by = NULL, locked_at = NULL, updated_at = ? "
                f"WHERE document_id = ? AND section_id IN ({_placeholders(ids)})",
                [_now(), document_id, *ids],
            )
        return len(held)

    # ─── Renumbering ──────────────────────────────────────────────

    def renumber_section(self, document_id: str, section_id: str, new_number: int) -> list[str]:
        """Change a section's number and refresh citations below it.

        Returns the ids whose stored citation changed (the section itself
        and any descendants).
        """
        with self._serialized(), self._transaction():
            tree = self._load_tree(document_id)
            if tree is None or section_id not in tree:
                raise SectionNotFoundError(document_id, [section_id])
            if tree.template is None:
                raise ValueError(f"Document {document_id!r} has no stored template")
            section = tree.get(section_id)
            # Validates the number against the level's scheme range
            tree.template.level(section.depth).label(new_number)
            section.number = new_number

            affected = [section, *tree.descendants(section_id)]
            changed: list[str] = []
            now = _now()
            for sec in affected:
                citation = tree.citation_for(sec.id)
                if citation == sec.citation and sec.id != section_id:
                    continue
                sec.citation = citation
                changed.append(sec.id)
                self._conn.execute(
                    "UPDATE sections SET number = ?, citation = ?, updated_at = ? "
                    "WHERE document_id = ? AND section_id = ?",
                    [sec.number, citation, now, document_id, sec.id],
                )
        return changed

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
