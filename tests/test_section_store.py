"""Tests for sectionizer.section_store — DuckDB persistence, group locks, renumbering."""
from __future__ import annotations

from pathlib import Path

import pytest

from sectionizer.errors import (
    AlreadyLockedError,
    LockTimeoutError,
    ParseError,
    SectionNotFoundError,
    StoreUnavailableError,
)
from sectionizer.parsing_types import Section
from sectionizer.section_builder import ParseResult, parse_document
from sectionizer.section_store import SectionStore

LINES = [
    "ARTICLE I\tMEMBERS",
    "Section 1 Eligibility",
    "Anyone may join.",
    "Section 2 Dues",
    "Dues are yearly.",
    "(a) Amount",
    "Ten dollars.",
    "Section 3 Resignation",
    "In writing.",
    "Section 4 Removal",
    "By vote.",
    "ARTICLE II\tMEETINGS",
    "Section 1 Annual",
    "Once a year.",
]


# ───────────────────── Fixtures ──────────────────────────────────────


@pytest.fixture()
def store(tmp_path: Path) -> SectionStore:
    """Create a fresh SectionStore in a temp directory."""
    s = SectionStore(tmp_path / "sections.duckdb", create_if_missing=True)
    yield s  # type: ignore[misc]
    s.close()


@pytest.fixture()
def parsed() -> ParseResult:
    return parse_document(LINES, "standard-bylaws", document_id="bylaws")


def _ids(result: ParseResult, *citations: str) -> list[str]:
    by_citation = {s.citation: s.id for s in result.tree}
    return [by_citation[c] for c in citations]


# ───────────────────── Persistence ───────────────────────────────────


class TestPersistence:
    def test_missing_db_without_create(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            SectionStore(tmp_path / "nope.duckdb")

    def test_save_and_load_tree(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree, parsed.diagnostics)
        loaded = store.get_tree("bylaws")
        assert loaded is not None
        assert loaded.to_dicts() == parsed.tree.to_dicts()
        assert loaded.template == parsed.tree.template
        assert store.get_tree("other") is None

    def test_save_replaces_previous(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree, parsed.diagnostics)
        smaller = parse_document(LINES[:3], "standard-bylaws", document_id="bylaws")
        store.save_tree(smaller.tree, smaller.diagnostics)
        loaded = store.get_tree("bylaws")
        assert loaded is not None
        assert len(loaded) == 2
        assert len(store.get_runs("bylaws")) == 2

    def test_runs_carry_diagnostics(self, store: SectionStore, parsed: ParseResult) -> None:
        run_id = store.save_tree(parsed.tree, parsed.diagnostics)
        runs = store.get_runs("bylaws")
        assert runs[0]["run_id"] == run_id
        assert runs[0]["template_name"] == "standard-bylaws"
        assert runs[0]["diagnostics"]["unaccounted_words"] == 0
        assert runs[0]["section_count"] == len(parsed.tree)

    def test_get_sections_in_input_order(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 3", "Article I, Section 1")
        got = store.get_sections("bylaws", [*ids, "sec_unknown"])
        assert [s.id for s in got] == ids
        assert got[0].title == "Resignation"
        assert store.get_sections("bylaws", []) == []


# ───────────────────── Group locks ───────────────────────────────────


class TestLocks:
    def test_lock_and_unlock(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 1", "Article I, Section 2")
        assert store.lock_sections("bylaws", ids, "alice") == ids
        assert store.get_locks("bylaws") == {ids[0]: "alice", ids[1]: "alice"}
        assert store.unlock_sections("bylaws", ids, "alice") == 2
        assert store.get_locks("bylaws") == {}

    def test_overlap_is_all_or_nothing(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        s1, s2, s3 = _ids(
            parsed, "Article I, Section 1", "Article I, Section 2", "Article I, Section 3",
        )
        store.lock_sections("bylaws", [s1, s2], "alice")
        with pytest.raises(AlreadyLockedError) as exc_info:
            store.lock_sections("bylaws", [s2, s3], "bob")
        assert exc_info.value.conflicts == {s2: "alice"}
        # s3 was not locked by the failed attempt
        assert store.get_locks("bylaws") == {s1: "alice", s2: "alice"}

    def test_locks_are_not_reentrant(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 1")
        store.lock_sections("bylaws", ids, "alice")
        with pytest.raises(AlreadyLockedError):
            store.lock_sections("bylaws", ids, "alice")

    def test_unknown_id_locks_nothing(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 1")
        with pytest.raises(SectionNotFoundError) as exc_info:
            store.lock_sections("bylaws", [*ids, "sec_unknown"], "alice")
        assert exc_info.value.missing == ("sec_unknown",)
        assert store.get_locks("bylaws") == {}

    def test_unlock_refuses_foreign_owner(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 1", "Article I, Section 2")
        store.lock_sections("bylaws", ids[:1], "alice")
        store.lock_sections("bylaws", ids[1:], "bob")
        with pytest.raises(AlreadyLockedError):
            store.unlock_sections("bylaws", ids, "alice")
        assert len(store.get_locks("bylaws")) == 2
        # Without an owner every lock is released
        assert store.unlock_sections("bylaws", ids) == 2

    def test_timeout_has_no_effect(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 1")
        store._mutex.acquire()
        try:
            with pytest.raises(LockTimeoutError):
                store.lock_sections("bylaws", ids, "alice", timeout=0.05)
        finally:
            store._mutex.release()
        assert store.get_locks("bylaws") == {}

    def test_save_refused_while_locked(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article II")
        store.lock_sections("bylaws", ids, "alice")
        with pytest.raises(AlreadyLockedError):
            store.save_tree(parsed.tree)
        assert store.get_locks("bylaws") == {ids[0]: "alice"}

    def test_check_sees_target_rows(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 2", "Article I, Section 1")
        seen: list[list[Section]] = []
        store.lock_sections("bylaws", ids, "alice", check=seen.append)
        assert [s.id for s in seen[0]] == ids
        assert [s.title for s in seen[0]] == ["Dues", "Eligibility"]

    def test_check_failure_locks_nothing(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        ids = _ids(parsed, "Article I, Section 1", "Article I, Section 2")

        def reject(sections: list[Section]) -> None:
            raise ValueError("rejected")

        with pytest.raises(ValueError, match="rejected"):
            store.lock_sections("bylaws", ids, "alice", check=reject)
        assert store.get_locks("bylaws") == {}


class TestSharedDatabase:
    def test_stores_on_one_file_share_mutex(self, store: SectionStore, tmp_path: Path) -> None:
        other = SectionStore(tmp_path / "sections.duckdb")
        try:
            assert other._mutex is store._mutex
        finally:
            other.close()

    def test_lock_from_second_store_conflicts(
        self, store: SectionStore, parsed: ParseResult, tmp_path: Path,
    ) -> None:
        store.save_tree(parsed.tree)
        s1, s2, s3 = _ids(
            parsed, "Article I, Section 1", "Article I, Section 2", "Article I, Section 3",
        )
        store.lock_sections("bylaws", [s1, s2], "alice")
        other = SectionStore(tmp_path / "sections.duckdb")
        try:
            with pytest.raises(AlreadyLockedError) as exc_info:
                other.lock_sections("bylaws", [s2, s3], "bob")
        finally:
            other.close()
        assert exc_info.value.conflicts == {s2: "alice"}
        assert store.get_locks("bylaws") == {s1: "alice", s2: "alice"}

    def test_update_only_claims_unlocked_rows(
        self, store: SectionStore, parsed: ParseResult, tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        store.save_tree(parsed.tree)
        s2, s3 = _ids(parsed, "Article I, Section 2", "Article I, Section 3")
        store.lock_sections("bylaws", [s2], "alice")
        other = SectionStore(tmp_path / "sections.duckdb")
        try:
            # A stale read that reports every target as free
            monkeypatch.setattr(
                other, "_lock_state", lambda document_id, ids: dict.fromkeys(ids),
            )
            with pytest.raises(AlreadyLockedError) as exc_info:
                other.lock_sections("bylaws", [s2, s3], "bob")
        finally:
            other.close()
        assert exc_info.value.conflicts == {s2: "alice"}
        assert store.get_locks("bylaws") == {s2: "alice"}

    def test_unreadable_database(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.duckdb"
        path.write_bytes(b"not a duckdb file\n" * 512)
        with pytest.raises(StoreUnavailableError):
            SectionStore(path)


# ───────────────────── Renumbering ───────────────────────────────────


class TestRenumber:
    def test_renumber_updates_descendant_citations(
        self, store: SectionStore, parsed: ParseResult,
    ) -> None:
        store.save_tree(parsed.tree)
        (art1,) = _ids(parsed, "Article I")
        changed = store.renumber_section("bylaws", art1, 5)
        assert len(changed) == 6   # article, 4 sections, 1 paragraph
        tree = store.get_tree("bylaws")
        assert tree is not None
        assert tree.get(art1).number == 5
        citations = [s.citation for s in tree]
        assert "Article V, Section 2, Paragraph a" in citations
        assert "Article II, Section 1" in citations

    def test_renumber_leaf(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        (sec,) = _ids(parsed, "Article II, Section 1")
        assert store.renumber_section("bylaws", sec, 7) == [sec]
        assert store.get_sections("bylaws", [sec])[0].citation == "Article II, Section 7"

    def test_renumber_out_of_range_changes_nothing(
        self, store: SectionStore, parsed: ParseResult,
    ) -> None:
        store.save_tree(parsed.tree)
        (art1,) = _ids(parsed, "Article I")
        with pytest.raises(ParseError):
            store.renumber_section("bylaws", art1, 0)
        assert store.get_sections("bylaws", [art1])[0].citation == "Article I"

    def test_renumber_unknown(self, store: SectionStore, parsed: ParseResult) -> None:
        store.save_tree(parsed.tree)
        with pytest.raises(SectionNotFoundError):
            store.renumber_section("bylaws", "sec_unknown", 2)
