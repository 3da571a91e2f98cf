"""Validation of section ranges for grouped operations.

A range is the ordered set of section ids a caller wants to treat as one
unit (one suggestion spanning several sections, one group lock). Hard
stops are raised:

* empty range -> RangeError
* unknown ids -> SectionNotFoundError
* sections under different immediate parents -> CrossParentError

Numbering gaps are advisory only: a ContiguityWarning is attached to the
result and the caller decides whether to proceed.
"""
from __future__ import annotations

import logging
from collections import Counter

from sectionizer.errors import CrossParentError, RangeError, SectionNotFoundError
from sectionizer.parsing_types import ContiguityWarning, RangeValidation, Section
from sectionizer.section_store import SectionStore

log = logging.getLogger(__name__)


def check_contiguity(sections: list[Section]) -> ContiguityWarning | None:
    """Warning when the sections' numbers do not step by exactly one."""
    numbers = sorted(s.number for s in sections)
    counts = Counter(numbers)
    duplicates = tuple(sorted(n for n, c in counts.items() if c > 1))
    present = set(numbers)
    missing = tuple(n for n in range(numbers[0], numbers[-1] + 1) if n not in present)
    if not missing and not duplicates:
        return None
    return ContiguityWarning(
        parent_id=sections[0].parent_id,
        numbers=tuple(numbers),
        missing=missing,
        duplicates=duplicates,
    )


def validate_sections(
    document_id: str,
    section_ids: list[str],
    sections: list[Section],
) -> RangeValidation:
    """Validate already-loaded sections for ``section_ids``."""
    if not section_ids:
        raise RangeError("Section range is empty")
    found = {s.id for s in sections}
    missing = [sid for sid in dict.fromkeys(section_ids) if sid not in found]
    if missing:
        raise SectionNotFoundError(document_id, missing)

    parents = list(dict.fromkeys(s.parent_id for s in sections))
    if len(parents) > 1:
        raise CrossParentError(parents)

    unique = list({s.id: s for s in sections}.values())
    ordered = sorted(unique, key=lambda s: (s.number, s.ordinal))
    warning = check_contiguity(ordered)
    if warning is not None:
        log.info("Range in %s is not contiguous: %s", document_id, warning)
    return RangeValidation(
        document_id=document_id,
        parent_id=parents[0],
        section_ids=tuple(s.id for s in ordered),
        numbers=tuple(s.number for s in ordered),
        contiguity_warning=warning,
    )


class RangeValidator:
    """Validate and lock section ranges persisted in a SectionStore."""

    def __init__(self, store: SectionStore) -> None:
        self.store = store

    def validate(self, document_id: str, section_ids: list[str]) -> RangeValidation:
        if not section_ids:
            raise RangeError("Section range is empty")
        sections = self.store.get_sections(document_id, section_ids)
        return validate_sections(document_id, section_ids, sections)

    def lock(
        self,
        document_id: str,
        section_ids: list[str],
        locked_by: str,
        *,
        timeout: float | None = None,
    ) -> RangeValidation:
        """Validate the range and lock all of it in one store transaction.

        Parents and numbers are read inside the lock transaction, so a
        concurrent ``save_tree`` cannot change them between validation and
        locking. Raises AlreadyLockedError (nothing locked) when any section
        in the range already carries a lock, including one held by
        ``locked_by``.
        """
        if not section_ids:
            raise RangeError("Section range is empty")
        outcome: list[RangeValidation] = []

        def check(sections: list[Section]) -> None:
            outcome.append(validate_sections(document_id, section_ids, sections))

        self.store.lock_sections(
            document_id, section_ids, locked_by, timeout=timeout, check=check,
        )
        validation = outcome[0]
        return RangeValidation(
            document_id=validation.document_id,
            parent_id=validation.parent_id,
            section_ids=validation.section_ids,
            numbers=validation.numbers,
            contiguity_warning=validation.contiguity_warning,
            locked_by=locked_by,
        )

    def unlock(
        self,
        document_id: str,
        section_ids: list[str],
        locked_by: str | None = None,
        *,
        timeout: float | None = None,
    ) -> int:
        if not section_ids:
            raise RangeError("Section range is empty")
        return self.store.unlock_sections(
            document_id, section_ids, locked_by, timeout=timeout,
        )
