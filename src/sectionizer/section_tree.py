"""Section tree: ownership by index, live citations, and TOC views.

The tree owns every :class:`Section` in document order. Children are held
as index lists; a section's ``parent_id`` is only a back-reference resolved
through the id -> index map, so there are no object cycles.
"""
from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from sectionizer.parsing_types import KIND_PREAMBLE, PREAMBLE_CITATION, Section
from sectionizer.templates import HierarchyTemplate


class SectionTree:
    """Sections of one document, in document order."""

    def __init__(
        self,
        sections: list[Section],
        template: HierarchyTemplate | None = None,
        document_id: str = "doc",
    ) -> None:
        self.document_id = document_id
        self.template = template
        self._sections: list[Section] = list(sections)
        self._index: dict[str, int] = {}
        self._children: list[list[int]] = [[] for _ in self._sections]
        self._roots: list[int] = []

        for i, sec in enumerate(self._sections):
            if sec.id in self._index:
                raise ValueError(f"Duplicate section id: {sec.id}")
            self._index[sec.id] = i
            if sec.parent_id is None:
                self._roots.append(i)
                continue
            parent = self._index.get(sec.parent_id)
            if parent is None:
                raise ValueError(
                    f"Section {sec.id} references parent {sec.parent_id} "
                    "that does not precede it"
                )
            self._children[parent].append(i)

    # -- Access --------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._sections)

    def __iter__(self) -> Iterator[Section]:
        return iter(self._sections)

    def __contains__(self, section_id: object) -> bool:
        return section_id in self._index

    @property
    def sections(self) -> list[Section]:
        return list(self._sections)

    def get(self, section_id: str) -> Section:
        try:
            return self._sections[self._index[section_id]]
        except KeyError:
            raise KeyError(f"Unknown section id: {section_id}") from None

    def position(self, section_id: str) -> int:
        """Document-order index of a section."""
        self.get(section_id)
        return self._index[section_id]

    def roots(self) -> list[Section]:
        return [self._sections[i] for i in self._roots]

    def children(self, section_id: str) -> list[Section]:
        idx = self.position(section_id)
        return [self._sections[i] for i in self._children[idx]]

    def parent(self, section_id: str) -> Section | None:
        parent_id = self.get(section_id).parent_id
        return None if parent_id is None else self.get(parent_id)

    def ancestors(self, section_id: str) -> list[Section]:
        """Ancestors from the root down to the immediate parent."""
        chain: list[Section] = []
        current = self.parent(section_id)
        while current is not None:
            chain.append(current)
            current = self.parent(current.id)
        chain.reverse()
        return chain

    def descendants(self, section_id: str) -> list[Section]:
        """All descendants in document order."""
        out: list[Section] = []
        stack = list(reversed(self._children[self.position(section_id)]))
        while stack:
            i = stack.pop()
            out.append(self._sections[i])
            stack.extend(reversed(self._children[i]))
        return out

    def walk(self) -> Iterator[Section]:
        """Depth-first traversal from the roots (equals document order)."""
        stack = list(reversed(self._roots))
        while stack:
            i = stack.pop()
            yield self._sections[i]
            stack.extend(reversed(self._children[i]))

    # -- Citations -----------------------------------------------------------

    def _label(self, sec: Section) -> str:
        if sec.kind == KIND_PREAMBLE:
            return PREAMBLE_CITATION
        if self.template is None:
            raise ValueError("Citations cannot be computed without a template")
        return self.template.level(sec.depth).label(sec.number)

    def citation_for(self, section_id: str) -> str:
        """Citation computed from the live ancestor chain."""
        sec = self.get(section_id)
        chain = [*self.ancestors(section_id), sec]
        return ", ".join(self._label(s) for s in chain)

    def recompute_citations(self) -> list[str]:
        """Refresh every stored citation; return ids whose citation changed."""
        changed: list[str] = []
        for sec in self._sections:
            citation = self.citation_for(sec.id)
            if citation != sec.citation:
                sec.citation = citation
                changed.append(sec.id)
        return changed

    # -- Serialization -------------------------------------------------------

    def to_dicts(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self._sections]

    @classmethod
    def from_dicts(
        cls,
        rows: list[dict[str, Any]],
        template: HierarchyTemplate | None = None,
        document_id: str = "doc",
    ) -> SectionTree:
        return cls([Section.from_dict(r) for r in rows], template, document_id)

    # -- Table of contents ---------------------------------------------------

    def _toc_entry(self, i: int) -> dict[str, Any]:
        sec = self._sections[i]
        return {
            "id": sec.id,
            "citation": sec.citation,
            "title": sec.title,
            "depth": sec.depth,
            "number": sec.number,
            "kind": sec.kind,
            "child_count": len(self._children[i]),
            "has_content": bool(sec.body),
        }

    def flat_toc(self) -> list[dict[str, Any]]:
        return [self._toc_entry(i) for i in range(len(self._sections))]

    def nested_toc(self) -> list[dict[str, Any]]:
        def build(i: int) -> dict[str, Any]:
            entry = self._toc_entry(i)
            entry["children"] = [build(c) for c in self._children[i]]
            return entry

        return [build(i) for i in self._roots]
