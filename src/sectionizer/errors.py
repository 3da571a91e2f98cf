"""Error taxonomy for parsing, template loading, and grouped section operations.

Parse-time errors (ParseError) are local to one token match attempt and are
caught by the matchers; the offending line simply stays body text. Template
errors fail at load time, before any parsing. Range errors are fatal to one
grouped operation and never leave partial state behind.
"""
from __future__ import annotations


class SectionizerError(Exception):
    """Base class for every error raised by this package."""


class ParseError(SectionizerError, ValueError):
    """A numbering token does not match its scheme's grammar."""

    def __init__(self, token: str, scheme: str, reason: str = "") -> None:
        self.token = token
        self.scheme = scheme
        self.reason = reason
        msg = f"Invalid {scheme} token {token!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class TemplateConfigError(SectionizerError, ValueError):
    """A hierarchy template is malformed (duplicate or non-contiguous depths, ...)."""


class RangeError(SectionizerError, ValueError):
    """A section range is malformed (e.g. empty)."""


class SectionNotFoundError(SectionizerError, LookupError):
    """One or more section ids do not exist in the document."""

    def __init__(self, document_id: str, missing: list[str]) -> None:
        self.document_id = document_id
        self.missing = tuple(missing)
        super().__init__(
            f"{len(self.missing)} section(s) not found in document "
            f"{document_id!r}: {', '.join(self.missing)}"
        )


class CrossParentError(SectionizerError):
    """Sections supplied together do not share the same immediate parent."""

    def __init__(self, parent_ids: list[str | None]) -> None:
        self.parent_ids = tuple(parent_ids)
        shown = ", ".join("<root>" if p is None else p for p in self.parent_ids)
        super().__init__(
            f"All sections must share the same parent; found parents: {shown}"
        )


class AlreadyLockedError(SectionizerError):
    """At least one section in the range already carries a lock."""

    def __init__(self, conflicts: dict[str, str]) -> None:
        self.conflicts = dict(conflicts)
        detail = ", ".join(f"{sid} (locked by {owner})" for sid, owner in sorted(self.conflicts.items()))
        super().__init__(
            f"Cannot lock range: {len(self.conflicts)} section(s) already locked: {detail}"
        )


class LockTimeoutError(SectionizerError, TimeoutError):
    """The atomic lock step could not start within the caller's timeout."""


class StoreUnavailableError(SectionizerError):
    """The sections database file could not be opened or is held by another process."""
