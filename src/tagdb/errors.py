"""Typed failures raised by the tag index.

Every error derives from :class:`TagIndexError`; the validation errors also
derive from the matching builtin so callers can catch ``ValueError`` /
``LookupError`` without importing this module.
"""
from __future__ import annotations


class TagIndexError(RuntimeError):
    """Base class for all tag index failures."""

    def __init__(self, message: str, *, tag_id: str | None = None) -> None:
        super().__init__(message)
        self.tag_id = tag_id


class NotFoundError(TagIndexError, LookupError):
    """Raised when an id-keyed lookup or mutation targets an absent id."""


class ArityExceededError(TagIndexError, ValueError):
    """Raised when a link carries more arguments than ``max_args`` allows."""

    def __init__(
        self,
        message: str,
        *,
        tag_id: str | None = None,
        count: int = 0,
        max_args: int = 0,
    ) -> None:
        super().__init__(message, tag_id=tag_id)
        self.count = count
        self.max_args = max_args


class ArgumentListMismatchError(TagIndexError, ValueError):
    """Raised when argument-id and argument-role lists differ in length."""

    def __init__(
        self,
        message: str,
        *,
        tag_id: str | None = None,
        id_count: int = 0,
        role_count: int = 0,
    ) -> None:
        super().__init__(message, tag_id=tag_id)
        self.id_count = id_count
        self.role_count = role_count


class DuplicateIdError(TagIndexError, ValueError):
    """Raised when a new record reuses an id already present in either index."""


class MalformedRecordError(TagIndexError, ValueError):
    """Raised for any other structurally invalid row (bad offset, empty id...)."""


class BatchStateError(TagIndexError):
    """Raised when an immediate write is attempted while a batch is staging."""


class IndexClosedError(TagIndexError):
    """Raised when an operation is attempted on a closed index."""
