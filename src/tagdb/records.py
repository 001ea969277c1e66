"""Record and value types shared by the extent and link indexes."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from tagdb.errors import MalformedRecordError

NON_CONSUMING = -1
"""Location sentinel for extents with no textual anchor."""

TypeIdMap: TypeAlias = dict[str, set[str]]
BatchState: TypeAlias = Literal["idle", "staging"]


def check_name(value: Any, what: str, *, tag_id: str | None = None) -> str:
    """Return *value* if it is a non-empty string, else raise MalformedRecordError."""
    if not isinstance(value, str) or not value:
        raise MalformedRecordError(
            f"{what} must be a non-empty string, got {value!r}",
            tag_id=tag_id,
        )
    return value


def check_location(value: Any, *, tag_id: str | None = None) -> int:
    """Return *value* if it is an offset >= 0 or the non-consuming sentinel."""
    # bool is an int subclass; True/False are never meaningful offsets
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRecordError(
            f"offset must be an int, got {value!r}", tag_id=tag_id
        )
    if value < NON_CONSUMING:
        raise MalformedRecordError(
            f"offset must be >= 0 or {NON_CONSUMING} (non-consuming), got {value}",
            tag_id=tag_id,
        )
    return value


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open character range ``[start, end)``."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("end must be > start")

    @property
    def length(self) -> int:
        return self.end - self.start

    def as_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)


@dataclass(frozen=True, slots=True)
class ExtentRow:
    """One staged ``offset -> (type, id)`` row of the extent table."""

    tag_id: str
    tag_type: str
    offset: int

    def __post_init__(self) -> None:
        check_name(self.tag_id, "tag id")
        check_name(self.tag_type, "tag type", tag_id=self.tag_id)
        check_location(self.offset, tag_id=self.tag_id)


@dataclass(frozen=True, slots=True)
class LinkArgument:
    """One filled argument slot of a link: the argument's id and its role."""

    arg_id: str
    role: str

    def __post_init__(self) -> None:
        check_name(self.arg_id, "argument id")
        check_name(self.role, "argument role")


@dataclass(slots=True)
class LinkRecord:
    """A link tag with a fixed-capacity list of argument slots.

    ``slots`` always has exactly ``max_args`` entries; ``None`` marks an empty
    slot. Only :meth:`tagdb.link_index.LinkIndex.set_argument` mutates it.
    """

    tag_id: str
    tag_type: str
    slots: list[LinkArgument | None] = field(default_factory=list)

    @property
    def arguments(self) -> list[LinkArgument]:
        """Filled slots in slot order."""
        return [arg for arg in self.slots if arg is not None]

    @property
    def argument_ids(self) -> list[str]:
        return [arg.arg_id for arg in self.slots if arg is not None]

    def references(self, arg_id: str, role: str | None = None) -> bool:
        for arg in self.slots:
            if arg is None or arg.arg_id != arg_id:
                continue
            if role is None or arg.role == role:
                return True
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.tag_id,
            "type": self.tag_type,
            "args": [
                None if arg is None else {"id": arg.arg_id, "role": arg.role}
                for arg in self.slots
            ],
        }


def add_to_type_map(target: TypeIdMap, tag_type: str, tag_id: str) -> None:
    target.setdefault(tag_type, set()).add(tag_id)


def merge_type_maps(target: TypeIdMap, other: TypeIdMap) -> TypeIdMap:
    """Union *other* into *target* in place and return *target*."""
    for tag_type, ids in other.items():
        target.setdefault(tag_type, set()).update(ids)
    return target
