"""Result types shared by every upsert step of the sync cascade."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from inbox.db.models import Notification, Task, ThirdPartyItem

T = TypeVar("T")

FieldChanges = dict[str, tuple[Any, Any]]


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNTOUCHED = "untouched"


@dataclass(frozen=True)
class UpsertStatus(Generic[T]):
    """
    Outcome of an upsert by natural key.

    Downstream steps must decide whether to propagate with
    ``modified_value()``, not with the presence of a row. ``changes`` maps
    each updated field to its ``(old, new)`` pair.
    """

    outcome: UpsertOutcome
    current: T
    changes: FieldChanges = field(default_factory=dict)

    @classmethod
    def created(cls, value: T) -> "UpsertStatus[T]":
        return cls(UpsertOutcome.CREATED, value)

    @classmethod
    def updated(cls, value: T, changes: FieldChanges) -> "UpsertStatus[T]":
        return cls(UpsertOutcome.UPDATED, value, changes)

    @classmethod
    def untouched(cls, value: T) -> "UpsertStatus[T]":
        return cls(UpsertOutcome.UNTOUCHED, value)

    def value(self) -> T:
        return self.current

    def modified_value(self) -> T | None:
        if self.outcome is UpsertOutcome.UNTOUCHED:
            return None
        return self.current

    def is_modified(self) -> bool:
        return self.outcome is not UpsertOutcome.UNTOUCHED


@dataclass(frozen=True)
class UpdateStatus(Generic[T]):
    """Outcome of a conditional update: ``result`` is None when nothing matched."""

    updated: bool
    result: T | None = None

    @classmethod
    def not_found(cls) -> "UpdateStatus[T]":
        return cls(False, None)


@dataclass
class ItemCreationResult:
    """The layers of the cascade that actually changed for one item."""

    item: "ThirdPartyItem"
    task: "Task | None" = None
    notification: "Notification | None" = None


def apply_changes(row: object, values: dict[str, Any]) -> FieldChanges:
    """Assign ``values`` onto ``row`` and return only the fields that differed."""
    changes: FieldChanges = {}
    for name, new in values.items():
        old = getattr(row, name)
        if old != new:
            changes[name] = (old, new)
            setattr(row, name, new)
    return changes
