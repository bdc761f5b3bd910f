"""Data models and enums for the state persistence adapter."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class OutcomeKind(str, Enum):
    """Result of a durable state write."""

    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True, slots=True)
class WriteOutcome:
    """Transient result of ``StateCoordinator.write_durable``.

    ``previous`` carries the raw pre-write field value and is only
    meaningful when ``kind`` is ``ROLLED_BACK``.  Truthiness mirrors the
    commit flag so callers can write ``if coordinator.write_durable(...):``.
    """

    kind: OutcomeKind
    previous: object = None

    @classmethod
    def committed(cls) -> WriteOutcome:
        return cls(OutcomeKind.COMMITTED)

    @classmethod
    def rolled_back(cls, previous: object) -> WriteOutcome:
        return cls(OutcomeKind.ROLLED_BACK, previous)

    @property
    def is_committed(self) -> bool:
        return self.kind is OutcomeKind.COMMITTED

    def __bool__(self) -> bool:
        return self.is_committed


@dataclass(frozen=True, slots=True)
class PersistOptions:
    """Options passed to ``Store.persist``.

    ``validate=False`` tells the store to skip the record's own
    validation rules.
    """

    validate: bool = True


@dataclass(frozen=True, slots=True)
class StateLogEntry:
    """One row of the ``_state_log`` audit table."""

    collection: str
    doc_id: str
    old_state: str | None
    new_state: str | None
    timestamp: str
