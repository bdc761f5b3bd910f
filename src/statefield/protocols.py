"""Collaborator interfaces consumed by ``StateCoordinator``.

Defined as Protocols so hosts can plug in their own record types, stores
and write strategies without inheriting from anything in this package.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from statefield.models import PersistOptions, WriteOutcome


@runtime_checkable
class Record(Protocol):
    """An entity whose state lives in one named field."""

    collection: str
    doc_id: str

    def get(self, field: str) -> object:
        """Return the raw value stored under *field* (``None`` if unset)."""
        ...

    def set(self, field: str, value: object) -> None:
        """Overwrite the raw value stored under *field*."""
        ...


@runtime_checkable
class Store(Protocol):
    """Durable save for records."""

    def persist(self, record: Record, options: PersistOptions) -> bool:
        """Save *record*.

        Returns:
            True if the save succeeded, False for ordinary rejections.

        Raises:
            CollaboratorFault: Only for truly exceptional conditions.
        """
        ...


@runtime_checkable
class InitialStateSupplier(Protocol):
    """Computes the designated initial state for a record."""

    def __call__(self, record: Record) -> object: ...


# ----------------------------------------------------------------------
# Substitutable strategies
# ----------------------------------------------------------------------


class ReadStrategy(Protocol):
    def read(self, record: Record, field: str) -> object: ...


class DurableWriteStrategy(Protocol):
    def write(self, record: Record, field: str, value: str, store: Store) -> WriteOutcome: ...


class DeferredWriteStrategy(Protocol):
    def write(self, record: Record, field: str, value: str) -> None: ...
