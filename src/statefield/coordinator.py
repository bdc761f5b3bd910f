"""State-write coordination between a record's state field and its store.

``StateCoordinator`` mediates every read and write of one state field:

* ``read_current_state`` -- re-reads the field on every call, so reloads
  and direct assignments are always observed.
* ``ensure_initial_state`` -- populates a blank field from the initial
  state supplier.  Meant to run before every validation attempt.
* ``write_durable`` -- writes the target and saves with validation
  skipped.  On refusal the exact previous raw value is restored.
* ``write_deferred`` -- writes the target in memory only.

The coordinator never chooses *which* state to move to; the state machine
does that.  Each of read / durable write / deferred write is a separate
strategy object, so a host can swap one without touching the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sized
from enum import Enum

from statemachine import State

from statefield.exceptions import PersistenceRejected
from statefield.models import PersistOptions, WriteOutcome
from statefield.protocols import (
    DeferredWriteStrategy,
    DurableWriteStrategy,
    ReadStrategy,
    Record,
    Store,
)

logger = logging.getLogger(__name__)

SKIP_VALIDATION = PersistOptions(validate=False)


def is_blank(value: object) -> bool:
    """True for None, False, whitespace-only strings and empty containers.

    ``"0"`` and ``0`` are not blank.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Sized):
        return len(value) == 0
    return False


def state_to_raw(state: object) -> str:
    """Convert a target state into the string stored in the field."""
    if state is None:
        return ""
    if isinstance(state, (State, Enum)):
        return str(state.value)
    return str(state)


# ----------------------------------------------------------------------
# Default strategies
# ----------------------------------------------------------------------


class FieldReader:
    """Reads the raw field value straight from the record."""

    def read(self, record: Record, field: str) -> object:
        return record.get(field)


class DeferredWriter:
    """Writes the field in memory; never touches a store."""

    def write(self, record: Record, field: str, value: str) -> None:
        record.set(field, value)
        logger.debug("Deferred write %s=%r on %s/%s", field, value, record.collection, record.doc_id)


class DurableWriter:
    """Writes the field and saves it, rolling back on refusal.

    Args:
        restore_on_fault: When the store raises anything other than
            ``PersistenceRejected``, restore the previous value before the
            exception propagates.  Off by default: the record keeps the
            target value and the caller decides how to recover.
    """

    def __init__(self, restore_on_fault: bool = False) -> None:
        self.restore_on_fault = restore_on_fault

    def write(self, record: Record, field: str, value: str, store: Store) -> WriteOutcome:
        previous = record.get(field)
        record.set(field, value)

        try:
            saved = store.persist(record, SKIP_VALIDATION)
        except PersistenceRejected as e:
            logger.debug("Store rejected %s/%s: %s", record.collection, record.doc_id, e)
            saved = False
        except Exception:
            logger.error(
                "Store fault while saving %s=%r on %s/%s (restore=%s)",
                field, value, record.collection, record.doc_id, self.restore_on_fault,
            )
            if self.restore_on_fault:
                record.set(field, previous)
            raise

        if not saved:
            record.set(field, previous)
            logger.warning(
                "Rolled back %s on %s/%s: %r -> %r",
                field, record.collection, record.doc_id, value, previous,
            )
            return WriteOutcome.rolled_back(previous)

        logger.info("Committed %s=%r on %s/%s", field, value, record.collection, record.doc_id)
        return WriteOutcome.committed()


# ----------------------------------------------------------------------
# Coordinator
# ----------------------------------------------------------------------


class StateCoordinator:
    """Owns the state-write protocol for one state field.

    Usage::

        coordinator = StateCoordinator("aasm_state", lambda record: "pending")
        coordinator.ensure_initial_state(record)
        outcome = coordinator.write_durable(record, "opened", store)
        if not outcome:
            ...  # rolled back; record holds outcome.previous again
    """

    def __init__(
        self,
        state_field: str,
        initial_state: Callable[[Record], object],
        *,
        reader: ReadStrategy | None = None,
        durable_writer: DurableWriteStrategy | None = None,
        deferred_writer: DeferredWriteStrategy | None = None,
        restore_on_fault: bool = False,
    ) -> None:
        if not state_field:
            raise ValueError("state_field must be a non-empty field name")
        self._state_field = state_field
        self._initial_state = initial_state
        self.reader = reader or FieldReader()
        self.durable_writer = durable_writer or DurableWriter(restore_on_fault=restore_on_fault)
        self.deferred_writer = deferred_writer or DeferredWriter()

    @property
    def state_field(self) -> str:
        return self._state_field

    def read_current_state(self, record: Record) -> object:
        """Return the state currently held by *record*, re-read every call."""
        return self.reader.read(record, self._state_field)

    def ensure_initial_state(self, record: Record) -> None:
        """Populate a blank state field from the initial state supplier.

        A non-blank value is never touched, even when it differs from
        what the supplier would return.  Safe to call before every
        validation attempt.
        """
        if not is_blank(self.reader.read(record, self._state_field)):
            return

        initial = self._initial_state(record)
        if initial is None:
            logger.warning(
                "Initial state supplier returned None for %s/%s; writing empty state",
                record.collection, record.doc_id,
            )
        value = state_to_raw(initial)
        record.set(self._state_field, value)
        logger.debug("Initial state %r set on %s/%s", value, record.collection, record.doc_id)

    def write_durable(self, record: Record, target: object, store: Store) -> WriteOutcome:
        """Write *target* and save it immediately (validation skipped).

        Returns ``WriteOutcome.committed()`` when the store accepted the
        save, else ``WriteOutcome.rolled_back(previous)`` with the field
        restored to its exact previous raw value.
        """
        return self.durable_writer.write(record, self._state_field, state_to_raw(target), store)

    def write_deferred(self, record: Record, target: object) -> None:
        """Write *target* in memory only; a later save persists it."""
        self.deferred_writer.write(record, self._state_field, state_to_raw(target))
