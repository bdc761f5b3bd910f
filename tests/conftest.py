"""Shared pytest fixtures for statefield tests.

Provides a temporary document store, a coordinator with a fixed initial
state, simple store doubles, and an order lifecycle state machine.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from statemachine import State, StateMachine

from statefield.coordinator import StateCoordinator
from statefield.database import DocumentStore
from statefield.records import DocumentRecord

STATE_FIELD = "aasm_state"


class OrderMachine(StateMachine):
    """pending -> opened -> closed, with reopen and cancel."""

    pending = State("pending", initial=True, value="pending")
    opened = State("opened", value="opened")
    closed = State("closed", value="closed")
    cancelled = State("cancelled", value="cancelled")

    open = pending.to(opened)
    close = opened.to(closed)
    reopen = closed.to(opened)
    cancel = pending.to(cancelled) | opened.to(cancelled)
    restore = cancelled.to(pending)


@pytest.fixture
def coordinator() -> StateCoordinator:
    """Coordinator whose initial state is always 'pending'."""
    return StateCoordinator(STATE_FIELD, lambda record: "pending")


@pytest.fixture
def record() -> DocumentRecord:
    """A fresh, never-saved order with a blank state."""
    return DocumentRecord(collection="orders", doc_id="order-1", fields={"total": 10})


@pytest.fixture
def accepting_store() -> MagicMock:
    store = MagicMock()
    store.persist.return_value = True
    return store


@pytest.fixture
def refusing_store() -> MagicMock:
    store = MagicMock()
    store.persist.return_value = False
    return store


@pytest.fixture
def tmp_store(tmp_path: Path) -> DocumentStore:
    """File-backed document store that logs changes to aasm_state."""
    store = DocumentStore(tmp_path / "test.db", state_field=STATE_FIELD)
    yield store
    store.close()
