"""Document store tests.

Validates:
  - WAL mode and schema
  - persist / load / reload round trip
  - store-level refusals map to False, database faults to CollaboratorFault
  - state audit log
"""

from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock

import pytest

from statefield.coordinator import StateCoordinator
from statefield.database import DocumentStore
from statefield.exceptions import CollaboratorFault
from statefield.lifecycle import ValidationCycle, require_fields
from statefield.models import PersistOptions, WriteOutcome
from statefield.records import DocumentRecord

from conftest import STATE_FIELD


def _make_record(doc_id: str = "order-1", state: str | None = "pending", **fields) -> DocumentRecord:
    """Helper to create an order record with defaults."""
    body = {"total": 10, **fields}
    if state is not None:
        body[STATE_FIELD] = state
    return DocumentRecord(collection="orders", doc_id=doc_id, fields=body)


def test_wal_mode_enabled(tmp_store: DocumentStore) -> None:
    result = tmp_store.conn.execute("PRAGMA journal_mode").fetchone()
    assert result[0] == "wal"


def test_tables_exist(tmp_store: DocumentStore) -> None:
    rows = tmp_store.conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
    ).fetchall()
    table_names = {row["name"] for row in rows}

    assert "documents" in table_names
    assert "_state_log" in table_names


def test_persist_and_load(tmp_store: DocumentStore) -> None:
    record = _make_record()
    assert record.new_record

    assert tmp_store.persist(record) is True
    assert not record.new_record

    loaded = tmp_store.load("orders", "order-1")
    assert loaded is not None
    assert loaded.fields == {"total": 10, STATE_FIELD: "pending"}
    assert not loaded.new_record


def test_record_get_default() -> None:
    record = _make_record(state=None)
    assert record.get(STATE_FIELD) is None
    assert record.get("discount", 0) == 0
    assert record.get("total", 0) == 10


def test_load_missing_returns_none(tmp_store: DocumentStore) -> None:
    assert tmp_store.load("orders", "nope") is None


def test_persist_is_upsert(tmp_store: DocumentStore) -> None:
    record = _make_record()
    tmp_store.persist(record)
    record.set("total", 99)
    tmp_store.persist(record)

    count = tmp_store.conn.execute("SELECT COUNT(*) AS cnt FROM documents").fetchone()["cnt"]
    assert count == 1
    assert tmp_store.load("orders", "order-1").get("total") == 99


def test_reload_discards_unsaved_changes(tmp_store: DocumentStore) -> None:
    record = _make_record()
    tmp_store.persist(record)

    record.set(STATE_FIELD, "closed")
    tmp_store.reload(record)
    assert record.get(STATE_FIELD) == "pending"


def test_reload_unsaved_record_raises(tmp_store: DocumentStore) -> None:
    with pytest.raises(KeyError):
        tmp_store.reload(_make_record(doc_id="never-saved"))


def test_constraint_failure_returns_false(tmp_store: DocumentStore) -> None:
    """An empty doc_id violates the CHECK constraint -- refused, not raised."""
    record = _make_record(doc_id="")
    assert tmp_store.persist(record) is False
    assert record.new_record


def test_read_only_collection_refused(tmp_path) -> None:
    with DocumentStore(tmp_path / "ro.db", read_only_collections={"orders"}) as store:
        assert store.persist(_make_record()) is False
        assert store.load("orders", "order-1") is None


def test_operational_error_becomes_collaborator_fault(tmp_store: DocumentStore) -> None:
    tmp_store.conn = MagicMock(wraps=tmp_store.conn)
    tmp_store.conn.execute.side_effect = sqlite3.OperationalError("database is locked")

    with pytest.raises(CollaboratorFault, match="database is locked"):
        tmp_store.persist(_make_record())


def test_find_by_field_and_counts(tmp_store: DocumentStore) -> None:
    tmp_store.persist(_make_record("a", "pending"))
    tmp_store.persist(_make_record("b", "opened"))
    tmp_store.persist(_make_record("c", "opened"))
    tmp_store.persist(_make_record("d", None))

    opened = tmp_store.find_by_field("orders", STATE_FIELD, "opened")
    assert [r.doc_id for r in opened] == ["b", "c"]

    assert tmp_store.state_counts("orders") == {"pending": 1, "opened": 2, "": 1}
    assert tmp_store.collections() == ["orders"]


def test_delete(tmp_store: DocumentStore) -> None:
    record = _make_record()
    tmp_store.persist(record)
    assert tmp_store.delete(record) is True
    assert tmp_store.delete(record) is False


class TestValidationOnPersist:
    """persist() runs the validation cycle only when asked to."""

    @pytest.fixture
    def validating_store(self, tmp_path):
        coordinator = StateCoordinator(STATE_FIELD, lambda r: "pending")
        cycle = ValidationCycle(coordinator, [require_fields("customer")])
        store = DocumentStore(tmp_path / "v.db", state_field=STATE_FIELD, validation=cycle)
        yield store
        store.close()

    def test_invalid_record_not_saved(self, validating_store):
        record = _make_record(state=None)
        assert validating_store.persist(record, PersistOptions(validate=True)) is False
        assert validating_store.load("orders", "order-1") is None

    def test_validation_populates_initial_state(self, validating_store):
        record = _make_record(state=None, customer="acme")
        assert validating_store.persist(record, PersistOptions(validate=True)) is True
        assert validating_store.load("orders", "order-1").get(STATE_FIELD) == "pending"

    def test_validate_false_skips_rules(self, validating_store):
        record = _make_record(state="opened")
        assert validating_store.persist(record, PersistOptions(validate=False)) is True

    def test_durable_write_bypasses_validation(self, validating_store):
        """A transition is saved even though an unrelated field is invalid."""
        coordinator = validating_store.validation.coordinator
        record = _make_record(state="pending")

        outcome = coordinator.write_durable(record, "opened", validating_store)

        assert outcome == WriteOutcome.committed()
        assert validating_store.load("orders", "order-1").get(STATE_FIELD) == "opened"


class TestStateLog:
    def test_create_and_change_are_logged(self, tmp_store: DocumentStore):
        record = _make_record()
        tmp_store.persist(record)
        record.set(STATE_FIELD, "opened")
        tmp_store.persist(record)

        history = tmp_store.state_history("orders", "order-1")
        assert [(e.old_state, e.new_state) for e in history] == [
            (None, "pending"),
            ("pending", "opened"),
        ]
        assert all(e.timestamp for e in history)

    def test_unchanged_state_not_logged(self, tmp_store: DocumentStore):
        record = _make_record()
        tmp_store.persist(record)
        record.set("total", 11)
        tmp_store.persist(record)

        assert len(tmp_store.state_history("orders", "order-1")) == 1

    def test_rolled_back_write_not_logged(self, tmp_path):
        with DocumentStore(
            tmp_path / "ro.db", state_field=STATE_FIELD, read_only_collections={"orders"}
        ) as store:
            coordinator = StateCoordinator(STATE_FIELD, lambda r: "pending")
            record = _make_record()

            outcome = coordinator.write_durable(record, "opened", store)

            assert outcome == WriteOutcome.rolled_back("pending")
            assert store.state_history("orders", "order-1") == []

    def test_no_state_field_disables_log(self, tmp_path):
        with DocumentStore(tmp_path / "n.db") as store:
            store.persist(_make_record())
            assert store.state_history("orders", "order-1") == []
