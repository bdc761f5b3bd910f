"""SQLite document store for state-managed records.

Documents are JSON bodies keyed by ``(collection, doc_id)``.  Every save
that changes the tracked state field is recorded in ``_state_log``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from statefield.exceptions import CollaboratorFault
from statefield.lifecycle import ValidationCycle
from statefield.models import PersistOptions, StateLogEntry
from statefield.records import DocumentRecord

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL CHECK(collection != ''),
    doc_id TEXT NOT NULL CHECK(doc_id != ''),
    body TEXT NOT NULL CHECK(json_valid(body)),

    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    updated_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    PRIMARY KEY (collection, doc_id)
);

CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);

-- Auto-update updated_at on any change
CREATE TRIGGER IF NOT EXISTS update_documents_timestamp
    AFTER UPDATE OF body ON documents
    FOR EACH ROW
    BEGIN
        UPDATE documents SET updated_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')
        WHERE collection = NEW.collection AND doc_id = NEW.doc_id;
    END;

-- State transition audit log
CREATE TABLE IF NOT EXISTS _state_log (
    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    doc_id TEXT NOT NULL,
    old_state TEXT,
    new_state TEXT,
    timestamp TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_state_log_doc ON _state_log(collection, doc_id);
"""

UPSERT_SQL = """
INSERT INTO documents(collection, doc_id, body)
VALUES (?, ?, ?)
ON CONFLICT(collection, doc_id) DO UPDATE SET body = excluded.body
"""


def _json_path(field: str) -> str:
    return '$."' + field.replace('"', '\\"') + '"'


class DocumentStore:
    """SQLite-backed ``Store`` for ``DocumentRecord`` instances.

    Usage:
        with DocumentStore("data/statefield.db", state_field="aasm_state") as store:
            store.persist(record, PersistOptions(validate=False))
            counts = store.state_counts("orders")

    Args:
        db_path: SQLite file path (``":memory:"`` works for tests).
        state_field: Field whose changes are written to ``_state_log``.
            ``None`` disables the audit log.
        validation: Cycle run by ``persist`` when ``options.validate`` is
            true.  A record with errors is not saved.
        read_only_collections: Collections this store refuses to write.
    """

    def __init__(
        self,
        db_path: str | Path,
        state_field: str | None = None,
        validation: ValidationCycle | None = None,
        read_only_collections: Iterable[str] = (),
    ) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.state_field = state_field
        self.validation = validation
        self.read_only_collections = frozenset(read_only_collections)

        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self._setup_pragmas()
        self._setup_schema()

    def _setup_pragmas(self) -> None:
        """Configure SQLite pragmas for performance and reliability."""
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA foreign_keys=ON")

        result = self.conn.execute("PRAGMA journal_mode").fetchone()[0]
        if result != "wal":
            logger.debug("WAL mode not enabled, got: %s", result)

    def _setup_schema(self) -> None:
        """Create tables, indexes, and triggers if they don't exist."""
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute("PRAGMA user_version = 1")

    # ------------------------------------------------------------------
    # Store protocol
    # ------------------------------------------------------------------

    def persist(self, record: DocumentRecord, options: PersistOptions = PersistOptions()) -> bool:
        """Save *record*, returning False when the save is refused.

        Refusals: read-only collection, validation errors (only when
        ``options.validate``), or an SQLite constraint failure.

        Raises:
            CollaboratorFault: The database itself failed (locked, I/O).
        """
        if record.collection in self.read_only_collections:
            logger.warning("Refusing write to read-only collection %s", record.collection)
            return False

        if options.validate and self.validation is not None:
            errors = self.validation.validate(record)
            if errors:
                logger.info("Not saving %s/%s: %s", record.collection, record.doc_id, "; ".join(errors))
                return False

        try:
            with self.conn:
                old_state = self._stored_state(record.collection, record.doc_id)
                self.conn.execute(UPSERT_SQL, (record.collection, record.doc_id, record.to_json()))
                if self.state_field is not None:
                    new_state = record.get(self.state_field)
                    if old_state != new_state:
                        self.log_state_change(record.collection, record.doc_id, old_state, new_state)
        except sqlite3.IntegrityError as e:
            logger.warning("Constraint failure saving %s/%s: %s", record.collection, record.doc_id, e)
            return False
        except sqlite3.OperationalError as e:
            raise CollaboratorFault(f"Database error saving {record.collection}/{record.doc_id}: {e}") from e

        record.new_record = False
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _stored_state(self, collection: str, doc_id: str) -> object:
        if self.state_field is None:
            return None
        row = self.conn.execute(
            "SELECT json_extract(body, ?) AS state FROM documents WHERE collection = ? AND doc_id = ?",
            (_json_path(self.state_field), collection, doc_id),
        ).fetchone()
        return row["state"] if row else None

    def load(self, collection: str, doc_id: str) -> DocumentRecord | None:
        """Return the stored document, or None if it does not exist."""
        row = self.conn.execute(
            "SELECT body FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        ).fetchone()
        if row is None:
            return None
        return DocumentRecord.from_row(collection, doc_id, row["body"])

    def reload(self, record: DocumentRecord) -> DocumentRecord:
        """Refresh *record*'s fields in place from the stored copy.

        Raises:
            KeyError: The document has never been saved.
        """
        stored = self.load(record.collection, record.doc_id)
        if stored is None:
            raise KeyError(f"{record.collection}/{record.doc_id} not found")
        record.replace_fields(stored.fields)
        record.new_record = False
        return record

    def find_by_field(self, collection: str, field: str, value: object) -> list[DocumentRecord]:
        """Return documents in *collection* whose *field* equals *value*."""
        rows = self.conn.execute(
            """SELECT doc_id, body FROM documents
               WHERE collection = ? AND json_extract(body, ?) = ?
               ORDER BY doc_id""",
            (collection, _json_path(field), value),
        ).fetchall()
        return [DocumentRecord.from_row(collection, row["doc_id"], row["body"]) for row in rows]

    def state_counts(self, collection: str, field: str | None = None) -> dict[str, int]:
        """Return document counts grouped by state value.

        Documents without a state are counted under ``""``.
        """
        field = field or self.state_field
        if field is None:
            raise ValueError("No state field configured")
        rows = self.conn.execute(
            """SELECT COALESCE(json_extract(body, ?), '') AS state, COUNT(*) AS cnt
               FROM documents WHERE collection = ? GROUP BY state""",
            (_json_path(field), collection),
        ).fetchall()
        return {str(row["state"]): row["cnt"] for row in rows}

    def collections(self) -> list[str]:
        rows = self.conn.execute(
            "SELECT DISTINCT collection FROM documents ORDER BY collection"
        ).fetchall()
        return [row["collection"] for row in rows]

    def delete(self, record: DocumentRecord) -> bool:
        """Delete the stored copy of *record*. Returns True if a row was removed."""
        with self.conn:
            cursor = self.conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (record.collection, record.doc_id),
            )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def log_state_change(
        self, collection: str, doc_id: str, old_state: object, new_state: object
    ) -> None:
        """Append a state transition to ``_state_log``.

        Runs inside the caller's transaction when called from ``persist``.
        """
        self.conn.execute(
            "INSERT INTO _state_log(collection, doc_id, old_state, new_state) VALUES (?, ?, ?, ?)",
            (
                collection,
                doc_id,
                None if old_state is None else str(old_state),
                None if new_state is None else str(new_state),
            ),
        )

    def state_history(self, collection: str, doc_id: str) -> list[StateLogEntry]:
        """Return the logged state transitions for one document, oldest first."""
        rows = self.conn.execute(
            """SELECT collection, doc_id, old_state, new_state, timestamp
               FROM _state_log
               WHERE collection = ? AND doc_id = ?
               ORDER BY log_id""",
            (collection, doc_id),
        ).fetchall()
        return [
            StateLogEntry(
                collection=row["collection"],
                doc_id=row["doc_id"],
                old_state=row["old_state"],
                new_state=row["new_state"],
                timestamp=row["timestamp"],
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> DocumentStore:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()
