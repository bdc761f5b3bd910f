"""Per-state query builders ("named scopes").

``register_state_scopes`` builds one ``StateScope`` per declared state.
Names already taken by the host are left alone.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from statefield.exceptions import ScopeCollisionError

if TYPE_CHECKING:
    from statefield.database import DocumentStore
    from statefield.records import DocumentRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StateScope:
    """Query for every document of a collection in one state."""

    state: str
    field: str

    def __call__(self, store: DocumentStore, collection: str) -> list[DocumentRecord]:
        return store.find_by_field(collection, self.field, self.state)

    def count(self, store: DocumentStore, collection: str) -> int:
        return store.state_counts(collection, self.field).get(self.state, 0)


def register_state_scopes(
    states: Iterable[object],
    state_field: str,
    existing: Iterable[str] = (),
    strict: bool = False,
) -> dict[str, StateScope]:
    """Return ``{state_name: StateScope}`` for each declared state.

    Args:
        states: Declared state names (anything ``str()``-able).
        state_field: Field the scopes filter on.
        existing: Names already in use on the host.
        strict: Raise ``ScopeCollisionError`` on a collision instead of
            skipping the name.
    """
    taken = set(existing)
    scopes: dict[str, StateScope] = {}
    for state in states:
        name = str(state)
        if name in taken or name in scopes:
            if strict:
                raise ScopeCollisionError(f"Scope name {name!r} is already defined")
            logger.warning("Skipping scope %r: name already defined", name)
            continue
        scopes[name] = StateScope(state=name, field=state_field)
    return scopes
