"""Persistence adapter keeping a state machine's state in one document field."""

__version__ = "0.1.0"

from statefield.coordinator import (
    DeferredWriter,
    DurableWriter,
    FieldReader,
    StateCoordinator,
    is_blank,
)
from statefield.database import DocumentStore
from statefield.exceptions import (
    CollaboratorFault,
    PersistenceRejected,
    ScopeCollisionError,
    StatefieldError,
    TransitionRejected,
)
from statefield.lifecycle import ValidationCycle
from statefield.machine import PersistentMachine, initial_state_of
from statefield.models import OutcomeKind, PersistOptions, WriteOutcome
from statefield.records import DocumentRecord
from statefield.scopes import StateScope, register_state_scopes

__all__ = [
    "CollaboratorFault",
    "DeferredWriter",
    "DocumentRecord",
    "DocumentStore",
    "DurableWriter",
    "FieldReader",
    "OutcomeKind",
    "PersistOptions",
    "PersistenceRejected",
    "PersistentMachine",
    "ScopeCollisionError",
    "StateCoordinator",
    "StateScope",
    "StatefieldError",
    "TransitionRejected",
    "ValidationCycle",
    "WriteOutcome",
    "__version__",
    "initial_state_of",
    "is_blank",
    "register_state_scopes",
]
