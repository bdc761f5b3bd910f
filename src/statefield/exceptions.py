"""Exception types for state persistence failures."""


class StatefieldError(Exception):
    """Base class for all statefield errors."""


class PersistenceRejected(StatefieldError):
    """The store refused the save (constraint failure, read-only target).

    Raised by stores that prefer exceptions over a ``False`` return.
    ``StateCoordinator.write_durable`` catches it and rolls back.
    """


class CollaboratorFault(StatefieldError):
    """The store or record itself failed (connectivity, serialization).

    Never caught by the coordinator -- it propagates to the caller.
    """


class TransitionRejected(StatefieldError):
    """The state machine does not allow the event from the current state."""


class ScopeCollisionError(StatefieldError):
    """A per-state scope name collides with an existing entry point."""
