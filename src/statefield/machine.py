"""python-statemachine integration.

The state machine is purely a legality check: an ephemeral instance is
built at the record's current state, the event is sent to it, and the
resulting state becomes the write target.  ``StateCoordinator`` does the
actual write, durable or deferred.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from statemachine import StateMachine
from statemachine.exceptions import InvalidStateValue, TransitionNotAllowed

from statefield.coordinator import StateCoordinator, is_blank
from statefield.exceptions import TransitionRejected
from statefield.models import WriteOutcome
from statefield.protocols import Record, Store
from statefield.scopes import StateScope, register_state_scopes

logger = logging.getLogger(__name__)


def initial_state_of(machine_cls: type[StateMachine]) -> Callable[[Record], str]:
    """Build an initial state supplier from the machine's ``initial=True`` state."""
    initial = next((s for s in machine_cls.states if s.initial), None)
    if initial is None:
        raise ValueError(f"{machine_cls.__name__} declares no initial state")
    value = initial.value

    def _supplier(record: Record) -> str:
        return value

    return _supplier


class PersistentMachine:
    """Fires state machine events against records and persists the result.

    Usage::

        coordinator = StateCoordinator("aasm_state", initial_state_of(OrderMachine))
        orders = PersistentMachine(OrderMachine, coordinator, store)
        outcome = orders.fire(record, "close")     # durable
        orders.fire_deferred(record, "reopen")     # in memory only
    """

    def __init__(
        self,
        machine_cls: type[StateMachine],
        coordinator: StateCoordinator,
        store: Store,
    ) -> None:
        self.machine_cls = machine_cls
        self.coordinator = coordinator
        self.store = store

    @property
    def state_values(self) -> list[str]:
        return [s.value for s in self.machine_cls.states]

    def machine_for(self, record: Record) -> StateMachine:
        """Create a machine positioned at *record*'s current state.

        A blank field starts the machine at its initial state.

        Raises:
            TransitionRejected: The record holds a state the machine does
                not declare.
        """
        current = self.coordinator.read_current_state(record)
        if is_blank(current):
            return self.machine_cls()
        try:
            return self.machine_cls(start_value=current)
        except InvalidStateValue as e:
            logger.warning(
                "%s/%s holds undeclared state %r", record.collection, record.doc_id, current
            )
            raise TransitionRejected(f"{current!r} is not a state of {self.machine_cls.__name__}") from e

    def _target_state(self, record: Record, event: str, **kwargs: object) -> str:
        sm = self.machine_for(record)
        source = sm.current_state_value
        try:
            sm.send(event, **kwargs)
        except TransitionNotAllowed as e:
            logger.info(
                "Event %s rejected for %s/%s in state %s",
                event, record.collection, record.doc_id, source,
            )
            raise TransitionRejected(str(e)) from e
        target = sm.current_state_value
        logger.debug("Event %s on %s/%s: %s -> %s", event, record.collection, record.doc_id, source, target)
        return target

    def can_fire(self, record: Record, event: str, **kwargs: object) -> bool:
        """True if *event* is allowed from the record's current state.

        Sends the event to a throwaway machine; the record is not touched.
        """
        try:
            self.machine_for(record).send(event, **kwargs)
        except (TransitionNotAllowed, TransitionRejected):
            return False
        return True

    def fire(self, record: Record, event: str, **kwargs: object) -> WriteOutcome:
        """Run a persisting event.

        Raises:
            TransitionRejected: The event is not allowed; *record* is untouched.
        """
        target = self._target_state(record, event, **kwargs)
        return self.coordinator.write_durable(record, target, self.store)

    def fire_deferred(self, record: Record, event: str, **kwargs: object) -> str:
        """Run a non-persisting event and return the new state."""
        target = self._target_state(record, event, **kwargs)
        self.coordinator.write_deferred(record, target)
        return target

    def scopes(self, existing: Iterable[str] = ()) -> dict[str, StateScope]:
        """Per-state query builders for every declared state."""
        return register_state_scopes(self.state_values, self.coordinator.state_field, existing)
