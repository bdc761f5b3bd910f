"""Explicit validation pipeline with the initial-state hook wired in.

Hosts call ``ValidationCycle.validate`` wherever they would validate a
record before saving it.  The coordinator's ``ensure_initial_state`` runs
first on every attempt, then each rule.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from statefield.coordinator import StateCoordinator
from statefield.protocols import Record

logger = logging.getLogger(__name__)

# A rule returns an error message, or None when the record passes.
ValidationRule = Callable[[Record], "str | None"]


class ValidationCycle:
    """Pre-validation hook plus validation rules for one record type."""

    def __init__(self, coordinator: StateCoordinator, rules: Iterable[ValidationRule] = ()) -> None:
        self.coordinator = coordinator
        self.rules: list[ValidationRule] = list(rules)

    def add_rule(self, rule: ValidationRule) -> None:
        self.rules.append(rule)

    def validate(self, record: Record) -> list[str]:
        """Ensure the initial state, then run every rule.

        Returns:
            Error messages, empty when the record is valid.
        """
        self.coordinator.ensure_initial_state(record)

        errors = [msg for msg in (rule(record) for rule in self.rules) if msg]
        if errors:
            logger.debug("%s/%s failed validation: %s", record.collection, record.doc_id, errors)
        return errors

    def is_valid(self, record: Record) -> bool:
        return not self.validate(record)


def require_fields(*names: str) -> ValidationRule:
    """Rule factory: every named field must be present and non-empty."""

    def _rule(record: Record) -> str | None:
        missing = [n for n in names if record.get(n) in (None, "")]
        if missing:
            return f"missing required fields: {', '.join(missing)}"
        return None

    return _rule


def state_in(field: str, states: Iterable[str]) -> ValidationRule:
    """Rule factory: *field* must hold one of *states*."""
    allowed = frozenset(states)

    def _rule(record: Record) -> str | None:
        value = record.get(field)
        if value not in allowed:
            return f"{field} {value!r} is not one of {sorted(allowed)}"
        return None

    return _rule
