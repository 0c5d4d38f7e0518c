"""Sale and Inspection State Machine Guards.

Uses python-statemachine to enforce legal state transitions at the domain level.

Sale lifecycle:
    OPEN      -> SETTLED    (settle)

SETTLED is final: no event can fire from it, which is how every mutator of a
settled sale gets rejected.

Inspection gate (fully reversible, self-transitions allowed so the verifier
can re-assert a status):
    *         -> PASSED     (mark_passed)
    *         -> FAILED     (mark_failed)
    *         -> INITIATED  (mark_initiated)
"""

from __future__ import annotations

from statemachine import State, StateMachine

from realty_escrow.domain.enums import InspectionStatus


class _GuardMixin:
    """Shared start-value validation and helpers for the domain guards."""

    def _check_start_value(self, current_status: str) -> None:
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )

    @property
    def status(self) -> str:
        """Return the current state value as a string."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the identifiers of the events that can fire from the current state."""
        return [event.id for event in self.allowed_events]


class SaleStateMachine(_GuardMixin, StateMachine):
    """Guards the OPEN -> SETTLED lifecycle of a sale.

    Usage:
        sm = SaleStateMachine(current_status="OPEN")
        sm.settle()
        sm.status  # "SETTLED"
    """

    OPEN = State("OPEN", initial=True)
    SETTLED = State("SETTLED", final=True)

    settle = OPEN.to(SETTLED)

    def __init__(self, current_status: str = "OPEN") -> None:
        self._check_start_value(current_status)
        super().__init__(start_value=current_status)


class InspectionStateMachine(_GuardMixin, StateMachine):
    """Guards inspection status updates issued by the verifier."""

    INITIATED = State("INITIATED", initial=True)
    PASSED = State("PASSED")
    FAILED = State("FAILED")

    mark_passed = INITIATED.to(PASSED) | FAILED.to(PASSED) | PASSED.to.itself()
    mark_failed = INITIATED.to(FAILED) | PASSED.to(FAILED) | FAILED.to.itself()
    mark_initiated = PASSED.to(INITIATED) | FAILED.to(INITIATED) | INITIATED.to.itself()

    def __init__(self, current_status: str = "INITIATED") -> None:
        self._check_start_value(current_status)
        super().__init__(start_value=current_status)


_INSPECTION_EVENTS = {
    InspectionStatus.PASSED: "mark_passed",
    InspectionStatus.FAILED: "mark_failed",
    InspectionStatus.INITIATED: "mark_initiated",
}


def inspection_event_for(target: InspectionStatus) -> str:
    """Return the InspectionStateMachine event that moves to ``target``."""
    return _INSPECTION_EVENTS[InspectionStatus(target)]

