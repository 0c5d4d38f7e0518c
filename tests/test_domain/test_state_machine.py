"""Tests for the sale and inspection state machine guards.

These tests verify that:
    1. A sale settles exactly once.
    2. SETTLED is final.
    3. The inspection gate can move between any two statuses.
    4. Unknown start values are rejected.
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from realty_escrow.domain.enums import InspectionStatus
from realty_escrow.domain.state_machine import (
    InspectionStateMachine,
    SaleStateMachine,
    inspection_event_for,
)


class TestSaleLifecycle:
    def test_open_settles(self) -> None:
        sm = SaleStateMachine("OPEN")
        assert sm.status == "OPEN"

        sm.settle()
        assert sm.status == "SETTLED"

    def test_default_is_open(self) -> None:
        assert SaleStateMachine().status == "OPEN"

    def test_settled_is_final(self) -> None:
        sm = SaleStateMachine("SETTLED")
        assert sm.get_allowed_events() == []

    def test_cannot_settle_twice(self) -> None:
        sm = SaleStateMachine("SETTLED")
        with pytest.raises(TransitionNotAllowed):
            sm.settle()

    def test_open_allowed(self) -> None:
        assert SaleStateMachine("OPEN").get_allowed_events() == ["settle"]

    def test_allowed_events_are_identifiers(self) -> None:
        sm = InspectionStateMachine("PASSED")
        assert sorted(sm.get_allowed_events()) == ["mark_failed", "mark_initiated", "mark_passed"]


class TestInspectionGate:
    @pytest.mark.parametrize("start", ["INITIATED", "PASSED", "FAILED"])
    @pytest.mark.parametrize("target", list(InspectionStatus))
    def test_any_status_reaches_any_status(
        self, start: str, target: InspectionStatus
    ) -> None:
        sm = InspectionStateMachine(start)
        getattr(sm, inspection_event_for(target))()
        assert sm.status == target.value

    def test_event_lookup_accepts_plain_strings(self) -> None:
        assert inspection_event_for("FAILED") == "mark_failed"

    def test_unknown_target(self) -> None:
        with pytest.raises(ValueError):
            inspection_event_for("APPROVED")


class TestStartValues:
    def test_invalid_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            SaleStateMachine("INVALID_STATUS")

    def test_invalid_inspection_status(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            InspectionStateMachine("APPROVED")
