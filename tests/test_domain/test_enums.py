"""Tests for domain enumerations."""

from __future__ import annotations

from realty_escrow.domain.enums import EventType, InspectionStatus, SaleStatus


class TestInspectionStatus:
    def test_all_statuses_exist(self) -> None:
        assert {s.value for s in InspectionStatus} == {"INITIATED", "PASSED", "FAILED"}

    def test_status_is_str_enum(self) -> None:
        assert isinstance(InspectionStatus.PASSED, str)
        assert InspectionStatus("PASSED") is InspectionStatus.PASSED


class TestSaleStatus:
    def test_all_statuses_exist(self) -> None:
        assert {s.value for s in SaleStatus} == {"OPEN", "SETTLED"}


class TestEventType:
    def test_all_event_types_exist(self) -> None:
        # 1 creation + 4 party actions + 2 overrides + 1 settlement
        assert len(EventType) == 8

    def test_event_type_is_str_enum(self) -> None:
        assert isinstance(EventType.SALE_SETTLED, str)
        assert EventType.DEPOSIT_PAID == "DEPOSIT_PAID"
