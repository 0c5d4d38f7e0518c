"""Domain enumerations for Realty Escrow.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class InspectionStatus(enum.StrEnum):
    """Verifier-controlled inspection gate.

    Transitions are guarded by InspectionStateMachine.
    Every state is reachable from every other (a failed inspection can be
    overturned and a passed one revoked).
    """

    INITIATED = "INITIATED"
    PASSED = "PASSED"
    FAILED = "FAILED"


class SaleStatus(enum.StrEnum):
    """Lifecycle of a sale. SETTLED is terminal."""

    OPEN = "OPEN"
    SETTLED = "SETTLED"


class EventType(enum.StrEnum):
    """Types of audit events recorded in the sale_events table.

    Every mutating operation on a sale produces exactly one event.
    """

    SALE_CREATED = "SALE_CREATED"

    # Party actions
    APPROVAL_RECORDED = "APPROVAL_RECORDED"
    DEPOSIT_PAID = "DEPOSIT_PAID"
    REMAINING_PAID = "REMAINING_PAID"
    INSPECTION_UPDATED = "INSPECTION_UPDATED"

    # Administrator overrides
    PURCHASE_AMOUNT_SET = "PURCHASE_AMOUNT_SET"
    DEPOSIT_AMOUNT_SET = "DEPOSIT_AMOUNT_SET"

    # Settlement
    SALE_SETTLED = "SALE_SETTLED"
