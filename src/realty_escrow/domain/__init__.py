"""Domain layer — escrow protocol rules with no web or database dependencies."""

from realty_escrow.domain.enums import (
    EventType,
    InspectionStatus,
    SaleStatus,
)
from realty_escrow.domain.events import SaleEvent
from realty_escrow.domain.exceptions import (
    EscrowError,
    SaleNotFoundError,
    SaleSettledError,
    UnauthorizedError,
)
from realty_escrow.domain.ports import AssetRegistryPort, FundsLedgerPort
from realty_escrow.domain.sale import EscrowSale, escrow_account_for
from realty_escrow.domain.state_machine import (
    InspectionStateMachine,
    SaleStateMachine,
)

__all__ = [
    "EventType",
    "InspectionStatus",
    "SaleStatus",
    "SaleEvent",
    "EscrowError",
    "SaleNotFoundError",
    "SaleSettledError",
    "UnauthorizedError",
    "AssetRegistryPort",
    "FundsLedgerPort",
    "EscrowSale",
    "escrow_account_for",
    "InspectionStateMachine",
    "SaleStateMachine",
]
