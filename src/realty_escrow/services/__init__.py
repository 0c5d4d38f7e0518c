"""Application services — use case orchestration."""

from realty_escrow.services.escrow_service import EscrowService
from realty_escrow.services.holdings_service import HoldingsService

__all__ = ["EscrowService", "HoldingsService"]
