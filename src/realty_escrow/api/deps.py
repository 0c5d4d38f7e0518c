"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the escrow service, the external collaborators and configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002 - resolved by FastAPI at runtime

from realty_escrow.config import Settings, get_settings
from realty_escrow.infrastructure.collaborators import get_asset_registry, get_funds_ledger
from realty_escrow.infrastructure.database.engine import get_async_session
from realty_escrow.ledger.funds_ledger import FundsLedger
from realty_escrow.registry.asset_registry import AssetRegistry
from realty_escrow.services.escrow_service import EscrowService
from realty_escrow.services.holdings_service import HoldingsService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_registry() -> AssetRegistry:
    """Provide the asset registry."""
    return get_asset_registry()


def get_ledger() -> FundsLedger:
    """Provide the funds ledger."""
    return get_funds_ledger()


async def get_escrow_service(
    session: AsyncSession = Depends(get_db_session),
    registry: AssetRegistry = Depends(get_registry),
    ledger: FundsLedger = Depends(get_ledger),
) -> EscrowService:
    """Provide an EscrowService bound to the current session."""
    return EscrowService(session, registry, ledger)


async def get_holdings_service(
    session: AsyncSession = Depends(get_db_session),
    registry: AssetRegistry = Depends(get_registry),
    ledger: FundsLedger = Depends(get_ledger),
) -> HoldingsService:
    """Provide a HoldingsService bound to the current session."""
    return HoldingsService(session, registry, ledger)


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
