"""Process-wide asset registry and funds ledger.

Both collaborators are served from memory. Their state is persisted in the
``assets`` and ``ledger_accounts`` tables alongside the sales that change it,
and ``load_collaborators`` rebuilds them from those tables on startup.

Usage:
    from realty_escrow.infrastructure.collaborators import get_asset_registry

    registry = get_asset_registry()
    registry.owner_of(asset_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from realty_escrow.config import get_settings
from realty_escrow.infrastructure.database.repositories import (
    AssetRepository,
    LedgerAccountRepository,
)
from realty_escrow.ledger.funds_ledger import FundsLedger
from realty_escrow.logging_config import get_logger
from realty_escrow.registry.asset_registry import AssetRegistry

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

_registry: AssetRegistry | None = None
_ledger: FundsLedger | None = None


def get_asset_registry() -> AssetRegistry:
    """Return the registry singleton, creating it on first use."""
    global _registry
    if _registry is None:
        admin = get_settings().registry_admin
        _registry = AssetRegistry(administrator=admin)
        logger.info("registry.initialized", administrator=admin)
    return _registry


def get_funds_ledger() -> FundsLedger:
    """Return the ledger singleton, creating it on first use."""
    global _ledger
    if _ledger is None:
        _ledger = FundsLedger()
        logger.info("ledger.initialized")
    return _ledger


async def load_collaborators(session: AsyncSession) -> None:
    """Rebuild both singletons from their persisted rows. Called on startup."""
    assets = await AssetRepository(session).get_all()
    balances = await LedgerAccountRepository(session).get_all()
    get_asset_registry().restore(assets)
    get_funds_ledger().restore(balances)
    logger.info("collaborators.loaded", assets=len(assets), accounts=len(balances))


def reset_collaborators() -> None:
    """Drop both singletons. Called on shutdown."""
    global _registry, _ledger
    _registry = None
    _ledger = None
