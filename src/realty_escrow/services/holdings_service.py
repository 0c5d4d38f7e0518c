"""Holdings Service — registry and ledger writes that happen outside a sale.

Registering an asset, granting an operator and issuing funds change the same
collaborators a sale does, so they are persisted the same way: the in-memory
change and its row are committed together, and a failed commit takes the
in-memory change back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from realty_escrow.infrastructure.database.repositories import (
    AssetRepository,
    LedgerAccountRepository,
)
from realty_escrow.ledger.funds_ledger import check_amount
from realty_escrow.services.collaborator_journal import CollaboratorJournal

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from realty_escrow.ledger.funds_ledger import FundsLedger
    from realty_escrow.registry.asset_registry import AssetRegistry


class HoldingsService:
    """Persisted registry and ledger operations."""

    def __init__(
        self,
        session: AsyncSession,
        registry: AssetRegistry,
        ledger: FundsLedger,
    ) -> None:
        self._session = session
        self._registry = registry
        self._ledger = ledger

    async def register_asset(self, caller: str, owner: str, metadata: dict | None = None) -> int:
        """Mint a new asset for ``owner``. Restricted to the registry administrator."""
        asset_id = self._registry.register(caller, owner, metadata)
        try:
            await AssetRepository(self._session).save(self._registry.record_of(asset_id))
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            self._registry.discard(asset_id)
            raise
        return asset_id

    async def approve_operator(self, caller: str, operator: str | None, asset_id: int) -> None:
        """Owner grants ``operator`` (or with None, nobody) the right to move the asset."""
        journal = CollaboratorJournal(self._registry, self._ledger)
        journal.registry.approve(caller, operator, asset_id)
        try:
            await journal.persist(self._session)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            journal.undo()
            raise

    async def credit(self, party: str, amount: int) -> int:
        """Issue funds to ``party`` and return the new balance.

        The row is committed first; the in-memory credit cannot fail once the
        amount has been validated.
        """
        check_amount(amount)
        try:
            await LedgerAccountRepository(self._session).apply_delta(party, amount)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        return self._ledger.credit(party, amount)
