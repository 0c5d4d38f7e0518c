"""Escrow Service — runs escrow protocol operations against stored sales.

This is the application layer that coordinates between:
    - Domain EscrowSale (role checks, accounting, settlement saga)
    - Repositories (data access)
    - Event log (audit trail)
    - Asset registry and funds ledger (external collaborators)

Every mutating call follows the same path: take the sale's lock, load the
record with a row lock, rehydrate the EscrowSale over a CollaboratorJournal,
run exactly one protocol operation, write the record, its event and the
touched ledger balances and assets back, and commit before releasing the
lock. A rejected operation changed nothing; any other failure rolls the
session back and undoes the journaled registry and ledger effects.
"""

from __future__ import annotations

import asyncio
import weakref
from typing import TYPE_CHECKING

from realty_escrow.domain.enums import SaleStatus
from realty_escrow.domain.exceptions import EscrowError, SaleNotFoundError
from realty_escrow.domain.sale import EscrowSale
from realty_escrow.infrastructure.database.repositories import (
    EventRepository,
    SaleRepository,
    to_domain,
)
from realty_escrow.logging_config import get_logger, sale_log_context
from realty_escrow.services.collaborator_journal import CollaboratorJournal

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from realty_escrow.domain.enums import InspectionStatus
    from realty_escrow.domain.events import SaleEvent
    from realty_escrow.infrastructure.database.orm_models import (
        SaleEventRecord,
        SaleRecord,
    )
    from realty_escrow.ledger.funds_ledger import FundsLedger
    from realty_escrow.registry.asset_registry import AssetRegistry

logger = get_logger(__name__)

# One writer per sale within this process; a lock lives only while someone holds or awaits it
_sale_locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = weakref.WeakValueDictionary()


def _lock_for(sale_id: uuid.UUID) -> asyncio.Lock:
    lock = _sale_locks.get(sale_id)
    if lock is None:
        lock = _sale_locks[sale_id] = asyncio.Lock()
    return lock


class EscrowService:
    """Manages the sale lifecycle on top of persistent storage."""

    def __init__(
        self,
        session: AsyncSession,
        registry: AssetRegistry,
        ledger: FundsLedger,
    ) -> None:
        self._session = session
        self._registry = registry
        self._ledger = ledger
        self._sale_repo = SaleRepository(session)
        self._event_repo = EventRepository(session)

    # ------------------------------------------------------------------
    # Sale Creation
    # ------------------------------------------------------------------

    async def create_sale(
        self,
        administrator: str,
        asset_id: int,
        seller: str,
        buyer: str,
        lender: str,
        verifier: str,
        purchase_amount: int,
        deposit_amount: int,
    ) -> EscrowSale:
        """Open a new sale; ``administrator`` is the creating identity."""
        sale = EscrowSale.create(
            administrator,
            self._registry,
            self._ledger,
            asset_id=asset_id,
            seller=seller,
            buyer=buyer,
            lender=lender,
            verifier=verifier,
            purchase_amount=purchase_amount,
            deposit_amount=deposit_amount,
        )
        try:
            await self._sale_repo.create(sale)
            for evt in sale.events:
                await self._event_repo.record(evt)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("escrow.sale_opened", sale_id=sale.sale_id, administrator=administrator)
        return sale

    # ------------------------------------------------------------------
    # Protocol operations
    # ------------------------------------------------------------------

    async def record_approval(
        self, sale_id: uuid.UUID, caller: str, approved: bool
    ) -> EscrowSale:
        return await self._apply(
            sale_id, "record_approval", lambda sale: sale.record_approval(caller, approved)
        )

    async def pay_deposit(self, sale_id: uuid.UUID, caller: str, amount: int) -> EscrowSale:
        return await self._apply(
            sale_id, "pay_deposit", lambda sale: sale.pay_deposit(caller, amount)
        )

    async def pay_remaining(self, sale_id: uuid.UUID, caller: str, amount: int) -> EscrowSale:
        return await self._apply(
            sale_id, "pay_remaining", lambda sale: sale.pay_remaining(caller, amount)
        )

    async def update_inspection_status(
        self, sale_id: uuid.UUID, caller: str, status: InspectionStatus
    ) -> EscrowSale:
        return await self._apply(
            sale_id,
            "update_inspection_status",
            lambda sale: sale.update_inspection_status(caller, status),
        )

    async def set_purchase_amount(
        self, sale_id: uuid.UUID, caller: str, amount: int
    ) -> EscrowSale:
        return await self._apply(
            sale_id, "set_purchase_amount", lambda sale: sale.set_purchase_amount(caller, amount)
        )

    async def set_deposit_amount(
        self, sale_id: uuid.UUID, caller: str, amount: int
    ) -> EscrowSale:
        return await self._apply(
            sale_id, "set_deposit_amount", lambda sale: sale.set_deposit_amount(caller, amount)
        )

    async def settle(self, sale_id: uuid.UUID, caller: str) -> EscrowSale:
        """Settle the sale: funds to the seller, asset to the buyer."""
        return await self._apply(sale_id, "settle", lambda sale: sale.settle(caller))

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_sale(self, sale_id: uuid.UUID) -> EscrowSale:
        """Get a sale or raise."""
        record = await self._get_record_or_raise(sale_id)
        return to_domain(record, self._registry, self._ledger)

    async def list_sales(
        self, status: SaleStatus = SaleStatus.OPEN, party: str | None = None
    ) -> list[EscrowSale]:
        """List sales in ``status``, optionally only those where ``party`` holds a role."""
        if party is None:
            records = await self._sale_repo.get_by_status(status)
        else:
            records = [
                r for r in await self._sale_repo.get_by_party(party) if r.status == status.value
            ]
        return [to_domain(r, self._registry, self._ledger) for r in records]

    async def get_status(self, sale_id: uuid.UUID) -> dict:
        """Get sale status with allowed actions and unmet settlement conditions."""
        sale = await self.get_sale(sale_id)
        return {
            "sale_id": sale.sale_id,
            "status": sale.status.value,
            "inspection_status": sale.inspection_status.value,
            "remaining_amount": sale.remaining_amount,
            "custodied_funds": sale.custodied_funds,
            "escrow_account": sale.escrow_account,
            "allowed_actions": sale.allowed_actions(),
            "settlement_blockers": [b.code for b in sale.settlement_blockers()]
            if not sale.is_settled
            else [],
        }

    async def get_events(self, sale_id: uuid.UUID) -> list[SaleEventRecord]:
        """Get audit trail."""
        await self._get_record_or_raise(sale_id)
        return await self._event_repo.get_by_sale(sale_id)

    async def get_balance(self, sale_id: uuid.UUID) -> int:
        """Funds currently custodied by the sale."""
        sale = await self.get_sale(sale_id)
        return sale.get_balance()

    def get_balance_of(self, party: str) -> int:
        """Ledger balance of any party."""
        return self._ledger.balance_of(party)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _get_record_or_raise(
        self, sale_id: uuid.UUID, for_update: bool = False
    ) -> SaleRecord:
        record = await self._sale_repo.get_by_id(sale_id, for_update=for_update)
        if record is None:
            raise SaleNotFoundError(str(sale_id))
        return record

    async def _apply(
        self,
        sale_id: uuid.UUID,
        name: str,
        operation: Callable[[EscrowSale], SaleEvent],
    ) -> EscrowSale:
        """Run one protocol operation under the sale's lock and commit it."""
        journal = CollaboratorJournal(self._registry, self._ledger)
        with sale_log_context(sale_id, name):
            async with _lock_for(sale_id):
                try:
                    record = await self._get_record_or_raise(sale_id, for_update=True)
                    sale = to_domain(record, journal.registry, journal.ledger)
                    sale_event = operation(sale)
                    await self._sale_repo.save(record, sale)
                    await self._event_repo.record(sale_event)
                    await journal.persist(self._session)
                    await self._session.commit()
                except EscrowError as exc:
                    await self._session.rollback()
                    logger.info("escrow.operation_rejected", code=exc.code, error=exc.message)
                    raise
                except Exception:
                    await self._session.rollback()
                    journal.undo()
                    raise

            logger.debug("escrow.operation_applied", **sale_event.to_dict())
        return sale
