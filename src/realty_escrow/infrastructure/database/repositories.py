"""Repository classes for database access.

Repositories encapsulate all SQL queries and the mapping between ORM records
and the domain objects (EscrowSale, registry assets, ledger balances). They
accept an AsyncSession and never manage their own transactions (that's the
caller's responsibility).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from realty_escrow.domain.sale import EscrowSale
from realty_escrow.infrastructure.database.orm_models import (
    LedgerAccountRecord,
    RegisteredAssetRecord,
    SaleEventRecord,
    SaleRecord,
)
from realty_escrow.registry.asset_registry import AssetRecord

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from realty_escrow.domain.enums import SaleStatus
    from realty_escrow.domain.events import SaleEvent
    from realty_escrow.domain.ports import AssetRegistryPort, FundsLedgerPort


def to_domain(
    record: SaleRecord,
    registry: AssetRegistryPort,
    ledger: FundsLedgerPort,
) -> EscrowSale:
    """Rehydrate an EscrowSale from its stored record."""
    return EscrowSale(
        sale_id=str(record.id),
        administrator=record.administrator,
        asset_id=record.asset_id,
        seller=record.seller,
        buyer=record.buyer,
        lender=record.lender,
        verifier=record.verifier,
        purchase_amount=record.purchase_amount,
        deposit_amount=record.deposit_amount,
        registry=registry,
        ledger=ledger,
        remaining_amount=record.remaining_amount,
        custodied_funds=record.custodied_funds,
        approvals=dict(record.approvals or {}),
        inspection_status=record.inspection_status,
        status=record.status,
    )


class SaleRepository:
    """Data access for sale records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, sale: EscrowSale) -> SaleRecord:
        """Insert the record for a newly opened sale."""
        record = SaleRecord(
            id=uuid.UUID(sale.sale_id),
            asset_id=sale.asset_id,
            administrator=sale.administrator,
            seller=sale.seller,
            buyer=sale.buyer,
            lender=sale.lender,
            verifier=sale.verifier,
            purchase_amount=sale.purchase_amount,
            deposit_amount=sale.deposit_amount,
            remaining_amount=sale.remaining_amount,
            custodied_funds=sale.custodied_funds,
            approvals=dict(sale.approvals),
            inspection_status=sale.inspection_status.value,
            status=sale.status.value,
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def get_by_id(
        self,
        sale_id: uuid.UUID,
        for_update: bool = False,
    ) -> SaleRecord | None:
        """Fetch a sale by its UUID, optionally taking a row lock."""
        stmt = select(SaleRecord).where(SaleRecord.id == sale_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_status(self, status: SaleStatus) -> list[SaleRecord]:
        """Fetch all sales with a given status."""
        result = await self._session.execute(
            select(SaleRecord)
            .where(SaleRecord.status == status.value)
            .order_by(SaleRecord.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_by_party(self, party: str) -> list[SaleRecord]:
        """Fetch every sale in which ``party`` holds a role."""
        result = await self._session.execute(
            select(SaleRecord)
            .where(
                or_(
                    SaleRecord.seller == party,
                    SaleRecord.buyer == party,
                    SaleRecord.lender == party,
                    SaleRecord.verifier == party,
                    SaleRecord.administrator == party,
                )
            )
            .order_by(SaleRecord.created_at.desc())
        )
        return list(result.scalars().all())

    async def save(self, record: SaleRecord, sale: EscrowSale) -> SaleRecord:
        """Write the mutable fields of ``sale`` back onto its record."""
        record.purchase_amount = sale.purchase_amount
        record.deposit_amount = sale.deposit_amount
        record.remaining_amount = sale.remaining_amount
        record.custodied_funds = sale.custodied_funds
        # Reassign so the JSON column is flagged dirty
        record.approvals = dict(sale.approvals)
        record.inspection_status = sale.inspection_status.value
        record.status = sale.status.value
        record.updated_at = datetime.now(UTC)
        await self._session.flush()
        return record


class EventRepository:
    """Data access for the append-only audit event log."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, sale_event: SaleEvent) -> SaleEventRecord:
        """Append a new audit event. This is the ONLY write operation allowed."""
        evt = SaleEventRecord(
            sale_id=uuid.UUID(sale_event.sale_id),
            event_type=sale_event.event_type.value,
            actor=sale_event.actor,
            payload=sale_event.payload,
            created_at=sale_event.created_at,
        )
        self._session.add(evt)
        await self._session.flush()
        return evt

    async def get_by_sale(self, sale_id: uuid.UUID) -> list[SaleEventRecord]:
        """Fetch all events for a sale in the order they were appended."""
        result = await self._session.execute(
            select(SaleEventRecord)
            .where(SaleEventRecord.sale_id == sale_id)
            .order_by(SaleEventRecord.id.asc())
        )
        return list(result.scalars().all())


class LedgerAccountRepository:
    """Data access for persisted ledger balances."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def apply_delta(self, party: str, delta: int) -> LedgerAccountRecord:
        """Add ``delta`` to a party's stored balance, creating the row if needed.

        Each operation writes only its own change, so two sales touching the
        same party may commit in either order.
        """
        record = await self._session.get(
            LedgerAccountRecord, party, with_for_update=True, populate_existing=True
        )
        if record is None:
            record = LedgerAccountRecord(party=party, balance=delta)
            self._session.add(record)
        else:
            record.balance += delta
        await self._session.flush()
        return record

    async def get_all(self) -> dict[str, int]:
        """Every stored balance keyed by party."""
        result = await self._session.execute(select(LedgerAccountRecord))
        return {r.party: r.balance for r in result.scalars().all()}


class AssetRepository:
    """Data access for persisted registry assets."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save(self, asset: AssetRecord) -> RegisteredAssetRecord:
        """Insert or overwrite the stored state of one asset."""
        record = await self._session.get(RegisteredAssetRecord, asset.asset_id)
        if record is None:
            record = RegisteredAssetRecord(asset_id=asset.asset_id)
            self._session.add(record)
        record.owner = asset.owner
        record.asset_metadata = dict(asset.metadata)
        record.approved_operator = asset.approved_operator
        await self._session.flush()
        return record

    async def get_all(self) -> list[AssetRecord]:
        """Every stored asset, in registration order."""
        result = await self._session.execute(
            select(RegisteredAssetRecord).order_by(RegisteredAssetRecord.asset_id.asc())
        )
        return [
            AssetRecord(
                asset_id=r.asset_id,
                owner=r.owner,
                metadata=dict(r.asset_metadata or {}),
                approved_operator=r.approved_operator,
            )
            for r in result.scalars().all()
        ]
