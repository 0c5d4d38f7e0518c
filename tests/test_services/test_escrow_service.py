"""Tests for the EscrowService against a real SQLite database (aiosqlite).

Each step of a scenario runs on a fresh session, the way each HTTP request
does, so every assertion reads what was actually committed.
"""

from __future__ import annotations

import asyncio
import gc
import uuid

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from realty_escrow.domain.enums import SaleStatus
from realty_escrow.domain.exceptions import (
    EscrowError,
    MissingApprovalError,
    OperatorNotApprovedError,
    SaleNotFoundError,
    SaleSettledError,
    UnauthorizedError,
)
from realty_escrow.infrastructure.collaborators import (
    get_asset_registry,
    get_funds_ledger,
    load_collaborators,
    reset_collaborators,
)
from realty_escrow.ledger.funds_ledger import FundsLedger
from realty_escrow.registry.asset_registry import AssetRegistry
from realty_escrow.services.escrow_service import EscrowService, _sale_locks
from realty_escrow.services.holdings_service import HoldingsService

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def new_service(session_factory, registry, ledger):
    """Return a callable that builds an EscrowService on a fresh session."""
    sessions = []

    def factory() -> EscrowService:
        session = session_factory()
        sessions.append(session)
        return EscrowService(session, registry, ledger)

    yield factory
    for session in sessions:
        await session.close()


async def _open_sale(new_service, registry, asset_id, parties) -> uuid.UUID:
    sale = await new_service().create_sale(
        administrator=parties.administrator,
        asset_id=asset_id,
        seller=parties.seller,
        buyer=parties.buyer,
        lender=parties.lender,
        verifier=parties.verifier,
        purchase_amount=1_000,
        deposit_amount=200,
    )
    registry.approve(parties.seller, sale.escrow_account, asset_id)
    return uuid.UUID(sale.sale_id)


async def _make_ready(new_service, sale_id: uuid.UUID, parties) -> None:
    await new_service().pay_deposit(sale_id, parties.buyer, 250)
    await new_service().pay_remaining(sale_id, parties.lender, 750)
    await new_service().update_inspection_status(sale_id, parties.verifier, "PASSED")
    for party in (parties.buyer, parties.seller, parties.lender):
        await new_service().record_approval(sale_id, party, True)


async def _broken_commit(self) -> None:
    raise OperationalError("COMMIT", {}, Exception("disk I/O error"))


# ---------------------------------------------------------------------------
# Creation and reads
# ---------------------------------------------------------------------------


class TestCreateSale:
    @pytest.mark.asyncio
    async def test_persists_sale_and_event(
        self, new_service, registry, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)

        sale = await new_service().get_sale(sale_id)
        assert sale.administrator == parties.administrator
        assert sale.asset_id == asset_id
        assert sale.remaining_amount == 1_000
        assert sale.custodied_funds == 0

        events = await new_service().get_events(sale_id)
        assert [e.event_type for e in events] == ["SALE_CREATED"]
        assert events[0].actor == parties.administrator

    @pytest.mark.asyncio
    async def test_status_of_fresh_sale(self, new_service, registry, asset_id, parties) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)

        status = await new_service().get_status(sale_id)

        assert status["status"] == "OPEN"
        assert status["allowed_actions"] == ["settle"]
        assert status["escrow_account"] == f"escrow:{sale_id}"
        assert status["settlement_blockers"] == [
            "INSPECTION_NOT_PASSED",
            "MISSING_APPROVAL",
            "PAYMENT_INCOMPLETE",
            "BALANCE_MISMATCH",
        ]

    @pytest.mark.asyncio
    async def test_unknown_sale(self, new_service, parties) -> None:
        missing = uuid.uuid4()
        with pytest.raises(SaleNotFoundError):
            await new_service().get_sale(missing)
        with pytest.raises(SaleNotFoundError):
            await new_service().get_events(missing)
        with pytest.raises(SaleNotFoundError):
            await new_service().pay_deposit(missing, parties.buyer, 250)


# ---------------------------------------------------------------------------
# Protocol operations
# ---------------------------------------------------------------------------


class TestOperations:
    @pytest.mark.asyncio
    async def test_payments_are_committed(
        self, new_service, registry, ledger, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)

        await new_service().pay_deposit(sale_id, parties.buyer, 250)

        sale = await new_service().get_sale(sale_id)
        assert (sale.remaining_amount, sale.custodied_funds) == (750, 250)
        assert await new_service().get_balance(sale_id) == 250
        assert new_service().get_balance_of(sale.escrow_account) == 250
        assert ledger.balance_of(parties.buyer) == 750

    @pytest.mark.asyncio
    async def test_approvals_survive_reload(
        self, new_service, registry, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)

        await new_service().record_approval(sale_id, parties.seller, True)
        await new_service().record_approval(sale_id, parties.outsider, False)

        sale = await new_service().get_sale(sale_id)
        assert sale.approvals == {parties.seller: True, parties.outsider: False}

    @pytest.mark.asyncio
    async def test_rejected_operation_leaves_no_trace(
        self, new_service, registry, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)

        with pytest.raises(UnauthorizedError):
            await new_service().pay_deposit(sale_id, parties.lender, 250)

        sale = await new_service().get_sale(sale_id)
        assert sale.custodied_funds == 0
        assert len(await new_service().get_events(sale_id)) == 1

    @pytest.mark.asyncio
    async def test_overrides(self, new_service, registry, asset_id, parties) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)

        await new_service().set_purchase_amount(sale_id, parties.administrator, 1_200)
        await new_service().set_deposit_amount(sale_id, parties.administrator, 300)

        sale = await new_service().get_sale(sale_id)
        assert (sale.purchase_amount, sale.deposit_amount) == (1_200, 300)
        assert sale.remaining_amount == 1_000

    @pytest.mark.asyncio
    async def test_lender_never_approves(
        self, new_service, registry, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)
        await _make_ready(new_service, sale_id, parties)
        await new_service().record_approval(sale_id, parties.lender, False)

        with pytest.raises(MissingApprovalError):
            await new_service().settle(sale_id, parties.administrator)

        status = await new_service().get_status(sale_id)
        assert status["settlement_blockers"] == ["MISSING_APPROVAL"]
        assert status["custodied_funds"] == 1_000
        assert registry.owner_of(asset_id) == parties.seller


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


class TestSettle:
    @pytest.mark.asyncio
    async def test_full_lifecycle(
        self, new_service, registry, ledger, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)
        await _make_ready(new_service, sale_id, parties)

        sale = await new_service().settle(sale_id, parties.administrator)

        assert sale.is_settled
        assert registry.owner_of(asset_id) == parties.buyer
        assert ledger.balance_of(parties.seller) == 1_000

        status = await new_service().get_status(sale_id)
        assert status["status"] == "SETTLED"
        assert status["custodied_funds"] == 0
        assert status["allowed_actions"] == []
        assert status["settlement_blockers"] == []

        events = await new_service().get_events(sale_id)
        assert [e.event_type for e in events] == [
            "SALE_CREATED",
            "DEPOSIT_PAID",
            "REMAINING_PAID",
            "INSPECTION_UPDATED",
            "APPROVAL_RECORDED",
            "APPROVAL_RECORDED",
            "APPROVAL_RECORDED",
            "SALE_SETTLED",
        ]
        assert events[-1].payload["amount"] == 1_000

    @pytest.mark.asyncio
    async def test_settled_sale_rejects_everything(
        self, new_service, registry, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)
        await _make_ready(new_service, sale_id, parties)
        await new_service().settle(sale_id, parties.administrator)

        with pytest.raises(SaleSettledError):
            await new_service().settle(sale_id, parties.administrator)
        with pytest.raises(SaleSettledError):
            await new_service().record_approval(sale_id, parties.buyer, True)

        assert len(await new_service().get_events(sale_id)) == 8

    @pytest.mark.asyncio
    async def test_list_sales_by_status_and_party(
        self, new_service, registry, asset_id, parties
    ) -> None:
        still_open = await _open_sale(new_service, registry, asset_id, parties)
        settled = await _open_sale(new_service, registry, asset_id, parties)
        await _make_ready(new_service, settled, parties)
        await new_service().settle(settled, parties.administrator)

        open_ids = [s.sale_id for s in await new_service().list_sales()]
        assert open_ids == [str(still_open)]

        buyer_settled = await new_service().list_sales(SaleStatus.SETTLED, party=parties.buyer)
        assert [s.sale_id for s in buyer_settled] == [str(settled)]

        assert await new_service().list_sales(party=parties.outsider) == []

    @pytest.mark.asyncio
    async def test_revoked_operator_reported_in_status(
        self, new_service, registry, ledger, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)
        await _make_ready(new_service, sale_id, parties)
        registry.approve(parties.seller, None, asset_id)

        status = await new_service().get_status(sale_id)
        assert status["settlement_blockers"] == ["OPERATOR_NOT_APPROVED"]
        with pytest.raises(OperatorNotApprovedError):
            await new_service().settle(sale_id, parties.administrator)
        assert ledger.balance_of(parties.seller) == 0


# ---------------------------------------------------------------------------
# Mutual exclusion
# ---------------------------------------------------------------------------


@pytest.mark.concurrency
class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_payments_are_serialized(
        self, new_service, registry, ledger, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)
        await new_service().pay_deposit(sale_id, parties.buyer, 250)

        async def pay() -> str:
            try:
                await new_service().pay_remaining(sale_id, parties.lender, 50)
            except EscrowError as exc:
                return exc.code
            return "OK"

        results = await asyncio.gather(*(pay() for _ in range(20)))

        assert results.count("OK") == 15
        assert results.count("NOTHING_OWED") == 5

        sale = await new_service().get_sale(sale_id)
        assert (sale.remaining_amount, sale.custodied_funds) == (0, 1_000)
        assert ledger.balance_of(sale.escrow_account) == 1_000
        assert len(await new_service().get_events(sale_id)) == 17

    @pytest.mark.asyncio
    async def test_sale_lock_dropped_when_idle(
        self, new_service, registry, asset_id, parties
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)
        await new_service().pay_deposit(sale_id, parties.buyer, 250)
        with pytest.raises(UnauthorizedError):
            await new_service().pay_deposit(sale_id, parties.lender, 250)

        gc.collect()
        assert sale_id not in _sale_locks


# ---------------------------------------------------------------------------
# Storage failures and restarts
# ---------------------------------------------------------------------------


class TestCommitFailure:
    @pytest.mark.asyncio
    async def test_payment_undone_when_commit_fails(
        self, new_service, registry, ledger, asset_id, parties, monkeypatch
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)

        monkeypatch.setattr(AsyncSession, "commit", _broken_commit)
        with pytest.raises(OperationalError):
            await new_service().pay_deposit(sale_id, parties.buyer, 250)
        monkeypatch.undo()

        sale = await new_service().get_sale(sale_id)
        assert sale.custodied_funds == 0
        assert sale.get_balance() == 0
        assert ledger.balance_of(parties.buyer) == 1_000
        assert len(await new_service().get_events(sale_id)) == 1

        # Once storage recovers the same deposit goes through
        await new_service().pay_deposit(sale_id, parties.buyer, 250)
        assert ledger.balance_of(sale.escrow_account) == 250

    @pytest.mark.asyncio
    async def test_settlement_undone_when_commit_fails(
        self, new_service, registry, ledger, asset_id, parties, monkeypatch
    ) -> None:
        sale_id = await _open_sale(new_service, registry, asset_id, parties)
        await _make_ready(new_service, sale_id, parties)
        escrow = f"escrow:{sale_id}"

        monkeypatch.setattr(AsyncSession, "commit", _broken_commit)
        with pytest.raises(OperationalError):
            await new_service().settle(sale_id, parties.administrator)
        monkeypatch.undo()

        assert registry.owner_of(asset_id) == parties.seller
        assert registry.approved_operator(asset_id) == escrow
        assert ledger.balance_of(parties.seller) == 0
        assert ledger.balance_of(escrow) == 1_000

        status = await new_service().get_status(sale_id)
        assert status["status"] == "OPEN"
        assert status["settlement_blockers"] == []

        sale = await new_service().settle(sale_id, parties.administrator)
        assert sale.is_settled
        assert registry.owner_of(asset_id) == parties.buyer


class TestRestart:
    @pytest.mark.asyncio
    async def test_collaborators_reload_from_committed_state(
        self, session_factory, parties
    ) -> None:
        registry = AssetRegistry(administrator="registry-admin")
        ledger = FundsLedger()
        async with session_factory() as session:
            holdings = HoldingsService(session, registry, ledger)
            asset_id = await holdings.register_asset(
                "registry-admin", parties.seller, {"parcel": "APN-0042"}
            )
            await holdings.credit(parties.buyer, 1_000)
            await holdings.credit(parties.lender, 1_000)

        async with session_factory() as session:
            service = EscrowService(session, registry, ledger)
            sale = await service.create_sale(
                administrator=parties.administrator,
                asset_id=asset_id,
                seller=parties.seller,
                buyer=parties.buyer,
                lender=parties.lender,
                verifier=parties.verifier,
                purchase_amount=1_000,
                deposit_amount=200,
            )
            sale_id = uuid.UUID(sale.sale_id)
            await service.pay_deposit(sale_id, parties.buyer, 250)
            await service.record_approval(sale_id, parties.seller, True)

        reset_collaborators()
        try:
            async with session_factory() as session:
                await load_collaborators(session)
            registry = get_asset_registry()
            ledger = get_funds_ledger()

            assert registry.owner_of(asset_id) == parties.seller
            assert registry.approved_operator(asset_id) == sale.escrow_account
            assert registry.metadata_of(asset_id) == {"parcel": "APN-0042"}
            assert ledger.balance_of(parties.buyer) == 750

            async with session_factory() as session:
                service = EscrowService(session, registry, ledger)
                stored = await service.get_sale(sale_id)
                assert stored.get_balance() == stored.custodied_funds == 250

                await service.pay_remaining(sale_id, parties.lender, 750)
                await service.update_inspection_status(sale_id, parties.verifier, "PASSED")
                await service.record_approval(sale_id, parties.buyer, True)
                await service.record_approval(sale_id, parties.lender, True)
                settled = await service.settle(sale_id, parties.administrator)

            assert settled.is_settled
            assert registry.owner_of(asset_id) == parties.buyer
            assert ledger.balance_of(parties.seller) == 1_000
            assert registry.register("registry-admin", parties.outsider) == asset_id + 1
        finally:
            reset_collaborators()
