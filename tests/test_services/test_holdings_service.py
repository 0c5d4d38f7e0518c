"""Tests for the HoldingsService: registry and ledger writes outside a sale."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from realty_escrow.domain.exceptions import InvalidAmountError, UnauthorizedError
from realty_escrow.infrastructure.database.repositories import (
    AssetRepository,
    LedgerAccountRepository,
)
from realty_escrow.ledger.funds_ledger import FundsLedger
from realty_escrow.registry.asset_registry import AssetRegistry
from realty_escrow.services.holdings_service import HoldingsService

ADMIN = "registry-admin"


async def _broken_commit(self) -> None:
    raise OperationalError("COMMIT", {}, Exception("database is locked"))


async def _stored_assets(session_factory):
    async with session_factory() as session:
        return await AssetRepository(session).get_all()


async def _stored_balances(session_factory) -> dict[str, int]:
    async with session_factory() as session:
        return await LedgerAccountRepository(session).get_all()


class TestRegisterAsset:
    @pytest.mark.asyncio
    async def test_registration_is_stored(self, session_factory, parties) -> None:
        registry = AssetRegistry(administrator=ADMIN)
        async with session_factory() as session:
            asset_id = await HoldingsService(session, registry, FundsLedger()).register_asset(
                ADMIN, parties.seller, {"parcel": "APN-0042"}
            )

        [stored] = await _stored_assets(session_factory)
        assert stored.asset_id == asset_id
        assert stored.owner == parties.seller
        assert stored.metadata == {"parcel": "APN-0042"}
        assert stored.approved_operator is None

    @pytest.mark.asyncio
    async def test_only_administrator_registers(self, session_factory, parties) -> None:
        registry = AssetRegistry(administrator=ADMIN)
        async with session_factory() as session:
            with pytest.raises(UnauthorizedError):
                await HoldingsService(session, registry, FundsLedger()).register_asset(
                    parties.seller, parties.seller
                )
        assert await _stored_assets(session_factory) == []

    @pytest.mark.asyncio
    async def test_failed_commit_forgets_asset(
        self, session_factory, parties, monkeypatch
    ) -> None:
        registry = AssetRegistry(administrator=ADMIN)
        monkeypatch.setattr(AsyncSession, "commit", _broken_commit)
        async with session_factory() as session:
            with pytest.raises(OperationalError):
                await HoldingsService(session, registry, FundsLedger()).register_asset(
                    ADMIN, parties.seller
                )
        monkeypatch.undo()

        assert registry.assets_of(parties.seller) == []
        assert await _stored_assets(session_factory) == []
        # ids are never reused
        assert registry.register(ADMIN, parties.seller) == 2


class TestApproveOperator:
    @pytest.mark.asyncio
    async def test_grant_is_stored(self, session_factory, registry, asset_id, parties) -> None:
        async with session_factory() as session:
            await HoldingsService(session, registry, FundsLedger()).approve_operator(
                parties.seller, "escrow:abc", asset_id
            )

        [stored] = await _stored_assets(session_factory)
        assert stored.approved_operator == "escrow:abc"
        assert registry.approved_operator(asset_id) == "escrow:abc"

    @pytest.mark.asyncio
    async def test_failed_commit_restores_previous_operator(
        self, session_factory, registry, asset_id, parties, monkeypatch
    ) -> None:
        registry.approve(parties.seller, "escrow:old", asset_id)

        monkeypatch.setattr(AsyncSession, "commit", _broken_commit)
        async with session_factory() as session:
            with pytest.raises(OperationalError):
                await HoldingsService(session, registry, FundsLedger()).approve_operator(
                    parties.seller, "escrow:new", asset_id
                )
        monkeypatch.undo()

        assert registry.approved_operator(asset_id) == "escrow:old"

    @pytest.mark.asyncio
    async def test_non_owner_rejected(self, session_factory, registry, asset_id, parties) -> None:
        async with session_factory() as session:
            with pytest.raises(UnauthorizedError):
                await HoldingsService(session, registry, FundsLedger()).approve_operator(
                    parties.outsider, parties.outsider, asset_id
                )
        assert registry.approved_operator(asset_id) is None


class TestCredit:
    @pytest.mark.asyncio
    async def test_credit_is_stored(self, session_factory, registry, parties) -> None:
        ledger = FundsLedger()
        async with session_factory() as session:
            holdings = HoldingsService(session, registry, ledger)
            assert await holdings.credit(parties.buyer, 600) == 600
            assert await holdings.credit(parties.buyer, 400) == 1_000

        assert await _stored_balances(session_factory) == {parties.buyer: 1_000}
        assert ledger.balance_of(parties.buyer) == 1_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -10, True])
    async def test_invalid_amount(self, session_factory, registry, parties, amount) -> None:
        ledger = FundsLedger()
        async with session_factory() as session:
            with pytest.raises(InvalidAmountError):
                await HoldingsService(session, registry, ledger).credit(parties.buyer, amount)
        assert await _stored_balances(session_factory) == {}

    @pytest.mark.asyncio
    async def test_failed_commit_leaves_balance(
        self, session_factory, registry, parties, monkeypatch
    ) -> None:
        ledger = FundsLedger()
        monkeypatch.setattr(AsyncSession, "commit", _broken_commit)
        async with session_factory() as session:
            with pytest.raises(OperationalError):
                await HoldingsService(session, registry, ledger).credit(parties.buyer, 500)
        monkeypatch.undo()

        assert ledger.balance_of(parties.buyer) == 0
        assert await _stored_balances(session_factory) == {}
