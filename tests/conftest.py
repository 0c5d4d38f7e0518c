"""Shared test fixtures for the Realty Escrow test suite.

Provides:
    - Party identities and an in-memory registry/ledger pair
    - A registered asset and an open 1000/200 sale over it
    - A session factory over a throwaway SQLite database (aiosqlite)
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from realty_escrow.domain.sale import EscrowSale
from realty_escrow.infrastructure.database.engine import make_session_factory
from realty_escrow.infrastructure.database.orm_models import Base
from realty_escrow.ledger.funds_ledger import FundsLedger
from realty_escrow.registry.asset_registry import AssetRegistry

REGISTRY_ADMIN = "registry-admin"
PURCHASE_AMOUNT = 1_000
DEPOSIT_AMOUNT = 200


@dataclass(frozen=True)
class Parties:
    administrator: str = "escrow-agent"
    seller: str = "seller-sam"
    buyer: str = "buyer-bea"
    lender: str = "lender-lou"
    verifier: str = "verifier-vic"
    outsider: str = "mallory"


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def parties() -> Parties:
    return Parties()


@pytest.fixture
def registry() -> AssetRegistry:
    return AssetRegistry(administrator=REGISTRY_ADMIN)


@pytest.fixture
def ledger(parties: Parties) -> FundsLedger:
    """Ledger where the buyer and lender can each cover the full price."""
    return FundsLedger(
        {
            parties.buyer: PURCHASE_AMOUNT,
            parties.lender: PURCHASE_AMOUNT,
            parties.outsider: PURCHASE_AMOUNT,
        }
    )


@pytest.fixture
def asset_id(registry: AssetRegistry, parties: Parties) -> int:
    """A house registered to the seller."""
    return registry.register(
        REGISTRY_ADMIN,
        owner=parties.seller,
        metadata={"address": "12 Harbour Lane", "parcel": "APN-0042"},
    )


@pytest.fixture
def sale(
    registry: AssetRegistry,
    ledger: FundsLedger,
    asset_id: int,
    parties: Parties,
) -> EscrowSale:
    """An open 1000/200 sale whose escrow account may move the seller's house."""
    new_sale = EscrowSale.create(
        parties.administrator,
        registry,
        ledger,
        asset_id=asset_id,
        seller=parties.seller,
        buyer=parties.buyer,
        lender=parties.lender,
        verifier=parties.verifier,
        purchase_amount=PURCHASE_AMOUNT,
        deposit_amount=DEPOSIT_AMOUNT,
    )
    registry.approve(parties.seller, new_sale.escrow_account, asset_id)
    return new_sale


@pytest.fixture
def ready_sale(sale: EscrowSale, parties: Parties) -> EscrowSale:
    """A sale with every settlement precondition met."""
    sale.pay_deposit(parties.buyer, 250)
    sale.pay_remaining(parties.lender, 750)
    sale.update_inspection_status(parties.verifier, "PASSED")
    for party in (parties.buyer, parties.seller, parties.lender):
        sale.record_approval(party, True)
    return sale


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file with all tables created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()
