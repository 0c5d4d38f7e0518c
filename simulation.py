#!/usr/bin/env python3
"""Realty Escrow — End-to-End Simulation.

Simulates three sales of a registered house between Seller, Buyer, Lender
and Verifier parties, driven through the EscrowService:

    Scenario 1: Happy Path
        - Price 1000, deposit 200
        - Buyer deposits 250 (a later 100 deposit is rejected)
        - Lender pays the remaining 750
        - Verifier passes the inspection, all three parties approve
          (the seller's approval lets the sale's escrow account move the deed)
        - Administrator settles -> seller receives 1000, buyer owns the house

    Scenario 2: Lender Never Approves
        - Same setup, but the lender withholds approval
        - Settlement is refused with MISSING_APPROVAL; funds stay in escrow

    Scenario 3: Over-payment
        - Buyer deposits 250, lender tries to pay 800 of a 750 balance
        - Payment is refused with AMOUNT_EXCEEDS_OWED; nothing moves

Usage:
    # Option A: Configured database (DATABASE_URL, defaults to a local SQLite file):
    python simulation.py

    # Option B: SQLite in-memory:
    python simulation.py --sqlite

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 1
"""

from __future__ import annotations

import argparse
import asyncio
import uuid
from dataclasses import dataclass
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from realty_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from realty_escrow.domain.exceptions import EscrowError  # noqa: E402
from realty_escrow.ledger.funds_ledger import FundsLedger  # noqa: E402
from realty_escrow.registry.asset_registry import AssetRegistry  # noqa: E402
from realty_escrow.services.escrow_service import EscrowService  # noqa: E402
from realty_escrow.services.holdings_service import HoldingsService  # noqa: E402

REGISTRY_ADMIN = "registry-admin"

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import create_async_engine

        from realty_escrow.infrastructure.database.engine import make_session_factory
        from realty_escrow.infrastructure.database.orm_models import Base

        _sqlite_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
        _sqlite_session_factory = make_session_factory(_sqlite_engine)
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from realty_escrow.infrastructure.database.engine import init_db

        await init_db()


def get_session() -> Any:
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from realty_escrow.infrastructure.database.engine import _get_session_factory

    return _get_session_factory()()


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from realty_escrow.infrastructure.database.engine import close_db

        await close_db()


# ---------------------------------------------------------------------------
# The world: one registry, one ledger, five parties
# ---------------------------------------------------------------------------
@dataclass
class World:
    """Collaborators and party identities shared by one scenario."""

    registry: AssetRegistry
    ledger: FundsLedger
    administrator: str = "escrow-agent"
    seller: str = "seller-sam"
    buyer: str = "buyer-bea"
    lender: str = "lender-lou"
    verifier: str = "verifier-vic"

    @classmethod
    def fresh(cls) -> World:
        return cls(
            registry=AssetRegistry(administrator=REGISTRY_ADMIN),
            ledger=FundsLedger(),
        )

    def service(self, session: Any) -> EscrowService:
        return EscrowService(session, self.registry, self.ledger)

    def holdings(self, session: Any) -> HoldingsService:
        return HoldingsService(session, self.registry, self.ledger)


async def open_sale(world: World, session: Any) -> tuple[uuid.UUID, int]:
    """Fund the buyer and lender, register the house and open a 1000/200 sale."""
    holdings = world.holdings(session)
    await holdings.credit(world.buyer, 1_000)
    await holdings.credit(world.lender, 2_000)
    asset_id = await holdings.register_asset(
        REGISTRY_ADMIN,
        owner=world.seller,
        metadata={"address": "12 Harbour Lane", "parcel": "APN-0042"},
    )
    sale = await world.service(session).create_sale(
        administrator=world.administrator,
        asset_id=asset_id,
        seller=world.seller,
        buyer=world.buyer,
        lender=world.lender,
        verifier=world.verifier,
        purchase_amount=1_000,
        deposit_amount=200,
    )
    logger.info("🏠 SALE: opened", sale_id=sale.sale_id, asset_id=asset_id)
    return uuid.UUID(sale.sale_id), asset_id


async def attempt(label: str, coro: Any) -> Any:
    """Await a protocol call and report a rejection instead of raising."""
    try:
        result = await coro
    except EscrowError as exc:
        print(f"  ❌ {label}: rejected with {exc.code} ({exc.message})")
        return None
    print(f"  ✅ {label}")
    return result


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------
def section(title: str) -> None:
    print(f"\n{'─' * 70}\n  {title}\n{'─' * 70}")


async def print_status(world: World, session: Any, sale_id: uuid.UUID, asset_id: int) -> None:
    status = await world.service(session).get_status(sale_id)
    print(f"  status={status['status']} inspection={status['inspection_status']}")
    print(
        f"  remaining={status['remaining_amount']} custodied={status['custodied_funds']}"
    )
    print(f"  blockers={status['settlement_blockers']}")
    print(f"  owner of asset {asset_id}: {world.registry.owner_of(asset_id)}")
    for party in (world.seller, world.buyer, world.lender):
        print(f"  balance {party}: {world.ledger.balance_of(party)}")


async def print_audit_trail(world: World, session: Any, sale_id: uuid.UUID) -> None:
    section("Audit Trail")
    for evt in await world.service(session).get_events(sale_id):
        print(f"  #{evt.id} {evt.event_type:<20} by {evt.actor:<14} {evt.payload}")


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 1: Happy Path (deposit, lender payment, settlement)")
    print("=" * 70)

    world = World.fresh()
    async with get_session() as session:
        svc = world.service(session)
        sale_id, asset_id = await open_sale(world, session)

        section("Step 1: Payments")
        await attempt("buyer deposits 250", svc.pay_deposit(sale_id, world.buyer, 250))
        await attempt("buyer deposits 100", svc.pay_deposit(sale_id, world.buyer, 100))
        await attempt("lender pays 750", svc.pay_remaining(sale_id, world.lender, 750))

        section("Step 2: Inspection and approvals")
        await attempt(
            "verifier passes inspection",
            svc.update_inspection_status(sale_id, world.verifier, "PASSED"),
        )
        for party in (world.buyer, world.seller, world.lender):
            await attempt(f"{party} approves", svc.record_approval(sale_id, party, True))

        section("Step 3: Settlement")
        await attempt("administrator settles", svc.settle(sale_id, world.administrator))
        await print_status(world, session, sale_id, asset_id)
        await print_audit_trail(world, session, sale_id)


# ===========================================================================
# Scenario 2: Lender Never Approves
# ===========================================================================
async def scenario_2_missing_approval() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 2: Lender never approves")
    print("=" * 70)

    world = World.fresh()
    async with get_session() as session:
        svc = world.service(session)
        sale_id, asset_id = await open_sale(world, session)

        section("Step 1: Fully funded and inspected")
        await attempt("buyer deposits 250", svc.pay_deposit(sale_id, world.buyer, 250))
        await attempt("lender pays 750", svc.pay_remaining(sale_id, world.lender, 750))
        await attempt(
            "verifier passes inspection",
            svc.update_inspection_status(sale_id, world.verifier, "PASSED"),
        )
        for party in (world.buyer, world.seller):
            await attempt(f"{party} approves", svc.record_approval(sale_id, party, True))

        section("Step 2: Settlement attempt")
        await attempt("administrator settles", svc.settle(sale_id, world.administrator))
        await print_status(world, session, sale_id, asset_id)
        print("\n  🛡️  Funds stay in escrow and the seller keeps the house.")


# ===========================================================================
# Scenario 3: Over-payment
# ===========================================================================
async def scenario_3_over_payment() -> None:
    print("\n" + "=" * 70)
    print("  SCENARIO 3: Over-payment")
    print("=" * 70)

    world = World.fresh()
    async with get_session() as session:
        svc = world.service(session)
        sale_id, asset_id = await open_sale(world, session)

        section("Step 1: Payments")
        await attempt("buyer deposits 250", svc.pay_deposit(sale_id, world.buyer, 250))
        await attempt("lender pays 800", svc.pay_remaining(sale_id, world.lender, 800))
        await print_status(world, session, sale_id, asset_id)
        await print_audit_trail(world, session, sale_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_missing_approval,
    3: scenario_3_over_payment,
}


async def run_all(use_sqlite: bool = False) -> None:
    """Run all scenarios sequentially."""
    await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🏠" * 35)
        print("  REALTY ESCROW — SIMULATION")
        db_type = "SQLite (in-memory)" if use_sqlite else "configured database"
        print(f"  Database: {db_type}")
        print("🏠" * 35 + "\n")

        for scenario in SCENARIOS.values():
            await scenario()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED")
        print("=" * 70 + "\n")

    finally:
        await shutdown_database()


async def run_scenario(num: int, use_sqlite: bool = False) -> None:
    """Run a specific scenario."""
    await init_database(use_sqlite=use_sqlite)

    try:
        if num not in SCENARIOS:
            print(f"Unknown scenario {num}. Available: 1, 2, 3")
            return
        await SCENARIOS[num]()
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Realty Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of the configured database.",
    )
    args = parser.parse_args()

    if args.scenario == 0:
        asyncio.run(run_all(use_sqlite=args.sqlite))
    else:
        asyncio.run(run_scenario(args.scenario, use_sqlite=args.sqlite))
