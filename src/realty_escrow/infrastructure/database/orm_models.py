"""SQLAlchemy 2.0 ORM models for Realty Escrow.

Four tables:
    1. sales            — One record per escrow instance (the Sale fields).
    2. sale_events      — Append-only audit log of every operation on a sale.
    3. ledger_accounts  — Balance of every party, escrow accounts included.
    4. assets           — Registered assets: owner, metadata, approved operator.

Design decisions:
    - Portable column types (Uuid, JSON, BigInteger) so the same models run
      on PostgreSQL in production and SQLite in development and tests.
    - Integer currency amounts (no fractional units).
    - Approvals stored as a JSON object keyed by party identity.
    - CHECK constraints mirror the payment accounting invariants.
    - sale_events is append-only and ordered by its autoincrement id.
    - ledger_accounts and assets are written in the same transaction as the
      sale they changed, and reloaded into the in-memory collaborators on
      startup.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = datetime.now(UTC)


# ---------------------------------------------------------------------------
# 1. sales
# ---------------------------------------------------------------------------
class SaleRecord(Base):
    """Persisted state of one escrowed sale."""

    __tablename__ = "sales"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Asset ---
    asset_id: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Identifier of the asset in the asset registry",
    )

    # --- Parties ---
    administrator: Mapped[str] = mapped_column(String(128), nullable=False)
    seller: Mapped[str] = mapped_column(String(128), nullable=False)
    buyer: Mapped[str] = mapped_column(String(128), nullable=False)
    lender: Mapped[str] = mapped_column(String(128), nullable=False)
    verifier: Mapped[str] = mapped_column(String(128), nullable=False)

    # --- Payment accounting ---
    purchase_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deposit_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    remaining_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    custodied_funds: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # --- Gates ---
    approvals: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Approval flag per party identity",
    )
    inspection_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="INITIATED",
        comment="Inspection gate (guarded by InspectionStateMachine)",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="OPEN",
        comment="Sale lifecycle (guarded by SaleStateMachine)",
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('OPEN', 'SETTLED')",
            name="ck_sale_valid_status",
        ),
        CheckConstraint(
            "inspection_status IN ('INITIATED', 'PASSED', 'FAILED')",
            name="ck_sale_valid_inspection",
        ),
        CheckConstraint(
            "purchase_amount > 0 AND deposit_amount > 0",
            name="ck_sale_positive_amounts",
        ),
        CheckConstraint(
            "remaining_amount >= 0 AND custodied_funds >= 0",
            name="ck_sale_non_negative_accounting",
        ),
        Index("idx_sale_status", "status"),
        Index("idx_sale_asset", "asset_id"),
        Index("idx_sale_buyer", "buyer"),
        Index("idx_sale_seller", "seller"),
    )

    def __repr__(self) -> str:
        return (
            f"<SaleRecord id={self.id} asset={self.asset_id} status={self.status} "
            f"custodied={self.custodied_funds}/{self.purchase_amount}>"
        )


# ---------------------------------------------------------------------------
# 2. sale_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class SaleEventRecord(Base):
    """Immutable audit record of one operation on a sale.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "sale_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    sale_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., DEPOSIT_PAID, SALE_SETTLED)",
    )
    actor: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Identity that triggered the event",
    )
    payload: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
        default=None,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_event_sale", "sale_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return f"<SaleEventRecord id={self.id} sale={self.sale_id} type={self.event_type}>"


# ---------------------------------------------------------------------------
# 3. ledger_accounts
# ---------------------------------------------------------------------------
class LedgerAccountRecord(Base):
    """Persisted balance of one ledger account."""

    __tablename__ = "ledger_accounts"

    party: Mapped[str] = mapped_column(String(160), primary_key=True)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return f"<LedgerAccountRecord party={self.party} balance={self.balance}>"


# ---------------------------------------------------------------------------
# 4. assets
# ---------------------------------------------------------------------------
class RegisteredAssetRecord(Base):
    """Persisted state of one registry asset."""

    __tablename__ = "assets"

    asset_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    owner: Mapped[str] = mapped_column(String(128), nullable=False)
    asset_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    approved_operator: Mapped[str | None] = mapped_column(
        String(160),
        nullable=True,
        comment="Single identity allowed to move the asset on the owner's behalf",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_asset_owner", "owner"),)

    def __repr__(self) -> str:
        return f"<RegisteredAssetRecord id={self.asset_id} owner={self.owner}>"


event.listen(SaleRecord, "before_update", _set_updated_at)
event.listen(LedgerAccountRecord, "before_update", _set_updated_at)
event.listen(RegisteredAssetRecord, "before_update", _set_updated_at)
