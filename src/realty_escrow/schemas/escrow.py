"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API. They are
separate from the ORM models and the domain EscrowSale to maintain clean
boundaries between the API, domain and database layers.

Every request that acts on behalf of a party carries that party's identity
in ``caller``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from realty_escrow.domain.enums import InspectionStatus

Identity = Annotated[
    str,
    Field(
        min_length=1,
        max_length=128,
        description="Identity of the party issuing the call",
        examples=["buyer-0x742d"],
    ),
]

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateSaleRequest(BaseModel):
    """Request body for opening a new sale. ``caller`` becomes the administrator."""

    caller: Identity
    asset_id: int = Field(..., ge=1, description="Registry identifier of the asset")
    seller: str = Field(..., min_length=1, max_length=128)
    buyer: str = Field(..., min_length=1, max_length=128)
    lender: str = Field(..., min_length=1, max_length=128)
    verifier: str = Field(..., min_length=1, max_length=128)
    purchase_amount: int = Field(..., gt=0, description="Total price in currency units")
    deposit_amount: int = Field(..., gt=0, description="Minimum first payment by the buyer")


class ApprovalRequest(BaseModel):
    """Request body for recording the caller's approval."""

    caller: Identity
    approved: bool = True


class PaymentRequest(BaseModel):
    """Request body for a deposit or remaining payment."""

    caller: Identity
    amount: int = Field(..., description="Amount in currency units")


class InspectionRequest(BaseModel):
    """Request body for the verifier's inspection update."""

    caller: Identity
    status: InspectionStatus


class AmountOverrideRequest(BaseModel):
    """Request body for an administrator amount override."""

    caller: Identity
    amount: int = Field(..., description="New amount in currency units (must be > 0)")


class SettleRequest(BaseModel):
    """Request body for settlement."""

    caller: Identity


class RegisterAssetRequest(BaseModel):
    """Request body for registering a new asset."""

    caller: Identity
    owner: str = Field(..., min_length=1, max_length=128)
    metadata: dict = Field(
        default_factory=dict,
        examples=[{"address": "12 Harbour Lane", "parcel": "APN-0042"}],
    )


class ApproveOperatorRequest(BaseModel):
    """Request body for granting an operator the right to transfer an asset."""

    caller: Identity
    operator: str | None = Field(
        default=None,
        max_length=128,
        description="Operator identity (e.g. a sale's escrow account); null revokes",
    )


class CreditRequest(BaseModel):
    """Request body for crediting a ledger account (development only)."""

    amount: int = Field(..., gt=0)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class SaleResponse(BaseModel):
    """Response schema for a sale snapshot."""

    sale_id: uuid.UUID
    administrator: str
    asset_id: int
    seller: str
    buyer: str
    lender: str
    verifier: str
    purchase_amount: int
    deposit_amount: int
    remaining_amount: int
    custodied_funds: int
    approvals: dict[str, bool]
    inspection_status: InspectionStatus
    status: str
    escrow_account: str


class SaleStatusResponse(BaseModel):
    """Lightweight status check response."""

    sale_id: uuid.UUID
    status: str
    inspection_status: str
    remaining_amount: int
    custodied_funds: int
    escrow_account: str
    allowed_actions: list[str] = Field(
        description="Lifecycle events that can fire from the current status"
    )
    settlement_blockers: list[str] = Field(
        description="Error codes of the settlement preconditions not yet met"
    )


class SaleEventResponse(BaseModel):
    """Response schema for an audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sale_id: uuid.UUID
    event_type: str
    actor: str
    payload: dict | None
    created_at: datetime


class BalanceResponse(BaseModel):
    """Balance of a sale's escrow or of a party's ledger account."""

    holder: str
    balance: int


class AssetResponse(BaseModel):
    """Registry view of one asset."""

    asset_id: int
    owner: str
    metadata: dict
    approved_operator: str | None


class OwnerAssetsResponse(BaseModel):
    owner: str
    asset_ids: list[int]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
