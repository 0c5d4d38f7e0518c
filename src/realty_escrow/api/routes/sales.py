"""Escrow sale REST API routes.

These endpoints provide the HTTP interface to the escrow protocol: opening a
sale, the parties' payments, approvals and inspection updates, the
administrator's overrides and settlement. Each call acts on behalf of the
identity in the request's ``caller`` field.

Routes:
    POST   /api/v1/sales                          — Open a new sale
    GET    /api/v1/sales                          — List sales by status and party
    GET    /api/v1/sales/{id}                     — Get sale snapshot
    GET    /api/v1/sales/{id}/status              — Get lightweight status check
    GET    /api/v1/sales/{id}/events              — Get audit trail
    GET    /api/v1/sales/{id}/balance             — Funds custodied by the sale
    POST   /api/v1/sales/{id}/approvals           — Record caller's approval
    POST   /api/v1/sales/{id}/deposit             — Buyer pays the deposit
    POST   /api/v1/sales/{id}/payments            — Pay towards the remaining amount
    POST   /api/v1/sales/{id}/inspection          — Verifier updates inspection status
    PUT    /api/v1/sales/{id}/purchase-amount     — Administrator overrides the price
    PUT    /api/v1/sales/{id}/deposit-amount      — Administrator overrides the deposit
    POST   /api/v1/sales/{id}/settle              — Settle the sale
"""

from __future__ import annotations

import uuid  # noqa: TC003 - resolved by FastAPI at runtime

from fastapi import APIRouter, Depends

from realty_escrow.api.deps import get_escrow_service
from realty_escrow.domain.enums import SaleStatus
from realty_escrow.logging_config import get_logger
from realty_escrow.schemas.escrow import (
    AmountOverrideRequest,
    ApprovalRequest,
    BalanceResponse,
    CreateSaleRequest,
    InspectionRequest,
    PaymentRequest,
    SaleEventResponse,
    SaleResponse,
    SaleStatusResponse,
    SettleRequest,
)
from realty_escrow.services.escrow_service import EscrowService

router = APIRouter(prefix="/api/v1/sales", tags=["Sales"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=SaleResponse,
    status_code=201,
    summary="Open a new sale",
)
async def create_sale(
    request: CreateSaleRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    """Open a sale in OPEN state. The caller becomes its administrator."""
    sale = await svc.create_sale(
        administrator=request.caller,
        asset_id=request.asset_id,
        seller=request.seller,
        buyer=request.buyer,
        lender=request.lender,
        verifier=request.verifier,
        purchase_amount=request.purchase_amount,
        deposit_amount=request.deposit_amount,
    )
    return SaleResponse(**sale.to_dict())


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


@router.post(
    "/{sale_id}/approvals",
    response_model=SaleResponse,
    summary="Record the caller's approval",
)
async def record_approval(
    sale_id: uuid.UUID,
    request: ApprovalRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    sale = await svc.record_approval(sale_id, request.caller, request.approved)
    return SaleResponse(**sale.to_dict())


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.post(
    "/{sale_id}/deposit",
    response_model=SaleResponse,
    summary="Pay the deposit",
)
async def pay_deposit(
    sale_id: uuid.UUID,
    request: PaymentRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    """Buyer moves at least the deposit amount into escrow."""
    sale = await svc.pay_deposit(sale_id, request.caller, request.amount)
    return SaleResponse(**sale.to_dict())


@router.post(
    "/{sale_id}/payments",
    response_model=SaleResponse,
    summary="Pay towards the remaining amount",
)
async def pay_remaining(
    sale_id: uuid.UUID,
    request: PaymentRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    """Any party (typically the lender) pays part or all of what is still owed."""
    sale = await svc.pay_remaining(sale_id, request.caller, request.amount)
    return SaleResponse(**sale.to_dict())


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


@router.post(
    "/{sale_id}/inspection",
    response_model=SaleResponse,
    summary="Update the inspection status",
)
async def update_inspection_status(
    sale_id: uuid.UUID,
    request: InspectionRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    sale = await svc.update_inspection_status(sale_id, request.caller, request.status)
    return SaleResponse(**sale.to_dict())


# ---------------------------------------------------------------------------
# Administrator overrides
# ---------------------------------------------------------------------------


@router.put(
    "/{sale_id}/purchase-amount",
    response_model=SaleResponse,
    summary="Override the purchase amount",
)
async def set_purchase_amount(
    sale_id: uuid.UUID,
    request: AmountOverrideRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    """Overwrite the price. Does not recompute remaining or custodied amounts."""
    sale = await svc.set_purchase_amount(sale_id, request.caller, request.amount)
    return SaleResponse(**sale.to_dict())


@router.put(
    "/{sale_id}/deposit-amount",
    response_model=SaleResponse,
    summary="Override the deposit amount",
)
async def set_deposit_amount(
    sale_id: uuid.UUID,
    request: AmountOverrideRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    sale = await svc.set_deposit_amount(sale_id, request.caller, request.amount)
    return SaleResponse(**sale.to_dict())


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@router.post(
    "/{sale_id}/settle",
    response_model=SaleResponse,
    summary="Settle the sale",
)
async def settle(
    sale_id: uuid.UUID,
    request: SettleRequest,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    """Release custodied funds to the seller and transfer the asset to the buyer.

    Requires a passed inspection, buyer/seller/lender approvals, nothing owed,
    and custodied funds equal to the purchase amount. The seller's approval
    lets the sale's escrow account move the asset, so it must still be the
    approved operator when this runs.
    """
    sale = await svc.settle(sale_id, request.caller)
    logger.info("api.sale_settled", sale_id=sale.sale_id)
    return SaleResponse(**sale.to_dict())


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[SaleResponse],
    summary="List sales",
)
async def list_sales(
    status: SaleStatus = SaleStatus.OPEN,
    party: str | None = None,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[SaleResponse]:
    """List sales by status, optionally only those where ``party`` holds a role."""
    sales = await svc.list_sales(status=status, party=party)
    return [SaleResponse(**sale.to_dict()) for sale in sales]


@router.get(
    "/{sale_id}",
    response_model=SaleResponse,
    summary="Get sale details",
)
async def get_sale(
    sale_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleResponse:
    """Fetch a sale by its UUID."""
    sale = await svc.get_sale(sale_id)
    return SaleResponse(**sale.to_dict())


@router.get(
    "/{sale_id}/status",
    response_model=SaleStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    sale_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> SaleStatusResponse:
    """Return the current status, allowed actions and unmet settlement conditions."""
    status_data = await svc.get_status(sale_id)
    return SaleStatusResponse(**status_data)


@router.get(
    "/{sale_id}/events",
    response_model=list[SaleEventResponse],
    summary="Get audit trail",
)
async def get_events(
    sale_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> list[SaleEventResponse]:
    """Return the full audit trail for a sale."""
    events = await svc.get_events(sale_id)
    return [SaleEventResponse.model_validate(e) for e in events]


@router.get(
    "/{sale_id}/balance",
    response_model=BalanceResponse,
    summary="Funds custodied by the sale",
)
async def get_balance(
    sale_id: uuid.UUID,
    svc: EscrowService = Depends(get_escrow_service),
) -> BalanceResponse:
    sale = await svc.get_sale(sale_id)
    return BalanceResponse(holder=sale.escrow_account, balance=sale.get_balance())
