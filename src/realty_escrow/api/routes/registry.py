"""Asset registry and funds ledger REST API routes.

Routes:
    POST   /api/v1/assets                     — Register an asset (registry admin)
    GET    /api/v1/assets/{id}                — Owner, metadata and approved operator
    POST   /api/v1/assets/{id}/approve        — Owner grants/revokes an operator
    GET    /api/v1/owners/{owner}/assets      — Assets currently held by an owner
    GET    /api/v1/accounts/{party}/balance   — Ledger balance of a party
    POST   /api/v1/accounts/{party}/credit    — Issue funds (development only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from realty_escrow.api.deps import (
    get_app_settings,
    get_holdings_service,
    get_ledger,
    get_registry,
)
from realty_escrow.config import Settings
from realty_escrow.ledger.funds_ledger import FundsLedger
from realty_escrow.logging_config import get_logger
from realty_escrow.registry.asset_registry import AssetRegistry
from realty_escrow.schemas.escrow import (
    ApproveOperatorRequest,
    AssetResponse,
    BalanceResponse,
    CreditRequest,
    OwnerAssetsResponse,
    RegisterAssetRequest,
)
from realty_escrow.services.holdings_service import HoldingsService

router = APIRouter(prefix="/api/v1", tags=["Registry"])
logger = get_logger(__name__)


def _asset_response(registry: AssetRegistry, asset_id: int) -> AssetResponse:
    return AssetResponse(
        asset_id=asset_id,
        owner=registry.owner_of(asset_id),
        metadata=registry.metadata_of(asset_id),
        approved_operator=registry.approved_operator(asset_id),
    )


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------


@router.post(
    "/assets",
    response_model=AssetResponse,
    status_code=201,
    summary="Register a new asset",
)
async def register_asset(
    request: RegisterAssetRequest,
    holdings: HoldingsService = Depends(get_holdings_service),
    registry: AssetRegistry = Depends(get_registry),
) -> AssetResponse:
    asset_id = await holdings.register_asset(request.caller, request.owner, request.metadata)
    return _asset_response(registry, asset_id)


@router.get(
    "/assets/{asset_id}",
    response_model=AssetResponse,
    summary="Get asset ownership and metadata",
)
async def get_asset(
    asset_id: int,
    registry: AssetRegistry = Depends(get_registry),
) -> AssetResponse:
    return _asset_response(registry, asset_id)


@router.post(
    "/assets/{asset_id}/approve",
    response_model=AssetResponse,
    summary="Approve an operator for an asset",
)
async def approve_operator(
    asset_id: int,
    request: ApproveOperatorRequest,
    holdings: HoldingsService = Depends(get_holdings_service),
    registry: AssetRegistry = Depends(get_registry),
) -> AssetResponse:
    """Owner lets ``operator`` transfer the asset, e.g. a sale's escrow account."""
    await holdings.approve_operator(request.caller, request.operator, asset_id)
    return _asset_response(registry, asset_id)


@router.get(
    "/owners/{owner}/assets",
    response_model=OwnerAssetsResponse,
    summary="List assets held by an owner",
)
async def get_owner_assets(
    owner: str,
    registry: AssetRegistry = Depends(get_registry),
) -> OwnerAssetsResponse:
    return OwnerAssetsResponse(owner=owner, asset_ids=registry.assets_of(owner))


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@router.get(
    "/accounts/{party}/balance",
    response_model=BalanceResponse,
    summary="Get a party's ledger balance",
)
async def get_balance_of(
    party: str,
    ledger: FundsLedger = Depends(get_ledger),
) -> BalanceResponse:
    return BalanceResponse(holder=party, balance=ledger.balance_of(party))


@router.post(
    "/accounts/{party}/credit",
    response_model=BalanceResponse,
    summary="Credit a party's account (development only)",
)
async def credit_account(
    party: str,
    request: CreditRequest,
    holdings: HoldingsService = Depends(get_holdings_service),
    settings: Settings = Depends(get_app_settings),
) -> BalanceResponse | JSONResponse:
    """Issue funds to ``party``. Refused outside development."""
    if not settings.is_development:
        logger.warning("ledger.credit_refused", party=party, env=settings.app_env)
        return JSONResponse(
            status_code=403,
            content={
                "error": "UNAUTHORIZED",
                "message": "Crediting accounts is only available in development",
            },
        )
    balance = await holdings.credit(party, request.amount)
    return BalanceResponse(holder=party, balance=balance)
