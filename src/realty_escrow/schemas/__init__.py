"""Pydantic API schemas."""

from realty_escrow.schemas.escrow import (
    AmountOverrideRequest,
    ApprovalRequest,
    ApproveOperatorRequest,
    AssetResponse,
    BalanceResponse,
    CreateSaleRequest,
    CreditRequest,
    HealthResponse,
    InspectionRequest,
    OwnerAssetsResponse,
    PaymentRequest,
    RegisterAssetRequest,
    SaleEventResponse,
    SaleResponse,
    SaleStatusResponse,
    SettleRequest,
)

__all__ = [
    "AmountOverrideRequest",
    "ApprovalRequest",
    "ApproveOperatorRequest",
    "AssetResponse",
    "BalanceResponse",
    "CreateSaleRequest",
    "CreditRequest",
    "HealthResponse",
    "InspectionRequest",
    "OwnerAssetsResponse",
    "PaymentRequest",
    "RegisterAssetRequest",
    "SaleEventResponse",
    "SaleResponse",
    "SaleStatusResponse",
    "SettleRequest",
]
