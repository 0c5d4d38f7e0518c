"""Domain exceptions for Realty Escrow.

These exceptions are framework-agnostic and represent precondition violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Every mutating operation either applies fully or raises one of these and
applies nothing.
"""

from __future__ import annotations


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Authorization ---


class UnauthorizedError(EscrowError):
    """Raised when the caller does not hold the role an operation requires."""

    def __init__(self, caller: str, required_role: str) -> None:
        super().__init__(
            message=f"Caller '{caller}' is not authorized: requires {required_role}",
            code="UNAUTHORIZED",
        )
        self.caller = caller
        self.required_role = required_role


# --- Payment Accounting ---


class InvalidAmountError(EscrowError):
    """Raised when an amount is not a positive integer."""

    def __init__(self, amount: object) -> None:
        super().__init__(
            message=f"Invalid amount: {amount!r} (must be a positive integer)",
            code="INVALID_AMOUNT",
        )
        self.amount = amount


class InsufficientAmountError(EscrowError):
    """Raised when a deposit is below the configured minimum."""

    def __init__(self, amount: int, minimum: int) -> None:
        super().__init__(
            message=f"Deposit of {amount} is below the required minimum of {minimum}",
            code="INSUFFICIENT_AMOUNT",
        )
        self.amount = amount
        self.minimum = minimum


class NothingOwedError(EscrowError):
    """Raised when paying towards a sale that has no remaining balance."""

    def __init__(self) -> None:
        super().__init__(message="Nothing is owed on this sale", code="NOTHING_OWED")


class AmountExceedsOwedError(EscrowError):
    """Raised when a payment is larger than what is still owed."""

    def __init__(self, amount: int, owed: int) -> None:
        super().__init__(
            message=f"Payment of {amount} exceeds the amount owed ({owed})",
            code="AMOUNT_EXCEEDS_OWED",
        )
        self.amount = amount
        self.owed = owed


# --- Settlement Preconditions ---


class InspectionNotPassedError(EscrowError):
    """Raised when settling before the verifier has passed the inspection."""

    def __init__(self, status: str) -> None:
        super().__init__(
            message=f"Inspection has not passed (current status: {status})",
            code="INSPECTION_NOT_PASSED",
        )
        self.status = status


class MissingApprovalError(EscrowError):
    """Raised when buyer, seller or lender has not approved the sale."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            message=f"Missing approval from: {', '.join(missing)}",
            code="MISSING_APPROVAL",
        )
        self.missing = missing


class PaymentIncompleteError(EscrowError):
    """Raised when settling while part of the purchase price is still owed."""

    def __init__(self, remaining: int) -> None:
        super().__init__(
            message=f"Payment incomplete: {remaining} still owed",
            code="PAYMENT_INCOMPLETE",
        )
        self.remaining = remaining


class BalanceMismatchError(EscrowError):
    """Raised when custodied funds do not equal the purchase amount exactly."""

    def __init__(self, custodied: int, purchase_amount: int) -> None:
        super().__init__(
            message=(
                f"Custodied funds ({custodied}) do not match "
                f"the purchase amount ({purchase_amount})"
            ),
            code="BALANCE_MISMATCH",
        )
        self.custodied = custodied
        self.purchase_amount = purchase_amount


class OperatorNotApprovedError(EscrowError):
    """Raised when the sale's escrow account may not move the asset."""

    def __init__(self, asset_id: int, operator: str) -> None:
        super().__init__(
            message=f"'{operator}' is not the approved operator of asset {asset_id}",
            code="OPERATOR_NOT_APPROVED",
        )
        self.asset_id = asset_id
        self.operator = operator


# --- Settlement Execution ---


class FundTransferFailedError(EscrowError):
    """Raised when releasing custodied funds to the seller fails."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            message=f"Fund transfer to seller failed: {reason}",
            code="FUND_TRANSFER_FAILED",
        )
        self.reason = reason


class AssetTransferFailedError(EscrowError):
    """Raised when the registry refuses the asset transfer.

    The fund release has already been compensated when this is raised.
    """

    def __init__(self, asset_id: int, reason: str) -> None:
        super().__init__(
            message=f"Asset {asset_id} transfer failed: {reason}",
            code="ASSET_TRANSFER_FAILED",
        )
        self.asset_id = asset_id
        self.reason = reason


class SettlementCompensationError(EscrowError):
    """Raised when a released payment could not be returned to escrow."""

    def __init__(self, sale_id: str, amount: int) -> None:
        super().__init__(
            message=(
                f"Settlement of sale {sale_id} left {amount} released to the seller "
                "without an asset transfer; manual reconciliation required"
            ),
            code="SETTLEMENT_COMPENSATION_FAILED",
        )
        self.sale_id = sale_id
        self.amount = amount


# --- Lifecycle ---


class SaleSettledError(EscrowError):
    """Raised when mutating a sale that has already settled."""

    def __init__(self, sale_id: str) -> None:
        super().__init__(
            message=f"Sale already settled: {sale_id}",
            code="SALE_SETTLED",
        )
        self.sale_id = sale_id


class SaleNotFoundError(EscrowError):
    """Raised when a sale ID does not exist."""

    def __init__(self, sale_id: str) -> None:
        super().__init__(
            message=f"Sale not found: {sale_id}",
            code="SALE_NOT_FOUND",
        )
        self.sale_id = sale_id


class InvalidPartiesError(EscrowError):
    """Raised when the seller, buyer, lender and verifier are not four distinct parties."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_PARTIES")


# --- Asset Registry ---


class AssetNotFoundError(EscrowError):
    """Raised when an asset ID was never registered."""

    def __init__(self, asset_id: int) -> None:
        super().__init__(
            message=f"Asset not found: {asset_id}",
            code="ASSET_NOT_FOUND",
        )
        self.asset_id = asset_id


class NotOwnerError(EscrowError):
    """Raised when transferring an asset from a party that does not own it."""

    def __init__(self, asset_id: int, claimed_owner: str) -> None:
        super().__init__(
            message=f"'{claimed_owner}' does not own asset {asset_id}",
            code="NOT_OWNER",
        )
        self.asset_id = asset_id
        self.claimed_owner = claimed_owner


# --- Funds Ledger ---


class PaymentError(EscrowError):
    """Raised when a ledger fund movement fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="PAYMENT_ERROR")


class InsufficientFundsError(PaymentError):
    """Raised when an account balance cannot cover a transfer."""

    def __init__(self, party: str, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient funds in '{party}': "
                f"required {required}, available {available}"
            ),
        )
        self.code = "INSUFFICIENT_FUNDS"
        self.party = party
        self.required = required
        self.available = available
