"""Escrow Protocol — one EscrowSale governs the conditional sale of one asset.

The sale holds custodied funds (in its own ledger account), the four party
identities, approval flags, payment accounting and the inspection status.
Parties call into it over its lifetime; every call is validated against role
and state preconditions before any field is touched, so a failed call leaves
the sale exactly as it was.

Mutual exclusion: each mutator runs under a per-sale re-entrant lock, so no
two operations interleave their reads and writes of remaining_amount,
custodied_funds or approvals.

Settlement is a two-step saga across the funds ledger and the asset registry:
    1. release custodied funds escrow -> seller   (FundTransferFailedError on failure)
    2. transfer the asset seller -> buyer          (compensated on failure)
The sale only becomes SETTLED after both steps succeeded.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from realty_escrow.domain.enums import EventType, InspectionStatus, SaleStatus
from realty_escrow.domain.events import SaleEvent
from realty_escrow.domain.exceptions import (
    AmountExceedsOwedError,
    AssetNotFoundError,
    AssetTransferFailedError,
    BalanceMismatchError,
    EscrowError,
    FundTransferFailedError,
    InspectionNotPassedError,
    InsufficientAmountError,
    InvalidAmountError,
    InvalidPartiesError,
    MissingApprovalError,
    NotOwnerError,
    NothingOwedError,
    OperatorNotApprovedError,
    PaymentError,
    PaymentIncompleteError,
    SaleSettledError,
    SettlementCompensationError,
    UnauthorizedError,
)
from realty_escrow.domain.state_machine import (
    InspectionStateMachine,
    SaleStateMachine,
    inspection_event_for,
)
from realty_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from realty_escrow.domain.ports import AssetRegistryPort, FundsLedgerPort

logger = get_logger(__name__)


def _require_positive_int(amount: object) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


def escrow_account_for(sale_id: str) -> str:
    """Ledger account (and registry operator) that custodies a sale's funds."""
    return f"escrow:{sale_id}"


@dataclass
class EscrowSale:
    """A single real-estate sale held in escrow.

    Build new sales with ``EscrowSale.create``; the plain constructor is used
    to rehydrate a sale from storage.
    """

    sale_id: str
    administrator: str
    asset_id: int
    seller: str
    buyer: str
    lender: str
    verifier: str
    purchase_amount: int
    deposit_amount: int
    registry: AssetRegistryPort = field(repr=False, compare=False)
    ledger: FundsLedgerPort = field(repr=False, compare=False)
    remaining_amount: int | None = None
    custodied_funds: int = 0
    approvals: dict[str, bool] = field(default_factory=dict)
    inspection_status: InspectionStatus = InspectionStatus.INITIATED
    status: SaleStatus = SaleStatus.OPEN
    events: list[SaleEvent] = field(default_factory=list, repr=False, compare=False)
    _lock: threading.RLock = field(
        default_factory=threading.RLock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.remaining_amount is None:
            self.remaining_amount = self.purchase_amount
        self.inspection_status = InspectionStatus(self.inspection_status)
        self.status = SaleStatus(self.status)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        administrator: str,
        registry: AssetRegistryPort,
        ledger: FundsLedgerPort,
        *,
        asset_id: int,
        seller: str,
        buyer: str,
        lender: str,
        verifier: str,
        purchase_amount: int,
        deposit_amount: int,
        sale_id: str | None = None,
    ) -> EscrowSale:
        """Open a new sale. The creating identity becomes the administrator."""
        _require_positive_int(purchase_amount)
        _require_positive_int(deposit_amount)

        parties = {"seller": seller, "buyer": buyer, "lender": lender, "verifier": verifier}
        blank = [role for role, party in parties.items() if not party]
        if blank:
            raise InvalidPartiesError(f"Missing identity for: {', '.join(blank)}")
        if len(set(parties.values())) != len(parties):
            raise InvalidPartiesError(
                "Seller, buyer, lender and verifier must be four distinct parties"
            )

        sale = cls(
            sale_id=sale_id or str(uuid.uuid4()),
            administrator=administrator,
            asset_id=asset_id,
            seller=seller,
            buyer=buyer,
            lender=lender,
            verifier=verifier,
            purchase_amount=purchase_amount,
            deposit_amount=deposit_amount,
            registry=registry,
            ledger=ledger,
        )
        sale._emit(
            EventType.SALE_CREATED,
            actor=administrator,
            payload={
                "asset_id": asset_id,
                "purchase_amount": purchase_amount,
                "deposit_amount": deposit_amount,
            },
        )
        logger.info(
            "sale.created",
            sale_id=sale.sale_id,
            asset_id=asset_id,
            purchase_amount=purchase_amount,
        )
        return sale

    @property
    def escrow_account(self) -> str:
        return escrow_account_for(self.sale_id)

    @property
    def is_settled(self) -> bool:
        return self.status is SaleStatus.SETTLED

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def record_approval(self, caller: str, approved: bool) -> SaleEvent:
        """Set the caller's own approval flag.

        Any identity may record an approval; only buyer, seller and lender
        approvals are consulted at settlement. The seller's approval also
        grants (or withdraws) the escrow account's right to move the asset.
        """
        with self._lock:
            self._assert_open()
            if caller == self.seller:
                self._sync_operator_grant(bool(approved))
            self.approvals[caller] = bool(approved)
            logger.info(
                "sale.approval_recorded",
                sale_id=self.sale_id,
                caller=caller,
                approved=bool(approved),
            )
            return self._emit(
                EventType.APPROVAL_RECORDED,
                actor=caller,
                payload={"asset_id": self.asset_id, "approved": bool(approved)},
            )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def pay_deposit(self, caller: str, amount: int) -> SaleEvent:
        """Buyer pays the deposit into escrow.

        remaining_amount is recomputed from purchase_amount rather than
        decremented, so a second deposit resets it relative to the price
        while custodied_funds keeps accumulating.
        """
        with self._lock:
            self._assert_open()
            self._assert_role(caller, self.buyer, "buyer")
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise InvalidAmountError(amount)
            if amount < self.deposit_amount:
                raise InsufficientAmountError(amount, self.deposit_amount)
            if amount > self.purchase_amount:
                raise AmountExceedsOwedError(amount, self.purchase_amount)

            self.ledger.transfer(caller, self.escrow_account, amount)
            self.custodied_funds += amount
            self.remaining_amount = self.purchase_amount - amount

            logger.info(
                "sale.deposit_paid",
                sale_id=self.sale_id,
                amount=amount,
                remaining=self.remaining_amount,
            )
            return self._emit(
                EventType.DEPOSIT_PAID,
                actor=caller,
                payload={"buyer": caller, "asset_id": self.asset_id, "amount": amount},
            )

    def pay_remaining(self, caller: str, amount: int) -> SaleEvent:
        """Pay towards the outstanding balance. Open to any caller."""
        with self._lock:
            self._assert_open()
            if self.remaining_amount <= 0:
                raise NothingOwedError()
            _require_positive_int(amount)
            if amount > self.remaining_amount:
                raise AmountExceedsOwedError(amount, self.remaining_amount)

            self.ledger.transfer(caller, self.escrow_account, amount)
            self.remaining_amount -= amount
            self.custodied_funds += amount

            logger.info(
                "sale.remaining_paid",
                sale_id=self.sale_id,
                caller=caller,
                amount=amount,
                remaining=self.remaining_amount,
            )
            return self._emit(
                EventType.REMAINING_PAID,
                actor=caller,
                payload={"payer": caller, "asset_id": self.asset_id, "amount": amount},
            )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def update_inspection_status(self, caller: str, status: InspectionStatus | str) -> SaleEvent:
        """Verifier overwrites the inspection status (any direction)."""
        with self._lock:
            self._assert_open()
            self._assert_role(caller, self.verifier, "verifier")
            target = InspectionStatus(status)

            sm = InspectionStateMachine(current_status=self.inspection_status.value)
            getattr(sm, inspection_event_for(target))()
            previous = self.inspection_status
            self.inspection_status = InspectionStatus(sm.status)

            logger.info(
                "sale.inspection_updated",
                sale_id=self.sale_id,
                previous=previous.value,
                status=self.inspection_status.value,
            )
            return self._emit(
                EventType.INSPECTION_UPDATED,
                actor=caller,
                payload={"asset_id": self.asset_id, "status": self.inspection_status.value},
            )

    # ------------------------------------------------------------------
    # Administrator overrides
    # ------------------------------------------------------------------

    def set_purchase_amount(self, caller: str, amount: int) -> SaleEvent:
        """Overwrite the purchase price. Payment accounting is left untouched."""
        with self._lock:
            self._assert_open()
            self._assert_role(caller, self.administrator, "administrator")
            _require_positive_int(amount)
            self._warn_if_paying(field_name="purchase_amount")
            previous = self.purchase_amount
            self.purchase_amount = amount
            return self._emit(
                EventType.PURCHASE_AMOUNT_SET,
                actor=caller,
                payload={"previous": previous, "amount": amount},
            )

    def set_deposit_amount(self, caller: str, amount: int) -> SaleEvent:
        """Overwrite the minimum deposit."""
        with self._lock:
            self._assert_open()
            self._assert_role(caller, self.administrator, "administrator")
            _require_positive_int(amount)
            self._warn_if_paying(field_name="deposit_amount")
            previous = self.deposit_amount
            self.deposit_amount = amount
            return self._emit(
                EventType.DEPOSIT_AMOUNT_SET,
                actor=caller,
                payload={"previous": previous, "amount": amount},
            )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def settlement_blockers(self) -> list[EscrowError]:
        """Return every unmet settlement precondition, in check order."""
        blockers: list[EscrowError] = []
        if self.inspection_status is not InspectionStatus.PASSED:
            blockers.append(InspectionNotPassedError(self.inspection_status.value))
        missing = [
            role
            for role, party in (
                ("buyer", self.buyer),
                ("seller", self.seller),
                ("lender", self.lender),
            )
            if not self.approvals.get(party, False)
        ]
        if missing:
            blockers.append(MissingApprovalError(missing))
        if self.remaining_amount != 0:
            blockers.append(PaymentIncompleteError(self.remaining_amount))
        if self.custodied_funds != self.purchase_amount:
            blockers.append(BalanceMismatchError(self.custodied_funds, self.purchase_amount))
        blockers.extend(self._asset_blockers())
        return blockers

    def settle(self, caller: str) -> SaleEvent:
        """Release funds to the seller and move the asset to the buyer, atomically."""
        with self._lock:
            self._assert_open()
            self._assert_role(caller, self.administrator, "administrator")
            blockers = self.settlement_blockers()
            if blockers:
                raise blockers[0]

            amount = self.custodied_funds

            # Step 1: release funds
            try:
                self.ledger.transfer(self.escrow_account, self.seller, amount)
            except PaymentError as exc:
                logger.warning(
                    "settlement.fund_release_failed",
                    sale_id=self.sale_id,
                    error=exc.message,
                )
                raise FundTransferFailedError(exc.message) from exc

            # Step 2: transfer the asset, compensating step 1 on failure
            try:
                self.registry.transfer(
                    self.escrow_account, self.seller, self.buyer, self.asset_id
                )
            except Exception as exc:
                logger.warning(
                    "settlement.asset_transfer_failed",
                    sale_id=self.sale_id,
                    asset_id=self.asset_id,
                    error=str(exc),
                )
                self._compensate_release(amount)
                raise AssetTransferFailedError(self.asset_id, str(exc)) from exc

            sm = SaleStateMachine(current_status=self.status.value)
            sm.settle()
            self.status = SaleStatus(sm.status)
            self.custodied_funds = 0

            logger.info(
                "sale.settled",
                sale_id=self.sale_id,
                asset_id=self.asset_id,
                amount=amount,
            )
            return self._emit(
                EventType.SALE_SETTLED,
                actor=caller,
                payload={
                    "seller": self.seller,
                    "buyer": self.buyer,
                    "asset_id": self.asset_id,
                    "amount": amount,
                },
            )

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    def get_balance(self) -> int:
        """Funds currently custodied by this sale."""
        return self.custodied_funds

    def get_balance_of(self, party: str) -> int:
        """Ledger balance of an arbitrary party (pass-through)."""
        return self.ledger.balance_of(party)

    def allowed_actions(self) -> list[str]:
        sm = SaleStateMachine(current_status=self.status.value)
        return sm.get_allowed_events()

    def to_dict(self) -> dict:
        """Snapshot of the sale record."""
        return {
            "sale_id": self.sale_id,
            "administrator": self.administrator,
            "asset_id": self.asset_id,
            "seller": self.seller,
            "buyer": self.buyer,
            "lender": self.lender,
            "verifier": self.verifier,
            "purchase_amount": self.purchase_amount,
            "deposit_amount": self.deposit_amount,
            "remaining_amount": self.remaining_amount,
            "custodied_funds": self.custodied_funds,
            "approvals": dict(self.approvals),
            "inspection_status": self.inspection_status.value,
            "status": self.status.value,
            "escrow_account": self.escrow_account,
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _assert_open(self) -> None:
        if self.is_settled:
            raise SaleSettledError(self.sale_id)

    def _asset_blockers(self) -> list[EscrowError]:
        try:
            owner = self.registry.owner_of(self.asset_id)
        except AssetNotFoundError as exc:
            return [exc]
        if owner != self.seller:
            return [NotOwnerError(self.asset_id, self.seller)]
        if self.registry.approved_operator(self.asset_id) != self.escrow_account:
            return [OperatorNotApprovedError(self.asset_id, self.escrow_account)]
        return []

    def _sync_operator_grant(self, approved: bool) -> None:
        # only the current owner can grant; a missing or resold asset shows up as a blocker
        try:
            owner = self.registry.owner_of(self.asset_id)
        except AssetNotFoundError:
            return
        if owner != self.seller:
            return
        current = self.registry.approved_operator(self.asset_id)
        if approved and current != self.escrow_account:
            self.registry.approve(self.seller, self.escrow_account, self.asset_id)
        elif not approved and current == self.escrow_account:
            self.registry.approve(self.seller, None, self.asset_id)

    @staticmethod
    def _assert_role(caller: str, holder: str, role: str) -> None:
        if caller != holder:
            raise UnauthorizedError(caller, role)

    def _warn_if_paying(self, field_name: str) -> None:
        if self.custodied_funds > 0:
            logger.warning(
                "sale.amount_override_after_payment",
                sale_id=self.sale_id,
                field=field_name,
                custodied=self.custodied_funds,
                remaining=self.remaining_amount,
            )

    def _compensate_release(self, amount: int) -> None:
        try:
            self._return_release(amount)
        except PaymentError as exc:
            logger.critical(
                "settlement.compensation_failed",
                sale_id=self.sale_id,
                amount=amount,
                error=exc.message,
            )
            raise SettlementCompensationError(self.sale_id, amount) from exc
        logger.info("settlement.compensated", sale_id=self.sale_id, amount=amount)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(PaymentError),
        reraise=True,
    )
    def _return_release(self, amount: int) -> None:
        """Move released funds back from the seller into escrow.

        Uses tenacity so a transient ledger failure does not strand funds.
        """
        self.ledger.transfer(self.seller, self.escrow_account, amount)

    def _emit(self, event_type: EventType, actor: str, payload: dict) -> SaleEvent:
        event = SaleEvent(
            sale_id=self.sale_id,
            event_type=event_type,
            actor=actor,
            payload=payload,
        )
        self.events.append(event)
        return event
