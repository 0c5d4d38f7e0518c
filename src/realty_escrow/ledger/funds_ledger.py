"""In-memory Funds Ledger.

Holds the spendable balance of every party, including each sale's escrow
account. Balances are integral currency units and never go negative.
"""

from __future__ import annotations

import threading

from realty_escrow.domain.exceptions import InsufficientFundsError, InvalidAmountError
from realty_escrow.logging_config import get_logger

logger = get_logger(__name__)


class FundsLedger:
    """Thread-safe account balances."""

    def __init__(self, opening_balances: dict[str, int] | None = None) -> None:
        self._balances: dict[str, int] = {}
        self._lock = threading.Lock()
        for party, amount in (opening_balances or {}).items():
            self.credit(party, amount)

    def balance_of(self, party: str) -> int:
        with self._lock:
            return self._balances.get(party, 0)

    def credit(self, party: str, amount: int) -> int:
        """Add newly issued funds to an account and return the new balance."""
        check_amount(amount)
        with self._lock:
            balance = self._balances.get(party, 0) + amount
            self._balances[party] = balance
        logger.info("ledger.credit", party=party, amount=amount, balance=balance)
        return balance

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move funds between accounts.

        Raises:
            InvalidAmountError: ``amount`` is not a positive integer.
            InsufficientFundsError: ``sender`` cannot cover ``amount``.
        """
        check_amount(amount)
        with self._lock:
            available = self._balances.get(sender, 0)
            if available < amount:
                raise InsufficientFundsError(sender, amount, available)
            self._balances[sender] = available - amount
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
        logger.debug("ledger.transfer", sender=sender, recipient=recipient, amount=amount)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._balances)

    def restore(self, balances: dict[str, int]) -> None:
        """Replace every balance with previously persisted values."""
        with self._lock:
            self._balances = dict(balances)
        logger.info("ledger.restored", accounts=len(balances))


def check_amount(amount: object) -> None:
    """Raise InvalidAmountError unless ``amount`` is a positive int (bool excluded)."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
