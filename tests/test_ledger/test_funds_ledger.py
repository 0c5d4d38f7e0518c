"""Tests for the in-memory FundsLedger."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from realty_escrow.domain.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    PaymentError,
)
from realty_escrow.ledger.funds_ledger import FundsLedger


class TestBalances:
    def test_opening_balances(self) -> None:
        ledger = FundsLedger({"alice": 500})
        assert ledger.balance_of("alice") == 500
        assert ledger.balance_of("bob") == 0

    def test_credit_returns_new_balance(self) -> None:
        ledger = FundsLedger()
        assert ledger.credit("alice", 100) == 100
        assert ledger.credit("alice", 50) == 150

    @pytest.mark.parametrize("amount", [0, -1, True, 1.5])
    def test_credit_rejects_invalid_amounts(self, amount) -> None:
        with pytest.raises(InvalidAmountError):
            FundsLedger().credit("alice", amount)

    def test_snapshot_is_a_copy(self) -> None:
        ledger = FundsLedger({"alice": 10})
        ledger.snapshot()["alice"] = 0
        assert ledger.balance_of("alice") == 10


class TestTransfer:
    def test_moves_funds(self) -> None:
        ledger = FundsLedger({"alice": 500})
        ledger.transfer("alice", "bob", 200)
        assert ledger.snapshot() == {"alice": 300, "bob": 200}

    def test_insufficient_funds(self) -> None:
        ledger = FundsLedger({"alice": 100})
        with pytest.raises(InsufficientFundsError) as exc_info:
            ledger.transfer("alice", "bob", 101)

        assert isinstance(exc_info.value, PaymentError)
        assert exc_info.value.code == "INSUFFICIENT_FUNDS"
        assert exc_info.value.available == 100
        assert ledger.snapshot() == {"alice": 100}

    def test_rejects_zero(self) -> None:
        ledger = FundsLedger({"alice": 100})
        with pytest.raises(InvalidAmountError):
            ledger.transfer("alice", "bob", 0)

    def test_concurrent_transfers_never_overdraw(self) -> None:
        ledger = FundsLedger({"alice": 100})

        def send() -> bool:
            try:
                ledger.transfer("alice", "bob", 10)
            except InsufficientFundsError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: send(), range(25)))

        assert results.count(True) == 10
        assert ledger.snapshot() == {"alice": 0, "bob": 100}


class TestRestore:
    def test_replaces_every_balance(self) -> None:
        ledger = FundsLedger({"alice": 100})
        ledger.restore({"bob": 40, "escrow:s1": 250})
        assert ledger.snapshot() == {"bob": 40, "escrow:s1": 250}
        assert ledger.balance_of("alice") == 0
