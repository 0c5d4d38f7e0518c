"""Funds ledger — party balances the escrow debits and credits."""

from realty_escrow.ledger.funds_ledger import FundsLedger

__all__ = ["FundsLedger"]
