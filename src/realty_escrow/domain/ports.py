"""Collaborator Protocols.

The escrow protocol calls out to two external collaborators:
    - an asset registry that owns asset identifiers and their owners
    - a funds ledger that holds every party's spendable balance

Both are Protocols (structural subtyping) so that in-memory, database-backed
or remote implementations can be swapped in without inheriting from a base
class. Implementations signal failures with EscrowError subclasses:
ledgers raise PaymentError, registries raise NotOwnerError, UnauthorizedError
or AssetNotFoundError. Any other exception raised by a registry during
settlement is treated the same way as a refusal.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AssetRegistryPort(Protocol):
    """Ownership ledger for uniquely identified assets.

    Concrete implementation:
        - registry/asset_registry.py (in-memory, persisted in the assets table)
    """

    def owner_of(self, asset_id: int) -> str:
        """Return the current owner of an asset."""
        ...

    def approved_operator(self, asset_id: int) -> str | None:
        """Return the identity currently allowed to move the asset, if any."""
        ...

    def approve(self, caller: str, operator: str | None, asset_id: int) -> None:
        """Owner grants (or with None, revokes) a single operator."""
        ...

    def transfer(self, caller: str, from_owner: str, to_owner: str, asset_id: int) -> None:
        """Move an asset from ``from_owner`` to ``to_owner`` on behalf of ``caller``."""
        ...


@runtime_checkable
class FundsLedgerPort(Protocol):
    """Account balances the escrow debits from and credits to.

    Concrete implementation:
        - ledger/funds_ledger.py (in-memory, persisted in the ledger_accounts table)
    """

    def balance_of(self, party: str) -> int:
        """Return the spendable balance of a party."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Move ``amount`` from ``sender`` to ``recipient`` or raise PaymentError."""
        ...
