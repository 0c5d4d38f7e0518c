"""Collaborator Journal — records what one operation did to the registry and ledger.

The escrow service hands a journal's ``registry`` and ``ledger`` to the sale
instead of the shared collaborators. Every effect that goes through them is
recorded, so the service can:
    - write the touched ledger balances and assets in the same transaction
      as the sale record (``persist``)
    - reverse them when that transaction fails to commit (``undo``)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from realty_escrow.infrastructure.database.repositories import (
    AssetRepository,
    LedgerAccountRepository,
)
from realty_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from realty_escrow.ledger.funds_ledger import FundsLedger
    from realty_escrow.registry.asset_registry import AssetRegistry

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Journal entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FundsMoved:
    sender: str
    recipient: str
    amount: int

    def undo(self, registry: AssetRegistry, ledger: FundsLedger) -> None:
        ledger.transfer(self.recipient, self.sender, self.amount)


@dataclass(frozen=True)
class AssetMoved:
    asset_id: int
    from_owner: str
    to_owner: str
    previous_operator: str | None

    def undo(self, registry: AssetRegistry, ledger: FundsLedger) -> None:
        registry.transfer(self.to_owner, self.to_owner, self.from_owner, self.asset_id)
        registry.approve(self.from_owner, self.previous_operator, self.asset_id)


@dataclass(frozen=True)
class OperatorApproved:
    asset_id: int
    owner: str
    previous_operator: str | None

    def undo(self, registry: AssetRegistry, ledger: FundsLedger) -> None:
        registry.approve(self.owner, self.previous_operator, self.asset_id)


JournalEntry = FundsMoved | AssetMoved | OperatorApproved


# ---------------------------------------------------------------------------
# Recording collaborators
# ---------------------------------------------------------------------------


class _JournaledLedger:
    def __init__(self, ledger: FundsLedger, entries: list[JournalEntry]) -> None:
        self._ledger = ledger
        self._entries = entries

    def balance_of(self, party: str) -> int:
        return self._ledger.balance_of(party)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        self._ledger.transfer(sender, recipient, amount)
        self._entries.append(FundsMoved(sender, recipient, amount))


class _JournaledRegistry:
    def __init__(self, registry: AssetRegistry, entries: list[JournalEntry]) -> None:
        self._registry = registry
        self._entries = entries

    def owner_of(self, asset_id: int) -> str:
        return self._registry.owner_of(asset_id)

    def approved_operator(self, asset_id: int) -> str | None:
        return self._registry.approved_operator(asset_id)

    def approve(self, caller: str, operator: str | None, asset_id: int) -> None:
        previous = self._registry.approved_operator(asset_id)
        self._registry.approve(caller, operator, asset_id)
        self._entries.append(OperatorApproved(asset_id, caller, previous))

    def transfer(self, caller: str, from_owner: str, to_owner: str, asset_id: int) -> None:
        previous = self._registry.approved_operator(asset_id)
        self._registry.transfer(caller, from_owner, to_owner, asset_id)
        self._entries.append(AssetMoved(asset_id, from_owner, to_owner, previous))


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


class CollaboratorJournal:
    """Effects of one operation on the shared registry and ledger."""

    def __init__(self, registry: AssetRegistry, ledger: FundsLedger) -> None:
        self._registry = registry
        self._ledger = ledger
        self.entries: list[JournalEntry] = []
        self.registry = _JournaledRegistry(registry, self.entries)
        self.ledger = _JournaledLedger(ledger, self.entries)

    def balance_deltas(self) -> dict[str, int]:
        """Net balance change per party, zero changes dropped."""
        deltas: dict[str, int] = {}
        for entry in self.entries:
            if isinstance(entry, FundsMoved):
                deltas[entry.sender] = deltas.get(entry.sender, 0) - entry.amount
                deltas[entry.recipient] = deltas.get(entry.recipient, 0) + entry.amount
        return {party: delta for party, delta in deltas.items() if delta}

    def touched_assets(self) -> list[int]:
        seen: dict[int, None] = {}
        for entry in self.entries:
            if isinstance(entry, AssetMoved | OperatorApproved):
                seen[entry.asset_id] = None
        return list(seen)

    async def persist(self, session: AsyncSession) -> None:
        """Write the touched balances and assets into ``session``. Does not commit."""
        accounts = LedgerAccountRepository(session)
        for party, delta in self.balance_deltas().items():
            await accounts.apply_delta(party, delta)
        assets = AssetRepository(session)
        for asset_id in self.touched_assets():
            await assets.save(self._registry.record_of(asset_id))

    def undo(self) -> None:
        """Reverse every recorded effect, newest first."""
        for entry in reversed(self.entries):
            try:
                entry.undo(self._registry, self._ledger)
            except Exception:
                logger.critical("journal.undo_failed", entry=repr(entry))
                raise
        if self.entries:
            logger.warning("journal.undone", entries=len(self.entries))
        self.entries.clear()
