"""In-memory Asset Registry.

Owns the mapping from asset identifier to owner and metadata. Identifiers
come from a monotonic counter owned by the registry instance, start at 1 and
are never reused.

Transfers follow the owner/approved-operator model: the owner may move an
asset, or grant a single operator (for a sale, its escrow account) the right
to move it once. The grant is cleared on transfer.

``assets_of`` returns live holdings: an asset leaves its previous owner's
list when it is transferred and is appended to the new owner's list.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field, replace

from realty_escrow.domain.exceptions import (
    AssetNotFoundError,
    NotOwnerError,
    UnauthorizedError,
)
from realty_escrow.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class AssetRecord:
    """A registered asset."""

    asset_id: int
    owner: str
    metadata: dict = field(default_factory=dict)
    approved_operator: str | None = None


class AssetRegistry:
    """Thread-safe ownership ledger for uniquely identified assets."""

    def __init__(self, administrator: str) -> None:
        self.administrator = administrator
        self._ids = itertools.count(1)
        self._assets: dict[int, AssetRecord] = {}
        self._holdings: dict[str, list[int]] = {}
        self._lock = threading.Lock()

    def register(self, caller: str, owner: str, metadata: dict | None = None) -> int:
        """Mint a new asset for ``owner``. Restricted to the registry administrator."""
        if caller != self.administrator:
            raise UnauthorizedError(caller, "registry administrator")
        with self._lock:
            asset_id = next(self._ids)
            self._assets[asset_id] = AssetRecord(
                asset_id=asset_id,
                owner=owner,
                metadata=dict(metadata or {}),
            )
            self._holdings.setdefault(owner, []).append(asset_id)

        logger.info("registry.asset_registered", asset_id=asset_id, owner=owner)
        return asset_id

    def owner_of(self, asset_id: int) -> str:
        return self._get(asset_id).owner

    def metadata_of(self, asset_id: int) -> dict:
        return dict(self._get(asset_id).metadata)

    def approved_operator(self, asset_id: int) -> str | None:
        return self._get(asset_id).approved_operator

    def record_of(self, asset_id: int) -> AssetRecord:
        """Copy of the asset's current record."""
        with self._lock:
            record = self._get(asset_id)
            return replace(record, metadata=dict(record.metadata))

    def assets_of(self, owner: str) -> list[int]:
        """Assets currently held by ``owner``, in acquisition order."""
        with self._lock:
            return list(self._holdings.get(owner, []))

    def approve(self, caller: str, operator: str | None, asset_id: int) -> None:
        """Let ``operator`` transfer ``asset_id`` on the owner's behalf.

        Passing ``None`` revokes the current grant.
        """
        with self._lock:
            record = self._get(asset_id)
            if caller != record.owner:
                raise UnauthorizedError(caller, f"owner of asset {asset_id}")
            record.approved_operator = operator

        logger.info("registry.operator_approved", asset_id=asset_id, operator=operator)

    def transfer(self, caller: str, from_owner: str, to_owner: str, asset_id: int) -> None:
        """Move an asset between owners.

        Raises:
            AssetNotFoundError: Unknown asset.
            NotOwnerError: ``from_owner`` does not own the asset.
            UnauthorizedError: ``caller`` is neither the owner nor the approved operator.
        """
        with self._lock:
            record = self._get(asset_id)
            if record.owner != from_owner:
                raise NotOwnerError(asset_id, from_owner)
            if caller not in (record.owner, record.approved_operator):
                raise UnauthorizedError(caller, f"owner or approved operator of asset {asset_id}")

            record.owner = to_owner
            record.approved_operator = None
            self._holdings[from_owner].remove(asset_id)
            self._holdings.setdefault(to_owner, []).append(asset_id)

        logger.info(
            "registry.asset_transferred",
            asset_id=asset_id,
            from_owner=from_owner,
            to_owner=to_owner,
            caller=caller,
        )

    # ------------------------------------------------------------------
    # Persistence hooks
    # ------------------------------------------------------------------

    def restore(self, records: list[AssetRecord]) -> None:
        """Replace the registry contents with previously persisted assets.

        Holdings are rebuilt in asset id order and the id counter resumes
        after the highest restored id.
        """
        with self._lock:
            self._assets = {r.asset_id: r for r in records}
            self._holdings = {}
            for asset_id in sorted(self._assets):
                owner = self._assets[asset_id].owner
                self._holdings.setdefault(owner, []).append(asset_id)
            self._ids = itertools.count(max(self._assets, default=0) + 1)
        logger.info("registry.restored", assets=len(records))

    def discard(self, asset_id: int) -> None:
        """Forget an asset whose registration was never persisted. Its id is not reused."""
        with self._lock:
            record = self._assets.pop(asset_id, None)
            if record is not None:
                self._holdings[record.owner].remove(asset_id)
        logger.warning("registry.asset_discarded", asset_id=asset_id)

    def _get(self, asset_id: int) -> AssetRecord:
        record = self._assets.get(asset_id)
        if record is None:
            raise AssetNotFoundError(asset_id)
        return record
