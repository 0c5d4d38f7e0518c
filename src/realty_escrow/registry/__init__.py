"""Asset registry — the external ownership ledger settlement transfers through."""

from realty_escrow.registry.asset_registry import AssetRecord, AssetRegistry

__all__ = ["AssetRecord", "AssetRegistry"]
