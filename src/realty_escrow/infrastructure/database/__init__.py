"""Database infrastructure — engine, ORM models, and repositories."""

from realty_escrow.infrastructure.database.engine import (
    close_db,
    get_async_session,
    init_db,
    make_session_factory,
)
from realty_escrow.infrastructure.database.orm_models import (
    Base,
    LedgerAccountRecord,
    RegisteredAssetRecord,
    SaleEventRecord,
    SaleRecord,
)
from realty_escrow.infrastructure.database.repositories import (
    AssetRepository,
    EventRepository,
    LedgerAccountRepository,
    SaleRepository,
    to_domain,
)

__all__ = [
    "Base",
    "SaleEventRecord",
    "SaleRecord",
    "LedgerAccountRecord",
    "RegisteredAssetRecord",
    "AssetRepository",
    "EventRepository",
    "LedgerAccountRepository",
    "SaleRepository",
    "to_domain",
    "get_async_session",
    "init_db",
    "close_db",
    "make_session_factory",
]
