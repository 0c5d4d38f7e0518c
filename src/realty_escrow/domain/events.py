"""Sale events emitted by the escrow protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from realty_escrow.domain.enums import EventType


@dataclass(frozen=True)
class SaleEvent:
    """One entry of a sale's audit trail.

    Attributes:
        sale_id: Identifier of the sale that emitted the event.
        event_type: What happened.
        actor: Identity that triggered the event.
        payload: Event-specific values (amounts, asset id, parties).
        created_at: When the event was emitted (UTC).
    """

    sale_id: str
    event_type: EventType
    actor: str
    payload: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        """Serialize for logging and API responses."""
        return {
            "sale_id": self.sale_id,
            "event_type": self.event_type.value,
            "actor": self.actor,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
        }
