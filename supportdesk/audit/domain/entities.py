"""
Audit Domain Entities
=====================

An AuditEvent is an immutable record of one lifecycle action on a ticket.

Events are created without a sequence number; the audit log assigns one
when the event is appended, and that number is the event's position in the
ticket's history forever after.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional
from uuid import uuid4

from supportdesk.config import Actor, AuditAction


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditEvent:
    """
    One append-only audit record.

    Attributes:
        ticket_id: Ticket the action was taken on
        action: What happened
        actor: Who did it (system, agent or user)
        meta: Free-form details, e.g. {"message": "..."} for replies
        timestamp: When it happened (UTC)
        id: Event identifier
        sequence: Store-assigned position, None until appended
        dedup_key: Optional idempotency key, unique across the log
    """

    ticket_id: str
    action: AuditAction
    actor: Actor
    meta: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=lambda: str(uuid4()))
    sequence: Optional[int] = None
    dedup_key: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "action", AuditAction(self.action))
        object.__setattr__(self, "actor", Actor(self.actor))
        # Callers keep no handle on the stored mapping
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta)))

    def with_sequence(self, sequence: int) -> "AuditEvent":
        return replace(self, meta=dict(self.meta), sequence=sequence)

    @property
    def message(self) -> Optional[str]:
        value = self.meta.get("message")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "action": self.action.value,
            "actor": self.actor.value,
            "meta": dict(self.meta),
            "timestamp": self.timestamp.isoformat(),
            "sequence": self.sequence,
        }
