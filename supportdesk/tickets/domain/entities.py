"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticket lifecycle.

A Ticket is an immutable snapshot of a stored record. Every change produces
a new snapshot with a higher version; the repository is the only place where
snapshots are swapped, and only when the caller's expected version matches.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Optional

from supportdesk.config import TicketCategory, TicketStatus
from supportdesk.tickets.domain.state_machine import TicketStateMachine


class _Unset:
    """Marker for patch fields that should be left untouched."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class Ticket:
    """
    Ticket entity representing a support ticket.

    Owned by the ticket repository. Status only changes through the state
    machine; `version` increases by one on every committed write.
    """

    id: str
    title: str
    description: str
    category: TicketCategory
    status: TicketStatus
    created_at: datetime
    updated_at: datetime
    created_by: str = "anonymous"
    assigned_agent_id: Optional[str] = None
    version: int = 1

    def __post_init__(self):
        """Validate ticket on initialization."""
        if self.version < 1:
            raise ValueError("version must be at least 1")
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

    @property
    def awaiting_triage(self) -> bool:
        """Triage only acts on tickets nobody has decided on yet."""
        return self.status in (TicketStatus.OPEN, TicketStatus.TRIAGED)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "created_by": self.created_by,
            "assigned_agent_id": self.assigned_agent_id,
            "version": self.version,
        }


@dataclass(frozen=True)
class TicketPatch:
    """
    Partial update applied by `update_with_version`.

    Fields left as UNSET are not touched. `assigned_agent_id=None` clears the
    assignment, which is different from leaving it UNSET.
    """

    status: Any = UNSET
    category: Any = UNSET
    assigned_agent_id: Any = UNSET
    title: Any = UNSET
    description: Any = UNSET

    def changes(self) -> dict[str, Any]:
        """Only the fields this patch sets."""
        values = {
            "status": self.status,
            "category": self.category,
            "assigned_agent_id": self.assigned_agent_id,
            "title": self.title,
            "description": self.description,
        }
        return {key: value for key, value in values.items() if value is not UNSET}

    @property
    def is_empty(self) -> bool:
        return not self.changes()

    def apply(self, ticket: Ticket, now: Optional[datetime] = None) -> Ticket:
        """Return the next snapshot of `ticket` with this patch applied."""
        return replace(
            ticket,
            **self.changes(),
            updated_at=max(now or datetime.now(timezone.utc), ticket.updated_at),
            version=ticket.version + 1,
        )

    @classmethod
    def reverting(cls, previous: Ticket, patch: "TicketPatch") -> "TicketPatch":
        """Patch that restores the fields `patch` changed to their values in `previous`."""
        return cls(**{key: getattr(previous, key) for key in patch.changes()})


def new_ticket(
    ticket_id: str,
    title: str,
    description: str,
    created_by: str,
    category: TicketCategory = TicketCategory.OTHER,
    created_at: Optional[datetime] = None,
) -> Ticket:
    """Build a fresh ticket in the state machine's initial status."""
    timestamp = created_at or datetime.now(timezone.utc)
    return Ticket(
        id=ticket_id,
        title=title,
        description=description,
        category=category,
        status=TicketStateMachine.initial_state(),
        created_at=timestamp,
        updated_at=timestamp,
        created_by=created_by,
    )

