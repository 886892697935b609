"""
Conversation Projection
=======================

Derives the chat-style conversation view of a ticket from its audit history.

The projection is a pure function over an ordered event sequence: no storage
access, no clock, so it can be tested with literal event lists.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List

from supportdesk.audit.domain.entities import AuditEvent
from supportdesk.config import Actor, AuditAction


@dataclass(frozen=True)
class ConversationMessage:
    """One bubble in the conversation view."""
    role: str  # user | agent | system
    text: str
    timestamp: datetime

    def to_dict(self) -> dict:
        return {"role": self.role, "text": self.text, "timestamp": self.timestamp.isoformat()}


_SYSTEM_TEXT = {
    AuditAction.AUTO_CLOSED: "Ticket auto-closed with suggested reply",
    AuditAction.ASSIGNED_TO_HUMAN: "Assigned to human agent",
    AuditAction.SLA_BREACH: "SLA breached, escalated",
    AuditAction.TICKET_CLOSED: "Ticket closed",
}


def _to_message(event: AuditEvent) -> ConversationMessage:
    if event.action == AuditAction.TICKET_CREATED:
        return ConversationMessage("user", "Ticket created", event.timestamp)

    if event.action == AuditAction.REPLY_SENT:
        role = "user" if event.actor == Actor.USER else "agent"
        return ConversationMessage(role, event.message or "Agent replied", event.timestamp)

    return ConversationMessage("system", _SYSTEM_TEXT[event.action], event.timestamp)


def project_conversation(events: Iterable[AuditEvent]) -> List[ConversationMessage]:
    """
    Map an ordered audit history to conversation messages.

    Order is preserved; every action in the vocabulary maps to exactly one
    message.
    """
    return [_to_message(event) for event in events]
