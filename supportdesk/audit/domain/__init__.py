"""
Audit Domain Layer
==================

Contains:
- Entities: AuditEvent
- Projections: pure read models derived from the event history

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from supportdesk.audit.domain.entities import AuditEvent
from supportdesk.audit.domain.projections import ConversationMessage, project_conversation

__all__ = [
    "AuditEvent",
    "ConversationMessage",
    "project_conversation",
]
