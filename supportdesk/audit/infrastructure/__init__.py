"""
Audit Infrastructure Layer
==========================

Concrete audit log implementations.
"""

from supportdesk.audit.infrastructure.repositories import InMemoryAuditLog, SQLAlchemyAuditLog

__all__ = [
    "InMemoryAuditLog",
    "SQLAlchemyAuditLog",
]
