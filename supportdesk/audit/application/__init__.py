"""
Audit Application Layer
=======================

Contains:
- IAuditLog: the append-only store contract
- AuditService: audit trail and conversation reads
"""

from supportdesk.audit.application.services import AuditService, IAuditLog

__all__ = [
    "AuditService",
    "IAuditLog",
]
