"""
Audit Infrastructure Models
===========================

SQLAlchemy ORM model for the audit log.

`sequence` is the store-assigned ordering key. `dedup_key` is unique, which is
what makes `append_if_absent` atomic without any application-level lock.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from supportdesk.infrastructure.database import Base


class AuditEventModel(Base):
    """
    Database model for AuditEvent.

    Maps to the 'audit_events' table. Rows are inserted, never updated or
    deleted.
    """
    __tablename__ = "audit_events"

    # BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid) on SQLite
    sequence: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    ticket_id: Mapped[str] = mapped_column(String(36), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor: Mapped[str] = mapped_column(String(20), nullable=False)
    meta: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    dedup_key: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)

    __table_args__ = (
        Index("ix_audit_events_ticket_sequence", "ticket_id", "sequence"),
    )
