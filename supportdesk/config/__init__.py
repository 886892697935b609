"""
Configuration Module
====================

Application settings and shared vocabulary for the support desk engine.

Deployment-level settings come from environment variables (pydantic-settings).
The live, admin-tunable policy (auto close, confidence threshold, SLA hours)
is NOT here - it lives in the policy context and is read through a snapshot
cache so it can change without a restart.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="supportdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Storage ==========
    storage_backend: str = Field(
        default="memory",
        description="Where tickets and audit events live: 'memory' or 'database'"
    )
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/supportdesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Policy Config ==========
    policy_config_path: Path = Field(
        default=Path("policy_config.yaml"),
        description="Path to the YAML file holding the live triage policy"
    )
    policy_cache_ttl_seconds: float = Field(
        default=5.0,
        description="Maximum staleness of the policy snapshot used by triage",
        ge=0
    )

    # ========== Triage ==========
    auto_close_target: str = Field(
        default="resolved",
        description="Status an auto-closed ticket ends in: 'resolved' or 'closed'"
    )
    agent_ids: List[str] = Field(
        default_factory=list,
        description="Human agents eligible for assignment"
    )
    agent_assignment_strategy: str = Field(
        default="least_loaded",
        description="Agent selection: 'least_loaded' or 'round_robin'"
    )
    triage_on_create: bool = Field(
        default=True,
        description="Run triage immediately after a ticket is created"
    )
    classifier_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound on a single classifier call",
        gt=0
    )

    # ========== Replies ==========
    accept_followups_when_resolved: bool = Field(
        default=True,
        description="Allow requesters to comment on resolved tickets"
    )
    max_message_length: int = Field(
        default=10000,
        description="Maximum reply length in characters",
        ge=1
    )

    # ========== Optimistic Concurrency ==========
    concurrency_max_attempts: int = Field(
        default=3,
        description="Read-decide-commit attempts before surfacing a conflict",
        ge=1
    )
    concurrency_base_delay_seconds: float = Field(default=0.05, ge=0)
    concurrency_max_delay_seconds: float = Field(default=0.5, ge=0)
    concurrency_jitter_seconds: float = Field(default=0.05, ge=0)
    audit_append_attempts: int = Field(
        default=3,
        description="Audit append attempts before the ticket write is compensated",
        ge=1
    )

    # ========== LLM Classifier ==========
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    llm_base_url: Optional[str] = Field(
        default=None,
        description="Override for OpenAI-compatible endpoints"
    )
    llm_model: str = Field(default="gpt-4o-mini", description="Model used for classification")
    llm_temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    llm_max_tokens: int = Field(default=600, ge=1, le=8000)
    mock_llm: bool = Field(
        default=False,
        description="Use mock LLM responses for testing (no API calls)"
    )

    # ========== SLA ==========
    sla_evaluation_interval: int = Field(
        default=60,
        description="Seconds between SLA evaluations",
        ge=1
    )
    sla_force_close_enabled: bool = Field(
        default=False,
        description="Force-close tickets that breach their SLA"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for SLA escalations"
    )
    slack_channel: str = Field(
        default="#support-escalations",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        if v not in {"memory", "database"}:
            raise ValueError("storage_backend must be 'memory' or 'database'")
        return v

    @field_validator("auto_close_target")
    @classmethod
    def validate_auto_close_target(cls, v: str) -> str:
        if v not in {TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value}:
            raise ValueError("auto_close_target must be 'resolved' or 'closed'")
        return v

    @field_validator("agent_assignment_strategy")
    @classmethod
    def validate_assignment_strategy(cls, v: str) -> str:
        if v not in {"least_loaded", "round_robin"}:
            raise ValueError("agent_assignment_strategy must be 'least_loaded' or 'round_robin'")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class TicketCategory(str, Enum):
    """Categories a ticket can be filed under."""
    BILLING = "billing"
    TECH = "tech"
    SHIPPING = "shipping"
    OTHER = "other"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    TRIAGED = "triaged"
    WAITING_HUMAN = "waiting_human"
    RESOLVED = "resolved"
    CLOSED = "closed"


class AuditAction(str, Enum):
    """Lifecycle actions recorded in the audit log."""
    TICKET_CREATED = "TICKET_CREATED"
    REPLY_SENT = "REPLY_SENT"
    AUTO_CLOSED = "AUTO_CLOSED"
    ASSIGNED_TO_HUMAN = "ASSIGNED_TO_HUMAN"
    SLA_BREACH = "SLA_BREACH"
    TICKET_CLOSED = "TICKET_CLOSED"


class Actor(str, Enum):
    """Who performed an audited action."""
    SYSTEM = "system"
    AGENT = "agent"
    USER = "user"


class Role(str, Enum):
    """Caller roles; only admins may change policy."""
    ADMIN = "admin"
    AGENT = "agent"
    USER = "user"


# ========== Lists for validation ==========

VALID_CATEGORIES = [c.value for c in TicketCategory]
