"""
Policy Value Objects
====================

The admin-tunable triage policy.

A PolicyConfig is an immutable snapshot: triage reads one snapshot per
decision and never sees a half-applied update. Changes are expressed as a
PolicyPatch and produce a new snapshot with a higher version.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class PolicyConfig(BaseModel):
    """
    Triage policy snapshot.

    Accepts both snake_case and the camelCase names used by the admin UI
    (autoCloseEnabled, confidenceThreshold, slaHours).
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    auto_close_enabled: bool = Field(
        default=True,
        description="Allow triage to resolve tickets without a human"
    )
    confidence_threshold: float = Field(
        default=0.78,
        ge=0.0,
        le=1.0,
        strict=True,
        description="Minimum classifier confidence for auto-close"
    )
    sla_hours: int = Field(
        default=24,
        ge=1,
        strict=True,
        description="Hours a ticket may wait for a human before breaching SLA"
    )
    version: int = Field(default=1, ge=1, description="Increments on every update")
    updated_at: Optional[datetime] = None

    def should_auto_close(self, confidence: float) -> bool:
        """The decision rule: enabled and confident enough."""
        return self.auto_close_enabled and confidence >= self.confidence_threshold

    def apply(self, patch: "PolicyPatch") -> "PolicyConfig":
        """New snapshot with `patch` applied (validated again)."""
        values = self.model_dump()
        values.update(patch.changes())
        values["version"] = self.version + 1
        values["updated_at"] = datetime.now(timezone.utc)
        return PolicyConfig(**values)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class PolicyPatch(BaseModel):
    """
    Partial policy update.

    Only fields present in the input are changed. Unknown keys and explicit
    nulls are rejected. Numbers must be real numbers; booleans are not
    coerced.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    auto_close_enabled: Optional[bool] = None
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0, strict=True)
    sla_hours: Optional[int] = Field(default=None, ge=1, strict=True)

    @model_validator(mode="after")
    def reject_nulls(self) -> "PolicyPatch":
        nulls = [name for name in self.model_fields_set if getattr(self, name) is None]
        if nulls:
            raise ValueError(f"fields cannot be null: {', '.join(sorted(nulls))}")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set
