"""
Ticket Application DTOs
=======================

Pydantic models validating caller input before anything touches storage.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from supportdesk.core import ValidationException


# ========== Type Aliases for Literals ==========
TicketCategoryStr = Literal["billing", "tech", "shipping", "other"]
ActorStr = Literal["system", "agent", "user"]


# ========== Request DTOs ==========

class CreateTicketRequest(BaseModel):
    """Request model for ticket creation."""
    title: str = Field(..., min_length=1, max_length=500, description="Ticket title")
    description: str = Field(..., min_length=1, max_length=10000, description="Ticket body")
    requester: str = Field(default="anonymous", min_length=1, max_length=255)
    category: TicketCategoryStr = Field(default="other")

    @field_validator("title", "description")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Reject whitespace-only text."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class ReplyRequest(BaseModel):
    """Request model for a reply on a ticket."""
    message: str = Field(..., min_length=1, description="Reply text")
    actor: ActorStr
    author_id: Optional[str] = Field(None, max_length=255)

    @field_validator("message")
    @classmethod
    def strip_message(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class AssignRequest(BaseModel):
    """Request model for manual (re)assignment."""
    agent_id: str = Field(..., min_length=1, max_length=255)
    actor: ActorStr = "agent"


def validate_request(model: type[BaseModel], **fields) -> BaseModel:
    """
    Build a request model, translating pydantic errors.

    Raises:
        ValidationException: with the pydantic error list in details
    """
    try:
        return model(**fields)
    except ValidationError as e:
        raise ValidationException(
            f"Invalid {model.__name__}",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from e
