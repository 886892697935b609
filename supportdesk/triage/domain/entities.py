"""
Triage Domain Entities
======================

Domain entities for the triage decision.

Contains pure Python business objects for the classifier's output, the
ephemeral suggestion derived from it, and the decision taken on a ticket.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from supportdesk.config import TicketCategory
from supportdesk.policy.domain import PolicyConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ClassificationResult:
    """
    What the classifier proposes for a ticket.

    Contains the predicted category, a draft reply and the classifier's
    self-reported confidence.
    """
    predicted_category: TicketCategory
    draft_reply: str
    confidence: float  # 0.0 to 1.0
    model_used: str = "unknown"
    latency_ms: int = 0

    def __post_init__(self):
        """Validate classification result."""
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")
        object.__setattr__(self, "predicted_category", TicketCategory(self.predicted_category))


@dataclass(frozen=True)
class Suggestion:
    """
    Ephemeral triage suggestion for a ticket.

    Recomputing or storing it never changes the ticket; it only becomes
    authoritative through a committed triage decision.
    """
    ticket_id: str
    draft_reply: str
    confidence: float
    predicted_category: TicketCategory
    generated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_classification(cls, ticket_id: str, result: ClassificationResult) -> "Suggestion":
        return cls(
            ticket_id=ticket_id,
            draft_reply=result.draft_reply,
            confidence=result.confidence,
            predicted_category=result.predicted_category,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "ticket_id": self.ticket_id,
            "draft_reply": self.draft_reply,
            "confidence": self.confidence,
            "predicted_category": self.predicted_category.value,
            "generated_at": self.generated_at.isoformat(),
        }


class TriageOutcome(str, Enum):
    """Result of one triage call."""
    AUTO_CLOSED = "AUTO_CLOSED"
    ASSIGNED_TO_HUMAN = "ASSIGNED_TO_HUMAN"
    NO_OP = "NO_OP"


class DecisionReason(str, Enum):
    """Why a decision went the way it did; recorded in audit meta."""
    CONFIDENT = "confident"
    BELOW_THRESHOLD = "below_threshold"
    AUTO_CLOSE_DISABLED = "auto_close_disabled"
    CLASSIFIER_UNAVAILABLE = "classifier_unavailable"
    EMPTY_DRAFT = "empty_draft"


@dataclass(frozen=True)
class TriageDecision:
    """Outcome chosen for a ticket plus the policy version it was made under."""
    outcome: TriageOutcome
    reason: DecisionReason
    policy_version: int


def decide(policy: PolicyConfig, classification: Optional[ClassificationResult]) -> TriageDecision:
    """
    The triage decision rule.

    AUTO_CLOSE only when auto-close is enabled and the classifier is at least
    as confident as the threshold. A missing classification or a blank draft
    reply always goes to a human.
    """
    if classification is None:
        return TriageDecision(
            TriageOutcome.ASSIGNED_TO_HUMAN, DecisionReason.CLASSIFIER_UNAVAILABLE, policy.version
        )
    if not classification.draft_reply.strip():
        return TriageDecision(
            TriageOutcome.ASSIGNED_TO_HUMAN, DecisionReason.EMPTY_DRAFT, policy.version
        )
    if not policy.auto_close_enabled:
        return TriageDecision(
            TriageOutcome.ASSIGNED_TO_HUMAN, DecisionReason.AUTO_CLOSE_DISABLED, policy.version
        )
    if policy.should_auto_close(classification.confidence):
        return TriageDecision(TriageOutcome.AUTO_CLOSED, DecisionReason.CONFIDENT, policy.version)
    return TriageDecision(
        TriageOutcome.ASSIGNED_TO_HUMAN, DecisionReason.BELOW_THRESHOLD, policy.version
    )


class ClassificationPromptBuilder:
    """
    Builds prompts for ticket classification.

    All prompt text in one place; the LLM classifier only sends and parses.
    """

    SYSTEM_PROMPT = """You are the triage assistant for a customer support desk.

For every ticket you receive:
1. Pick the category that fits best.
2. Draft a short, polite reply that would resolve the ticket if possible.
3. Report how confident you are that the reply fully resolves the ticket.

CATEGORIES:
- billing: invoices, charges, refunds, payment methods, subscriptions
- tech: errors, bugs, login problems, integrations, how-to questions
- shipping: delivery status, tracking, returns, damaged items
- other: anything that does not fit the categories above

CONFIDENCE:
A number between 0 and 1. Use values above 0.8 only when the draft reply
answers the request completely without a human needing to act.

Respond ONLY in JSON format:
{
    "category": "billing",
    "draft_reply": "reply text",
    "confidence": 0.85
}"""

    @classmethod
    def build_prompt(cls, title: str, description: str) -> str:
        """Build classification prompt from ticket content."""
        return f"""Title: {title}

Description:
{description}

Classify this ticket (respond with JSON only):"""

    @classmethod
    def get_system_prompt(cls) -> str:
        """Get the system prompt for classification."""
        return cls.SYSTEM_PROMPT
