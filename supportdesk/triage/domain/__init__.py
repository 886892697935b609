"""
Triage Domain Layer
===================

Domain layer for ticket triage module.

Contains:
- Entities: ClassificationResult, Suggestion, TriageDecision
- Decision rule: decide(policy, classification)
- Value Objects: ClassificationPromptBuilder

This layer is framework-agnostic and contains pure business logic.
"""

from supportdesk.triage.domain.entities import (
    ClassificationPromptBuilder,
    ClassificationResult,
    DecisionReason,
    Suggestion,
    TriageDecision,
    TriageOutcome,
    decide,
)

__all__ = [
    "ClassificationResult",
    "Suggestion",
    "TriageOutcome",
    "DecisionReason",
    "TriageDecision",
    "decide",
    "ClassificationPromptBuilder",
]
