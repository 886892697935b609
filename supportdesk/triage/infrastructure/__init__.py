"""
Triage Infrastructure Layer
===========================

Classifier adapters and suggestion storage.
"""

from supportdesk.triage.infrastructure.external import LLMClassifier, StaticClassifier
from supportdesk.triage.infrastructure.repositories import InMemorySuggestionStore

__all__ = [
    "LLMClassifier",
    "StaticClassifier",
    "InMemorySuggestionStore",
]
