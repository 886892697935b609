"""
Triage Application Layer
========================

Contains:
- Ports: IClassifier, ISuggestionStore, IAgentSelector
- TriageEngine: classify, decide, commit
- SuggestionService: read/recompute suggestions
- Agent selectors: round robin, least loaded

This layer depends on the domain layer and port interfaces,
but not on concrete infrastructure implementations.
"""

from supportdesk.triage.application.services import (
    GuardedClassifier,
    IAgentSelector,
    IClassifier,
    ISuggestionStore,
    LeastLoadedAgentSelector,
    RoundRobinAgentSelector,
    SuggestionService,
    TriageEngine,
    TriageResult,
    build_agent_selector,
)

__all__ = [
    # Services
    "TriageEngine",
    "TriageResult",
    "SuggestionService",
    "GuardedClassifier",
    # Agent selection
    "IAgentSelector",
    "RoundRobinAgentSelector",
    "LeastLoadedAgentSelector",
    "build_agent_selector",
    # Ports
    "IClassifier",
    "ISuggestionStore",
]
