"""
SLA Infrastructure Layer
========================

Slack escalation and the background scheduler.
"""

from supportdesk.sla.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    SlackNotifier,
    SLAScheduler,
)

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "SlackNotifier",
    "SLAScheduler",
]
