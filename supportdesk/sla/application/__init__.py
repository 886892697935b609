"""
SLA Application Layer
======================

Application layer for SLA monitoring module.

Contains:
- SLAMonitor: periodic breach evaluation, escalation and force close
- IEscalationNotifier: escalation port

This layer depends on the domain layer and port interfaces,
but not on concrete infrastructure implementations.
"""

from supportdesk.sla.application.services import IEscalationNotifier, SLAMonitor

__all__ = [
    "SLAMonitor",
    "IEscalationNotifier",
]
