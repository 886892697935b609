"""
SLA Domain Layer
================

Domain layer for SLA monitoring module.

Contains:
- Entities: SLABreach
- Domain Services: Stateless business logic (SLACalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from supportdesk.sla.domain.entities import SLABreach, SLACalculator, breach_dedup_key

__all__ = [
    "SLABreach",
    "SLACalculator",
    "breach_dedup_key",
]
