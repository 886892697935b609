"""
Policy Domain Layer
===================

Contains:
- Value Objects: PolicyConfig snapshots and PolicyPatch updates
"""

from supportdesk.policy.domain.value_objects import PolicyConfig, PolicyPatch

__all__ = [
    "PolicyConfig",
    "PolicyPatch",
]
