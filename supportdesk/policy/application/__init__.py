"""
Policy Application Layer
========================

Contains:
- IConfigStore: store contract
- PolicySnapshotCache: bounded-staleness reads for triage
- PolicyService: admin reads and validated updates
"""

from supportdesk.policy.application.services import (
    IConfigStore,
    PolicyService,
    PolicySnapshotCache,
)

__all__ = [
    "IConfigStore",
    "PolicyService",
    "PolicySnapshotCache",
]
