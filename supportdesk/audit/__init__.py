"""
Audit Module
============

Bounded Context for the append-only audit trail.

Responsibilities:
- Record one immutable event per lifecycle action
- Assign a stable, store-wide sequence to every event
- Deduplicate idempotent appends (SLA breaches) by key
- Project the history into a conversation view
"""
