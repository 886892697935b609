"""
Triage Module
=============

Bounded Context for automated ticket triage.

Responsibilities:
- Classify tickets through a swappable classifier port
- Decide between auto-close and human escalation from a policy snapshot
- Pick an agent for escalated tickets
- Keep the latest suggestion per ticket
"""
