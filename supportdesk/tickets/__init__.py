"""
Tickets Module
==============

Bounded Context for the ticket record and its lifecycle.

Responsibilities:
- Store tickets with optimistic versioning
- Enforce the status transition graph
- Commit every status change together with its audit events
- Handle replies, manual close and manual assignment
"""
