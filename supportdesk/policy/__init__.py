"""
Policy Module
=============

Bounded Context for the live triage policy.

Responsibilities:
- Hold the single versioned policy record (YAML file or memory)
- Hot-reload the YAML file via watchdog
- Serve immutable snapshots with bounded staleness to triage
- Validate admin updates
"""
