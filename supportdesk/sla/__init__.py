"""
SLA Monitoring Module
=====================

Bounded Context for SLA monitoring and escalation.

Responsibilities:
- Find waiting_human tickets older than the policy's SLA window
- Record at most one SLA_BREACH per assignment
- Escalate new breaches via Slack
- Optionally force-close breached tickets
- Run the evaluation periodically with APScheduler
"""
