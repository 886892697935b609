"""
SupportDesk
===========

Triage and lifecycle engine for a customer support desk.
"""

__version__ = "1.0.0"
