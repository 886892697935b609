"""
Infrastructure Package
======================

Technical adapters shared by the bounded contexts:
- database: async SQLAlchemy engine and sessions
- llm: LLM client used by the classifier adapter
"""
