"""
Policy Infrastructure Layer
===========================

Config store implementations.
"""

from supportdesk.policy.infrastructure.stores import (
    ConfigFileHandler,
    InMemoryConfigStore,
    YAMLConfigStore,
)

__all__ = [
    "ConfigFileHandler",
    "InMemoryConfigStore",
    "YAMLConfigStore",
]
