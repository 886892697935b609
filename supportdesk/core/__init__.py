"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from supportdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ConflictException,
    InvalidTransitionException,
    AuditAppendException,
    ConfigurationException,
    ExternalServiceException,
    LLMException,
    ClassifierUnavailableException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "PermissionDeniedException",
    "ResourceNotFoundException",
    "ConflictException",
    "InvalidTransitionException",
    "AuditAppendException",
    "ConfigurationException",
    "ExternalServiceException",
    "LLMException",
    "ClassifierUnavailableException",
]
