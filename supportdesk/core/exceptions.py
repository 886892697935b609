"""
Core Exceptions
================

Custom exceptions for the support desk engine.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries (the facade, the API layer that
sits on top of it, or the SLA scheduler).
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Malformed input, rejected before touching storage."""


class PermissionDeniedException(ApplicationException):
    """Caller is not allowed to perform the operation."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConflictException(RepositoryException):
    """
    Optimistic concurrency failure.

    Raised by the repository when the stored version no longer matches the
    expected one, and by services once their retry budget is exhausted.
    Callers may retry the whole operation.
    """

    def __init__(
        self,
        resource_id: str,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        details: Optional[dict] = None
    ):
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on '{resource_id}' "
            f"(expected {expected_version}, found {actual_version})",
            details or {
                "resource_id": resource_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            }
        )


class InvalidTransitionException(DomainException):
    """A status change outside the allowed transition graph."""

    def __init__(self, current: Any, event: Any, details: Optional[dict] = None):
        self.current = current
        self.event = event
        current_value = getattr(current, "value", current)
        event_value = getattr(event, "value", event)
        super().__init__(
            f"Cannot apply '{event_value}' to a ticket in status '{current_value}'",
            details or {"current_status": current_value, "event": event_value}
        )


class AuditAppendException(RepositoryException):
    """The audit log could not record events for a committed state change."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for LLM API failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class ClassifierUnavailableException(ExternalServiceException):
    """The classifier failed or timed out. Triage recovers locally."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Classifier", message, details)
