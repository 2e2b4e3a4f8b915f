"""
Custom Exceptions for TimeTrack Billing

Hierarchical exception classes for proper error handling across layers.
Every exception carries a machine-readable ``code`` so the UI can special-case
messaging (e.g. "subscription_not_found") instead of parsing text.
"""

from typing import Optional, Dict, Any


class TimeTrackError(Exception):
    """Base exception for all TimeTrack billing errors."""

    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        payload: Dict[str, Any] = {
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TimeTrackError):
    """Raised when input validation fails."""

    code = "invalid_request"


class InvalidPlanError(ValidationError):
    """Raised when a plan identifier cannot be mapped to a Stripe price."""

    code = "invalid_plan"

    def __init__(self, plan_id: Optional[str]):
        super().__init__(
            f"Invalid plan identifier: {plan_id!r}",
            details={"plan_id": plan_id},
        )


class CheckoutIncompleteError(ValidationError):
    """Raised when verifying a checkout session that has not completed."""

    code = "checkout_incomplete"


class NotAuthenticatedError(TimeTrackError):
    """Raised when no authenticated user is available."""

    code = "not_authenticated"


class ForbiddenError(TimeTrackError):
    """Raised when a user touches a resource that belongs to someone else."""

    code = "forbidden"


class DatabaseError(TimeTrackError):
    """Raised when database operations fail."""

    code = "database_error"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None,
        code: Optional[str] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error, code=code)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""

    code = "not_found"


class PaymentProviderError(TimeTrackError):
    """Raised when a Stripe call fails on a mutating or user-facing path."""

    code = "provider_error"

    def __init__(
        self,
        message: str,
        provider_message: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if provider_message:
            details["provider_message"] = provider_message
        super().__init__(message, details, original_error)


class ConfigurationError(TimeTrackError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)


class SubscriptionFetchError(TimeTrackError):
    """Raised when the subscription row cannot be read from the data store."""

    code = "fetch_failed"
