"""
Custom Exceptions for Todo Premium

Hierarchical exception classes for proper error handling across layers.
"""

from typing import Optional, Dict, Any


class TodoAppError(Exception):
    """Base exception for all Todo Premium errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class ValidationError(TodoAppError):
    """Raised when input validation fails."""
    pass


class AuthenticationError(TodoAppError):
    """Raised when the caller has no valid identity."""
    pass


class DatabaseError(TodoAppError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class EntitlementWriteError(DatabaseError):
    """Raised when an entitlement or billing-account index write fails."""

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation="upsert",
            table="entitlements",
            original_error=original_error,
        )
        if user_id:
            self.details["user_id"] = user_id


class BillingProviderError(TodoAppError):
    """Raised when a call to the billing provider fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        user_message: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)
        self.user_message = user_message or message


class SignatureVerificationError(BillingProviderError):
    """Raised when a webhook payload fails signature verification."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message, operation="verify_event", original_error=original_error)


class UsageLimitError(TodoAppError):
    """Raised when the caller's tier does not allow more items."""

    def __init__(self, message: str, current_count: int, max_count: Optional[int]):
        super().__init__(
            message,
            details={"current_count": current_count, "max_count": max_count},
        )


class ConfigurationError(TodoAppError):
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
