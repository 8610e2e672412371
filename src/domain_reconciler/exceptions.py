"""
Exception classes for the domain reconciler.

All exceptions inherit from ReconcilerError and provide structured
error information with codes, messages, and optional details. The driver
decides how to present them; the core only raises.
"""

from typing import Optional


class ReconcilerError(Exception):
    """Base exception for all domain reconciler errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class TransportError(ReconcilerError):
    """Raised when a single registrar call fails at the transport level (retryable)."""

    pass


class TransientFailure(ReconcilerError):
    """Raised when the retry budget is exhausted; wraps the last transport error."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
        last_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(code, message, details)
        self.last_error = last_error


class RegistrarError(ReconcilerError):
    """Raised when the registrar reports a business error (never retried)."""

    pass


class NotFound(ReconcilerError):
    """Raised when a domain is absent from the account."""

    pass


class AlreadyExists(ReconcilerError):
    """Raised when creating a domain the account already holds."""

    pass


class NotAvailable(ReconcilerError):
    """Raised when a domain is not available for registration."""

    pass


class OverBudget(ReconcilerError):
    """Raised when the resolved registration price exceeds the ceiling."""

    pass


class RenewalRejected(ReconcilerError):
    """Raised when the registrar does not confirm a renewal."""

    pass


class ReactivationRejected(ReconcilerError):
    """Raised when the registrar does not confirm a reactivation."""

    pass


class InvalidRecordValue(ReconcilerError):
    """Raised when a host record cannot be normalized (e.g. malformed CAA iodef)."""

    pass


class ModeConflict(ReconcilerError):
    """Raised when delegated nameservers and hosted records are requested together."""

    pass


class ConfigurationError(ReconcilerError):
    """Raised when credentials or configuration are missing or invalid."""

    pass


class PersistenceError(ReconcilerError):
    """Raised when persistence operations fail (file I/O, HMAC validation)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass


class ValidationError(ReconcilerError):
    """Raised when a domain name cannot be canonicalized."""

    pass
