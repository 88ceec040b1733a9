"""
Error types for Quantica billing.

Two taxonomies exist: ``BillingError`` for the service and store, and the
narrower ``PaymentError`` raised at the payment processor boundary.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Structured error kinds carried by every billing error."""

    IO = "io"
    SERIALIZATION = "serialization"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSPORT = "transport"
    UNEXPECTED = "unexpected"
    POISONED = "poisoned"


_KIND_LABELS: dict[ErrorKind, str] = {
    ErrorKind.IO: "I/O error",
    ErrorKind.SERIALIZATION: "Serialization error",
    ErrorKind.PROVIDER_UNAVAILABLE: "Provider unavailable",
    ErrorKind.VALIDATION: "Validation error",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.CONFLICT: "Conflict",
    ErrorKind.TRANSPORT: "Transport error",
    ErrorKind.UNEXPECTED: "Unexpected error",
    ErrorKind.POISONED: "Store poisoned",
}


class BillingError(Exception):
    """Base exception for billing errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{_KIND_LABELS[self.kind]}: {self.message}"


class StorageError(BillingError):
    """Raised when the state file cannot be read or written."""

    kind = ErrorKind.IO


class SerializationError(BillingError):
    """Raised when persisted state is malformed or cannot be encoded."""

    kind = ErrorKind.SERIALIZATION


class ProviderUnavailableError(BillingError):
    """Raised when a provider is unknown or disabled."""

    kind = ErrorKind.PROVIDER_UNAVAILABLE


class BillingValidationError(BillingError):
    """Raised on bad input, failed credential checks or business rule violations."""

    kind = ErrorKind.VALIDATION


class NotFoundError(BillingError):
    """Raised when a referenced payment or API key does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(BillingError):
    """Reserved for conflicting updates. Not raised at the moment."""

    kind = ErrorKind.CONFLICT


class ProviderTransportError(BillingError):
    """Raised when a provider could not be reached."""

    kind = ErrorKind.TRANSPORT


class ProviderUnexpectedError(BillingError):
    """Raised when a provider fails in an unexpected way."""

    kind = ErrorKind.UNEXPECTED


class StorePoisonedError(BillingError):
    """Raised by every store operation after a write failed catastrophically."""

    kind = ErrorKind.POISONED


class PaymentError(Exception):
    """Base exception for payment processor errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider

    def __str__(self) -> str:
        return f"{_KIND_LABELS[self.kind]}: {self.message}"


class PaymentProviderUnavailableError(PaymentError):
    """Raised when the provider is disabled."""

    kind = ErrorKind.PROVIDER_UNAVAILABLE


class PaymentValidationError(PaymentError):
    """Raised when the provider rejects a request."""

    kind = ErrorKind.VALIDATION


class PaymentTransportError(PaymentError):
    """Raised when the provider cannot be reached."""

    kind = ErrorKind.TRANSPORT


class PaymentUnexpectedError(PaymentError):
    """Raised for any other provider failure."""

    kind = ErrorKind.UNEXPECTED


_PAYMENT_TO_BILLING: dict[ErrorKind, type[BillingError]] = {
    ErrorKind.PROVIDER_UNAVAILABLE: ProviderUnavailableError,
    ErrorKind.VALIDATION: BillingValidationError,
    ErrorKind.TRANSPORT: ProviderTransportError,
    ErrorKind.UNEXPECTED: ProviderUnexpectedError,
}


def from_payment_error(error: PaymentError) -> BillingError:
    """Translate a processor error into the billing error of the same kind."""
    error_cls = _PAYMENT_TO_BILLING.get(error.kind, ProviderUnexpectedError)
    return error_cls(error.message)
