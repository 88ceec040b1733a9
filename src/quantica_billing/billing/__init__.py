"""
Billing for Quantica.

Provides API key issuance and validation, payment processor integrations,
the file-backed billing store, and the billing service that ties them together.
"""

from quantica_billing.billing.errors import (
    ErrorKind,
    BillingError,
    StorageError,
    SerializationError,
    ProviderUnavailableError,
    BillingValidationError,
    NotFoundError,
    ConflictError,
    ProviderTransportError,
    ProviderUnexpectedError,
    StorePoisonedError,
    PaymentError,
    PaymentProviderUnavailableError,
    PaymentValidationError,
    PaymentTransportError,
    PaymentUnexpectedError,
)
from quantica_billing.billing.models import (
    ApiKeyRecord,
    ApiTier,
    BillingState,
    IssuedApiKey,
    PaymentIntent,
    PaymentProviderConfig,
    PaymentProviderKind,
    PaymentRecord,
    PaymentRequest,
    PaymentStatus,
)
from quantica_billing.billing.api_keys import APIKeyManager
from quantica_billing.billing.providers import (
    PaymentProcessor,
    HostedCheckoutProcessor,
    ProcessorRegistry,
    build_processor_map,
)
from quantica_billing.billing.store import BillingStore
from quantica_billing.billing.service import BillingService

__all__ = [
    # Errors
    "ErrorKind",
    "BillingError",
    "StorageError",
    "SerializationError",
    "ProviderUnavailableError",
    "BillingValidationError",
    "NotFoundError",
    "ConflictError",
    "ProviderTransportError",
    "ProviderUnexpectedError",
    "StorePoisonedError",
    "PaymentError",
    "PaymentProviderUnavailableError",
    "PaymentValidationError",
    "PaymentTransportError",
    "PaymentUnexpectedError",
    # Models
    "ApiKeyRecord",
    "ApiTier",
    "BillingState",
    "IssuedApiKey",
    "PaymentIntent",
    "PaymentProviderConfig",
    "PaymentProviderKind",
    "PaymentRecord",
    "PaymentRequest",
    "PaymentStatus",
    # API keys
    "APIKeyManager",
    # Providers
    "PaymentProcessor",
    "HostedCheckoutProcessor",
    "ProcessorRegistry",
    "build_processor_map",
    # Store and service
    "BillingStore",
    "BillingService",
]
