"""
Quantica Billing - API key credentials and payment lifecycle management.

Issues salted API keys for settled payments, validates them against usage
limits, and tracks checkouts across pluggable payment providers in a single
file-backed store.
"""

__version__ = "0.3.0"
__author__ = "Quantica Team"

from quantica_billing.billing import (
    APIKeyManager,
    ApiKeyRecord,
    ApiTier,
    BillingError,
    BillingService,
    BillingState,
    BillingStore,
    IssuedApiKey,
    PaymentIntent,
    PaymentProviderKind,
    PaymentRecord,
    PaymentRequest,
    PaymentStatus,
)

__all__ = [
    "APIKeyManager",
    "ApiKeyRecord",
    "ApiTier",
    "BillingError",
    "BillingService",
    "BillingState",
    "BillingStore",
    "IssuedApiKey",
    "PaymentIntent",
    "PaymentProviderKind",
    "PaymentRecord",
    "PaymentRequest",
    "PaymentStatus",
]
