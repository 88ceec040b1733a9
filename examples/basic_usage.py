#!/usr/bin/env python3
"""
Basic usage examples for Quantica billing.

Walks a payment from checkout to settlement and then uses the issued key.
"""

import tempfile
from pathlib import Path

from quantica_billing import (
    ApiTier,
    BillingError,
    BillingService,
    PaymentProviderKind,
    PaymentRequest,
)
from quantica_billing.utils import setup_logging


def checkout_and_settle(service: BillingService) -> str:
    """Create a checkout, settle it and return the issued key."""
    print("\n=== Checkout ===\n")

    intent = service.create_checkout(
        PaymentRequest(
            provider=PaymentProviderKind.STRIPE,
            amount_cents=4900,
            currency="usd",
            user_id="user-42",
            tier=ApiTier.PREMIUM,
        )
    )
    print(f"Payment: {intent.id}")
    print(f"Checkout URL: {intent.checkout_url}")

    print("\n=== Settlement ===\n")

    issued = service.settle_payment(intent.id, reference="ch_example", usage_limit=3)
    print(f"API key (shown once): {issued.api_key}")
    print(f"Key record: {issued.record.id}")
    return issued.api_key


def use_key(service: BillingService, api_key: str) -> None:
    """Validate the key until its usage limit runs out."""
    print("\n=== Validation ===\n")

    for _ in range(4):
        try:
            record = service.validate_api_key(api_key)
            print(f"Valid: {record.usage_count}/{record.usage_limit} uses")
        except BillingError as e:
            print(f"Rejected: {e}")


def main():
    setup_logging(level="WARNING", json_format=False)

    with tempfile.TemporaryDirectory() as tmp:
        service = BillingService.open(Path(tmp) / "billing_state.json")
        api_key = checkout_and_settle(service)
        use_key(service, api_key)


if __name__ == "__main__":
    main()
