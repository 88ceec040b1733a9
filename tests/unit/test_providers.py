"""Tests for payment processors."""

import re

import pytest

from quantica_billing.billing.errors import (
    ErrorKind,
    PaymentProviderUnavailableError,
    PaymentValidationError,
)
from quantica_billing.billing.models import (
    ApiTier,
    PaymentProviderConfig,
    PaymentProviderKind,
    PaymentRequest,
    PaymentStatus,
)
from quantica_billing.billing.providers import (
    CHECKOUT_DOMAINS,
    HostedCheckoutProcessor,
    PaymentProcessor,
    ProcessorRegistry,
    build_processor_map,
)


def make_request(**overrides):
    data = {
        "provider": PaymentProviderKind.STRIPE,
        "amount_cents": 4900,
        "currency": "usd",
        "user_id": "user-1",
        "tier": ApiTier.STANDARD,
        "metadata": {"campaign": "launch"},
    }
    data.update(overrides)
    return PaymentRequest(**data)


@pytest.fixture
def processor():
    return HostedCheckoutProcessor(PaymentProviderConfig.enabled_for(PaymentProviderKind.STRIPE))


class TestHostedCheckoutProcessor:
    """Tests for HostedCheckoutProcessor."""

    def test_kind(self, processor):
        assert processor.kind == PaymentProviderKind.STRIPE
        assert isinstance(processor, PaymentProcessor)

    def test_create_intent(self, processor):
        intent = processor.create_payment_intent(make_request())

        assert re.match(r"^stripe_[0-9A-F]{20}$", intent.id)
        assert intent.provider == PaymentProviderKind.STRIPE
        assert intent.status == PaymentStatus.PENDING
        assert intent.amount_cents == 4900
        assert intent.currency == "usd"
        assert intent.client_secret is None
        assert intent.checkout_url == f"https://checkout.stripe.com/checkout?intent={intent.id}"

    def test_metadata_merged(self, processor):
        intent = processor.create_payment_intent(make_request())
        assert intent.metadata == {
            "campaign": "launch",
            "user_id": "user-1",
            "tier": "standard",
        }

    def test_request_metadata_not_mutated(self, processor):
        request = make_request()
        processor.create_payment_intent(request)
        assert request.metadata == {"campaign": "launch"}

    def test_return_url_used(self, processor):
        intent = processor.create_payment_intent(
            make_request(return_url="https://example.com/thanks")
        )
        assert intent.checkout_url == "https://example.com/thanks"

    def test_provider_scoped_reference(self):
        processor = HostedCheckoutProcessor(
            PaymentProviderConfig.enabled_for(PaymentProviderKind.APPLE_PAY)
        )
        intent = processor.create_payment_intent(
            make_request(provider=PaymentProviderKind.APPLE_PAY)
        )
        assert intent.id.startswith("apple_pay_")
        assert "pay.apple.com" in intent.checkout_url

    def test_zero_amount_rejected(self, processor):
        with pytest.raises(PaymentValidationError) as exc_info:
            processor.create_payment_intent(make_request(amount_cents=0))
        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_disabled_provider(self):
        config = PaymentProviderConfig(provider=PaymentProviderKind.PAYPAL, enabled=False)
        processor = HostedCheckoutProcessor(config)

        with pytest.raises(PaymentProviderUnavailableError):
            processor.create_payment_intent(make_request(provider=PaymentProviderKind.PAYPAL))
        with pytest.raises(PaymentProviderUnavailableError):
            processor.confirm_intent("paypal_00")

    def test_confirm_intent(self, processor):
        assert processor.confirm_intent("stripe_00") == PaymentStatus.SUCCEEDED

    def test_every_provider_has_domain(self):
        assert set(CHECKOUT_DOMAINS) == set(PaymentProviderKind)


class TestWebhookSignature:
    """Tests for webhook signature validation."""

    def test_no_secret_accepts(self, processor):
        assert processor.validate_webhook_signature("anything", b"") is True

    def test_matching_secret(self):
        config = PaymentProviderConfig(
            provider=PaymentProviderKind.STRIPE,
            webhook_secret="whsec_123",
        )
        processor = HostedCheckoutProcessor(config)

        assert processor.validate_webhook_signature("whsec_123", b"{}") is True
        assert processor.validate_webhook_signature("whsec_124", b"{}") is False
        assert processor.validate_webhook_signature("whsec_12", b"{}") is False

    def test_empty_payload_rejected(self):
        config = PaymentProviderConfig(
            provider=PaymentProviderKind.STRIPE,
            webhook_secret="whsec_123",
        )
        processor = HostedCheckoutProcessor(config)
        assert processor.validate_webhook_signature("whsec_123", b"") is False


class TestProcessorRegistry:
    """Tests for the processor registry."""

    def test_build_processor_map(self):
        registry = build_processor_map([
            PaymentProviderConfig.enabled_for(PaymentProviderKind.STRIPE),
            PaymentProviderConfig.enabled_for(PaymentProviderKind.BITCOIN),
        ])
        assert len(registry) == 2
        assert PaymentProviderKind.STRIPE in registry
        assert registry.get(PaymentProviderKind.VISA) is None
        assert set(registry.kinds()) == {PaymentProviderKind.STRIPE, PaymentProviderKind.BITCOIN}

    def test_register_replaces(self):
        registry = ProcessorRegistry()
        first = HostedCheckoutProcessor(PaymentProviderConfig.enabled_for(PaymentProviderKind.VENMO))
        second = HostedCheckoutProcessor(PaymentProviderConfig.enabled_for(PaymentProviderKind.VENMO))
        registry.register(first)
        registry.register(second)

        assert len(registry) == 1
        assert registry.get(PaymentProviderKind.VENMO) is second
