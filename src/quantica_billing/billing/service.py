"""
Billing service for Quantica.

Orchestrates checkouts, settlement and API key validation over the payment
processors, the API key manager and the billing store.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

import structlog

from quantica_billing.billing.api_keys import APIKeyManager
from quantica_billing.billing.errors import (
    BillingValidationError,
    PaymentError,
    ProviderUnavailableError,
    from_payment_error,
)
from quantica_billing.billing.models import (
    ApiKeyRecord,
    BillingState,
    IssuedApiKey,
    PaymentIntent,
    PaymentProviderConfig,
    PaymentProviderKind,
    PaymentRecord,
    PaymentRequest,
    PaymentStatus,
    utc_now,
)
from quantica_billing.billing.providers import (
    PaymentProcessor,
    ProcessorRegistry,
    build_processor_map,
)
from quantica_billing.billing.store import BillingStore, find_api_key, find_payment
from quantica_billing.utils.logging import RequestLogger

if TYPE_CHECKING:
    from quantica_billing.core.config import Settings

logger = structlog.get_logger()

API_KEY_METADATA_FIELD = "api_key_id"
FAILURE_REASON_METADATA_FIELD = "failure_reason"

# Statuses a provider confirmation can still move forward.
AWAITING_CONFIRMATION = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.REQUIRES_ACTION, PaymentStatus.AUTHORIZED}
)


def default_provider_configs() -> list[PaymentProviderConfig]:
    """One enabled config per supported provider."""
    return [PaymentProviderConfig.enabled_for(kind) for kind in PaymentProviderKind]


class BillingService:
    """
    Billing contract exposed to the host process.

    Construct one explicitly and pass it to whatever needs it; the service
    shares its store across threads and never copies the state it holds.
    """

    def __init__(
        self,
        store: BillingStore,
        processors: ProcessorRegistry,
        key_manager: APIKeyManager | None = None,
        default_usage_limit: int | None = None,
    ):
        self.store = store
        self._processors = processors
        self.key_manager = key_manager or APIKeyManager()
        self.default_usage_limit = default_usage_limit

    @classmethod
    def open(
        cls,
        store_path: str | Path,
        provider_configs: Iterable[PaymentProviderConfig] | None = None,
        key_prefix: str | None = None,
    ) -> "BillingService":
        """Open the store at ``store_path`` and register hosted-checkout processors."""
        configs = list(provider_configs) if provider_configs is not None else default_provider_configs()
        key_manager = APIKeyManager(key_prefix) if key_prefix else APIKeyManager()
        return cls(
            store=BillingStore(store_path),
            processors=build_processor_map(configs),
            key_manager=key_manager,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "BillingService":
        """Build a service from application settings."""
        billing = settings.billing
        return cls(
            store=BillingStore(billing.state_path),
            processors=build_processor_map(billing.provider_configs()),
            key_manager=APIKeyManager(billing.key_prefix),
            default_usage_limit=billing.default_usage_limit,
        )

    # ==================== CHECKOUT ====================

    def create_checkout(self, request: PaymentRequest) -> PaymentIntent:
        """
        Create a payment intent and record the pending payment.

        Raises:
            ProviderUnavailableError: provider not registered or disabled
            BillingValidationError: the provider rejected the request
        """
        with RequestLogger(
            logger,
            "create_checkout",
            provider=request.provider.value,
            user_id=request.user_id,
        ):
            processor = self._processor_for(request.provider)
            try:
                intent = processor.create_payment_intent(request)
            except PaymentError as e:
                raise from_payment_error(e) from e

            now = utc_now()
            record = PaymentRecord(
                id=intent.id,
                provider=request.provider,
                status=intent.status,
                amount_cents=request.amount_cents,
                currency=request.currency,
                user_id=request.user_id,
                tier=request.tier,
                metadata=dict(intent.metadata),
                created_at=now,
                updated_at=now,
                reference=None,
            )
            self.store.upsert_payment(record)
            return intent

    def confirm_checkout(
        self,
        payment_id: str,
        usage_limit: int | None = None,
    ) -> IssuedApiKey | None:
        """
        Ask the payment's provider whether the intent went through.

        Settles the payment when the provider reports success and marks it
        failed when the provider reports failure. Any other status leaves the
        payment untouched. Payments that already succeeded or failed are not
        sent to the provider again, so repeated polls never issue a second key.

        Returns:
            The issued key on settlement, otherwise None
        """
        usage_limit = self._effective_usage_limit(usage_limit)
        payment = self.get_payment(payment_id)
        if payment.status not in AWAITING_CONFIRMATION:
            logger.info(
                "Payment already resolved, skipping confirmation",
                payment_id=payment_id,
                status=payment.status.value,
            )
            return None

        processor = self._processor_for(payment.provider)
        try:
            status = processor.confirm_intent(payment.id)
        except PaymentError as e:
            raise from_payment_error(e) from e

        logger.info("Payment intent confirmed", payment_id=payment_id, status=status.value)

        if status not in (PaymentStatus.SUCCEEDED, PaymentStatus.FAILED):
            return None

        reason = f"{payment.provider.value} declined the payment"

        def resolve(state: BillingState) -> IssuedApiKey | None:
            record = find_payment(state, payment_id)
            # another confirmation may have resolved the payment since the read above
            if record.status not in AWAITING_CONFIRMATION:
                return None
            if status == PaymentStatus.FAILED:
                self._fail(record, reason)
                return None
            return self._settle(state, record, payment.id, usage_limit)

        issued = self.store.write(resolve)
        if issued is not None:
            logger.info("Payment settled", payment_id=payment_id, key_id=issued.record.id)
            self._log_issued(issued)
        return issued

    # ==================== SETTLEMENT ====================

    def settle_payment(
        self,
        payment_id: str,
        reference: str | None = None,
        usage_limit: int | None = None,
    ) -> IssuedApiKey:
        """
        Mark a payment succeeded and issue its API key.

        The payment update and the new key are persisted in one write, so
        either both are stored or neither is.

        Args:
            payment_id: Payment to settle
            reference: External confirmation token
            usage_limit: Cap on successful validations (defaults to the
                configured default, None = unlimited)

        Returns:
            IssuedApiKey; its plaintext key is not retrievable again

        Raises:
            NotFoundError: no payment has this id
        """
        usage_limit = self._effective_usage_limit(usage_limit)

        def settle(state: BillingState) -> IssuedApiKey:
            return self._settle(state, find_payment(state, payment_id), reference, usage_limit)

        with RequestLogger(logger, "settle_payment", payment_id=payment_id) as request_log:
            issued = self.store.write(settle)
            request_log.log("Payment settled", key_id=issued.record.id)
        self._log_issued(issued)
        return issued

    def mark_payment_failed(self, payment_id: str, reason: str) -> PaymentRecord:
        """
        Mark a payment failed and record why.

        Raises:
            NotFoundError: no payment has this id
        """

        with RequestLogger(logger, "mark_payment_failed", payment_id=payment_id):
            return self.store.update_payment(payment_id, lambda record: self._fail(record, reason))

    # ==================== API KEYS ====================

    def validate_api_key(self, candidate: str) -> ApiKeyRecord:
        """
        Validate a plaintext API key and count one use of it.

        The revocation and usage limit checks are repeated inside the same
        exclusive write that increments the counter.

        Returns:
            The updated ApiKeyRecord

        Raises:
            BillingValidationError: unknown, revoked or exhausted key
        """
        record_id = self.store.read(
            lambda state: next(
                (
                    record.id
                    for record in state.api_keys
                    if self.key_manager.verify(candidate, record)
                ),
                None,
            )
        )
        if record_id is None:
            logger.warning("API key validation failed")
            raise BillingValidationError("invalid or unknown API key")

        def use(state: BillingState) -> ApiKeyRecord:
            record = find_api_key(state, record_id)
            if record.revoked:
                raise BillingValidationError("API key has been revoked")
            if record.is_exhausted:
                raise BillingValidationError("API key usage limit reached")
            APIKeyManager.mark_use(record)
            return copy.deepcopy(record)

        try:
            record = self.store.write(use)
        except BillingValidationError as e:
            logger.warning("API key rejected", key_id=record_id, reason=e.message)
            raise

        logger.debug("API key validated", key_id=record_id, usage_count=record.usage_count)
        return record

    def revoke_api_key(self, record_id: str) -> ApiKeyRecord:
        """
        Revoke an API key. There is no way to undo this.

        Raises:
            NotFoundError: no API key has this id
        """

        def revoke(record: ApiKeyRecord) -> None:
            record.revoked = True
            record.last_used_at = utc_now()

        with RequestLogger(logger, "revoke_api_key", key_id=record_id):
            return self.store.update_api_key(record_id, revoke)

    # ==================== QUERIES ====================

    def list_state(self) -> BillingState:
        """Full snapshot of the billing state."""
        return self.store.snapshot()

    def get_payment(self, payment_id: str) -> PaymentRecord:
        """Copy of a stored payment. Raises NotFoundError if absent."""
        return self.store.read(lambda state: copy.deepcopy(find_payment(state, payment_id)))

    def get_api_key(self, record_id: str) -> ApiKeyRecord:
        """Copy of a stored API key. Raises NotFoundError if absent."""
        return self.store.read(lambda state: copy.deepcopy(find_api_key(state, record_id)))

    def list_api_keys(self, user_id: str | None = None) -> list[ApiKeyRecord]:
        """API keys, optionally filtered by owner."""
        return self.store.read(
            lambda state: [
                copy.deepcopy(record)
                for record in state.api_keys
                if user_id is None or record.user_id == user_id
            ]
        )

    # ==================== PROVIDERS ====================

    def processors(self) -> list[PaymentProviderKind]:
        """Provider kinds with a registered processor."""
        return self._processors.kinds()

    def verify_webhook(self, provider: PaymentProviderKind, signature: str, payload: bytes) -> bool:
        """
        Check a webhook signature with the provider's processor.

        Raises:
            ProviderUnavailableError: provider not registered
        """
        valid = self._processor_for(provider).validate_webhook_signature(signature, payload)
        if not valid:
            logger.warning("Invalid webhook signature", provider=provider.value)
        return valid

    def _effective_usage_limit(self, usage_limit: int | None) -> int | None:
        if usage_limit is None:
            usage_limit = self.default_usage_limit
        if usage_limit is not None and usage_limit < 0:
            raise BillingValidationError("usage limit must not be negative")
        return usage_limit

    def _settle(
        self,
        state: BillingState,
        payment: PaymentRecord,
        reference: str | None,
        usage_limit: int | None,
    ) -> IssuedApiKey:
        """Settle ``payment`` inside a write and add its new key to ``state``."""
        payment.status = PaymentStatus.SUCCEEDED
        payment.updated_at = utc_now()
        payment.reference = reference

        issued = self.key_manager.issue_key(
            payment.user_id,
            payment.id,
            payment.tier,
            usage_limit=usage_limit,
        )
        payment.metadata[API_KEY_METADATA_FIELD] = issued.record.id
        state.api_keys.append(copy.deepcopy(issued.record))
        return issued

    @staticmethod
    def _log_issued(issued: IssuedApiKey) -> None:
        logger.info(
            "API key issued",
            key_id=issued.record.id,
            payment_id=issued.record.payment_id,
            tier=issued.record.tier.value,
            usage_limit=issued.record.usage_limit,
        )

    @staticmethod
    def _fail(payment: PaymentRecord, reason: str) -> None:
        payment.status = PaymentStatus.FAILED
        payment.metadata[FAILURE_REASON_METADATA_FIELD] = reason
        payment.updated_at = utc_now()

    def _processor_for(self, provider: PaymentProviderKind) -> PaymentProcessor:
        processor = self._processors.get(provider)
        if processor is None:
            raise ProviderUnavailableError(f"{provider.value} is not registered")
        return processor
