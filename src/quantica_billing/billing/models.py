"""
Billing data models for Quantica.

Persisted records are dataclasses with explicit dict conversion; requests and
intents exchanged with payment processors are pydantic models.

Timestamps are written as ISO-8601 strings. Older state files that store Unix
epoch seconds are still read.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PaymentProviderKind(str, Enum):
    """Supported payment providers."""

    STRIPE = "stripe"
    PAYPAL = "paypal"
    SHOPIFY = "shopify"
    KLARNA = "klarna"
    AFFIRM = "affirm"
    APPLE_PAY = "apple_pay"
    WEPAY = "wepay"
    VENMO = "venmo"
    WECHAT = "wechat"
    QUICKBOOKS = "quickbooks"
    MASTERCARD = "mastercard"
    VISA = "visa"
    BITCOIN = "bitcoin"


class PaymentStatus(str, Enum):
    """Payment lifecycle status."""

    PENDING = "pending"
    REQUIRES_ACTION = "requires_action"
    AUTHORIZED = "authorized"
    SUCCEEDED = "succeeded"
    REFUNDED = "refunded"
    FAILED = "failed"
    CHARGEBACK = "chargeback"


class ApiTier(str, Enum):
    """API access tier purchased with a payment."""

    TRIAL = "trial"
    STANDARD = "standard"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: str | int | float | None) -> datetime | None:
    """Read an ISO-8601 string or Unix epoch seconds as an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, timezone.utc)
    return datetime.fromisoformat(value)


@dataclass
class PaymentProviderConfig:
    """Configuration for a single payment provider."""

    provider: PaymentProviderKind
    enabled: bool = True
    api_key: str | None = None
    webhook_secret: str | None = None
    merchant_id: str | None = None
    region: str | None = None

    @classmethod
    def enabled_for(cls, provider: PaymentProviderKind) -> "PaymentProviderConfig":
        """Enabled config with no credentials."""
        return cls(provider=provider, enabled=True)


class PaymentRequest(BaseModel):
    """Request to start a checkout with a provider."""

    provider: PaymentProviderKind
    amount_cents: int = Field(ge=0)
    currency: str = "usd"
    user_id: str
    tier: ApiTier
    metadata: dict[str, str] = Field(default_factory=dict)
    return_url: str | None = None
    cancel_url: str | None = None


class PaymentIntent(BaseModel):
    """Provider-facing intent returned from checkout creation. Never persisted."""

    id: str
    provider: PaymentProviderKind
    status: PaymentStatus
    amount_cents: int
    currency: str
    checkout_url: str | None = None
    client_secret: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


@dataclass
class PaymentRecord:
    """Persisted payment."""

    id: str
    provider: PaymentProviderKind
    status: PaymentStatus
    amount_cents: int
    currency: str
    user_id: str
    tier: ApiTier
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    reference: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "provider": self.provider.value,
            "status": self.status.value,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "user_id": self.user_id,
            "tier": self.tier.value,
            "metadata": dict(self.metadata),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "reference": self.reference,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentRecord":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            provider=PaymentProviderKind(data["provider"]),
            status=PaymentStatus(data["status"]),
            amount_cents=int(data["amount_cents"]),
            currency=data["currency"],
            user_id=data["user_id"],
            tier=ApiTier(data["tier"]),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
            reference=data.get("reference"),
        )


@dataclass
class ApiKeyRecord:
    """Persisted API key. Only the salted hash of the key is stored."""

    id: str
    hashed_key: str
    user_id: str
    payment_id: str
    tier: ApiTier
    created_at: datetime = field(default_factory=utc_now)
    revoked: bool = False
    usage_limit: int | None = None
    usage_count: int = 0
    last_used_at: datetime | None = None

    @property
    def is_exhausted(self) -> bool:
        """Whether the usage limit, if any, has been reached."""
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "id": self.id,
            "hashed_key": self.hashed_key,
            "user_id": self.user_id,
            "payment_id": self.payment_id,
            "tier": self.tier.value,
            "created_at": self.created_at.isoformat(),
            "revoked": self.revoked,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApiKeyRecord":
        """Create from dictionary."""
        usage_limit = data.get("usage_limit")
        return cls(
            id=data["id"],
            hashed_key=data["hashed_key"],
            user_id=data["user_id"],
            payment_id=data["payment_id"],
            tier=ApiTier(data["tier"]),
            created_at=_parse_datetime(data["created_at"]),
            revoked=bool(data.get("revoked", False)),
            usage_limit=int(usage_limit) if usage_limit is not None else None,
            usage_count=int(data.get("usage_count", 0)),
            last_used_at=_parse_datetime(data.get("last_used_at")),
        )


@dataclass
class IssuedApiKey:
    """A freshly issued key. ``api_key`` is the only copy of the plaintext."""

    api_key: str
    record: ApiKeyRecord


@dataclass
class BillingState:
    """Everything the billing store persists."""

    payments: list[PaymentRecord] = field(default_factory=list)
    api_keys: list[ApiKeyRecord] = field(default_factory=list)

    def copy(self) -> "BillingState":
        """Deep copy, safe to hand out or mutate."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "payments": [payment.to_dict() for payment in self.payments],
            "api_keys": [api_key.to_dict() for api_key in self.api_keys],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BillingState":
        """Create from dictionary."""
        return cls(
            payments=[PaymentRecord.from_dict(item) for item in data.get("payments", [])],
            api_keys=[ApiKeyRecord.from_dict(item) for item in data.get("api_keys", [])],
        )
