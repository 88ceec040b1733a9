"""
API key management for Quantica billing.

Provides secure API key generation, salted hashing and verification.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

import structlog

from quantica_billing.billing.models import ApiKeyRecord, ApiTier, IssuedApiKey, utc_now

logger = structlog.get_logger()

API_KEY_BYTES = 32
SALT_BYTES = 16
RECORD_ID_BYTES = 12
SEGMENT_LENGTH = 8
DEFAULT_KEY_PREFIX = "QNT"

# usage_count saturates instead of growing past an unsigned 64-bit counter
MAX_USAGE_COUNT = 2**64 - 1


class APIKeyManager:
    """
    Issues and verifies API keys.

    Stateless apart from the key prefix: records are returned to the caller,
    which is responsible for persisting them.
    """

    def __init__(self, prefix: str = DEFAULT_KEY_PREFIX):
        self.prefix = prefix

    def issue_key(
        self,
        user_id: str,
        payment_id: str,
        tier: ApiTier,
        usage_limit: int | None = None,
    ) -> IssuedApiKey:
        """
        Generate a new API key.

        Args:
            user_id: Owner of the key
            payment_id: Payment the key was bought with
            tier: Tier granted by the key
            usage_limit: Maximum number of successful validations (None = unlimited)

        Returns:
            IssuedApiKey holding the plaintext key and its record
        """
        raw_key = secrets.token_bytes(API_KEY_BYTES)
        api_key = self._build_key_string(raw_key)
        salt = secrets.token_bytes(SALT_BYTES)

        record = ApiKeyRecord(
            id=f"key_{secrets.token_hex(RECORD_ID_BYTES)}",
            hashed_key=self.hash_with_salt(api_key, salt),
            user_id=user_id,
            payment_id=payment_id,
            tier=tier,
            created_at=utc_now(),
            usage_limit=usage_limit,
        )

        # not stored yet; the caller logs the issue once it is persisted
        logger.debug("API key generated", key_id=record.id, payment_id=payment_id)
        return IssuedApiKey(api_key=api_key, record=record)

    def verify(self, candidate: str, record: ApiKeyRecord) -> bool:
        """Check a plaintext candidate against a stored record."""
        if record.revoked:
            return False

        parts = self._split_hashed_value(record.hashed_key)
        if parts is None:
            return False

        salt, expected_digest = parts
        try:
            digest = self._digest(candidate, salt)
        except UnicodeEncodeError:
            # lone surrogates can never match an issued key
            return False
        return hmac.compare_digest(digest, expected_digest)

    @staticmethod
    def mark_use(record: ApiKeyRecord) -> None:
        """Count one use of the key. The caller persists the record."""
        record.usage_count = min(record.usage_count + 1, MAX_USAGE_COUNT)
        record.last_used_at = utc_now()

    @classmethod
    def hash_with_salt(cls, api_key: str, salt: bytes) -> str:
        """Encode ``salt`` and ``sha256(salt || key)`` as ``<salt>:$<digest>``."""
        return f"{salt.hex()}:${cls._digest(api_key, salt).hex()}"

    def _build_key_string(self, raw: bytes) -> str:
        hex_key = raw.hex().upper()
        segments = [
            hex_key[i:i + SEGMENT_LENGTH]
            for i in range(0, len(hex_key), SEGMENT_LENGTH)
        ]
        return f"{self.prefix}-{'-'.join(segments)}"

    @staticmethod
    def _digest(api_key: str, salt: bytes) -> bytes:
        return hashlib.sha256(salt + api_key.encode()).digest()

    @staticmethod
    def _split_hashed_value(encoded: str) -> tuple[bytes, bytes] | None:
        salt_hex, sep, digest_hex = encoded.partition(":")
        if not sep:
            return None
        digest_hex = digest_hex.lstrip("$")
        try:
            return bytes.fromhex(salt_hex), bytes.fromhex(digest_hex)
        except ValueError:
            return None
