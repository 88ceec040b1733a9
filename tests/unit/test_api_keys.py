"""Tests for API key issuance and verification."""

import re
import hashlib

import pytest

from quantica_billing.billing.api_keys import APIKeyManager, MAX_USAGE_COUNT
from quantica_billing.billing.models import ApiTier


KEY_PATTERN = re.compile(r"^QNT(-[0-9A-F]{8}){8}$")


@pytest.fixture
def manager():
    return APIKeyManager()


@pytest.fixture
def issued(manager):
    return manager.issue_key("user-1", "stripe_0011223344", ApiTier.PREMIUM, usage_limit=5)


class TestIssueKey:
    """Tests for APIKeyManager.issue_key."""

    def test_key_format(self, issued):
        assert KEY_PATTERN.match(issued.api_key)

    def test_custom_prefix(self):
        issued = APIKeyManager(prefix="ACME").issue_key("u", "p", ApiTier.TRIAL)
        assert issued.api_key.startswith("ACME-")
        assert len(issued.api_key.split("-")) == 9

    def test_record_fields(self, issued):
        record = issued.record
        assert re.match(r"^key_[0-9a-f]{24}$", record.id)
        assert record.user_id == "user-1"
        assert record.payment_id == "stripe_0011223344"
        assert record.tier == ApiTier.PREMIUM
        assert record.usage_limit == 5
        assert record.usage_count == 0
        assert record.revoked is False
        assert record.last_used_at is None

    def test_hash_format(self, issued):
        salt_hex, digest_hex = issued.record.hashed_key.split(":$")
        assert re.match(r"^[0-9a-f]{32}$", salt_hex)
        assert re.match(r"^[0-9a-f]{64}$", digest_hex)

        expected = hashlib.sha256(bytes.fromhex(salt_hex) + issued.api_key.encode()).hexdigest()
        assert digest_hex == expected

    def test_plaintext_not_in_hash(self, issued):
        hashed = issued.record.hashed_key.lower()
        assert issued.api_key.lower() not in hashed
        for segment in issued.api_key.split("-")[1:]:
            assert segment.lower() not in hashed

    def test_keys_are_unique(self, manager):
        first = manager.issue_key("u", "p", ApiTier.STANDARD)
        second = manager.issue_key("u", "p", ApiTier.STANDARD)
        assert first.api_key != second.api_key
        assert first.record.id != second.record.id
        assert first.record.hashed_key != second.record.hashed_key


class TestVerify:
    """Tests for APIKeyManager.verify."""

    def test_fresh_key_verifies(self, manager, issued):
        assert manager.verify(issued.api_key, issued.record) is True

    def test_wrong_key_fails(self, manager, issued):
        other = manager.issue_key("user-1", "p", ApiTier.PREMIUM)
        assert manager.verify(other.api_key, issued.record) is False

    def test_case_sensitive(self, manager, issued):
        assert manager.verify(issued.api_key.lower(), issued.record) is False

    def test_lone_surrogate_fails(self, manager, issued):
        assert manager.verify("QNT-\udc80", issued.record) is False

    def test_surrogate_suffix_fails(self, manager, issued):
        assert manager.verify(issued.api_key + "\ud800", issued.record) is False

    def test_revoked_fails(self, manager, issued):
        issued.record.revoked = True
        assert manager.verify(issued.api_key, issued.record) is False

    def test_revoked_fails_regardless_of_usage(self, manager, issued):
        issued.record.revoked = True
        issued.record.usage_limit = None
        issued.record.usage_count = 0
        assert manager.verify(issued.api_key, issued.record) is False

    @pytest.mark.parametrize(
        "hashed_key",
        [
            "",
            "no-separator",
            "zz:$00",
            "abc:$def",
            "0011:$",
            ":$",
        ],
    )
    def test_malformed_hash_fails(self, manager, issued, hashed_key):
        issued.record.hashed_key = hashed_key
        assert manager.verify(issued.api_key, issued.record) is False

    def test_hash_without_dollar_marker(self, manager, issued):
        issued.record.hashed_key = issued.record.hashed_key.replace(":$", ":")
        assert manager.verify(issued.api_key, issued.record) is True


class TestMarkUse:
    """Tests for APIKeyManager.mark_use."""

    def test_increments_and_stamps(self, issued):
        APIKeyManager.mark_use(issued.record)
        assert issued.record.usage_count == 1
        assert issued.record.last_used_at is not None

    def test_saturates(self, issued):
        issued.record.usage_count = MAX_USAGE_COUNT
        APIKeyManager.mark_use(issued.record)
        assert issued.record.usage_count == MAX_USAGE_COUNT
