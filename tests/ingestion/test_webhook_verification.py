"""Tests for inventory_ingestion.verification (HMAC-SHA256 webhook signatures)."""

import hashlib
import hmac

import pytest

from inventory_ingestion.verification import (
    compute_signature,
    require_valid_signature,
    verify_signature,
)
from inventory_kernel.exceptions import SignatureError

SECRET = "whsec-test"
BODY = b'{"type":"job.completed","jobId":"J1"}'


def _sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestVerifySignature:
    def test_valid_signature(self):
        assert verify_signature(SECRET, BODY, _sign(BODY)) is True

    def test_prefixed_and_uppercase_signature(self):
        assert verify_signature(SECRET, BODY, "sha256=" + _sign(BODY).upper()) is True

    def test_wrong_secret(self):
        assert verify_signature(SECRET, BODY, _sign(BODY, "other")) is False

    def test_tampered_body(self):
        assert verify_signature(SECRET, BODY + b" ", _sign(BODY)) is False

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature(self, signature):
        assert verify_signature(SECRET, BODY, signature) is False

    def test_non_hex_garbage(self):
        assert verify_signature(SECRET, BODY, "not-a-signature-é") is False

    def test_no_secret_accepts_and_warns(self, captured_logs):
        assert verify_signature("", BODY, None) is True
        assert any(r["message"] == "webhook_signature_unverified" for r in captured_logs())

    def test_compute_signature_matches_hmac(self):
        assert compute_signature(SECRET, BODY) == _sign(BODY)


class TestRequireValidSignature:
    def test_passes(self):
        require_valid_signature(SECRET, BODY, _sign(BODY))

    def test_missing(self):
        with pytest.raises(SignatureError) as exc_info:
            require_valid_signature(SECRET, BODY, None)
        assert exc_info.value.reason == "Missing signature"
        assert exc_info.value.code == "SIGNATURE_INVALID"

    def test_invalid(self):
        with pytest.raises(SignatureError) as exc_info:
            require_valid_signature(SECRET, BODY, "00" * 32)
        assert exc_info.value.reason == "Invalid signature"
