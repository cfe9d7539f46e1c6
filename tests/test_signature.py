"""Tests for webhook signature verification."""

import pytest

from shopsync.core.errors import VerificationError
from shopsync.core.signature import WebhookVerifier, compute_webhook_signature, verify_webhook_signature

from conftest import TEST_SECRET, sign

BODY = b'{"id":100,"total_price":"19.99","created_at":"2024-03-01T10:00:00Z"}'


class TestVerifyWebhookSignature:
    def test_accepts_signature_of_raw_body(self):
        verify_webhook_signature(BODY, sign(BODY), TEST_SECRET)

    def test_known_vector(self):
        # base64(HMAC-SHA256(key="secret", msg="hello"))
        assert compute_webhook_signature(b"hello", "secret") == "iKqz7ejTrflNJquQ07r9SiCDBww7zOnAFO4EpEOEfAs="

    def test_missing_header(self):
        with pytest.raises(VerificationError) as exc_info:
            verify_webhook_signature(BODY, None, TEST_SECRET)
        assert exc_info.value.reason == VerificationError.MISSING
        assert exc_info.value.status_code == 401

    def test_empty_header_counts_as_missing(self):
        with pytest.raises(VerificationError) as exc_info:
            verify_webhook_signature(BODY, "", TEST_SECRET)
        assert exc_info.value.reason == VerificationError.MISSING

    def test_wrong_secret(self):
        with pytest.raises(VerificationError) as exc_info:
            verify_webhook_signature(BODY, sign(BODY, "other-secret"), TEST_SECRET)
        assert exc_info.value.reason == VerificationError.MISMATCH

    @pytest.mark.parametrize("position", [0, 10, len(BODY) - 1])
    def test_any_body_byte_change_is_rejected(self, position):
        signature = sign(BODY)
        mutated = bytearray(BODY)
        mutated[position] ^= 0x01

        with pytest.raises(VerificationError):
            verify_webhook_signature(bytes(mutated), signature, TEST_SECRET)

    def test_signature_change_is_rejected(self):
        signature = sign(BODY)
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]

        with pytest.raises(VerificationError):
            verify_webhook_signature(BODY, flipped, TEST_SECRET)

    def test_reserialized_json_is_rejected(self):
        # Same object, different bytes (whitespace) must not verify
        reserialized = b'{"id": 100, "total_price": "19.99", "created_at": "2024-03-01T10:00:00Z"}'
        with pytest.raises(VerificationError):
            verify_webhook_signature(reserialized, sign(BODY), TEST_SECRET)

    def test_text_body_is_refused(self):
        with pytest.raises(TypeError):
            verify_webhook_signature(BODY.decode(), sign(BODY), TEST_SECRET)


class TestWebhookVerifier:
    def test_verifies_by_default(self):
        verifier = WebhookVerifier(TEST_SECRET)
        with pytest.raises(VerificationError):
            verifier.verify(BODY, "bogus")

    def test_skip_flag_bypasses_verification(self):
        verifier = WebhookVerifier(TEST_SECRET, skip_verification=True)
        verifier.verify(BODY, None)
