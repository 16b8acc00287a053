"""Tests for crypto functions."""
import pytest

from tws.crypto import MacError, hmac_sha256, random_bytes, sign, verify
from tws.constants import MAC_SIZE


def test_sign_known_vector_1():
    """Signature should match the reference HMAC-SHA256 output."""
    assert sign("testpasswd", "testdata") == "pOWtIY65MVjolOXjrIkpNH72V95kfBGN9zL1OJdUZOY="


def test_sign_known_vector_2():
    """Signature should match the reference HMAC-SHA256 output."""
    assert sign("testpasswd2", "testdata2") == "3c/Z/9/7ZqSfddwILUTheauyZe7YdDCRRtOArSRo9bc="


def test_sign_accepts_bytes_secret():
    """Bytes and text secrets with the same UTF-8 encoding are equivalent."""
    assert sign(b"testpasswd", "testdata") == sign("testpasswd", "testdata")


def test_hmac_returns_correct_size():
    """Raw MAC should be exactly 32 bytes."""
    mac = hmac_sha256("secret", "data")
    assert len(mac) == MAC_SIZE
    assert type(mac) == bytes


def test_sign_is_deterministic():
    """Same inputs should always produce the same signature."""
    assert sign("secret", "data") == sign("secret", "data")


def test_sign_different_secrets_produce_different_signatures():
    """Changing the secret should change the signature."""
    assert sign("secret1", "data") != sign("secret2", "data")


def test_verify_accepts_valid_signature():
    """Verify should accept the signature produced by sign."""
    signature = sign("secret", "NEW CONNECTION abc123")
    assert verify("secret", "NEW CONNECTION abc123", signature)


def test_verify_rejects_wrong_secret():
    """Verify should reject a signature made with another secret."""
    signature = sign("secret", "data")
    assert not verify("other", "data", signature)


def test_verify_rejects_tampered_signature():
    """Any changed character in the signature should fail."""
    signature = sign("secret", "data")
    tampered = ("A" if signature[0] != "A" else "B") + signature[1:]
    assert not verify("secret", "data", tampered)


def test_verify_rejects_truncated_signature():
    """Shorter signatures should fail, not raise."""
    signature = sign("secret", "data")
    assert not verify("secret", "data", signature[:-1])
    assert not verify("secret", "data", "")


def test_sign_rejects_unusable_key():
    """Key material that cannot be used should raise MacError."""
    with pytest.raises(MacError):
        sign(None, "data")


def test_random_bytes_returns_correct_size():
    """Random bytes should have the requested size."""
    assert len(random_bytes(24)) == 24
    assert random_bytes(0) == b''


def test_random_bytes_returns_different_values():
    """Each call should be random."""
    assert random_bytes(32) != random_bytes(32)


def test_random_bytes_validates_size():
    """Should raise ValueError on negative size."""
    with pytest.raises(ValueError):
        random_bytes(-1)
