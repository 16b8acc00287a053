"""
Core cryptographic functions for TWS.
Uses cryptography for HMAC-SHA256 and PyNaCl (libsodium) for
secure random byte generation.
"""
import base64

from nacl.utils import random
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import constant_time, hashes, hmac


class MacError(Exception):
    """Raised when the HMAC primitive cannot be constructed or evaluated."""
    pass


def _to_bytes(value):
    if isinstance(value, str):
        return value.encode('utf-8')
    return bytes(value)


def hmac_sha256(secret, message):
    """
    Compute the raw HMAC-SHA256 of a message.

    Args:
        secret (str | bytes): Shared secret, text is UTF-8 encoded
        message (str | bytes): Data to authenticate

    Returns:
        bytes: 32-byte MAC

    Raises:
        MacError: If the MAC could not be computed
    """
    try:
        h = hmac.HMAC(_to_bytes(secret), hashes.SHA256())
        h.update(_to_bytes(message))
        mac = h.finalize()
    except (TypeError, ValueError, UnsupportedAlgorithm) as e:
        raise MacError(f"HMAC_SHA256 failed: {e}") from e
    return mac


def sign(secret, message):
    """
    Sign a message with the shared secret.

    This is the authentication code carried in the AUTH line of
    every packet: base64 of HMAC-SHA256(secret, message).

    Returns:
        str: Base64 encoded signature (44 chars)

    Example:
        >>> sign("testpasswd", "testdata")
        'pOWtIY65MVjolOXjrIkpNH72V95kfBGN9zL1OJdUZOY='
    """
    return base64.b64encode(hmac_sha256(secret, message)).decode('ascii')


def verify(secret, message, signature):
    """Check a signature against the message in constant time."""
    expected = sign(secret, message).encode('ascii')
    return constant_time.bytes_eq(expected, _to_bytes(signature))


def random_bytes(size):
    """
    Generate cryptographically secure random bytes.

    Used as the entropy source for connection ids so they
    cannot be guessed by a peer.
    """
    if size < 0:
        raise ValueError(f"Size must be non-negative, got {size}")
    return random(size)
