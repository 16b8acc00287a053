"""
Helpers shared by the packet builders and parsers:
wall clock time, socket address text form and random strings.
"""
import ipaddress
import re
import time
from collections import namedtuple

from tws.constants import CONNECTION_ID_ALPHABET
from tws.crypto import random_bytes

_PORT_RE = re.compile(r'[0-9]{1,5}')


# A network endpoint: IP address plus TCP port
Endpoint = namedtuple("Endpoint", ["host", "port"])


def time_ms():
    """Milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


def make_endpoint(host, port):
    """
    Build an Endpoint from a host and port.

    Args:
        host (str | IPv4Address | IPv6Address): IP literal
        port (int): 0-65535

    Raises:
        ValueError: If host is not an IP address or port is out of range
    """
    if not isinstance(host, (str, ipaddress.IPv4Address, ipaddress.IPv6Address)):
        raise ValueError(f"Host must be an IP literal, got {host!r}")
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"Port must be an integer, got {port!r}")
    if not (0 <= port <= 0xFFFF):
        raise ValueError(f"Port must be 0-65535, got {port}")
    return Endpoint(ipaddress.ip_address(host), port)


def addr_to_str(addr):
    """
    Format an endpoint as text.

    IPv4 is written as host:port, IPv6 as [host]:port.

    Example:
        >>> addr_to_str(("192.168.1.1", 443))
        '192.168.1.1:443'
        >>> addr_to_str(("fe80::1", 8080))
        '[fe80::1]:8080'
    """
    host, port = addr
    endpoint = make_endpoint(host, port)
    if endpoint.host.version == 6:
        return f"[{endpoint.host}]:{endpoint.port}"
    return f"{endpoint.host}:{endpoint.port}"


def str_to_addr(text):
    """
    Parse host:port or [ipv6]:port into an Endpoint.

    Raises:
        ValueError: If the text is not a valid IP endpoint
    """
    if text.startswith('['):
        end = text.find(']')
        if end < 0 or text[end + 1:end + 2] != ':':
            raise ValueError(f"Malformed IPv6 endpoint: {text!r}")
        host, port = text[1:end], text[end + 2:]
        if ipaddress.ip_address(host).version != 6:
            raise ValueError(f"Bracketed host must be IPv6: {text!r}")
    else:
        host, sep, port = text.rpartition(':')
        if not sep:
            raise ValueError(f"Missing port: {text!r}")
        # Unbracketed IPv6 is ambiguous with the port separator
        if ':' in host:
            raise ValueError(f"IPv6 host must be bracketed: {text!r}")
        if ipaddress.ip_address(host).version != 4:
            raise ValueError(f"Host must be IPv4: {text!r}")

    if not _PORT_RE.fullmatch(port):
        raise ValueError(f"Invalid port: {port!r}")
    return make_endpoint(host, int(port))


def rand_str(length, alphabet=CONNECTION_ID_ALPHABET):
    """
    Generate a random string drawn uniformly from alphabet.

    Random bytes come from libsodium. Bytes above the largest
    multiple of len(alphabet) are discarded so every character
    is equally likely.
    """
    if length < 0:
        raise ValueError(f"Length must be non-negative, got {length}")
    if not (0 < len(alphabet) <= 256):
        raise ValueError(f"Alphabet must have 1-256 characters, got {len(alphabet)}")

    limit = 256 - (256 % len(alphabet))
    chars = []
    while len(chars) < length:
        for b in random_bytes(length - len(chars)):
            if b < limit:
                chars.append(alphabet[b % len(alphabet)])
    return ''.join(chars)
