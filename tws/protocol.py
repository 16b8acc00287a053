"""
Protocol layer for TWS.

Builds (Python -> text) and parses (bytes -> Python) the
authenticated packets exchanged between client and relay.

Packet formats (lines separated by '\\n', no trailing newline):
- Handshake: AUTH <sig> / NOW <ms> / TARGET <host:port>
- Connect:   AUTH <sig> / NEW CONNECTION <id>

<sig> is base64(HMAC-SHA256(secret, body)) where body is every
line after the AUTH line joined by '\\n'.
"""

import logging
import re

from tws import util
from tws.constants import *
from tws.crypto import sign, verify

logger = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(r'[+-]?[0-9]+')


class PacketError(Exception):
    """Raised when packet parsing or validation fails."""
    pass


class MalformedPacketError(PacketError):
    """Not an authenticated packet: bad prefix, bad UTF-8 or too few lines."""
    pass


class AuthenticationError(PacketError):
    """The AUTH line does not match the packet body."""
    pass


class NotHandshakePacketError(PacketError):
    """Authenticated body does not have the handshake shape."""
    pass


class NotConnectPacketError(PacketError):
    """Authenticated body does not have the connect shape."""
    pass


class InvalidTimestampError(PacketError):
    """The NOW line does not hold a signed 64-bit integer."""
    pass


class HandshakeExpiredError(PacketError):
    """Handshake timestamp is older than the replay window."""
    pass


class InvalidAddressError(PacketError):
    """The TARGET line does not hold a valid IP endpoint."""
    pass


class InvalidConnectionIdError(PacketError):
    """Connection id has the wrong length or characters."""
    pass


def _reject(exc_type, reason):
    logger.debug("Rejected packet: %s", reason)
    return exc_type(reason)


def build_authenticated_packet(secret, body):
    """
    Wrap a body in an AUTH envelope.

    Format:
        AUTH <base64 HMAC-SHA256(secret, body)>
        <body>

    Args:
        secret (str | bytes): Pre-shared secret
        body (str): Already formatted lines, joined by '\\n'

    Returns:
        str: Authenticated packet

    Raises:
        MacError: If the signature could not be computed
    """
    return f"{AUTH_PREFIX}{sign(secret, body)}{LINE_SEPARATOR}{body}"


def parse_authenticated_packet(secret, packet):
    """
    Verify an AUTH envelope and return its body lines.

    Args:
        secret (str | bytes): Pre-shared secret
        packet (bytes | str): Raw packet data from the peer, text is
            UTF-8 encoded

    Returns:
        list[str]: Body lines (everything after the AUTH line)

    Raises:
        MalformedPacketError: If the packet is not an AUTH envelope
        AuthenticationError: If the signature does not match
    """
    if isinstance(packet, str):
        try:
            packet = packet.encode('utf-8')
        except UnicodeEncodeError as e:
            raise _reject(MalformedPacketError, "Packet is not valid UTF-8") from e
    elif isinstance(packet, (bytes, bytearray, memoryview)):
        packet = bytes(packet)
    else:
        raise _reject(MalformedPacketError, f"Packet must be bytes, got {type(packet).__name__}")

    # Check the magic before touching anything else
    if len(packet) < len(AUTH_MAGIC) or packet[:len(AUTH_MAGIC)] != AUTH_MAGIC:
        raise _reject(MalformedPacketError, "Not a proper authenticated packet")

    try:
        text = packet.decode('utf-8')
    except UnicodeDecodeError as e:
        raise _reject(MalformedPacketError, "Packet is not valid UTF-8") from e

    lines = text.split(LINE_SEPARATOR)
    if len(lines) < 2:
        raise _reject(MalformedPacketError, "Authenticated packet has no body")

    auth_line, body = lines[0], lines[1:]
    if not auth_line.startswith(AUTH_PREFIX):
        raise _reject(AuthenticationError, "Malformed AUTH line")

    if not verify(secret, LINE_SEPARATOR.join(body), auth_line[len(AUTH_PREFIX):]):
        raise _reject(AuthenticationError, "Packet signature mismatch")

    return body


def build_handshake_packet(secret, target, now=None):
    """
    Build a handshake packet.

    Client sends this first to tell the relay where to forward.

    Format:
        AUTH <sig>
        NOW <current timestamp, ms since epoch>
        TARGET <host>:<port>

    Args:
        secret (str | bytes): Pre-shared secret
        target: Endpoint or (host, port) with an IP literal host
        now (int): Timestamp in ms, defaults to the current time

    Returns:
        str: Serialized packet

    Raises:
        ValueError: If target is not a valid IP endpoint
    """
    if now is None:
        now = util.time_ms()
    if not (TIMESTAMP_MIN <= now <= TIMESTAMP_MAX):
        raise ValueError(f"Timestamp out of range: {now}")

    body = LINE_SEPARATOR.join([
        f"{NOW_PREFIX}{now}",
        f"{TARGET_PREFIX}{util.addr_to_str(target)}",
    ])
    return build_authenticated_packet(secret, body)


def parse_handshake_packet(secret, packet, now=None):
    """
    Parse a handshake packet.

    Relay receives this from the client. The packet is only
    accepted while now is within REPLAY_WINDOW_MS of its
    timestamp. Timestamps ahead of now are accepted.

    Args:
        secret (str | bytes): Pre-shared secret
        packet (bytes): Raw packet data
        now (int): Verifier clock in ms, defaults to the current time

    Returns:
        Endpoint: The requested forward target

    Raises:
        PacketError: If the packet is malformed, forged, stale
            or does not name a valid target
    """
    lines = parse_authenticated_packet(secret, packet)

    if len(lines) < 2:
        raise _reject(NotHandshakePacketError, "Not a handshake packet")

    now_line, target_line = lines[0], lines[1]
    if not (now_line.startswith(NOW_PREFIX) and len(now_line) > len(NOW_PREFIX)):
        raise _reject(NotHandshakePacketError, "Not a handshake packet")
    if not (target_line.startswith(TARGET_PREFIX) and len(target_line) > len(TARGET_PREFIX)):
        raise _reject(NotHandshakePacketError, "Not a handshake packet")

    raw_timestamp = now_line[len(NOW_PREFIX):]
    if not _TIMESTAMP_RE.fullmatch(raw_timestamp):
        raise _reject(InvalidTimestampError, "Illegal handshake timestamp")
    packet_time = int(raw_timestamp)
    if not (TIMESTAMP_MIN <= packet_time <= TIMESTAMP_MAX):
        raise _reject(InvalidTimestampError, "Handshake timestamp out of range")

    if now is None:
        now = util.time_ms()
    if now - packet_time > REPLAY_WINDOW_MS:
        raise _reject(
            HandshakeExpiredError,
            f"Protocol handshake timed out ({now - packet_time} ms old)"
        )

    try:
        return util.str_to_addr(target_line[len(TARGET_PREFIX):])
    except ValueError as e:
        raise _reject(InvalidAddressError, "Illegal target address") from e


def _check_connection_id(conn_id):
    return (
        len(conn_id) == CONNECTION_ID_LENGTH
        and all(c in CONNECTION_ID_ALPHABET for c in conn_id)
    )


def build_connect_packet(secret, conn_id=None):
    """
    Build a connect packet.

    Client sends one per new logical connection over an
    established channel.

    Format:
        AUTH <sig>
        NEW CONNECTION <6-char id>

    Args:
        secret (str | bytes): Pre-shared secret
        conn_id (str): Connection id, a random one is generated if omitted

    Returns:
        tuple: (conn_id, packet)

    Raises:
        ValueError: If conn_id does not have the connection id format
    """
    if conn_id is None:
        conn_id = util.rand_str(CONNECTION_ID_LENGTH)
    elif not _check_connection_id(conn_id):
        raise ValueError(
            f"Connection id must be {CONNECTION_ID_LENGTH} alphanumeric chars, "
            f"got {conn_id!r}"
        )

    packet = build_authenticated_packet(secret, f"{CONNECT_PREFIX}{conn_id}")
    return conn_id, packet


def parse_connect_packet(secret, packet):
    """
    Parse a connect packet.

    Returns:
        str: The 6-char connection id

    Raises:
        PacketError: If the packet is malformed, forged or does
            not carry a valid connection id
    """
    lines = parse_authenticated_packet(secret, packet)

    if len(lines) < 1:
        raise _reject(NotConnectPacketError, "Not a connect packet")

    line = lines[0]
    if not line.startswith(CONNECT_PREFIX):
        raise _reject(NotConnectPacketError, "Not a connect packet")

    conn_id = line[len(CONNECT_PREFIX):]
    if len(line) != CONNECT_LINE_SIZE or not _check_connection_id(conn_id):
        raise _reject(InvalidConnectionIdError, "Illegal connection id")

    return conn_id
