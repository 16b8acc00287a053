"""
Protocol constants for the TWS tunnel protocol.

Defines packet line prefixes, the replay window, connection id
format and transport frame sizes.
Packets are UTF-8 text, lines separated by a single '\\n'.
"""

import string

# Envelope
AUTH_MAGIC = b'AUTH'       # First 4 bytes of every authenticated packet
AUTH_PREFIX = 'AUTH '      # Signature line prefix
LINE_SEPARATOR = '\n'

# Handshake packet lines
NOW_PREFIX = 'NOW '
TARGET_PREFIX = 'TARGET '

# Connect packet line
CONNECT_PREFIX = 'NEW CONNECTION '

# Replay protection (milliseconds)
REPLAY_WINDOW_MS = 5 * 1000

# Handshake timestamps are signed 64-bit milliseconds
TIMESTAMP_MIN = -2**63
TIMESTAMP_MAX = 2**63 - 1

# Connection ids
CONNECTION_ID_LENGTH = 6
CONNECTION_ID_ALPHABET = string.ascii_letters + string.digits
CONNECT_LINE_SIZE = len(CONNECT_PREFIX) + CONNECTION_ID_LENGTH  # 21 chars

# HMAC-SHA256 output
MAC_SIZE = 32

# Transport framing
FRAME_HEADER_SIZE = 4     # 32-bit big-endian payload length
MAX_FRAME_SIZE = 65535    # 64 KB, prevent memory exhaustion attacks
