"""
Length-prefixed framing for the TWS byte stream.

A stream carries raw bytes with no message boundaries, so each
packet is sent as:

┌──────────────────┬──────────────────┐
│  Payload length  │     Payload      │
│ (4 bytes, BE u32)│    (N bytes)     │
└──────────────────┴──────────────────┘

Packet parsers expect exactly one complete packet per call;
this module produces that alignment.
"""

import logging
import struct

from tws.constants import FRAME_HEADER_SIZE, MAX_FRAME_SIZE
from tws.protocol import PacketError

logger = logging.getLogger(__name__)

_HEADER = struct.Struct('!I')


class FrameError(PacketError):
    """Raised when a frame is too large to send or receive."""
    pass


def _check_length(length):
    if length > MAX_FRAME_SIZE:
        raise FrameError(f"Frame too large: {length} bytes (max {MAX_FRAME_SIZE})")


def encode_frame(payload):
    """
    Prefix a payload with its length.

    Args:
        payload (bytes | str): Packet data, text is UTF-8 encoded

    Returns:
        bytes: Header + payload

    Raises:
        FrameError: If payload exceeds MAX_FRAME_SIZE
    """
    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    _check_length(len(payload))
    return _HEADER.pack(len(payload)) + payload


class FrameDecoder:
    """
    Accumulates stream data and splits it into payloads.
    Handles partial reads and several frames in one read.

    One decoder per stream; it is not safe to share.
    """

    def __init__(self):
        self.buffer = bytearray()

    @property
    def pending(self):
        """Number of buffered bytes not yet returned as a frame."""
        return len(self.buffer)

    def feed(self, data):
        """
        Add stream data and return every complete payload.

        Raises:
            FrameError: If a header announces an oversized frame.
                Nothing after the bad header is consumed; the stream
                cannot be resynchronized and should be closed.
        """
        self.buffer += data
        frames = []

        while len(self.buffer) >= FRAME_HEADER_SIZE:
            (length,) = _HEADER.unpack_from(self.buffer)
            _check_length(length)

            total = FRAME_HEADER_SIZE + length
            if len(self.buffer) < total:
                break  # Wait for more data

            frames.append(bytes(self.buffer[FRAME_HEADER_SIZE:total]))
            del self.buffer[:total]

        return frames

    def clear(self):
        """Drop any buffered partial frame."""
        self.buffer.clear()


async def read_frame(reader):
    """
    Read one framed payload from an asyncio StreamReader.

    Raises:
        FrameError: If the announced length exceeds MAX_FRAME_SIZE
        asyncio.IncompleteReadError: If the stream ends mid-frame
    """
    header = await reader.readexactly(FRAME_HEADER_SIZE)
    (length,) = _HEADER.unpack(header)
    _check_length(length)
    payload = await reader.readexactly(length)
    logger.debug("Read frame of %d bytes", length)
    return payload


async def write_frame(writer, payload):
    """Write one framed payload to an asyncio StreamWriter and drain."""
    writer.write(encode_frame(payload))
    await writer.drain()
