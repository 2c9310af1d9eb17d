"""
Length-prefixed framing over a TCP byte stream.

Each frame is written as a 4-byte big-endian length followed by that many
bytes (header + payload). Reads may split or merge frames arbitrarily, so
incoming bytes are accumulated per connection until whole frames are present.
"""

import asyncio
import struct
from typing import AsyncIterator, List, Optional

from common.constants import LENGTH_FIELD_FORMAT, LENGTH_FIELD_SIZE, READ_CHUNK_SIZE
from common.errors import EncodingError

MAX_FRAME_SIZE = 2 ** (8 * LENGTH_FIELD_SIZE) - 1


def encode_frame(body: bytes) -> bytes:
    """Prefix a frame body with its length."""
    if len(body) > MAX_FRAME_SIZE:
        raise EncodingError(f"Frame of {len(body)} bytes exceeds the maximum of {MAX_FRAME_SIZE}")
    return struct.pack(LENGTH_FIELD_FORMAT, len(body)) + body


class FrameBuffer:
    """Receive buffer that turns stream chunks into complete frames."""

    def __init__(self):
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> bool:
        """True if bytes of an incomplete frame are buffered."""
        return len(self._buffer) > 0

    def feed(self, data: bytes) -> List[bytes]:
        """Append received bytes and return every frame that is now complete."""
        self._buffer.extend(data)
        frames = []
        while True:
            frame = self.next_frame()
            if frame is None:
                break
            frames.append(frame)
        return frames

    def next_frame(self) -> Optional[bytes]:
        """Remove and return one complete frame, or None without consuming anything."""
        if len(self._buffer) < LENGTH_FIELD_SIZE:
            return None
        (length,) = struct.unpack_from(LENGTH_FIELD_FORMAT, self._buffer)
        end = LENGTH_FIELD_SIZE + length
        if len(self._buffer) < end:
            return None
        frame = bytes(self._buffer[LENGTH_FIELD_SIZE:end])
        del self._buffer[:end]
        return frame


async def read_frames(reader: asyncio.StreamReader, buffer: Optional[FrameBuffer] = None,
                      chunk_size: int = READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield frames from a stream until the peer closes the connection."""
    if buffer is None:
        buffer = FrameBuffer()
    while True:
        data = await reader.read(chunk_size)
        if not data:
            return
        for frame in buffer.feed(data):
            yield frame


async def write_frame(writer: asyncio.StreamWriter, body: bytes):
    """Write one frame and wait until the transport accepted it."""
    writer.write(encode_frame(body))
    await writer.drain()
