"""
Session registry module.

Tracks live client connections and fans messages out to all of them.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from common.framing import FrameBuffer, write_frame
from common.protocol_definitions import Envelope
from server.utils.logger import logger as default_logger


class Session:
    """Server-side state of one client connection."""

    def __init__(self, session_id: int, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 send_timeout: Optional[float] = None):
        self.session_id = session_id
        self.reader = reader
        self.writer = writer
        self.peername = writer.get_extra_info('peername')
        self.buffer = FrameBuffer()  # Bytes of a not yet complete frame
        self.send_timeout = send_timeout
        self.send_lock = asyncio.Lock()  # One frame on the wire at a time
        self.closed = False

    def __repr__(self):
        return f"Session(id={self.session_id}, peer={self.peername})"

    async def send(self, envelope: Envelope):
        """Send one envelope as a frame. Raises ConnectionError on failure."""
        body = envelope.to_bytes()
        async with self.send_lock:
            if self.closed or self.writer.is_closing():
                raise ConnectionError(f"Session id={self.session_id} is closed")
            try:
                if self.send_timeout is None:
                    await write_frame(self.writer, body)
                else:
                    await asyncio.wait_for(write_frame(self.writer, body), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                raise ConnectionError(f"Send to session id={self.session_id} timed out") from None
            except ConnectionError:
                raise
            except OSError as e:
                raise ConnectionError(f"Send to session id={self.session_id} failed: {e}") from e

    async def close(self):
        """Close the underlying connection."""
        if self.closed:
            return
        self.closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError:
            # Peer already reset the connection
            pass


class SessionRegistry:
    """Registry of live sessions guarded by a lock."""

    def __init__(self, logger=None):
        self.logger = logger or default_logger
        self._sessions: Dict[int, Session] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()  # Protect shared state

    def __len__(self) -> int:
        return len(self._sessions)

    async def register(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                       send_timeout: Optional[float] = None) -> Session:
        """Create a session for an accepted connection and register it."""
        async with self._lock:
            session = Session(self._next_id, reader, writer, send_timeout)
            self._next_id += 1
            self._sessions[session.session_id] = session
        self.logger.log_connection(session.peername, session.session_id)
        return session

    async def deregister(self, session: Session) -> bool:
        """Remove a session. Returns False if it was not registered."""
        async with self._lock:
            removed = self._sessions.pop(session.session_id, None)
        if removed is None:
            return False
        self.logger.log_disconnect(session.peername, session.session_id)
        return True

    async def broadcast(self, fn: Callable[[Session], Awaitable[None]]) -> List[Session]:
        """
        Run fn for every registered session.

        The session set is copied under the lock first; a failure for one
        session is logged and does not stop delivery to the others.
        Returns the sessions for which fn failed.
        """
        async with self._lock:
            targets = list(self._sessions.values())

        results = await asyncio.gather(*(fn(session) for session in targets), return_exceptions=True)

        failed = []
        for session, result in zip(targets, results):
            if isinstance(result, Exception):
                self.logger.warning(f"Failed to broadcast to session id={session.session_id}: {result}")
                failed.append(session)
        return failed

    async def close_all(self):
        """Close every registered session."""
        async with self._lock:
            targets = list(self._sessions.values())
        for session in targets:
            await session.close()
