"""
File client module.

This module handles client-side file transfer functionality: uploading
files, keeping the shared table in sync and receiving batched downloads.
"""

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from common.constants import DEFAULT_HOST, DEFAULT_PORT, READ_CHUNK_SIZE, DOWNLOAD_IDLE_TIMEOUT
from common.errors import EncodingError, MalformedHeaderError
from common.framing import FrameBuffer, read_frames, write_frame
from common.protocol_definitions import (
    Envelope, Flag, create_load_request, create_save_envelope,
    create_update_request, validate_file_name
)
from common.table import TableEntry, parse_table
from client.utils.logger import logger as default_logger

_DEFAULT = object()


@dataclass
class DownloadResult:
    """Outcome of one batched download."""
    target_dir: Path
    requested: List[str]
    received: List[Path] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing


class DownloadBatch:
    """Bookkeeping for the Load frames expected in reply to one request."""

    def __init__(self, file_names: List[str], target_dir: Path):
        self.target_dir = target_dir
        self.pending = list(file_names)
        self.result = DownloadResult(target_dir, list(file_names))
        self.done = asyncio.Event()
        self.activity = asyncio.Event()
        self.error: Optional[Exception] = None

    def expects(self, file_name: str) -> bool:
        return file_name in self.pending

    def accept(self, file_name: str, path: Optional[Path]):
        """
        Record the reply for file_name.

        The server answers in request order and skips missing files, so every
        name still pending before file_name was skipped.
        """
        index = self.pending.index(file_name)
        self.result.missing.extend(self.pending[:index])
        del self.pending[:index + 1]
        if path is None:
            self.result.missing.append(file_name)
        else:
            self.result.received.append(path)
        if not self.pending:
            self.done.set()
        self.activity.set()

    def close(self, error: Optional[Exception] = None):
        """Give up on every name still pending."""
        self.result.missing.extend(self.pending)
        self.pending.clear()
        self.error = error
        self.done.set()
        self.activity.set()


class FileClient:
    """Client-side file transfer functionality."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, logger=None,
                 read_chunk_size: int = READ_CHUNK_SIZE,
                 download_idle_timeout: Optional[float] = DOWNLOAD_IDLE_TIMEOUT):
        self.host = host
        self.port = port
        self.logger = logger or default_logger
        self.read_chunk_size = read_chunk_size
        self.download_idle_timeout = download_idle_timeout

        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.buffer = FrameBuffer()
        self.table: List[TableEntry] = []  # Last authoritative snapshot

        # Callbacks for front ends
        self.on_table_updated: Optional[Callable[[List[TableEntry]], None]] = None
        self.on_file_downloaded: Optional[Callable[[Path], None]] = None
        self.on_disconnected: Optional[Callable[[], None]] = None

        self._listener: Optional[asyncio.Task] = None
        self._batch: Optional[DownloadBatch] = None
        self._batch_lock = asyncio.Lock()  # One batched download in flight
        self._send_lock = asyncio.Lock()
        self._table_received = asyncio.Event()
        self._table_changed = asyncio.Event()  # Set on every Update frame

    @property
    def connected(self) -> bool:
        return self.writer is not None and not self.writer.is_closing()

    async def connect(self):
        """Connect to the server, start listening and request the table."""
        try:
            self.reader, self.writer = await asyncio.open_connection(self.host, self.port)
        except OSError as e:
            self.logger.log_connection(self.host, self.port, False)
            raise ConnectionError(f"The following error occurred: {e}.") from e

        self.logger.log_connection(self.host, self.port, True)
        self._listener = asyncio.create_task(self.listen())
        await self.request_table()

    async def close(self):
        """Close the connection and stop listening."""
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        if self.writer is not None:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except OSError:
                # Peer already reset the connection
                pass
            self.writer = None

    async def wait_closed(self):
        """Wait until the listener stops, whether the peer closed or close() was called."""
        if self._listener is not None:
            await asyncio.wait({self._listener})

    async def send(self, envelope: Envelope):
        """Send one envelope as a frame. Raises ConnectionError on failure."""
        if not self.connected:
            raise ConnectionError("Not connected!")

        body = envelope.to_bytes()  # EncodingError surfaces before anything is sent
        async with self._send_lock:
            try:
                await write_frame(self.writer, body)
            except ConnectionError:
                raise
            except OSError as e:
                raise ConnectionError(f"Failed to send: {e}") from e

    async def upload_file(self, file_path: str) -> int:
        """Upload a local file in a single frame. Returns the number of bytes sent."""
        path = Path(file_path)
        validate_file_name(path.name)
        if not path.is_file():
            raise FileNotFoundError(f"Can't open file {file_path} to read!")

        data = path.read_bytes()
        envelope = create_save_envelope(path.name, data)
        self.logger.log_file_upload(path.name, len(data))
        await self.send(envelope)
        return len(data)

    async def request_table(self):
        """Ask the server for the current table."""
        self._table_received.clear()
        await self.send(create_update_request())

    async def wait_for_table(self, timeout: Optional[float] = None) -> List[TableEntry]:
        """Wait until the table requested last has arrived."""
        await asyncio.wait_for(self._table_received.wait(), timeout=timeout)
        return self.table

    async def fetch_table(self, timeout: Optional[float] = None) -> List[TableEntry]:
        """Request the table and wait for the reply."""
        await self.request_table()
        return await self.wait_for_table(timeout)

    async def wait_until_table(self, predicate: Callable[[List[TableEntry]], bool],
                               timeout: Optional[float] = None) -> List[TableEntry]:
        """
        Wait until predicate holds for the latest table.

        Every Update frame replaces the table, so the predicate is checked
        again after each one. Raises asyncio.TimeoutError after timeout.
        """
        async def _wait():
            while not predicate(self.table):
                self._table_changed.clear()
                await self._table_changed.wait()
            return self.table

        return await asyncio.wait_for(_wait(), timeout=timeout)

    async def download_files(self, file_names: Iterable[str], target_dir: str,
                             idle_timeout=_DEFAULT) -> DownloadResult:
        """
        Download files by name into target_dir.

        Sends one Load request and consumes one Load frame per requested name.
        Names the server skipped are reported in DownloadResult.missing. If no
        Load frame arrives for idle_timeout seconds the batch is closed and the
        remaining names count as missing; None waits for every name.
        """
        if idle_timeout is _DEFAULT:
            idle_timeout = self.download_idle_timeout

        names = list(file_names)
        target = Path(target_dir)
        target.mkdir(parents=True, exist_ok=True)
        if not names:
            return DownloadResult(target, [])

        async with self._batch_lock:
            batch = DownloadBatch(names, target)
            self._batch = batch
            try:
                await self.send(create_load_request(names))
                await self._wait_for_batch(batch, idle_timeout)
            finally:
                self._batch = None

        if batch.error is not None:
            raise batch.error
        if batch.result.missing:
            self.logger.warning(f"Not received from server: {', '.join(batch.result.missing)}")
        return batch.result

    async def _wait_for_batch(self, batch: DownloadBatch, idle_timeout: Optional[float]):
        while not batch.done.is_set():
            try:
                await asyncio.wait_for(batch.activity.wait(), timeout=idle_timeout)
            except asyncio.TimeoutError:
                self.logger.warning(f"No file received for {idle_timeout}s, closing download batch")
                batch.close()
                break
            batch.activity.clear()

    async def listen(self):
        """Receive frames until the connection closes."""
        try:
            async for frame in read_frames(self.reader, self.buffer, self.read_chunk_size):
                self.handle_frame(frame)
            self.logger.info("Disconnected!")
        except OSError as e:
            self.logger.warning(f"Connection lost: {e}")
        finally:
            if self._batch is not None:
                self._batch.close(ConnectionError("Connection closed during download"))
            if self.on_disconnected:
                self.on_disconnected()

    def handle_frame(self, frame: bytes):
        """Dispatch one received frame by flag."""
        try:
            envelope = Envelope.from_bytes(frame)
        except MalformedHeaderError as e:
            self.logger.warning(str(e))
            return

        if envelope.flag == Flag.UPDATE:
            self._apply_table(envelope.payload)
        elif envelope.flag == Flag.LOAD:
            self._store_download(envelope)
        else:
            self.logger.warning(f"Got wrong flag: {envelope.flag.value}!")

    def _apply_table(self, payload: bytes):
        entries = parse_table(payload)
        self.logger.debug(f"Got table from server with {len(entries)} rows")
        self.table = entries  # Every sync replaces the table wholesale
        self._table_received.set()
        self._table_changed.set()
        if self.on_table_updated:
            self.on_table_updated(list(entries))

    def _store_download(self, envelope: Envelope):
        batch = self._batch
        file_name = envelope.file_name
        if batch is None or not file_name or not batch.expects(file_name):
            self.logger.warning(f"Dropped unexpected file {file_name!r} from server")
            return

        data = envelope.payload
        if envelope.file_size is not None:
            if envelope.file_size > len(data):
                self.logger.warning(f"{file_name}: declared {envelope.file_size} bytes, "
                                    f"frame holds {len(data)}")
            data = data[:envelope.file_size]

        try:
            local_name = os.path.basename(file_name.replace('\\', '/'))
            validate_file_name(local_name)
            path = batch.target_dir / local_name
            self.logger.debug(f"Trying to save received file under path {path}..")
            path.write_bytes(data)
        except (EncodingError, OSError) as e:
            self.logger.error(f"An error occurred while trying to save the received file {file_name}: {e}")
            batch.accept(file_name, None)
            return

        self.logger.log_file_download(file_name, str(path))
        batch.accept(file_name, path)
        if self.on_file_downloaded:
            self.on_file_downloaded(path)
