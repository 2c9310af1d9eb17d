#!/usr/bin/env python3
"""
Integration tests for server/main_server.py

Runs a real server on an ephemeral port with raw socket clients:
- Table sync on request and broadcast after every upload
- Batched downloads in request order, skipping missing files
- Malformed frames are dropped without closing the connection
"""

import asyncio
import tempfile
import unittest
from unittest.mock import Mock, patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.constants import HEADER_SIZE
from common.errors import PersistenceError
from common.framing import FrameBuffer, encode_frame
from common.protocol_definitions import (
    Envelope, Flag, create_load_request, create_save_envelope, create_update_request
)
from common.table import parse_table
from server.main_server import FileShareServer

TIMEOUT = 5.0


class RawClient:
    """Minimal client speaking the wire protocol directly."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self.buffer = FrameBuffer()
        self.frames = []

    @classmethod
    async def connect(cls, port: int) -> 'RawClient':
        reader, writer = await asyncio.open_connection('127.0.0.1', port)
        return cls(reader, writer)

    async def send(self, envelope: Envelope):
        self.writer.write(encode_frame(envelope.to_bytes()))
        await self.writer.drain()

    async def send_raw(self, data: bytes):
        self.writer.write(data)
        await self.writer.drain()

    async def receive(self) -> Envelope:
        """Wait for the next frame."""
        while not self.frames:
            data = await asyncio.wait_for(self.reader.read(65536), timeout=TIMEOUT)
            if not data:
                raise ConnectionError("Server closed the connection")
            self.frames.extend(self.buffer.feed(data))
        return Envelope.from_bytes(self.frames.pop(0))

    async def sync(self) -> Envelope:
        """Request the table and wait for it."""
        await self.send(create_update_request())
        return await self.receive()

    async def close(self):
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError:
            pass


class TestFileShareServer(unittest.IsolatedAsyncioTestCase):
    """Test cases for the file sharing server."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        root = Path(self.tmp.name)
        self.upload_dir = root / "SavedFilesOnServer"
        self.table_path = root / "TableFile.txt"
        self.logger = Mock()

        self.server = FileShareServer(
            host='127.0.0.1', port=0,
            upload_dir=str(self.upload_dir),
            table_path=str(self.table_path),
            logs_dir=str(root / "logs"),
            logger=self.logger
        )
        listener = await self.server.listen()
        self.port = listener.sockets[0].getsockname()[1]
        self.clients = []

    async def asyncTearDown(self):
        for client in self.clients:
            await client.close()
        await self.server.stop()
        self.tmp.cleanup()

    async def connect(self) -> RawClient:
        client = await RawClient.connect(self.port)
        self.clients.append(client)
        return client

    async def assert_silent(self, client: RawClient, delay: float = 0.3):
        """Nothing more arrives on the connection within delay seconds."""
        self.assertEqual(client.frames, [])
        self.assertFalse(client.buffer.pending)
        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(client.reader.read(1), timeout=delay)

    async def test_directories_created_on_start(self):
        self.assertTrue(self.upload_dir.is_dir())
        self.assertTrue(self.table_path.is_file())
        self.logger.debug.assert_any_call(f"File settings: {self.server.config.get_file_settings()}")

    async def test_update_on_empty_table(self):
        client = await self.connect()
        reply = await client.sync()

        self.assertEqual(reply.flag, Flag.UPDATE)
        self.assertIsNone(reply.file_name)
        self.assertIsNone(reply.file_size)
        self.assertEqual(reply.payload, b"")

    async def test_save_is_broadcast_to_every_client(self):
        clients = [await self.connect() for _ in range(3)]
        for client in clients:
            await client.sync()  # registered once the reply arrives

        await clients[0].send(create_save_envelope("a.txt", b"hello"))

        for client in clients:
            reply = await client.receive()
            self.assertEqual(reply.flag, Flag.UPDATE)
            entries = parse_table(reply.payload)
            self.assertEqual([entry.file_name for entry in entries], ["a.txt"])
            self.assertTrue(entries[0].link.startswith("file:///"))

        self.assertEqual((self.upload_dir / "a.txt").read_bytes(), b"hello")
        self.assertEqual(len(parse_table(self.table_path.read_bytes())), 1)

        # One broadcast per upload, no extra Update for the uploader
        for client in clients:
            await self.assert_silent(client)

    async def test_reupload_overwrites_file_and_appends_row(self):
        client = await self.connect()
        await client.sync()

        await client.send(create_save_envelope("a.txt", b"old"))
        await client.receive()
        await client.send(create_save_envelope("a.txt", b"new"))
        reply = await client.receive()

        self.assertEqual([entry.file_name for entry in parse_table(reply.payload)], ["a.txt", "a.txt"])
        self.assertEqual((self.upload_dir / "a.txt").read_bytes(), b"new")

    async def test_load_in_request_order_skipping_missing(self):
        (self.upload_dir / "a.txt").write_bytes(b"AAA")
        (self.upload_dir / "b.bin").write_bytes(b"\x00\x01")
        client = await self.connect()

        await client.send(create_load_request(["b.bin", "missing.txt", "a.txt"]))
        first = await client.receive()
        second = await client.receive()

        self.assertEqual((first.flag, first.file_name, first.file_size, first.payload),
                         (Flag.LOAD, "b.bin", 2, b"\x00\x01"))
        self.assertEqual((second.file_name, second.payload), ("a.txt", b"AAA"))
        self.logger.warning.assert_called_once()
        self.assertIn("missing.txt", self.logger.warning.call_args[0][0])

        # Nothing else was sent for the missing name
        reply = await client.sync()
        self.assertEqual(reply.flag, Flag.UPDATE)

    async def test_load_does_not_escape_upload_dir(self):
        (Path(self.tmp.name) / "secret.txt").write_bytes(b"secret")
        client = await self.connect()

        await client.send_raw(encode_frame(
            Envelope(Flag.LOAD, payload=b"../secret.txt\n").to_bytes()
        ))
        reply = await client.sync()

        self.assertEqual(reply.flag, Flag.UPDATE)
        self.logger.warning.assert_called_once()

    async def test_load_skips_name_too_long_for_header(self):
        """A stored file whose name does not fit the header does not stop the batch."""
        long_name = "L" * 120 + ".txt"
        (self.upload_dir / long_name).write_bytes(b"long")
        (self.upload_dir / "a.txt").write_bytes(b"AAA")
        client = await self.connect()

        await client.send_raw(encode_frame(
            Envelope(Flag.LOAD, payload=f"{long_name}\na.txt\n".encode()).to_bytes()
        ))
        reply = await client.receive()

        self.assertEqual((reply.flag, reply.file_name, reply.payload), (Flag.LOAD, "a.txt", b"AAA"))
        self.logger.warning.assert_called_once()
        self.logger.critical.assert_not_called()
        await self.assert_silent(client)

    async def test_table_write_failure_abandons_upload(self):
        """A failed table append is logged, nothing is broadcast and the session keeps serving."""
        uploader = await self.connect()
        watcher = await self.connect()
        await uploader.sync()
        await watcher.sync()

        with patch.object(self.server.table_store, 'append', side_effect=PersistenceError("disk full")):
            await uploader.send(create_save_envelope("a.txt", b"hello"))
            reply = await uploader.sync()

        self.assertEqual(reply.flag, Flag.UPDATE)
        self.assertEqual(reply.payload, b"")
        self.logger.critical.assert_called_once()
        self.assertIn("disk full", self.logger.critical.call_args[0][0])
        await self.assert_silent(uploader)
        await self.assert_silent(watcher)

        # Later uploads go through
        await uploader.send(create_save_envelope("b.txt", b"ok"))
        for client in (uploader, watcher):
            reply = await client.receive()
            self.assertEqual([entry.file_name for entry in parse_table(reply.payload)], ["b.txt"])

    async def test_malformed_frame_is_dropped(self):
        client = await self.connect()

        await client.send_raw(encode_frame(b"flag:nope,fileName:null,fileSize:null;".ljust(HEADER_SIZE, b"\x00")))
        await client.send_raw(encode_frame(b"too short"))
        reply = await client.sync()

        self.assertEqual(reply.flag, Flag.UPDATE)
        self.assertEqual(self.logger.warning.call_count, 2)

    async def test_frame_split_across_writes(self):
        client = await self.connect()
        frame = encode_frame(create_save_envelope("split.txt", b"x" * 1000).to_bytes())

        for i in range(0, len(frame), 100):
            await client.send_raw(frame[i:i + 100])
            await asyncio.sleep(0)
        reply = await client.receive()

        self.assertEqual([entry.file_name for entry in parse_table(reply.payload)], ["split.txt"])
        self.assertEqual((self.upload_dir / "split.txt").read_bytes(), b"x" * 1000)

    async def test_disconnect_removes_session(self):
        first = await self.connect()
        second = await self.connect()
        await first.sync()
        await second.sync()
        self.assertEqual(len(self.server.registry), 2)

        await first.close()
        for _ in range(100):
            if len(self.server.registry) == 1:
                break
            await asyncio.sleep(0.01)
        self.assertEqual(len(self.server.registry), 1)

        await second.send(create_save_envelope("after.txt", b"1"))
        reply = await second.receive()
        self.assertEqual(parse_table(reply.payload)[0].file_name, "after.txt")

    async def test_table_survives_restart(self):
        client = await self.connect()
        await client.sync()
        await client.send(create_save_envelope("kept.txt", b"data"))
        await client.receive()

        restarted = FileShareServer(
            host='127.0.0.1', port=0,
            upload_dir=str(self.upload_dir),
            table_path=str(self.table_path),
            logger=Mock()
        )
        self.assertEqual([entry.file_name for entry in restarted.table_store.entries()], ["kept.txt"])


if __name__ == '__main__':
    unittest.main()
