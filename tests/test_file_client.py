#!/usr/bin/env python3
"""
Integration tests for client/files/file_client.py

Runs the client against a real server on an ephemeral port:
- Table is requested on connect and replaced on every broadcast
- Uploads are validated before anything is sent
- Batched downloads report skipped names and stop on idle timeout
"""

import asyncio
import tempfile
import unittest
from unittest.mock import Mock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from common.errors import EncodingError
from common.protocol_definitions import create_load_response, create_update_response
from client.files.file_client import DownloadBatch, FileClient
from server.main_server import FileShareServer

TIMEOUT = 5.0


class TestDownloadBatch(unittest.IsolatedAsyncioTestCase):
    """Test cases for download bookkeeping."""

    async def test_skipped_names_become_missing(self):
        batch = DownloadBatch(["a", "b", "c"], Path("."))

        batch.accept("c", Path("c"))

        self.assertTrue(batch.done.is_set())
        self.assertEqual(batch.result.missing, ["a", "b"])
        self.assertEqual(batch.result.received, [Path("c")])

    async def test_duplicate_names(self):
        batch = DownloadBatch(["a", "a"], Path("."))

        batch.accept("a", Path("a"))
        self.assertFalse(batch.done.is_set())
        self.assertTrue(batch.expects("a"))
        batch.accept("a", Path("a"))

        self.assertTrue(batch.done.is_set())
        self.assertTrue(batch.result.complete)

    async def test_close_marks_pending_missing(self):
        batch = DownloadBatch(["a", "b"], Path("."))
        batch.accept("a", Path("a"))
        batch.close()

        self.assertEqual(batch.result.missing, ["b"])
        self.assertTrue(batch.done.is_set())


class TestFileClient(unittest.IsolatedAsyncioTestCase):
    """Test cases for FileClient against a live server."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.server = FileShareServer(
            host='127.0.0.1', port=0,
            upload_dir=str(self.root / "server"),
            table_path=str(self.root / "TableFile.txt"),
            logger=Mock()
        )
        listener = await self.server.listen()
        self.port = listener.sockets[0].getsockname()[1]
        self.clients = []

    async def asyncTearDown(self):
        for client in self.clients:
            await client.close()
        await self.server.stop()
        self.tmp.cleanup()

    async def connect(self) -> FileClient:
        client = FileClient('127.0.0.1', self.port, Mock(), download_idle_timeout=2.0)
        await client.connect()
        self.clients.append(client)
        return client

    def local_file(self, name: str, data: bytes) -> str:
        path = self.root / "local" / name
        path.parent.mkdir(exist_ok=True)
        path.write_bytes(data)
        return str(path)

    async def wait_for_rows(self, client: FileClient, count: int):
        for _ in range(int(TIMEOUT / 0.01)):
            if len(client.table) == count:
                return
            await asyncio.sleep(0.01)
        self.fail(f"table never reached {count} rows")

    async def test_connect_requests_table(self):
        client = await self.connect()
        entries = await client.fetch_table(timeout=TIMEOUT)
        self.assertEqual(entries, [])
        self.assertTrue(client.connected)

    async def test_connect_failure(self):
        client = FileClient('127.0.0.1', 1, Mock())
        with self.assertRaises(ConnectionError):
            await client.connect()
        client.logger.log_connection.assert_called_once_with('127.0.0.1', 1, False)

    async def test_upload_updates_every_client(self):
        uploader = await self.connect()
        watcher = await self.connect()
        await watcher.fetch_table(timeout=TIMEOUT)
        updates = []
        watcher.on_table_updated = updates.append

        size = await uploader.upload_file(self.local_file("a.txt", b"hello"))

        self.assertEqual(size, 5)
        await self.wait_for_rows(watcher, 1)
        await self.wait_for_rows(uploader, 1)
        self.assertEqual(watcher.table[0].file_name, "a.txt")
        self.assertEqual(len(updates[-1]), 1)

    async def test_upload_missing_file(self):
        client = await self.connect()
        with self.assertRaises(FileNotFoundError):
            await client.upload_file(str(self.root / "nope.txt"))

    async def test_upload_bad_name_is_not_sent(self):
        client = await self.connect()
        with self.assertRaises(EncodingError):
            await client.upload_file(self.local_file("a,b.txt", b"x"))
        entries = await client.fetch_table(timeout=TIMEOUT)
        self.assertEqual(entries, [])

    async def test_send_when_not_connected(self):
        client = FileClient('127.0.0.1', self.port, Mock())
        with self.assertRaises(ConnectionError):
            await client.request_table()

    async def test_download_files(self):
        client = await self.connect()
        await client.upload_file(self.local_file("a.txt", b"AAA"))
        await client.upload_file(self.local_file("b.bin", b"\x00\xff"))
        await self.wait_for_rows(client, 2)

        target = self.root / "downloads"
        result = await client.download_files(["b.bin", "missing.txt", "a.txt"], str(target))

        self.assertEqual(result.received, [target / "b.bin", target / "a.txt"])
        self.assertEqual(result.missing, ["missing.txt"])
        self.assertFalse(result.complete)
        self.assertEqual((target / "a.txt").read_bytes(), b"AAA")
        self.assertEqual((target / "b.bin").read_bytes(), b"\x00\xff")

    async def test_download_trailing_missing_name_times_out(self):
        client = await self.connect()
        await client.upload_file(self.local_file("a.txt", b"AAA"))
        await self.wait_for_rows(client, 1)

        result = await client.download_files(["a.txt", "gone.txt"], str(self.root / "dl"), idle_timeout=0.3)

        self.assertEqual(result.received, [self.root / "dl" / "a.txt"])
        self.assertEqual(result.missing, ["gone.txt"])

    async def test_download_nothing(self):
        client = await self.connect()
        result = await client.download_files([], str(self.root / "dl"))
        self.assertTrue(result.complete)
        self.assertEqual(result.received, [])

    async def test_disconnect_callback(self):
        client = await self.connect()
        disconnected = asyncio.Event()
        client.on_disconnected = disconnected.set

        await self.server.stop()
        await asyncio.wait_for(disconnected.wait(), timeout=TIMEOUT)
        await asyncio.wait_for(client.wait_closed(), timeout=TIMEOUT)


class TestFrameHandling(unittest.TestCase):
    """Test cases for frames handled without a connection."""

    def setUp(self):
        self.client = FileClient('127.0.0.1', 9000, Mock())

    def test_table_is_replaced_wholesale(self):
        self.client.handle_frame(create_update_response(b"t,a.txt,file:///a.txt\n").to_bytes())
        self.client.handle_frame(create_update_response(b"t,b.txt,file:///b.txt\n").to_bytes())
        self.assertEqual([entry.file_name for entry in self.client.table], ["b.txt"])

    def test_unexpected_download_is_dropped(self):
        self.client.handle_frame(create_load_response("a.txt", b"x").to_bytes())
        self.client.logger.warning.assert_called_once()

    def test_malformed_frame_is_logged(self):
        self.client.handle_frame(b"x")
        self.client.logger.warning.assert_called_once()


class TestTableWaiting(unittest.IsolatedAsyncioTestCase):
    """Test cases for waiting on table contents."""

    def table_frame(self, *names: str) -> bytes:
        rows = ''.join(f"t,{name},file:///{name}\n" for name in names)
        return create_update_response(rows.encode()).to_bytes()

    async def test_predicate_checked_on_every_update(self):
        client = FileClient('127.0.0.1', 9000, Mock())
        waiter = asyncio.create_task(
            client.wait_until_table(lambda entries: len(entries) == 3, timeout=TIMEOUT)
        )
        await asyncio.sleep(0)

        client.handle_frame(self.table_frame("a.txt"))
        client.handle_frame(self.table_frame("a.txt", "b.txt"))
        for _ in range(5):
            await asyncio.sleep(0)
        self.assertFalse(waiter.done())

        client.handle_frame(self.table_frame("a.txt", "b.txt", "c.txt"))
        entries = await waiter
        self.assertEqual([entry.file_name for entry in entries], ["a.txt", "b.txt", "c.txt"])

    async def test_already_satisfied(self):
        client = FileClient('127.0.0.1', 9000, Mock())
        client.handle_frame(self.table_frame("a.txt"))
        entries = await client.wait_until_table(lambda entries: len(entries) == 1, timeout=TIMEOUT)
        self.assertEqual(len(entries), 1)

    async def test_timeout(self):
        client = FileClient('127.0.0.1', 9000, Mock())
        with self.assertRaises(asyncio.TimeoutError):
            await client.wait_until_table(lambda entries: False, timeout=0.05)


if __name__ == '__main__':
    unittest.main()
