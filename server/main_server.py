#!/usr/bin/env python3
"""
LAN File Sharing Server - Main Entry Point

This is the main entry point for the server application.
It accepts client connections, reassembles frames from each connection and
dispatches the decoded envelopes to the file server.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, UPLOAD_DIR, TABLE_FILE, LOG_DIR
from common.errors import EncodingError, MalformedHeaderError, PersistenceError
from common.protocol_definitions import Envelope
from server.files.file_server import FileServer
from server.files.table_store import TableStore
from server.sessions.session_registry import Session, SessionRegistry
from server.utils.config import ServerConfig
from server.utils.logger import logger as default_logger


class FileShareServer:
    """Main server class that integrates all functionality."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT, upload_dir: str = UPLOAD_DIR,
                 table_path: str = TABLE_FILE, logs_dir: str = LOG_DIR, logger=None):
        self.config = ServerConfig(host, port, upload_dir, table_path, logs_dir)
        if logger is None:
            default_logger.set_logs_dir(logs_dir)
        self.logger = logger or default_logger
        self.server: Optional[asyncio.AbstractServer] = None

        # Initialize modules
        self.registry = SessionRegistry(self.logger)
        self.table_store = TableStore(table_path, self.logger)
        self.file_server = FileServer(upload_dir, self.table_store, self.registry, self.logger)
        self.logger.debug(f"File settings: {self.config.get_file_settings()}")
        self.logger.debug(f"Log settings: {self.config.get_log_settings()}")

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle individual client connection."""
        session = await self.registry.register(reader, writer, self.config.send_timeout)

        try:
            while True:
                data = await reader.read(self.config.read_chunk_size)
                if not data:
                    break

                frames = session.buffer.feed(data)
                if not frames:
                    self.logger.debug(f"Session id={session.session_id} :: Waiting for more data to come..")
                    continue

                # Frames of one connection are handled strictly in arrival order
                for frame in frames:
                    await self.process_frame(session, frame)

        except asyncio.CancelledError:
            self.logger.info(f"Connection cancelled for session id={session.session_id}")
            raise
        except ConnectionError as e:
            self.logger.warning(f"Connection lost for session id={session.session_id}: {e}")
        except OSError as e:
            self.logger.warning(f"Socket error for session id={session.session_id}: {e}")
        finally:
            if session.buffer.pending:
                self.logger.debug(f"Discarding {len(session.buffer)} bytes of an incomplete frame "
                                  f"from session id={session.session_id}")
            await self.registry.deregister(session)
            await session.close()

    async def process_frame(self, session: Session, frame: bytes):
        """Decode one frame and dispatch it."""
        try:
            envelope = Envelope.from_bytes(frame)
        except MalformedHeaderError as e:
            self.logger.warning(f"Dropped frame from session id={session.session_id}: {e}")
            return

        self.logger.debug(f"Received from session id={session.session_id}: flag={envelope.flag.value}")

        try:
            await self.file_server.handle_envelope(session, envelope)
        except PersistenceError as e:
            self.logger.critical(f"Request from session id={session.session_id} failed: {e}")
        except EncodingError as e:
            self.logger.warning(f"Could not encode reply to session id={session.session_id}: {e}")

    async def listen(self) -> asyncio.AbstractServer:
        """Bind the listening socket."""
        try:
            self.server = await asyncio.start_server(self.handle_client, **self.config.get_connection_info())
        except OSError as e:
            self.logger.critical(f"Unable to start the server: {e}")
            raise

        addr = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        self.logger.info(f"Server is listening on {addr}")
        return self.server

    async def start(self):
        """Start the server."""
        server = await self.listen()
        try:
            async with server:
                await server.serve_forever()
        finally:
            await self.registry.close_all()

    async def stop(self):
        """Stop accepting connections and close every session."""
        if self.server is not None:
            self.server.close()
        await self.registry.close_all()
        if self.server is not None:
            await self.server.wait_closed()


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='LAN File Sharing Server')
    parser.add_argument('--host', type=str, default=DEFAULT_SERVER_HOST,
                        help=f'Host to bind to (default: {DEFAULT_SERVER_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'TCP port for main server (default: {DEFAULT_PORT})')
    parser.add_argument('--upload-dir', type=str, default=UPLOAD_DIR,
                        help=f'Directory for uploaded files (default: {UPLOAD_DIR})')
    parser.add_argument('--table-file', type=str, default=TABLE_FILE,
                        help=f'File holding the table of uploaded files (default: {TABLE_FILE})')
    parser.add_argument('--logs-dir', type=str, default=LOG_DIR,
                        help=f'Directory for transfer logs (default: {LOG_DIR})')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    if args.debug:
        default_logger.set_level(logging.DEBUG)

    try:
        server = FileShareServer(
            host=args.host,
            port=args.port,
            upload_dir=args.upload_dir,
            table_path=args.table_file,
            logs_dir=args.logs_dir
        )
    except PersistenceError as e:
        default_logger.critical(f"Server failed to start: {e}")
        sys.exit(1)

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        default_logger.info("Server shutting down...")
    except OSError:
        sys.exit(1)


if __name__ == "__main__":
    main()
