#!/usr/bin/env python3
"""
LAN File Sharing Client - Main Entry Point

This is the main entry point for the client application.
It runs the PyQt6 window by default, or a command-line front end for
one-shot commands and an interactive mode.
"""

import argparse
import asyncio
import logging
import shlex
import sys
from collections import Counter
from pathlib import Path
from typing import List

from client.files.file_client import FileClient
from client.utils.config import ClientConfig
from client.utils.logger import logger as default_logger
from common.constants import DEFAULT_HOST, DEFAULT_PORT
from common.errors import EncodingError

TABLE_TIMEOUT = 10.0  # seconds to wait for a table reply


class FileShareClient:
    """Command-line client built on the file client."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, logger=None):
        self.config = ClientConfig(host, port)
        self.logger = logger or default_logger
        self.logger.debug(f"Transfer settings: {self.config.get_transfer_settings()}")
        self.file_client = FileClient(
            **self.config.get_connection_info(), logger=self.logger,
            read_chunk_size=self.config.read_chunk_size,
            download_idle_timeout=self.config.download_idle_timeout
        )
        self.file_client.on_disconnected = self.on_disconnected
        self.running = False

    def on_disconnected(self):
        self.running = False

    async def connect(self):
        """Connect to the server. Raises ConnectionError on failure."""
        await self.file_client.connect()
        # No table request may be outstanding when later replies are awaited
        await self.file_client.wait_for_table(timeout=TABLE_TIMEOUT)
        self.running = True

    async def close(self):
        await self.file_client.close()
        self.running = False

    async def show_table(self) -> int:
        entries = await self.file_client.fetch_table(timeout=TABLE_TIMEOUT)
        self.logger.show_table(entries)
        return 0

    async def upload(self, paths: List[str]) -> int:
        """Upload files, then wait for the table broadcasts that record them."""
        baseline = Counter(entry.file_name for entry in self.file_client.table)
        sent = []
        for path in paths:
            try:
                await self.file_client.upload_file(path)
                sent.append(path)
            except (EncodingError, FileNotFoundError) as e:
                self.logger.error(f"[ERROR] {e}")

        # Every stored upload appends one row, so the row count per name only grows
        expected = baseline + Counter(Path(path).name for path in sent)

        def recorded(entries) -> bool:
            counts = Counter(entry.file_name for entry in entries)
            return all(counts[name] >= count for name, count in expected.items())

        try:
            entries = await self.file_client.wait_until_table(recorded, timeout=TABLE_TIMEOUT)
        except asyncio.TimeoutError:
            entries = self.file_client.table

        counts = Counter(entry.file_name for entry in entries)
        failed = len(paths) - len(sent)
        for path in sent:
            name = Path(path).name
            if counts[name] >= expected[name]:
                self.logger.info(f"[UPLOAD] {name} is on the server")
            else:
                self.logger.warning(f"[UPLOAD] {name} was not recorded by the server")
                failed += 1
        return 1 if failed else 0

    async def download(self, target_dir: str, names: List[str]) -> int:
        result = await self.file_client.download_files(names, target_dir)
        self.logger.info(f"[DOWNLOAD] {len(result.received)} of {len(names)} file(s) saved to {target_dir}")
        return 0 if result.complete else 1

    async def run_command(self, command: str, args: List[str]) -> int:
        """Run one command and return its exit status."""
        if command == 'table':
            return await self.show_table()
        if command == 'upload':
            return await self.upload(args)
        if command == 'download':
            if len(args) < 2:
                self.logger.error("[ERROR] Usage: download DIR NAME...")
                return 2
            return await self.download(args[0], args[1:])
        self.logger.error(f"[ERROR] Unknown command: {command}")
        return 2

    async def interactive_mode(self):
        """Read commands from stdin until /quit or end of input."""
        self.logger.show_interactive_mode_info()
        loop = asyncio.get_running_loop()

        while self.running:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            try:
                words = shlex.split(line)
            except ValueError as e:
                self.logger.error(f"[ERROR] {e}")
                continue
            if not words:
                continue

            command, args = words[0].lstrip('/'), words[1:]
            if command in ('quit', 'exit'):
                break
            if command == 'help':
                self.logger.show_interactive_mode_info()
                continue
            try:
                await self.run_command(command, args)
            except asyncio.TimeoutError:
                self.logger.error("[ERROR] Server did not answer in time")
            except ConnectionError as e:
                self.logger.error(f"[ERROR] {e}")
                break


async def run_cli(host: str, port: int, command: str = None, args: List[str] = None) -> int:
    """Run a one-shot command, or interactive mode when no command is given."""
    client = FileShareClient(host, port)
    try:
        await client.connect()
    except ConnectionError as e:
        default_logger.critical(str(e))
        return 1

    try:
        if command:
            return await client.run_command(command, args or [])
        await client.interactive_mode()
        return 0
    except (ConnectionError, asyncio.TimeoutError) as e:
        default_logger.log_error(command or 'interactive mode', e)
        return 1
    finally:
        await client.close()


def run_gui_client(server_host: str, server_port: int) -> int:
    """Run the GUI client."""
    from PyQt6.QtWidgets import QApplication
    from client.ui.client_gui import ClientMainWindow

    app = QApplication(sys.argv)
    window = ClientMainWindow(server_host, server_port)
    window.show()
    window.connect_to_server()
    return app.exec()


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description='LAN File Sharing Client')
    parser.add_argument('--server-ip', type=str, default=DEFAULT_HOST,
                        help=f'Server IP address (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'Server port (default: {DEFAULT_PORT})')
    parser.add_argument('--cli', action='store_true',
                        help='Run in command-line mode (GUI is default)')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')

    sub = parser.add_subparsers(dest='command')
    sub.add_parser('table', help='Print the table of uploaded files')
    upload = sub.add_parser('upload', help='Upload files')
    upload.add_argument('files', nargs='+')
    download = sub.add_parser('download', help='Download files by name')
    download.add_argument('target_dir')
    download.add_argument('names', nargs='+')

    args = parser.parse_args(argv)

    if args.debug:
        default_logger.set_level(logging.DEBUG)

    if args.command == 'table':
        status = asyncio.run(run_cli(args.server_ip, args.port, 'table'))
    elif args.command == 'upload':
        status = asyncio.run(run_cli(args.server_ip, args.port, 'upload', args.files))
    elif args.command == 'download':
        status = asyncio.run(run_cli(args.server_ip, args.port, 'download', [args.target_dir] + args.names))
    elif args.cli:
        try:
            status = asyncio.run(run_cli(args.server_ip, args.port))
        except KeyboardInterrupt:
            default_logger.info("[INFO] Interrupted by user")
            status = 0
    else:
        status = run_gui_client(args.server_ip, args.port)

    sys.exit(status)


if __name__ == "__main__":
    main()
