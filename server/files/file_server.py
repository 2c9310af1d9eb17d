"""
File server module.

This module handles server-side file transfer functionality: storing
uploads, answering table sync requests and serving batched downloads.
"""

import os
from pathlib import Path

from common.errors import EncodingError, MissingFileError, PersistenceError
from common.protocol_definitions import (
    Envelope, Flag, create_load_response, create_update_response,
    parse_file_names, validate_file_name
)
from common.table import TableEntry, format_timestamp, make_link
from server.files.table_store import TableStore
from server.sessions.session_registry import Session, SessionRegistry
from server.utils.logger import logger as default_logger


class FileServer:
    """Server-side file transfer functionality."""

    def __init__(self, upload_dir: str, table_store: TableStore, registry: SessionRegistry, logger=None):
        self.upload_dir = Path(upload_dir)
        self.table_store = table_store
        self.registry = registry
        self.logger = logger or default_logger

        if self.upload_dir.is_dir():
            self.logger.info(f"Directory for saved files already exists under path {self.upload_dir}")
        else:
            try:
                self.upload_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PersistenceError(f"Can't create directory for saved files {self.upload_dir}: {e}") from e
            self.logger.info(f"Directory for saved files was created under path {self.upload_dir}")

    async def handle_envelope(self, session: Session, envelope: Envelope):
        """Dispatch a decoded envelope by flag."""
        if envelope.flag == Flag.SAVE:
            await self.handle_save(session, envelope)
        elif envelope.flag == Flag.UPDATE:
            await self.handle_update(session, envelope)
        elif envelope.flag == Flag.LOAD:
            await self.handle_load(session, envelope)

    async def handle_save(self, session: Session, envelope: Envelope):
        """Store an uploaded file, record it and broadcast the new table."""
        try:
            file_name = self._local_name(envelope.file_name)
        except EncodingError as e:
            self.logger.warning(f"Rejected upload from session id={session.session_id}: {e}")
            return

        data = envelope.payload
        self.logger.info(f"You are receiving a file from session id={session.session_id} "
                         f"of size: {len(data)} bytes, called {file_name}..")
        if envelope.file_size is not None and envelope.file_size != len(data):
            self.logger.warning(f"Declared size of {file_name} is {envelope.file_size} bytes "
                                f"but {len(data)} bytes were received")

        file_path = self.upload_dir / file_name
        self.logger.debug(f"Trying to save received file under path {file_path}..")
        try:
            file_path.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"An error occurred while trying to save {file_path}: {e}") from e
        self.logger.log_file_upload(file_name, len(data), session.session_id, file_path)

        entry = TableEntry(format_timestamp(), file_name, make_link(self.upload_dir, file_name))
        self.table_store.append(entry)
        await self.broadcast_table()

    async def broadcast_table(self):
        """Send the current table to every registered session."""
        envelope = create_update_response(self.table_store.snapshot())
        failed = await self.registry.broadcast(lambda target: target.send(envelope))
        self.logger.log_table_sync(len(self.registry) - len(failed), len(envelope.payload))

    async def handle_update(self, session: Session, envelope: Envelope):
        """Send the current table to the requesting session only."""
        snapshot = self.table_store.snapshot()
        await session.send(create_update_response(snapshot))
        self.logger.log_table_sync(1, len(snapshot))

    async def handle_load(self, session: Session, envelope: Envelope):
        """Send each requested file as its own frame, in request order."""
        file_names = parse_file_names(envelope.payload)
        self.logger.debug(f"Got file names from session id={session.session_id}: {file_names}")

        for file_name in file_names:
            try:
                data = self.read_upload(file_name)
            except MissingFileError as e:
                self.logger.warning(str(e))
                continue
            except PersistenceError as e:
                self.logger.warning(str(e))
                continue

            local_name = self._local_name(file_name)
            try:
                # Raised before any byte of the frame is written
                await session.send(create_load_response(local_name, data))
            except EncodingError as e:
                self.logger.warning(f"Skipped {local_name}: {e}")
                continue
            self.logger.log_file_download(local_name, len(data), session.session_id)

    def read_upload(self, file_name: str) -> bytes:
        """Read a stored upload by name."""
        try:
            local_name = self._local_name(file_name)
        except EncodingError:
            raise MissingFileError(file_name, str(self.upload_dir)) from None

        file_path = self.upload_dir / local_name
        if not file_path.is_file():
            raise MissingFileError(file_name, str(self.upload_dir))
        try:
            return file_path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Can't open file {file_path} to read: {e}") from e

    @staticmethod
    def _local_name(file_name: str) -> str:
        """Reduce a received name to a plain file name inside the upload directory."""
        if not file_name:
            raise EncodingError("Upload has no file name")
        name = os.path.basename(file_name.replace('\\', '/'))
        validate_file_name(name)
        return name
