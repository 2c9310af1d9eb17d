"""
Table store module.

Append-only ledger of uploaded files, kept in a UTF-8 text file with one
``timestamp,fileName,link`` record per line.
"""

import os
import threading
from pathlib import Path
from typing import List

from common.constants import TABLE_ENCODING
from common.errors import PersistenceError
from common.table import TableEntry, parse_table
from server.utils.logger import logger as default_logger


class TableStore:
    """Durable table of uploaded files."""

    def __init__(self, path: str, logger=None):
        self.path = Path(path)
        self.logger = logger or default_logger
        self.lock = threading.Lock()  # Serialize appends and reads
        self._initialize()

    def _initialize(self):
        """Create an empty table file if none exists yet."""
        if self.path.exists():
            self.logger.info(f"File for table of saved files already exists under path {self.path}")
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.touch()
        except OSError as e:
            raise PersistenceError(f"Can't create table file {self.path}: {e}") from e
        self.logger.info(f"File for table of saved files was created under path {self.path}")

    def append(self, entry: TableEntry):
        """Append one entry and flush it to disk before returning."""
        record = f"{entry.to_record()}\n".encode(TABLE_ENCODING)
        with self.lock:
            try:
                with open(self.path, 'ab') as f:
                    f.write(record)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise PersistenceError(
                    f"Can't open file with table of saved files under path {self.path} "
                    f"to add new saved file with name {entry.file_name}: {e}"
                ) from e
        self.logger.info(f"File {entry.file_name} was added into file with table of saved files")

    def snapshot(self) -> bytes:
        """Return the full table as newline-delimited UTF-8 records."""
        with self.lock:
            try:
                return self.path.read_bytes()
            except OSError as e:
                raise PersistenceError(f"Can't open file {self.path} to read: {e}") from e

    def entries(self) -> List[TableEntry]:
        """Return the table as parsed entries in append order."""
        return parse_table(self.snapshot())
