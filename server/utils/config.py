"""
Server configuration module.

This module handles server-side configuration settings.
"""

from typing import Optional

from common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, UPLOAD_DIR, TABLE_FILE, LOG_DIR, READ_CHUNK_SIZE


class ServerConfig:
    """Server configuration class."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT, upload_dir: str = UPLOAD_DIR,
                 table_path: str = TABLE_FILE, logs_dir: str = LOG_DIR):
        self.host = host
        self.port = port
        self.upload_dir = upload_dir
        self.table_path = table_path

        # Logging configuration
        self.logs_dir = logs_dir

        # Transfer settings
        self.read_chunk_size = READ_CHUNK_SIZE
        # Seconds a frame write may block; None keeps a stalled peer's session open
        self.send_timeout: Optional[float] = None

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port
        }

    def get_file_settings(self):
        """Get file transfer settings."""
        return {
            'upload_dir': self.upload_dir,
            'table_path': self.table_path,
            'read_chunk_size': self.read_chunk_size,
            'send_timeout': self.send_timeout
        }

    def get_log_settings(self):
        """Get logging settings."""
        return {
            'logs_dir': self.logs_dir
        }
