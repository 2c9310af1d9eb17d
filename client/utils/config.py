"""
Client configuration module.

This module handles client-side configuration settings.
"""

from pathlib import Path

from common.constants import DEFAULT_HOST, DEFAULT_PORT, READ_CHUNK_SIZE, DOWNLOAD_IDLE_TIMEOUT


def default_documents_dir() -> str:
    """Documents folder of the current user, or the home directory."""
    documents = Path.home() / 'Documents'
    return str(documents if documents.is_dir() else Path.home())


class ClientConfig:
    """Client configuration class."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        self.host = host
        self.port = port

        # Last directories used by the file pickers
        self.save_dir = default_documents_dir()
        self.load_dir = default_documents_dir()

        # Transfer settings
        self.read_chunk_size = READ_CHUNK_SIZE
        self.download_idle_timeout = DOWNLOAD_IDLE_TIMEOUT

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port
        }

    def get_transfer_settings(self):
        """Get file transfer settings."""
        return {
            'save_dir': self.save_dir,
            'load_dir': self.load_dir,
            'read_chunk_size': self.read_chunk_size,
            'download_idle_timeout': self.download_idle_timeout
        }
