"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from datetime import datetime
from pathlib import Path

from common.constants import LOG_DIR, TRANSFER_LOG_FILE


class ServerLogger:
    """Server logging class."""

    def __init__(self, logs_dir: str = LOG_DIR, log_level: int = logging.INFO):
        self.logs_dir = Path(logs_dir)

        # Set up main logger
        self.logger = logging.getLogger('fileshare_server')
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Create console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)

        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)

        # Add handler to logger
        self.logger.addHandler(console_handler)

        # Transfer log is created lazily on first write
        self.transfer_log_path = self.logs_dir / TRANSFER_LOG_FILE

    def set_level(self, log_level: int):
        """Change the level of the logger and its handlers."""
        self.logger.setLevel(log_level)
        for handler in self.logger.handlers:
            handler.setLevel(log_level)

    def set_logs_dir(self, logs_dir: str):
        """Point the transfer log at another directory."""
        self.logs_dir = Path(logs_dir)
        self.transfer_log_path = self.logs_dir / TRANSFER_LOG_FILE

    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)

    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)

    def critical(self, message: str):
        """Log critical message."""
        self.logger.critical(message)

    def log_connection(self, addr: tuple, session_id: int):
        """Log client connection."""
        self.info(f"New connection from {addr}, assigned session id={session_id}")

    def log_disconnect(self, addr: tuple, session_id: int):
        """Log client disconnect."""
        self.info(f"A client has just left: {addr} (session id={session_id})")

    def log_file_upload(self, filename: str, size: int, session_id: int, path: Path):
        """Log file upload."""
        self.info(f"File from session id={session_id} successfully stored on disk under the path {path}")
        self._write_to_file(self.transfer_log_path, f"{datetime.now().isoformat()} | UPLOAD | {filename} | SESSION: {session_id} | SIZE: {size} bytes")

    def log_file_download(self, filename: str, size: int, session_id: int):
        """Log file download."""
        self.info(f"Sent '{filename}' ({size} bytes) to session id={session_id}")
        self._write_to_file(self.transfer_log_path, f"{datetime.now().isoformat()} | DOWNLOAD | {filename} | SESSION: {session_id} | SIZE: {size} bytes")

    def log_table_sync(self, session_count: int, size: int):
        """Log table delivery."""
        self.debug(f"Table of {size} bytes sent to {session_count} session(s)")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")

    def _write_to_file(self, file_path: Path, content: str):
        """Write content to log file."""
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'a', encoding='utf-8') as f:
                f.write(content + '\n')
        except OSError as e:
            self.error(f"Failed to write to log file {file_path}: {e}")


# Global logger instance
logger = ServerLogger()
