"""
Client logging module.

This module handles client-side logging functionality.
"""

import logging
import sys


class ClientLogger:
    """Client logging class."""

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger('fileshare_client')
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Create console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)

        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)

        # Add handler to logger
        self.logger.addHandler(console_handler)

    def set_level(self, log_level: int):
        """Change the level of the logger and its handlers."""
        self.logger.setLevel(log_level)
        for handler in self.logger.handlers:
            handler.setLevel(log_level)

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

    def log_connection(self, host: str, port: int, success: bool):
        """Log connection attempt."""
        status = "Connected" if success else "Failed to connect"
        self.info(f"{status} to {host}:{port}")

    def log_file_upload(self, filename: str, size: int):
        """Log file upload."""
        self.info(f"Uploading file: {filename} ({size} bytes)")

    def log_file_download(self, filename: str, path: str):
        """Log a downloaded file."""
        self.info(f"File {filename} successfully stored on disk under the path {path}")

    def show_table(self, entries: list):
        """Show the table of uploaded files."""
        self.info(f"[INFO] Files on server ({len(entries)}):")
        for entry in entries:
            self.info(f"  {entry.timestamp}  {entry.file_name}  {entry.link}")

    def show_interactive_mode_info(self):
        """Show interactive mode information."""
        self.info("[INFO] Commands: /upload FILE... /download DIR NAME... /table /help /quit")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")


# Global logger instance
logger = ClientLogger()
