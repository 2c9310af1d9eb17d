"""
Shared constants for the LAN File Sharing Service.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 9000

# Buffer Sizes
READ_CHUNK_SIZE = 64 * 1024

# Wire Format
LENGTH_FIELD_SIZE = 4  # bytes for big-endian frame length prefix
LENGTH_FIELD_FORMAT = '!I'
HEADER_SIZE = 128  # fixed header slot inside every frame
HEADER_PADDING = b'\x00'
HEADER_ENCODING = 'utf-8'
NULL_FIELD = 'null'  # sentinel for absent header fields

# Header grammar: flag:<flag>,fileName:<name|null>,fileSize:<bytes|null>;
FIELD_SEPARATOR = ','
KEY_VALUE_SEPARATOR = ':'
HEADER_TERMINATOR = ';'

# Table Store
TABLE_ENCODING = 'utf-8'
TABLE_FIELD_SEPARATOR = ','
TIMESTAMP_FORMAT = '%d.%m.%Y/%H:%M:%S'  # milliseconds appended as .mmm

# File Transfer
UPLOAD_DIR = 'SavedFilesOnServer'
TABLE_FILE = 'TableFile.txt'
DOWNLOAD_NAME_SEPARATOR = '\n'
DOWNLOAD_IDLE_TIMEOUT = 10.0  # seconds without a Load frame before a batch is closed

# Logging
LOG_DIR = 'logs'
TRANSFER_LOG_FILE = 'file_transfers.log'


# Envelope flags (wire values)
class Flags:
    SAVE = 'save'
    UPDATE = 'upd'
    LOAD = 'load'
