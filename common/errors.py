"""
Error types shared by client and server.

I/O failures on a connection are reported with the built-in ConnectionError.
"""


class FileShareError(Exception):
    """Base class for protocol and storage errors."""


class MalformedHeaderError(FileShareError, ValueError):
    """Header bytes could not be parsed or carry an unknown flag."""


class EncodingError(FileShareError, ValueError):
    """Header fields cannot be rendered into the fixed-width header slot."""


class PersistenceError(FileShareError, OSError):
    """The table store (or an uploaded file) could not be read or written."""


class MissingFileError(FileShareError, FileNotFoundError):
    """A requested download is not present in the upload directory."""

    def __init__(self, file_name: str, directory: str):
        super().__init__(f"File with name {file_name} doesn't exist in the directory {directory}")
        self.file_name = file_name
        self.directory = directory
