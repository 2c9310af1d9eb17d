"""
Protocol definitions for the LAN File Sharing Service.

Every frame carries one envelope: a fixed 128-byte textual header followed by
a variable-length payload. The header grammar is

    flag:<save|upd|load>,fileName:<name|null>,fileSize:<bytes|null>;

padded with NUL bytes up to the header width.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Union

from common.constants import (
    DOWNLOAD_NAME_SEPARATOR, FIELD_SEPARATOR, HEADER_ENCODING, HEADER_PADDING,
    HEADER_SIZE, HEADER_TERMINATOR, KEY_VALUE_SEPARATOR, NULL_FIELD, Flags
)
from common.errors import EncodingError, MalformedHeaderError

# Characters that would break the header grammar, the table format,
# the load request list or escape the upload directory.
FORBIDDEN_NAME_CHARS = (',', ';', '\n', '\r', '\x00', '/', '\\')


class Flag(str, Enum):
    """Operation kind carried in the header."""
    SAVE = Flags.SAVE
    UPDATE = Flags.UPDATE
    LOAD = Flags.LOAD


@dataclass(frozen=True)
class Header:
    """Decoded header fields."""
    flag: Flag
    file_name: Optional[str] = None
    file_size: Optional[int] = None


@dataclass
class Envelope:
    """Logical application message: header fields plus payload."""
    flag: Flag
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    payload: bytes = b''

    @property
    def header(self) -> Header:
        return Header(self.flag, self.file_name, self.file_size)

    def to_bytes(self) -> bytes:
        """Serialize as header slot followed by payload."""
        return encode_header(self.flag, self.file_name, self.file_size) + self.payload

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Envelope':
        """Parse a frame body into an envelope."""
        if len(data) < HEADER_SIZE:
            raise MalformedHeaderError(f"Frame of {len(data)} bytes is shorter than the {HEADER_SIZE}-byte header")
        header = decode_header(data[:HEADER_SIZE])
        return cls(header.flag, header.file_name, header.file_size, bytes(data[HEADER_SIZE:]))


def validate_file_name(file_name: str):
    """Raise EncodingError if the name cannot travel in a header or table row."""
    if not file_name or file_name in ('.', '..', NULL_FIELD):
        raise EncodingError(f"Invalid file name: {file_name!r}")
    for char in FORBIDDEN_NAME_CHARS:
        if char in file_name:
            raise EncodingError(f"File name {file_name!r} contains forbidden character {char!r}")


def encode_header(flag: Union[Flag, str], file_name: Optional[str] = None,
                  file_size: Optional[int] = None) -> bytes:
    """Render the header text and pad it to exactly HEADER_SIZE bytes."""
    try:
        flag = Flag(flag)
    except ValueError:
        raise EncodingError(f"Unknown flag: {flag!r}") from None

    if file_name is not None:
        validate_file_name(file_name)
    if file_size is not None and (not isinstance(file_size, int) or file_size < 0):
        raise EncodingError(f"Invalid file size: {file_size!r}")

    fields = (
        ('flag', flag.value),
        ('fileName', NULL_FIELD if file_name is None else file_name),
        ('fileSize', NULL_FIELD if file_size is None else str(file_size)),
    )
    text = FIELD_SEPARATOR.join(f"{key}{KEY_VALUE_SEPARATOR}{value}" for key, value in fields)
    raw = (text + HEADER_TERMINATOR).encode(HEADER_ENCODING)

    if len(raw) > HEADER_SIZE:
        raise EncodingError(f"Header needs {len(raw)} bytes but only {HEADER_SIZE} are available")
    return raw.ljust(HEADER_SIZE, HEADER_PADDING)


def decode_header(data: bytes) -> Header:
    """Parse a header slot. Padding after the terminator is ignored."""
    raw = bytes(data[:HEADER_SIZE])
    end = raw.find(HEADER_TERMINATOR.encode(HEADER_ENCODING))
    if end == -1:
        raise MalformedHeaderError("Header has no terminator")

    try:
        text = raw[:end].decode(HEADER_ENCODING)
    except UnicodeDecodeError as e:
        raise MalformedHeaderError(f"Header is not valid {HEADER_ENCODING}: {e}") from None

    fields = {}
    for field in text.split(FIELD_SEPARATOR):
        key, sep, value = field.partition(KEY_VALUE_SEPARATOR)
        if not sep:
            raise MalformedHeaderError(f"Header field without key/value separator: {field!r}")
        fields[key.strip()] = value

    if 'flag' not in fields:
        raise MalformedHeaderError("Header has no flag")
    try:
        flag = Flag(fields['flag'])
    except ValueError:
        raise MalformedHeaderError(f"Got wrong flag: {fields['flag']}!") from None

    file_name = fields.get('fileName', NULL_FIELD)
    if file_name == NULL_FIELD:
        file_name = None

    size_text = fields.get('fileSize', NULL_FIELD)
    if size_text == NULL_FIELD:
        file_size = None
    else:
        try:
            file_size = int(size_text)
        except ValueError:
            raise MalformedHeaderError(f"File size is not a number: {size_text!r}") from None
        if file_size < 0:
            raise MalformedHeaderError(f"File size is negative: {file_size}")

    return Header(flag, file_name, file_size)


def create_save_envelope(file_name: str, data: bytes) -> Envelope:
    """Create an upload envelope."""
    return Envelope(Flag.SAVE, file_name, len(data), data)


def create_update_request() -> Envelope:
    """Create a table sync request."""
    return Envelope(Flag.UPDATE)


def create_update_response(snapshot: bytes) -> Envelope:
    """Create a table sync response carrying the full snapshot."""
    return Envelope(Flag.UPDATE, payload=snapshot)


def create_load_request(file_names: Iterable[str]) -> Envelope:
    """Create a batched download request; names travel newline-separated."""
    names = list(file_names)
    for name in names:
        validate_file_name(name)
    payload = ''.join(f"{name}{DOWNLOAD_NAME_SEPARATOR}" for name in names).encode(HEADER_ENCODING)
    return Envelope(Flag.LOAD, payload=payload)


def create_load_response(file_name: str, data: bytes) -> Envelope:
    """Create the per-file response of a batched download."""
    return Envelope(Flag.LOAD, file_name, len(data), data)


def parse_file_names(payload: bytes) -> List[str]:
    """Split a load request payload into names, dropping blank entries."""
    text = payload.decode(HEADER_ENCODING, errors='replace')
    return [name.strip('\r') for name in text.split(DOWNLOAD_NAME_SEPARATOR) if name.strip('\r')]
