"""
Records of the shared file table.

The table travels as newline-delimited UTF-8 text with one
``<timestamp>,<fileName>,<link>`` record per line.
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from common.constants import TABLE_ENCODING, TABLE_FIELD_SEPARATOR, TIMESTAMP_FORMAT


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """Render a timestamp as dd.MM.yyyy/hh:mm:ss.mmm."""
    moment = moment or datetime.now()
    return f"{moment.strftime(TIMESTAMP_FORMAT)}.{moment.microsecond // 1000:03d}"


def make_link(upload_dir: Path, file_name: str) -> str:
    """Build the file:/// URI of a stored upload."""
    return (Path(upload_dir).resolve() / file_name).as_uri()


@dataclass(frozen=True)
class TableEntry:
    """One uploaded file in the table."""
    timestamp: str
    file_name: str
    link: str

    def to_record(self) -> str:
        return TABLE_FIELD_SEPARATOR.join((self.timestamp, self.file_name, self.link))

    @classmethod
    def from_record(cls, record: str) -> 'TableEntry':
        parts = record.split(TABLE_FIELD_SEPARATOR, 2)
        if len(parts) != 3:
            raise ValueError(f"Table record must have 3 fields: {record!r}")
        return cls(*parts)


def render_table(entries: Iterable[TableEntry]) -> bytes:
    """Encode entries as table text."""
    return ''.join(f"{entry.to_record()}\n" for entry in entries).encode(TABLE_ENCODING)


def parse_table(data: bytes) -> List[TableEntry]:
    """Decode table text. Blank and malformed lines are skipped."""
    entries = []
    for line in data.decode(TABLE_ENCODING, errors='replace').splitlines():
        if not line.strip():
            continue
        try:
            entries.append(TableEntry.from_record(line))
        except ValueError:
            continue
    return entries
