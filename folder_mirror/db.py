"""SQLite-backed snapshot store."""

import os
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO, Union

from .models import Entry, EntryKind
from .snapshot import Snapshot

FORMAT_VERSION = "1"

_TIMED_KINDS = (EntryKind.DIRECTORY, EntryKind.FILE)
_SIZED_KINDS = (EntryKind.FILE, EntryKind.SYMBOLIC_LINK)


class SnapshotError(Exception):
    """Raised when a snapshot file cannot be read or written."""


def _stored_name(entry: Entry) -> Optional[str]:
    """Scan roots keep their absolute path; every other entry its basename."""
    if entry.kind is EntryKind.COLLECTION:
        return None
    if entry.parent is None or entry.parent.kind is EntryKind.COLLECTION:
        return entry.path
    return entry.basename


def _entry_row(entry: Entry, entry_id: int, parent_id: Optional[int],
               position: int) -> tuple:
    kind = entry.kind
    timed = kind in _TIMED_KINDS
    is_file = kind is EntryKind.FILE
    return (
        entry_id,
        parent_id,
        position,
        _stored_name(entry),
        kind.value,
        entry.creation_time if timed else None,
        entry.last_write_time if timed else None,
        entry.attributes if kind is not EntryKind.COLLECTION else None,
        entry.length if kind in _SIZED_KINDS else None,
        entry.content_hash if is_file else None,
    )


def _collect_rows(entry: Entry, parent_id: Optional[int], position: int,
                  rows: list[tuple]) -> None:
    entry_id = len(rows) + 1
    rows.append(_entry_row(entry, entry_id, parent_id, position))
    for child_position, child in enumerate(entry.children):
        _collect_rows(child, entry_id, child_position, rows)


class SnapshotDB:
    """SQLite-backed persistence for snapshot trees."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        try:
            self.conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            self._init_schema()
        except sqlite3.DatabaseError as e:
            raise SnapshotError(f"Cannot open snapshot {self.db_path}: {e}") from e

    def __enter__(self) -> "SnapshotDB":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS entries (
                id INTEGER PRIMARY KEY,
                parent_id INTEGER REFERENCES entries(id),
                position INTEGER NOT NULL,
                name TEXT,
                kind TEXT NOT NULL,
                creation_time INTEGER,
                last_write_time INTEGER,
                attributes INTEGER,
                length INTEGER,
                content_hash TEXT
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def get_metadata(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a metadata value."""
        cursor = self.conn.execute(
            "SELECT value FROM metadata WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return row[0] if row else default

    def set_metadata(self, key: str, value: str) -> None:
        """Set a metadata value."""
        self.conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
            (key, value)
        )

    def get_entry_count(self) -> int:
        """Get the number of stored entries, the collection root included."""
        cursor = self.conn.execute("SELECT COUNT(*) FROM entries")
        return cursor.fetchone()[0]

    def save(self, snapshot: Snapshot) -> None:
        """
        Replace the stored tree with ``snapshot`` in a single transaction.

        Lazy metadata is resolved from disk as it is written; a hash that
        cannot be computed is left out.
        """
        rows: list[tuple] = []
        _collect_rows(snapshot.root, None, 0, rows)

        self.conn.execute("BEGIN")
        try:
            self.conn.execute("DELETE FROM entries")
            self.conn.executemany(
                """INSERT INTO entries
                   (id, parent_id, position, name, kind, creation_time,
                    last_write_time, attributes, length, content_hash)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows
            )
            self.set_metadata("format_version", FORMAT_VERSION)
            self.set_metadata("saved_at", datetime.now().isoformat())
            self.conn.execute("COMMIT")
        except Exception:
            self.conn.execute("ROLLBACK")
            raise

    def dump(self, out: TextIO) -> None:
        """Write the stored snapshot to ``out`` as SQL that recreates it."""
        for line in self.conn.iterdump():
            print(line, file=out)

    def load(self) -> Snapshot:
        """Rebuild the stored tree without touching the mirrored filesystem."""
        try:
            version = self.get_metadata("format_version")
            rows = self.conn.execute(
                """SELECT id, parent_id, name, kind, creation_time,
                          last_write_time, attributes, length, content_hash
                   FROM entries ORDER BY id"""
            ).fetchall()
        except sqlite3.DatabaseError as e:
            raise SnapshotError(f"Cannot read snapshot {self.db_path}: {e}") from e

        if version != FORMAT_VERSION:
            raise SnapshotError(
                f"Unsupported snapshot format in {self.db_path}: {version!r}"
            )
        if not rows or rows[0][1] is not None or rows[0][3] != EntryKind.COLLECTION.value:
            raise SnapshotError(f"Snapshot {self.db_path} has no collection root")

        snapshot = Snapshot()
        entries = {rows[0][0]: snapshot.root}
        try:
            for row in rows[1:]:
                (entry_id, parent_id, stored_name, kind, creation_time,
                 last_write_time, attributes, length, content_hash) = row
                parent = entries[parent_id]
                if os.path.isabs(stored_name):
                    path = stored_name
                    name = os.path.basename(stored_name)
                else:
                    path = os.path.join(parent.path, stored_name)
                    name = os.path.join(parent.name, stored_name)
                entries[entry_id] = Entry.from_record(
                    snapshot, parent, path, name, EntryKind(kind),
                    length=length,
                    creation_time=creation_time,
                    last_write_time=last_write_time,
                    attributes=attributes,
                    content_hash=content_hash,
                )
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotError(f"Corrupt snapshot {self.db_path}: {e}") from e

        return snapshot
