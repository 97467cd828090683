"""Tests for folder_mirror.db module."""

import io
import os
import sqlite3
from unittest.mock import patch

import pytest

from folder_mirror.db import FORMAT_VERSION, SnapshotDB, SnapshotError
from folder_mirror.models import EntryKind
from folder_mirror.scanner import scan


@pytest.fixture
def db(temp_dir):
    """Create a snapshot database for testing."""
    database = SnapshotDB(temp_dir / "snapshot.db")
    yield database
    database.close()


@pytest.fixture
def saved(temp_dir, sample_folders, scan_tree, db):
    """Save the sample reference folder and return the scanned snapshot."""
    _, reference_dir = sample_folders
    snapshot = scan_tree(reference_dir)
    db.save(snapshot)
    return snapshot


class TestSnapshotDBInit:
    """Tests for SnapshotDB initialization."""

    def test_creates_database_file(self, temp_dir):
        db_path = temp_dir / "new.db"
        with SnapshotDB(db_path):
            pass
        assert db_path.exists()

    def test_schema_tables_exist(self, db):
        cursor = db.conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        tables = [row[0] for row in cursor.fetchall()]
        assert "entries" in tables
        assert "metadata" in tables

    def test_no_side_files(self, temp_dir, saved):
        assert sorted(os.listdir(temp_dir)) == ["live", "mirror", "snapshot.db"]


class TestMetadata:
    """Tests for metadata operations."""

    def test_set_and_get(self, db):
        db.set_metadata("test_key", "test_value")
        assert db.get_metadata("test_key") == "test_value"

    def test_get_default(self, db):
        assert db.get_metadata("missing", "fallback") == "fallback"

    def test_overwrite(self, db):
        db.set_metadata("key", "one")
        db.set_metadata("key", "two")
        assert db.get_metadata("key") == "two"

    def test_save_records_format_version(self, db, saved):
        assert db.get_metadata("format_version") == FORMAT_VERSION
        assert db.get_metadata("saved_at") is not None


class TestSave:
    """Tests for SnapshotDB.save."""

    def test_entry_count(self, db, saved):
        # collection root, docs, a.txt, sub, b.txt, deep, c.txt
        assert db.get_entry_count() == 7

    def test_stored_names(self, db, saved, sample_folders):
        _, reference_dir = sample_folders
        rows = db.conn.execute("SELECT name, kind FROM entries ORDER BY id").fetchall()

        assert rows[0] == (None, "Collection")
        assert rows[1] == (str(reference_dir), "Directory")
        assert [row[0] for row in rows[2:]] == ["a.txt", "sub", "b.txt", "deep", "c.txt"]

    def test_fields_by_kind(self, db, saved):
        rows = {
            row[0]: row[1:]
            for row in db.conn.execute(
                """SELECT kind, creation_time, last_write_time, attributes,
                          length, content_hash
                   FROM entries WHERE name IN ('a.txt', 'sub') OR name IS NULL"""
            )
        }
        assert rows["Collection"] == (None, None, None, None, None)

        created, written, attributes, length, content_hash = rows["Directory"]
        assert created is not None and written is not None and attributes is not None
        assert length is None and content_hash is None

        created, written, attributes, length, content_hash = rows["File"]
        assert length == 5
        assert content_hash == saved.roots[0].find_child("a.txt").content_hash

    def test_link_length_is_stored(self, db, temp_dir, make_tree, scan_tree):
        make_tree(temp_dir / "docs", {})
        (temp_dir / "docs" / "link").symlink_to("elsewhere")
        db.save(scan_tree(temp_dir / "docs"))

        row = db.conn.execute(
            "SELECT kind, length, content_hash FROM entries WHERE name = 'link'"
        ).fetchone()
        assert row == ("SymbolicLink", len("elsewhere"), None)

    def test_save_replaces_previous_tree(self, db, saved, temp_dir, make_tree, scan_tree):
        make_tree(temp_dir / "other", {"only.txt": "x"})
        db.save(scan_tree(temp_dir / "other"))

        assert db.get_entry_count() == 3

    def test_unreadable_file_saved_without_hash(self, db, temp_dir, make_tree, scan_tree):
        make_tree(temp_dir / "docs", {"a.txt": "a"})
        snapshot = scan_tree(temp_dir / "docs")
        entry = snapshot.roots[0].find_child("a.txt")
        entry.reset()

        with patch("folder_mirror.models.read_file_hash", return_value=None):
            db.save(snapshot)

        row = db.conn.execute(
            "SELECT length, content_hash FROM entries WHERE name = 'a.txt'"
        ).fetchone()
        assert row == (1, None)

    def test_failed_save_rolls_back(self, db, saved, temp_dir, make_tree, scan_tree):
        make_tree(temp_dir / "other", {"only.txt": "x"})
        other = scan_tree(temp_dir / "other")

        with patch.object(db, "set_metadata", side_effect=sqlite3.OperationalError("disk full")):
            with pytest.raises(sqlite3.OperationalError):
                db.save(other)

        assert db.get_entry_count() == 7


class TestDump:
    """Tests for SnapshotDB.dump."""

    def test_dump_recreates_snapshot(self, db, saved, temp_dir):
        out = io.StringIO()
        db.dump(out)

        copy_path = temp_dir / "copy.db"
        conn = sqlite3.connect(str(copy_path))
        conn.executescript(out.getvalue())
        conn.close()

        with SnapshotDB(copy_path) as copy:
            assert copy.get_entry_count() == 7
            loaded = copy.load()
        assert [(e.path, e.kind) for e in loaded.iter_entries()] == \
            [(e.path, e.kind) for e in saved.iter_entries()]


class TestLoad:
    """Tests for SnapshotDB.load."""

    def test_round_trip_shape(self, db, saved):
        loaded = db.load()

        assert [(e.path, e.name, e.kind) for e in loaded.iter_entries()] == \
            [(e.path, e.name, e.kind) for e in saved.iter_entries()]
        assert loaded.root.kind is EntryKind.COLLECTION
        assert all(e.parent is loaded.root for e in loaded.roots)

    def test_round_trip_fields(self, db, saved):
        loaded = db.load()

        for old, new in zip(saved.iter_entries(), loaded.iter_entries()):
            assert new.attributes == old.attributes
            assert new.last_write_time == old.last_write_time
            if old.kind is EntryKind.FILE:
                assert new.length == old.length
                assert new.content_hash == old.content_hash

    def test_load_does_not_touch_disk(self, db, saved):
        with patch("folder_mirror.models.stat_entry") as mock_stat, \
                patch("folder_mirror.models.read_file_hash") as mock_hash:
            loaded = db.load()
            for entry in loaded.iter_entries():
                if entry.kind is EntryKind.FILE:
                    assert entry.length is not None
                    assert entry.content_hash is not None

        mock_stat.assert_not_called()
        mock_hash.assert_not_called()

    def test_loaded_hashes_are_indexed(self, db, saved):
        loaded = db.load()
        a_txt = loaded.roots[0].find_child("a.txt")

        assert loaded.index.lookup(a_txt.cached_content_hash) is a_txt
        assert len(loaded.index) == 3

    def test_missing_hash_stays_lazy(self, db, saved, sample_folders):
        _, reference_dir = sample_folders
        db.conn.execute("UPDATE entries SET content_hash = NULL WHERE name = 'a.txt'")

        a_txt = db.load().roots[0].find_child("a.txt")

        assert a_txt.cached_content_hash is None
        assert a_txt.content_hash is not None
        assert a_txt.path == str(reference_dir / "a.txt")

    def test_multiple_roots(self, db, temp_dir, make_tree):
        make_tree(temp_dir / "one", {"a.txt": "a"})
        make_tree(temp_dir / "two", {"b.txt": "b"})
        snapshot, _ = scan([str(temp_dir / "one"), str(temp_dir / "two")])
        db.save(snapshot)

        loaded = db.load()

        assert [root.path for root in loaded.roots] == [str(temp_dir / "one"),
                                                        str(temp_dir / "two")]
        assert loaded.roots[1].children[0].name == os.path.join("two", "b.txt")

    def test_empty_database_raises(self, db):
        with pytest.raises(SnapshotError):
            db.load()

    def test_unknown_format_raises(self, db, saved):
        db.set_metadata("format_version", "99")
        with pytest.raises(SnapshotError, match="Unsupported"):
            db.load()

    def test_bad_kind_raises(self, db, saved):
        db.conn.execute("UPDATE entries SET kind = 'Bogus' WHERE name = 'a.txt'")
        with pytest.raises(SnapshotError, match="Corrupt"):
            db.load()

    def test_corrupt_file_raises(self, temp_dir):
        db_path = temp_dir / "garbage.db"
        db_path.write_bytes(b"this is not a database" * 100)

        with pytest.raises(SnapshotError):
            with SnapshotDB(db_path) as db:
                db.load()
