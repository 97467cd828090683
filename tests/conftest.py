"""Shared test fixtures."""

import io
import tempfile
from pathlib import Path

import pytest

from folder_mirror.mirror import MirrorSession
from folder_mirror.models import MirrorOptions
from folder_mirror.scanner import scan


def write_tree(root: Path, layout: dict) -> None:
    """Create ``layout`` under ``root``: strings are file contents, dicts are folders."""
    root.mkdir(parents=True, exist_ok=True)
    for name, value in layout.items():
        if isinstance(value, dict):
            write_tree(root / name, value)
        else:
            (root / name).write_text(value)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_tree():
    """Return the tree-writing helper."""
    return write_tree


@pytest.fixture
def scan_tree():
    """Scan a single folder and return the snapshot."""
    def _scan(path):
        snapshot, errors = scan([str(path)])
        assert errors == []
        return snapshot
    return _scan


@pytest.fixture
def sample_folders(temp_dir):
    """Create identical live and reference folders, both named ``docs``."""
    live = temp_dir / "live" / "docs"
    reference = temp_dir / "mirror" / "docs"
    layout = {
        "a.txt": "alpha",
        "sub": {
            "b.txt": "beta",
            "deep": {"c.txt": "gamma"},
        },
    }
    write_tree(live, layout)
    write_tree(reference, layout)
    return live, reference


@pytest.fixture
def make_session():
    """Build a session around a reference snapshot with a captured report sink."""
    def _make(reference, **options):
        return MirrorSession(reference, MirrorOptions(**options), io.StringIO())
    return _make
