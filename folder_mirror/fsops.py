"""Filesystem primitives: hashing, stat, copy, move and delete."""

import logging
import os
import shutil
import stat
from typing import NamedTuple, Optional

import xxhash

_log = logging.getLogger(__name__)

_log_debug = _log.debug


def _long_path(path: str) -> str:
    """Convert path to long path format on Windows to handle paths > 260 chars."""
    path_str = os.path.abspath(path)
    if os.name == 'nt' and not path_str.startswith('\\\\?\\'):
        return '\\\\?\\' + path_str
    return path_str


class StatInfo(NamedTuple):
    """The subset of ``os.lstat`` results a snapshot entry caches."""
    mode: int
    length: int
    creation_time: int
    last_write_time: int
    attributes: int


def compute_file_hash(path: str, chunk_size: int = 65536) -> str:
    """Compute hash of a file using xxhash (fast hashing algorithm)."""
    hasher = xxhash.xxh64()
    with open(_long_path(path), 'rb') as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def read_file_hash(path: str) -> Optional[str]:
    """
    Hash a file, returning None if it cannot be read.

    Files may vanish or become unreadable between discovery and hashing;
    an unknown hash is reported rather than raised.
    """
    try:
        return compute_file_hash(path)
    except OSError as e:
        _log_debug("Cannot hash %s: %s", path, e)
        return None


def stat_entry(path: str) -> Optional[StatInfo]:
    """Return cached-metadata fields for ``path`` without following links."""
    try:
        st = os.lstat(_long_path(path))
    except OSError as e:
        _log_debug("Cannot stat %s: %s", path, e)
        return None
    return StatInfo(
        mode=st.st_mode,
        length=st.st_size,
        creation_time=getattr(st, "st_birthtime_ns", st.st_ctime_ns),
        last_write_time=st.st_mtime_ns,
        attributes=stat.S_IMODE(st.st_mode),
    )


def copy_metadata(src: str, dst: str) -> None:
    """Copy permission bits and timestamps from ``src`` to ``dst``."""
    shutil.copystat(_long_path(src), _long_path(dst), follow_symlinks=False)


def copy_file(src: str, dst: str) -> None:
    """Copy a file, replacing ``dst`` and creating parent directories if needed."""
    dst_long = _long_path(dst)
    os.makedirs(os.path.dirname(dst_long), exist_ok=True)
    if os.path.lexists(dst_long):
        os.unlink(dst_long)
    shutil.copy2(_long_path(src), dst_long, follow_symlinks=False)


def copy_link(src: str, dst: str) -> None:
    """Recreate the symbolic link ``src`` at ``dst``."""
    dst_long = _long_path(dst)
    os.makedirs(os.path.dirname(dst_long), exist_ok=True)
    if os.path.lexists(dst_long):
        os.unlink(dst_long)
    os.symlink(os.readlink(_long_path(src)), dst_long)


def make_directory(path: str) -> None:
    """Create a directory and any missing parents."""
    os.makedirs(_long_path(path), exist_ok=True)


def move_path(src: str, dst: str) -> None:
    """Move ``src`` to ``dst``, which must not exist yet."""
    dst_long = _long_path(dst)
    if os.path.lexists(dst_long):
        raise FileExistsError(f"Move target already exists: {dst}")
    os.makedirs(os.path.dirname(dst_long), exist_ok=True)
    shutil.move(_long_path(src), dst_long)


def remove_path(path: str) -> None:
    """
    Remove a filesystem object.

    Directories are removed with their full subtree; a symbolic link is
    removed itself, never its target.
    """
    long_path = _long_path(path)
    if os.path.isdir(long_path) and not os.path.islink(long_path):
        shutil.rmtree(long_path)
    else:
        os.unlink(long_path)
