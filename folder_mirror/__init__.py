"""
Folder Mirror - A CLI tool to keep a reference folder in step with live folders.

Features:
- Snapshot of the reference tree persisted in SQLite
- Change detection by content hash using xxhash
- Copies, updates and deletions applied in a selectable order
- Duplicate content reused by moving or copying within the reference
- Timestamped generation backups of everything deleted or overwritten
- Verification rescan after every update
"""

__version__ = "1.0.0"
