"""Whole-file writes for record files.

Record files are read by other processes (the dashboard, cloud-drive
clients, peer machines), so every write goes to a sibling temp file first
and is moved into place with ``os.replace``.
"""

import os
from pathlib import Path


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` in a single rename."""
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def copy_file_atomic(src: Path, dst: Path) -> bytes:
    """Copy ``src`` to ``dst`` byte for byte and return the copied bytes."""
    data = src.read_bytes()
    atomic_write_bytes(dst, data)
    return data
