"""
Atomic JSON file helpers used by the file-backed task store.

Writes go to a temporary file in the destination directory, are fsynced, and
are then moved into place with ``os.replace`` so readers never observe a
partially written task or history file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)

__all__ = ["atomic_write_json", "atomic_remove", "read_json"]


def _fsync_directory(path: Path) -> None:
    """Flush directory metadata so the rename survives a crash, where supported."""
    try:
        dir_fd = os.open(str(path), os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (AttributeError, OSError):
        logger.debug("Directory fsync unavailable for %s", str(path), exc_info=True)


def atomic_write_json(
    dest_path: Union[str, Path],
    data: Any,
    mode: int = 0o600,
    *,
    ensure_dir: bool = True,
    indent: Optional[int] = 2,
) -> None:
    """
    Atomically write ``data`` as JSON into ``dest_path``.

    Args:
        dest_path: File to write.
        data: JSON-serializable object.
        mode: Permission bits applied to the written file.
        ensure_dir: Create missing parent directories first.
        indent: JSON indentation; None writes compact JSON.
    Raises:
        OSError on IO errors; the temporary file is removed before re-raising.
    """
    dest = Path(dest_path)
    parent = dest.parent
    if ensure_dir:
        parent.mkdir(parents=True, exist_ok=True)

    serialized = json.dumps(data, ensure_ascii=False, indent=indent).encode("utf-8")

    tmp_file = tempfile.NamedTemporaryFile(
        mode="wb", dir=str(parent), delete=False, prefix=f".{dest.name}.", suffix=".tmp"
    )
    try:
        try:
            tmp_file.write(serialized)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        finally:
            tmp_file.close()
        os.replace(tmp_file.name, str(dest))
        try:
            os.chmod(str(dest), mode)
        except OSError:
            logger.debug("chmod not supported for %s", str(dest), exc_info=True)
        _fsync_directory(parent)
    except OSError:
        logger.exception("Failed to perform atomic write to %s", str(dest))
        try:
            os.remove(tmp_file.name)
        except FileNotFoundError:
            pass
        raise


def read_json(path: Union[str, Path]) -> Optional[Any]:
    """Load JSON from ``path``; a missing file yields None."""
    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        return None


def atomic_remove(path: Union[str, Path], *, missing_ok: bool = True) -> None:
    """Remove ``path``; a missing file is ignored unless ``missing_ok`` is False."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        if not missing_ok:
            raise
