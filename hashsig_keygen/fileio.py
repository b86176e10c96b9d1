"""File helpers shared by the exporter and the manifest writer."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from .errors import (
    IoError,
    keygen_error,
    HSK_E_MKDIR_FAILED,
    HSK_E_READ_FAILED,
    HSK_E_WRITE_FAILED,
)


def ensure_directory(path: Path) -> Path:
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise keygen_error(IoError, HSK_E_MKDIR_FAILED, f"cannot create directory {path}: {e}", path=str(path)) from e
    return path


def write_file_atomic(path: Path, data: bytes) -> None:
    """Write bytes to `path` via a sibling temp file and os.replace().

    Reruns overwrite files of identical names; a failed write never leaves a
    truncated file under the final name.
    """
    path = Path(path)
    try:
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    except OSError as e:
        raise keygen_error(IoError, HSK_E_WRITE_FAILED, f"cannot create {path}: {e}", path=str(path)) from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise keygen_error(IoError, HSK_E_WRITE_FAILED, f"cannot write {path}: {e}", path=str(path)) from e


def read_bytes(path: Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise keygen_error(IoError, HSK_E_READ_FAILED, f"cannot read {path}: {e}", path=str(path)) from e
