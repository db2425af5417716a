"""File system utilities: directories, empty files, permission checks."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from llmq.core.errors import ContextIOError

log = logging.getLogger(__name__)

AUTH_MODE = 0o600
CONTEXT_MODE = 0o644


def ensure_dir(path: Path) -> Path:
    """Create directory (and parents) if it doesn't exist."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ContextIOError(f"could not create directory {path}: {e}") from e
    return path


def touch(path: Path, mode: int) -> None:
    """Create an empty file with the given permissions, truncating any existing one."""
    ensure_dir(path.parent)
    try:
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, mode)
    except OSError as e:
        raise ContextIOError(f"could not create file {path}: {e}") from e
    os.close(fd)
    log.debug("Created %s (mode %o)", path, mode)


def read_text(path: Path) -> str:
    """Read a UTF-8 text file."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ContextIOError(f"failed to read {path}: {e}") from e


def is_private_file(path: Path) -> bool:
    """True if the file is readable only by its owner (0400 or 0600)."""
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError as e:
        raise ContextIOError(f"error getting the status of {path}: {e}") from e
    return mode in (0o400, 0o600)
