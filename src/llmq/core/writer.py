"""Locked, minimal-rewrite writer for context files.

A chat streams its reply into the context document one fragment at a time,
and the document is persisted after every fragment. Rewriting the whole file
each time is wasteful, and an external watcher (an editor, ``tail -f``) sees
churn. The writer instead diffs the new serialization against the last one it
wrote and only rewrites the byte ranges that changed.
"""

from __future__ import annotations

import fcntl
import logging
from pathlib import Path

from llmq.core.errors import ContextIOError, LockError

log = logging.getLogger(__name__)


_BLOCK = 4096


def _skip_equal(old: bytes, new: bytes, i: int, limit: int) -> int:
    """Return the first index >= i where old and new differ (or limit)."""
    # whole blocks compare in C; only the block holding the mismatch is walked
    while i < limit:
        end = min(i + _BLOCK, limit)
        if old[i:end] != new[i:end]:
            break
        i = end
    while i < limit and old[i] == new[i]:
        i += 1
    return i


def diff_spans(old: bytes, new: bytes) -> list[tuple[int, int]]:
    """Compute the [start, end) ranges of ``new`` that must be written over ``old``.

    Greedy two-cursor walk: equal bytes are skipped; on a mismatch both
    cursors advance together until the buffers agree again, and that span is
    emitted. Bytes of ``new`` past the end of ``old`` form a final span.
    """
    spans: list[tuple[int, int]] = []
    limit = min(len(old), len(new))
    i = 0
    while i < limit:
        if old[i] == new[i]:
            i = _skip_equal(old, new, i, limit)
            continue
        start = i
        while i < limit and old[i] != new[i]:
            i += 1
        spans.append((start, i))
    if len(new) > limit:
        spans.append((limit, len(new)))
    return spans


class ContextWriter:
    """Holds an exclusive lock on a context file and rewrites it incrementally.

    The lock is taken non-blockingly when the writer is constructed: a second
    llmq process on the same context fails fast with LockError instead of
    waiting. Use as a context manager so the lock is released on every exit
    path.
    """

    def __init__(self, path: Path, previous: bytes | str | None = None) -> None:
        self._path = Path(path).resolve()
        try:
            self._file = open(self._path, "r+b")
        except OSError as e:
            raise ContextIOError(f"failed to open context file {self._path}: {e}") from e

        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            self._file.close()
            raise LockError(
                f"failed to lock the context file {self._path}: {e.strerror or e}. "
                "Is another llmq process using it? (see `llmq kill`)"
            ) from e
        self._closed = False
        log.debug("Locked %s", self._path)

        if previous is None:
            try:
                self._buf = self._file.read()
            except OSError as e:
                self.close()
                raise ContextIOError(f"failed to read context file {self._path}: {e}") from e
        elif isinstance(previous, str):
            self._buf = previous.encode("utf-8")
        else:
            self._buf = bytes(previous)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def snapshot(self) -> bytes | None:
        """The bytes the writer believes are currently on disk.

        None after a failed write, until the next overwrite succeeds.
        """
        return self._buf

    def overwrite(self, content: str | bytes) -> int:
        """Make the file contents equal ``content``, writing only changed ranges.

        Returns:
            Number of bytes written (0 when nothing changed).
        """
        if self._closed:
            raise ContextIOError(f"context writer for {self._path} is closed")
        new = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        # None after a failed write: the file state is unknown, rewrite it all
        old = self._buf if self._buf is not None else b""

        written = 0
        try:
            for start, end in diff_spans(old, new):
                self._file.seek(start)
                self._file.write(new[start:end])
                written += end - start
            if self._buf is None or len(new) < len(old):
                self._file.truncate(len(new))
            self._file.flush()
        except OSError as e:
            self._buf = None
            raise ContextIOError(f"failure while writing to context file {self._path}: {e}") from e

        if written or len(new) != len(old):
            log.debug("Wrote %d bytes to %s (%d total)", written, self._path, len(new))
        self._buf = new
        return written

    def close(self) -> None:
        """Release the lock and close the file. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            raise ContextIOError(f"failed to unlock the context file {self._path}: {e}") from e
        finally:
            self._file.close()
        log.debug("Unlocked %s", self._path)

    def __enter__(self) -> ContextWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
