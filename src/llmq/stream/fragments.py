"""Extract complete JSON objects from a chunked text stream.

The endpoint delivers its reply in arbitrary-sized chunks. Server-sent events
wrap each object in ``data: {...}`` lines, a non-streaming reply is one
object split across many chunks. Either way we only care about complete,
brace-balanced top-level objects; everything around them is discarded.
"""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


class _BraceScanner:
    """Resumable state of the top-level ``{...}`` search.

    Braces inside double-quoted strings don't count, and a backslash inside
    a string escapes the following character.
    """

    def __init__(self) -> None:
        self.depth = 0
        self.in_string = False
        self.escaped = False
        self.start = -1

    def scan(self, text: str, pos: int) -> tuple[int, int | None]:
        """Scan text from pos.

        Returns:
            ``(pos, end)``: where scanning stopped, and the end of the
            object that completed there (None if none did yet).
        """
        n = len(text)
        while pos < n:
            c = text[pos]
            pos += 1
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif c == "\\":
                    self.escaped = True
                elif c == '"':
                    self.in_string = False
            elif c == "{":
                if self.depth == 0:
                    self.start = pos - 1
                self.depth += 1
            elif c == "}":
                if self.depth > 0:
                    self.depth -= 1
                    if self.depth == 0:
                        return pos, pos
            elif c == '"':
                self.in_string = True
        return pos, None


def find_json(text: str) -> tuple[int, int] | None:
    """Locate the first complete top-level ``{...}`` object in text.

    Returns:
        The ``[start, end)`` span of the object, or None if no object is
        complete yet.
    """
    scanner = _BraceScanner()
    _, end = scanner.scan(text, 0)
    if end is None:
        return None
    return scanner.start, end


class FragmentExtractor:
    """Accumulates chunks and yields complete JSON fragments as they form.

    The scan resumes where the previous chunk left off, so each character
    is examined once however the reply is split.
    """

    def __init__(self) -> None:
        self.reset()

    @property
    def pending(self) -> str:
        """Text received but not yet consumed by a complete fragment."""
        return self._buf

    def feed(self, chunk: str) -> None:
        self._buf += chunk

    def pop(self) -> str | None:
        """Remove and return the next complete fragment, if any.

        Text preceding the fragment (SSE labels, delimiters) is dropped
        along with it.
        """
        self._pos, end = self._scanner.scan(self._buf, self._pos)
        if end is None:
            return None
        fragment = self._buf[self._scanner.start:end]
        self._buf = self._buf[end:]
        self._pos = 0
        self._scanner = _BraceScanner()
        return fragment

    def drain(self, chunk: str) -> list[str]:
        """Feed a chunk and return every fragment it completed."""
        self.feed(chunk)
        fragments = []
        while True:
            fragment = self.pop()
            if fragment is None:
                break
            fragments.append(fragment)
        if fragments:
            log.debug("Extracted %d fragment(s), %d chars pending", len(fragments), len(self._buf))
        return fragments

    def reset(self) -> None:
        self._buf = ""
        self._pos = 0
        self._scanner = _BraceScanner()
