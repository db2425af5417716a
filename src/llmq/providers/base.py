"""Plugin protocol and supporting types."""

from __future__ import annotations

from argparse import Namespace
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from llmq.core.document import Document


@dataclass
class Request:
    """Everything the transport needs to send one request."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None  # None means GET


@runtime_checkable
class Plugin(Protocol):
    """Contract for an LLM endpoint integration.

    Call order for one action: ``parse_args`` and ``initialize`` once, then
    for each request attempt ``begin``, ``request``, ``consume`` per chunk,
    and ``finish`` when the response is complete.
    """

    @property
    def name(self) -> str:
        """Plugin ID used on the command line: 'gpt'."""
        ...

    @property
    def descr(self) -> str:
        """One-line description for `llmq list`."""
        ...

    @property
    def document(self) -> Document:
        """The current, updated context."""
        ...

    @property
    def echoed(self) -> bool:
        """True once reply text of the current attempt reached stdout."""
        ...

    def usage(self) -> str:
        ...

    def help(self) -> str:
        ...

    def parse_args(
        self,
        args: Sequence[str],
        read_stdin: Callable[[], str] | None = None,
    ) -> Namespace:
        """Parse plugin OPTIONS and MSGS.

        ``read_stdin`` is called for one message when no MSGS were given.
        The returned namespace has a boolean ``help`` attribute.
        """
        ...

    def initialize(self, document: Document, options: Namespace, auth: str | None) -> None:
        """Apply parsed options to the context and remember the auth data."""
        ...

    def request(self) -> Request:
        """Build the request from the current context."""
        ...

    def begin(self) -> None:
        """Reset per-request streaming state."""
        ...

    def consume(self, chunk: str, echo: bool) -> int:
        """Integrate a chunk of the reply into the context.

        Returns:
            Number of complete fragments merged from this chunk.
        """
        ...

    def finish(self, echo: bool) -> None:
        """Called when the response has completed."""
        ...
