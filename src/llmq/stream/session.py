"""The transport callback boundary: accept chunks, persist, finalize, retry."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from llmq.core.errors import ProtocolError

if TYPE_CHECKING:
    from llmq.core.writer import ContextWriter
    from llmq.llm.client import StreamingClient
    from llmq.providers.base import Plugin

log = logging.getLogger(__name__)


class StreamSession:
    """Drives one request attempt for a plugin.

    ``accept`` is handed to the transport as its chunk callback. It runs
    synchronously inside the transport's read loop, so slow parsing or
    writing throttles the network read. A ProtocolError is not raised out of
    the callback: it is kept in ``error`` and ``accept`` returns False so the
    transport abandons the transfer.
    """

    def __init__(
        self,
        plugin: Plugin,
        writer: ContextWriter | None = None,
        echo: bool = False,
    ) -> None:
        self.plugin = plugin
        self.writer = writer
        self.echo = echo
        self.error: ProtocolError | None = None
        self.fragments = 0

    def accept(self, chunk: str) -> bool:
        """Consume one chunk of the response body.

        Returns:
            True to keep reading, False to abort the transfer.
        """
        if self.error is not None:
            return False
        try:
            merged = self.plugin.consume(chunk, self.echo)
        except ProtocolError as e:
            log.debug("Protocol error after %d fragment(s): %s", self.fragments, e)
            self.error = e
            return False
        if merged:
            self.fragments += merged
            if self.writer is not None:
                self.writer.overwrite(self.plugin.document.dump())
        return True

    def finalize(self) -> None:
        """Called once the transport has delivered the whole response."""
        self.plugin.finish(self.echo)
        if self.writer is not None:
            self.writer.overwrite(self.plugin.document.dump())


def exchange(
    plugin: Plugin,
    client: StreamingClient,
    writer: ContextWriter | None = None,
    echo: bool = False,
    retries: int = 1,
) -> StreamSession:
    """Send the plugin's request and stream the reply into its document.

    On a ProtocolError the transfer is aborted and the document is rolled
    back to its state before the request (and rewritten, when a writer is
    given). The whole request is then reissued, up to ``retries`` times.
    An attempt that already printed part of its reply is not retried: the
    text on stdout cannot be taken back.
    """
    snapshot = plugin.document.snapshot()
    attempt = 0
    while True:
        plugin.begin()
        session = StreamSession(plugin, writer=writer, echo=echo)
        request = plugin.request()
        client.stream(request.url, request.headers, request.body, session.accept)

        if session.error is None:
            session.finalize()
            return session

        plugin.document.restore(snapshot)
        if writer is not None:
            writer.overwrite(plugin.document.dump())

        if attempt >= retries:
            raise session.error
        if plugin.echoed:
            log.warning("Not retrying: part of the malformed response was already printed")
            raise session.error
        attempt += 1
        log.warning("Discarding malformed response (%s); retrying (%d/%d)", session.error, attempt, retries)
