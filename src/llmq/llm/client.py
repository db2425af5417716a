"""Streaming HTTP client for chat-completion endpoints."""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from llmq.core.errors import TransportError

log = logging.getLogger(__name__)


class StreamingClient:
    """Wrapper around httpx that hands the response body to a callback chunk by chunk.

    The callback returns False to abandon the transfer; the response is
    closed immediately and no more of the body is read.
    """

    def __init__(self, config: dict | None = None, client: httpx.Client | None = None) -> None:
        config = config or {}
        self._timeout = httpx.Timeout(
            config.get("timeout", 600.0),
            connect=config.get("connect_timeout", 10.0),
        )
        self._client = client

    def stream(
        self,
        url: str,
        headers: dict[str, str],
        body: str | None,
        on_chunk: Callable[[str], bool],
    ) -> bool:
        """Send the request and feed decoded body chunks to ``on_chunk``.

        POSTs ``body`` when given, otherwise GETs.

        Returns:
            True if the whole body was consumed, False if ``on_chunk``
            stopped the transfer.

        Raises:
            TransportError: Connection failure, timeout, or an error status.
        """
        method = "POST" if body is not None else "GET"
        client = self._client or httpx.Client(timeout=self._timeout)
        log.debug("%s %s", method, url)
        try:
            with client.stream(
                method,
                url,
                headers=headers,
                content=body.encode("utf-8") if body is not None else None,
            ) as resp:
                if resp.is_error:
                    resp.read()
                    raise TransportError(
                        f"{url} returned HTTP {resp.status_code}: {resp.text.strip()}"
                    )
                for chunk in resp.iter_text():
                    if not chunk:
                        continue
                    if not on_chunk(chunk):
                        log.debug("Transfer aborted by callback")
                        return False
            return True
        except httpx.HTTPError as e:
            raise TransportError(f"request to {url} failed: {e}") from e
        finally:
            if self._client is None:
                client.close()
