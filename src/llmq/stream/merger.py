"""Fold chat-completion deltas into the context document.

Each fragment carries a ``choices`` list. A record in it is either a complete
``message`` (non-streaming replies) or a ``delta`` (streaming replies). Both
are addressed by choice ``index``. Every index owns one ChoiceSlot, backed by
a message map appended to the document's ``messages`` sequence the first
time the index is seen, so partial replies are persisted as they arrive.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable

from llmq.core.document import Document
from llmq.core.errors import ProtocolError

log = logging.getLogger(__name__)


def _invalid(fragment: str, reason: str) -> ProtocolError:
    return ProtocolError(f"invalid response ({reason}): {fragment}")


class ChoiceSlot:
    """Accumulated role and content for one choice index."""

    def __init__(self, message: dict) -> None:
        self._message = message

    @property
    def message(self) -> dict:
        return self._message

    @property
    def role(self) -> str:
        return self._message.get("role") or ""

    @property
    def content(self) -> str:
        return self._message.get("content") or ""

    def set_role(self, role: str) -> None:
        """Set the role, or confirm it matches the one already set."""
        if self.role and self.role != role:
            raise ProtocolError(f"role changed from {self.role!r} to {role!r}")
        self._message["role"] = role

    def append(self, increment: str) -> None:
        self._message["content"] = self.content + increment


class DeltaMerger:
    """Merges response fragments for one request into a Document.

    Args:
        document: The context document; slots are appended to its
            ``messages`` sequence.
        on_content: Called with each non-empty content increment, in merge
            order, for immediate display.
    """

    def __init__(
        self,
        document: Document,
        on_content: Callable[[str], None] | None = None,
    ) -> None:
        self._document = document
        self._on_content = on_content
        self._slots: list[ChoiceSlot] = []

    @property
    def slots(self) -> list[ChoiceSlot]:
        return list(self._slots)

    def slot(self, index: int) -> ChoiceSlot:
        """Return the slot for index, creating it and any missing lower ones."""
        while index >= len(self._slots):
            message = self._document.append("messages", {"role": "", "content": ""})
            self._slots.append(ChoiceSlot(message))
        return self._slots[index]

    def merge(self, fragment: str) -> list[str]:
        """Merge one JSON fragment.

        Returns:
            The content increments applied, in order.

        Raises:
            ProtocolError: The fragment is malformed or breaks role consistency.
        """
        try:
            data = json.loads(fragment)
        except json.JSONDecodeError as e:
            raise _invalid(fragment, f"malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise _invalid(fragment, "expected an object")

        error = data.get("error")
        if error is not None:
            message = error.get("message") if isinstance(error, dict) else error
            raise ProtocolError(f"endpoint returned an error: {message}")

        choices = data.get("choices")
        if not isinstance(choices, list):
            raise _invalid(fragment, "missing choices")

        increments = []
        for record in choices:
            increments.append(self._merge_record(record, fragment))
        return increments

    def _merge_record(self, record: object, fragment: str) -> str:
        if not isinstance(record, dict):
            raise _invalid(fragment, "choice is not an object")

        index = record.get("index")
        if isinstance(index, bool) or not isinstance(index, int) or index < 0:
            raise _invalid(fragment, "missing or invalid choice index")

        if record.get("message") is not None:
            role, content = self._read_message(record["message"], fragment)
        else:
            role, content = self._read_delta(record.get("delta"), fragment)

        slot = self.slot(index)
        if role is None:
            if not slot.role:
                raise ProtocolError(f"never received role; last received: {fragment}")
        else:
            try:
                slot.set_role(role)
            except ProtocolError as e:
                raise _invalid(fragment, f"choice {index}: {e}") from e

        slot.append(content)
        if content and self._on_content is not None:
            self._on_content(content)
        return content

    @staticmethod
    def _read_message(message: object, fragment: str) -> tuple[str, str]:
        if not isinstance(message, dict):
            raise _invalid(fragment, "message is not an object")
        role = message.get("role")
        content = message.get("content")
        if content is None:
            content = ""
        if not isinstance(role, str) or not role or not isinstance(content, str):
            raise _invalid(fragment, "message needs a role and content")
        return role, content

    @staticmethod
    def _read_delta(delta: object, fragment: str) -> tuple[str | None, str]:
        if not isinstance(delta, dict):
            raise _invalid(fragment, "missing delta")
        role = delta.get("role")
        content = delta.get("content")
        if content is None:
            content = ""
        if role is not None and (not isinstance(role, str) or not role):
            raise _invalid(fragment, "delta role must be a string")
        if not isinstance(content, str):
            raise _invalid(fragment, "delta content must be a string")
        return role, content

    def finalize(self, expected: int | None = None) -> list[dict]:
        """Check the request produced a complete reply for every choice.

        The slots already live in the document's ``messages`` sequence, so
        this only validates them.

        Args:
            expected: Number of choices requested (``n``), if known.

        Returns:
            The committed message maps, in choice order.
        """
        if expected is not None and len(self._slots) < expected:
            raise ProtocolError(
                f"invalid response: expected {expected} choices, received {len(self._slots)}"
            )
        for i, slot in enumerate(self._slots):
            if not slot.role:
                raise ProtocolError(f"invalid response: choice {i} never received a role")
        log.debug("Finalized %d choice(s)", len(self._slots))
        return [slot.message for slot in self._slots]
