"""Error taxonomy shared by the llmq core."""

from __future__ import annotations


class LlmqError(Exception):
    """Base class for all llmq errors."""


class ParseError(LlmqError):
    """Malformed document text: context YAML, auth data or option values."""


class ProtocolError(LlmqError):
    """A response fragment violates the delta/role protocol."""


class LockError(LlmqError):
    """The context file is already locked by another process."""


class ContextIOError(LlmqError):
    """Reading, writing, seeking or truncating a context file failed."""


class TransportError(LlmqError):
    """The HTTP endpoint was unreachable or answered with an error status."""


class DiscoveryError(LlmqError):
    """No process holding the context file could be found or signalled."""


class ConfigError(LlmqError):
    """A configured directory or context name is unusable."""
