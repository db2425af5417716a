"""llmq: a query CLI and context manager for LLM-powered shell pipelines."""

__version__ = "0.4.0"
