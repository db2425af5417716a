"""Locate and signal sibling llmq processes holding a context file open."""
