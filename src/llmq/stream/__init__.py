"""Streaming response handling: fragment extraction, delta merging, persistence."""
