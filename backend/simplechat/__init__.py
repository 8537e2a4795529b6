"""Simple Chat backend - persists conversations and streams LLM replies over SSE."""

__version__ = "0.1.0"
