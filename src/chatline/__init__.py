"""Terminal chat client for OpenAI-compatible language models."""

__version__ = "0.3.0"
