"""LLM Chat Gateway - one chat API over completions-style and messages-style providers."""

__version__ = "0.1.0"
