"""Atom personal assistant backend: conversational turns over OpenAI with persistent memory."""

__version__ = "1.0.0"
