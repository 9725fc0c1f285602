"""Local mirror of a messaging account's conversations and messages."""

__version__ = "0.1.0"
