"""Relay Console — local credential catalog and usage statistics for an AI-API relay."""

__version__ = "0.3.0"
