"""Latchkey: passkey challenge and credential service."""

__version__ = "0.1.0"
