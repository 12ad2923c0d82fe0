"""Capture storage, session management and hybrid retrieval for penetration testing."""

__version__ = "0.1.0"