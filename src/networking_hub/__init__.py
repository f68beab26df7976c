"""Networking Hub: Gmail push intake and networking follow-up tracking."""

__version__ = "1.0.0"
