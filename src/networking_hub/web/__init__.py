"""Web surface for Networking Hub.

Provides a FastAPI application with:
- REST API for users, sync, emails, contacts and follow-ups
- Gmail push webhook
- Per-user live notification channel over WebSocket
"""

from networking_hub.web.app import create_app

__all__ = ["create_app"]
