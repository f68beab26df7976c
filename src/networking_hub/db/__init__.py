"""Database layer for Networking Hub.

This module provides SQLite database access with async operations.

Usage:
    from networking_hub.db import DatabaseStore, UserProfile

    store = DatabaseStore("data/networking.db")
    await store.initialize()

    user_id = await store.create_or_update_user(
        UserProfile(google_id="123456789012", email="alice@example.com")
    )
    await store.save_emails(user_id, messages)
    await store.update_contacts_from_emails(user_id, messages)
"""

from networking_hub.db.models import (
    REQUIRED_TABLES,
    SCHEMA_VERSION,
    init_database,
    verify_schema,
)
from networking_hub.db.store import (
    MAX_BODY_LENGTH,
    Contact,
    DatabaseStore,
    Email,
    FollowUp,
    FollowUpDraft,
    User,
    UserProfile,
    counterpart_of,
)

__all__ = [
    # Models
    "SCHEMA_VERSION",
    "REQUIRED_TABLES",
    "init_database",
    "verify_schema",
    # Store
    "DatabaseStore",
    "MAX_BODY_LENGTH",
    "counterpart_of",
    # Dataclasses
    "User",
    "UserProfile",
    "Email",
    "Contact",
    "FollowUp",
    "FollowUpDraft",
]
