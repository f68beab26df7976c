"""Database store with CRUD operations for all tables.

This module provides the DatabaseStore class that encapsulates all database
operations for Networking Hub. It uses aiosqlite for async access and
provides type-safe operations with dataclasses.

Every email, contact and follow-up query is scoped by user_id.

Usage:
    from networking_hub.db.store import DatabaseStore, UserProfile

    store = DatabaseStore("data/networking.db")
    await store.initialize()

    user_id = await store.create_or_update_user(
        UserProfile(google_id="123456789012", email="alice@example.com")
    )
    saved = await store.save_emails(user_id, messages)
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import aiosqlite

from networking_hub.auth.google_oauth import Credential
from networking_hub.core.errors import DatabaseError
from networking_hub.core.logging import get_logger
from networking_hub.db.models import init_database

if TYPE_CHECKING:
    from networking_hub.gmail.messages import NormalizedMessage

logger = get_logger(__name__)

# Maximum stored body length (bodies are for classification, not archival)
MAX_BODY_LENGTH = 10000

FollowUpStatus = Literal["pending", "completed", "dismissed"]
FollowUpPriority = Literal["high", "medium", "low"]

FOLLOW_UP_STATUSES: frozenset[str] = frozenset({"pending", "completed", "dismissed"})


@dataclass
class UserProfile:
    """Identity supplied at sign-in, optionally with a fresh credential."""

    google_id: str
    email: str
    name: str | None = None
    picture: str | None = None
    credential: Credential | None = None


@dataclass
class User:
    """User record from the database."""

    id: int
    google_id: str
    email: str
    name: str | None = None
    picture: str | None = None
    gmail_access_token: str | None = None
    gmail_refresh_token: str | None = None
    token_expires_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def credential(self) -> Credential | None:
        """Stored Gmail credential, or None when no access token is held."""
        if not self.gmail_access_token:
            return None
        return Credential(
            access_token=self.gmail_access_token,
            refresh_token=self.gmail_refresh_token,
            expires_at=self.token_expires_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Public view of the user (tokens excluded)."""
        return {
            "id": self.id,
            "google_id": self.google_id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
            "has_gmail_access": self.gmail_access_token is not None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class Email:
    """Email record from the database."""

    id: int
    user_id: int
    gmail_id: str
    thread_id: str | None = None
    subject: str | None = None
    sender: str | None = None
    sender_email: str | None = None
    recipient: str | None = None
    recipient_email: str | None = None
    user_email: str | None = None
    is_sent: bool = False
    date_sent: datetime | None = None
    snippet: str | None = None
    body: str | None = None
    labels: list[str] = field(default_factory=list)
    is_read: bool = False
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "gmail_id": self.gmail_id,
            "thread_id": self.thread_id,
            "subject": self.subject,
            "sender": self.sender,
            "sender_email": self.sender_email,
            "recipient": self.recipient,
            "recipient_email": self.recipient_email,
            "user_email": self.user_email,
            "is_sent": self.is_sent,
            "date_sent": self.date_sent.isoformat() if self.date_sent else None,
            "snippet": self.snippet,
            "body": self.body,
            "labels": self.labels,
            "is_read": self.is_read,
        }


@dataclass
class Contact:
    """Contact record from the database."""

    id: int
    user_id: int
    contact_email: str
    contact_name: str | None = None
    first_email_date: datetime | None = None
    last_email_date: datetime | None = None
    email_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "contact_email": self.contact_email,
            "contact_name": self.contact_name,
            "first_email_date": self.first_email_date.isoformat()
            if self.first_email_date
            else None,
            "last_email_date": self.last_email_date.isoformat() if self.last_email_date else None,
            "email_count": self.email_count,
        }


@dataclass
class FollowUpDraft:
    """Follow-up produced by the analysis pass, before it is saved."""

    contact_email: str
    contact_name: str | None
    conversation_summary: str
    networking_score: int
    needs_followup: bool
    followup_reason: str
    suggested_action: str
    priority: FollowUpPriority
    status: FollowUpStatus = "pending"


@dataclass
class FollowUp:
    """Follow-up record from the database."""

    id: int
    user_id: int
    contact_email: str
    contact_name: str | None = None
    conversation_summary: str | None = None
    networking_score: int = 0
    needs_followup: bool = False
    followup_reason: str | None = None
    suggested_action: str | None = None
    priority: FollowUpPriority = "medium"
    status: FollowUpStatus = "pending"
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "contact_email": self.contact_email,
            "contact_name": self.contact_name,
            "conversation_summary": self.conversation_summary,
            "networking_score": self.networking_score,
            "needs_followup": self.needs_followup,
            "followup_reason": self.followup_reason,
            "suggested_action": self.suggested_action,
            "priority": self.priority,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class _ContactAggregate:
    """Per-batch counters for one counterpart address."""

    contact_email: str
    contact_name: str | None = None
    first_email_date: datetime | None = None
    last_email_date: datetime | None = None
    email_count: int = 0


def counterpart_of(message: NormalizedMessage | Email) -> tuple[str | None, str | None]:
    """Return (address, display name) of the other party of a message.

    Received mail points at the sender, sent mail at the recipient.
    """
    if message.is_sent:
        return message.recipient_email, message.recipient
    return message.sender_email, message.sender


def _to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime as UTC ISO-8601 so stored values sort lexically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse a stored timestamp (ISO-8601 or SQLite CURRENT_TIMESTAMP)."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class DatabaseStore:
    """Database store for all Networking Hub data.

    This class provides async CRUD operations for all database tables.
    It handles connection management, JSON serialization, and type conversion.

    Attributes:
        db_path: Path to the SQLite database file
        _initialized: Whether the database has been initialized
    """

    def __init__(self, db_path: str | Path):
        """Initialize the database store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the database, creating tables and columns if needed.

        This must be called before any other operations.
        """
        await init_database(self.db_path)
        self._initialized = True

    @asynccontextmanager
    async def _db(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get a configured database connection.

        Sets the PRAGMAs every connection needs:
        - busy_timeout: 10s so webhook writes and API reads can overlap
        - foreign_keys: ON to enforce user ownership of rows
        - synchronous: NORMAL (safe with WAL, faster writes)

        Usage:
            async with self._db() as db:
                await db.execute(...)
        """
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA busy_timeout = 10000")
            await db.execute("PRAGMA foreign_keys = ON")
            await db.execute("PRAGMA synchronous = NORMAL")

            db.row_factory = aiosqlite.Row
            yield db

    # =========================================================================
    # User Operations
    # =========================================================================

    async def create_or_update_user(self, profile: UserProfile) -> int:
        """Insert a user or refresh their profile on re-sign-in.

        Credential columns are only overwritten when the profile carries a
        credential; a sign-in without one keeps the stored tokens.

        Args:
            profile: Identity and optional credential

        Returns:
            The user's row id

        Raises:
            DatabaseError: If the operation fails
        """
        credential = profile.credential
        try:
            async with self._db() as db:
                await db.execute(
                    """
                    INSERT INTO users (
                        google_id, email, name, picture,
                        gmail_access_token, gmail_refresh_token, token_expires_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(google_id) DO UPDATE SET
                        email = excluded.email,
                        name = excluded.name,
                        picture = excluded.picture,
                        gmail_access_token = COALESCE(
                            excluded.gmail_access_token, users.gmail_access_token
                        ),
                        gmail_refresh_token = COALESCE(
                            excluded.gmail_refresh_token, users.gmail_refresh_token
                        ),
                        token_expires_at = COALESCE(
                            excluded.token_expires_at, users.token_expires_at
                        ),
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    (
                        profile.google_id,
                        profile.email,
                        profile.name,
                        profile.picture,
                        credential.access_token if credential else None,
                        credential.refresh_token if credential else None,
                        _to_iso(credential.expires_at) if credential else None,
                    ),
                )
                cursor = await db.execute(
                    "SELECT id FROM users WHERE google_id = ?", (profile.google_id,)
                )
                row = await cursor.fetchone()
                await db.commit()

                logger.debug(
                    "user_saved",
                    user_id=row["id"],
                    with_credential=credential is not None,
                )
                return row["id"]

        except aiosqlite.Error as e:
            logger.error("Failed to save user", google_id=profile.google_id, error=str(e))
            raise DatabaseError(f"Failed to save user {profile.google_id}: {e}") from e

    async def get_user_by_google_id(self, google_id: str) -> User | None:
        """Get a user by Google id.

        Args:
            google_id: Google account subject id

        Returns:
            User dataclass or None if not found
        """
        try:
            async with self._db() as db:
                cursor = await db.execute("SELECT * FROM users WHERE google_id = ?", (google_id,))
                row = await cursor.fetchone()
                return self._row_to_user(row) if row else None

        except aiosqlite.Error as e:
            logger.error("Failed to get user", google_id=google_id, error=str(e))
            raise DatabaseError(f"Failed to get user {google_id}: {e}") from e

    async def get_user_by_email(self, email: str) -> User | None:
        """Get a user by mailbox address (case-insensitive).

        Args:
            email: Gmail address

        Returns:
            User dataclass or None if not found
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "SELECT * FROM users WHERE lower(email) = lower(?) ORDER BY id LIMIT 1",
                    (email,),
                )
                row = await cursor.fetchone()
                return self._row_to_user(row) if row else None

        except aiosqlite.Error as e:
            logger.error("Failed to get user by email", error=str(e))
            raise DatabaseError(f"Failed to get user by email: {e}") from e

    async def update_user_credential(self, google_id: str, credential: Credential) -> bool:
        """Persist a refreshed credential.

        A credential without a refresh token keeps the stored refresh token.

        Args:
            google_id: Google account subject id
            credential: The new credential

        Returns:
            True if a user row was updated
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    UPDATE users SET
                        gmail_access_token = ?,
                        gmail_refresh_token = COALESCE(?, gmail_refresh_token),
                        token_expires_at = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE google_id = ?
                    """,
                    (
                        credential.access_token,
                        credential.refresh_token,
                        _to_iso(credential.expires_at),
                        google_id,
                    ),
                )
                await db.commit()
                updated = cursor.rowcount > 0
                logger.debug("user_credential_updated", google_id=google_id, updated=updated)
                return updated

        except aiosqlite.Error as e:
            logger.error("Failed to update credential", google_id=google_id, error=str(e))
            raise DatabaseError(f"Failed to update credential for {google_id}: {e}") from e

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        """Convert a database row to a User dataclass."""
        return User(
            id=row["id"],
            google_id=row["google_id"],
            email=row["email"],
            name=row["name"],
            picture=row["picture"],
            gmail_access_token=row["gmail_access_token"],
            gmail_refresh_token=row["gmail_refresh_token"],
            token_expires_at=_parse_datetime(row["token_expires_at"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )

    # =========================================================================
    # Email Operations
    # =========================================================================

    async def save_emails(self, user_id: int, emails: Sequence[NormalizedMessage]) -> int:
        """Upsert fetched messages in a single transaction.

        Re-saving a (user_id, gmail_id) pair replaces the row's fields, so
        repeated fetches of the same message leave exactly one row.

        Args:
            user_id: Owning user
            emails: Normalized Gmail messages

        Returns:
            Number of emails written

        Raises:
            DatabaseError: If the operation fails
        """
        if not emails:
            return 0

        try:
            async with self._db() as db:
                for email in emails:
                    body = email.body
                    if body and len(body) > MAX_BODY_LENGTH:
                        body = body[:MAX_BODY_LENGTH]

                    await db.execute(
                        """
                        INSERT INTO emails (
                            user_id, gmail_id, thread_id, subject, sender,
                            sender_email, recipient, recipient_email, user_email,
                            is_sent, date_sent, snippet, body, labels, is_read
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(user_id, gmail_id) DO UPDATE SET
                            thread_id = excluded.thread_id,
                            subject = excluded.subject,
                            sender = excluded.sender,
                            sender_email = excluded.sender_email,
                            recipient = excluded.recipient,
                            recipient_email = excluded.recipient_email,
                            user_email = excluded.user_email,
                            is_sent = excluded.is_sent,
                            date_sent = excluded.date_sent,
                            snippet = excluded.snippet,
                            body = excluded.body,
                            labels = excluded.labels,
                            is_read = excluded.is_read
                        """,
                        (
                            user_id,
                            email.gmail_id,
                            email.thread_id,
                            email.subject,
                            email.sender,
                            email.sender_email,
                            email.recipient,
                            email.recipient_email,
                            email.user_email,
                            1 if email.is_sent else 0,
                            _to_iso(email.date_sent),
                            email.snippet,
                            body,
                            json.dumps(list(email.labels)),
                            1 if email.is_read else 0,
                        ),
                    )

                await db.commit()
                logger.debug("emails_saved", user_id=user_id, count=len(emails))
                return len(emails)

        except aiosqlite.Error as e:
            logger.error("Failed to save emails", user_id=user_id, count=len(emails), error=str(e))
            raise DatabaseError(f"Failed to save emails for user {user_id}: {e}") from e

    async def get_emails_by_user(self, user_id: int, limit: int = 100) -> list[Email]:
        """Get a user's most recent emails, newest first."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM emails
                    WHERE user_id = ?
                    ORDER BY date_sent DESC
                    LIMIT ?
                    """,
                    (user_id, limit),
                )
                rows = await cursor.fetchall()
                return [self._row_to_email(row) for row in rows]

        except aiosqlite.Error as e:
            logger.error("Failed to get emails", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get emails for user {user_id}: {e}") from e

    async def get_emails_by_date_range(self, user_id: int, days: int = 7) -> list[Email]:
        """Get a user's emails sent within the last N days, newest first.

        Args:
            user_id: Owning user
            days: Number of days to look back

        Returns:
            List of Email dataclasses ordered by date_sent DESC
        """
        cutoff = datetime.now(UTC) - timedelta(days=days)
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM emails
                    WHERE user_id = ? AND date_sent >= ?
                    ORDER BY date_sent DESC
                    """,
                    (user_id, _to_iso(cutoff)),
                )
                rows = await cursor.fetchall()
                return [self._row_to_email(row) for row in rows]

        except aiosqlite.Error as e:
            logger.error("Failed to get emails by date range", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get emails by date range: {e}") from e

    async def get_latest_email(self, user_id: int) -> Email | None:
        """Get the user's newest stored email by date, if any."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM emails
                    WHERE user_id = ?
                    ORDER BY date_sent DESC
                    LIMIT 1
                    """,
                    (user_id,),
                )
                row = await cursor.fetchone()
                return self._row_to_email(row) if row else None

        except aiosqlite.Error as e:
            logger.error("Failed to get latest email", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get latest email: {e}") from e

    async def delete_user_emails(self, user_id: int) -> int:
        """Delete all of a user's stored emails.

        Returns:
            Number of emails deleted
        """
        try:
            async with self._db() as db:
                cursor = await db.execute("DELETE FROM emails WHERE user_id = ?", (user_id,))
                await db.commit()
                deleted = cursor.rowcount
                logger.info("user_emails_deleted", user_id=user_id, count=deleted)
                return deleted

        except aiosqlite.Error as e:
            logger.error("Failed to delete emails", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to delete emails for user {user_id}: {e}") from e

    async def get_conversation_history(self, user_id: int, address: str) -> list[Email]:
        """Get every stored email exchanged with an address, newest first.

        Args:
            user_id: Owning user
            address: Counterpart email address

        Returns:
            Emails where the address is the sender or the recipient
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM emails
                    WHERE user_id = ?
                    AND (sender_email = ? OR recipient_email = ?)
                    ORDER BY date_sent DESC
                    """,
                    (user_id, address, address),
                )
                rows = await cursor.fetchall()
                return [self._row_to_email(row) for row in rows]

        except aiosqlite.Error as e:
            logger.error("Failed to get conversation", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get conversation history: {e}") from e

    def _row_to_email(self, row: aiosqlite.Row) -> Email:
        """Convert a database row to an Email dataclass."""
        labels: list[str] = []
        if row["labels"]:
            try:
                labels = json.loads(row["labels"])
            except json.JSONDecodeError:
                logger.warning("Unparseable labels column", email_id=row["id"])

        return Email(
            id=row["id"],
            user_id=row["user_id"],
            gmail_id=row["gmail_id"],
            thread_id=row["thread_id"],
            subject=row["subject"],
            sender=row["sender"],
            sender_email=row["sender_email"],
            recipient=row["recipient"],
            recipient_email=row["recipient_email"],
            user_email=row["user_email"],
            is_sent=bool(row["is_sent"]),
            date_sent=_parse_datetime(row["date_sent"]),
            snippet=row["snippet"],
            body=row["body"],
            labels=labels,
            is_read=bool(row["is_read"]),
            created_at=_parse_datetime(row["created_at"]),
        )

    # =========================================================================
    # Contact Operations
    # =========================================================================

    async def update_contacts_from_emails(
        self,
        user_id: int,
        emails: Iterable[NormalizedMessage | Email],
    ) -> int:
        """Aggregate counterpart addresses from a batch and upsert them.

        Aggregates (name, first/last date, count) describe only this batch and
        overwrite whatever was stored for the address. Messages without a
        counterpart address are skipped.

        Args:
            user_id: Owning user
            emails: Messages from one fetch

        Returns:
            Number of contacts written
        """
        aggregates: dict[str, _ContactAggregate] = {}
        for email in emails:
            address, name = counterpart_of(email)
            if not address:
                continue

            agg = aggregates.setdefault(address, _ContactAggregate(contact_email=address))
            agg.email_count += 1
            if name and not agg.contact_name:
                agg.contact_name = name
            if email.date_sent:
                if agg.first_email_date is None or email.date_sent < agg.first_email_date:
                    agg.first_email_date = email.date_sent
                if agg.last_email_date is None or email.date_sent > agg.last_email_date:
                    agg.last_email_date = email.date_sent

        if not aggregates:
            return 0

        try:
            async with self._db() as db:
                await db.executemany(
                    """
                    INSERT INTO contacts (
                        user_id, contact_email, contact_name,
                        first_email_date, last_email_date, email_count
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_id, contact_email) DO UPDATE SET
                        contact_name = excluded.contact_name,
                        first_email_date = excluded.first_email_date,
                        last_email_date = excluded.last_email_date,
                        email_count = excluded.email_count,
                        updated_at = CURRENT_TIMESTAMP
                    """,
                    [
                        (
                            user_id,
                            agg.contact_email,
                            agg.contact_name,
                            _to_iso(agg.first_email_date),
                            _to_iso(agg.last_email_date),
                            agg.email_count,
                        )
                        for agg in aggregates.values()
                    ],
                )
                await db.commit()
                logger.debug("contacts_updated", user_id=user_id, count=len(aggregates))
                return len(aggregates)

        except aiosqlite.Error as e:
            logger.error("Failed to update contacts", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to update contacts for user {user_id}: {e}") from e

    async def get_contacts_by_user(self, user_id: int) -> list[Contact]:
        """Get a user's contacts, most recently active first."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM contacts
                    WHERE user_id = ?
                    ORDER BY last_email_date DESC, email_count DESC
                    """,
                    (user_id,),
                )
                rows = await cursor.fetchall()
                return [self._row_to_contact(row) for row in rows]

        except aiosqlite.Error as e:
            logger.error("Failed to get contacts", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get contacts for user {user_id}: {e}") from e

    async def get_contact_by_email(self, user_id: int, address: str) -> Contact | None:
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "SELECT * FROM contacts WHERE user_id = ? AND contact_email = ?",
                    (user_id, address),
                )
                row = await cursor.fetchone()
                return self._row_to_contact(row) if row else None

        except aiosqlite.Error as e:
            logger.error("Failed to get contact", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get contact: {e}") from e

    def _row_to_contact(self, row: aiosqlite.Row) -> Contact:
        """Convert a database row to a Contact dataclass."""
        return Contact(
            id=row["id"],
            user_id=row["user_id"],
            contact_email=row["contact_email"],
            contact_name=row["contact_name"],
            first_email_date=_parse_datetime(row["first_email_date"]),
            last_email_date=_parse_datetime(row["last_email_date"]),
            email_count=row["email_count"] or 0,
        )

    # =========================================================================
    # Follow-up Operations
    # =========================================================================

    async def save_follow_up(self, user_id: int, draft: FollowUpDraft) -> int:
        """Insert a follow-up suggestion.

        Each analysis pass inserts new rows; earlier suggestions for the same
        contact are left untouched.

        Returns:
            The new follow-up id
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    INSERT INTO follow_ups (
                        user_id, contact_email, contact_name, conversation_summary,
                        networking_score, needs_followup, followup_reason,
                        suggested_action, priority, status
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        draft.contact_email,
                        draft.contact_name,
                        draft.conversation_summary,
                        draft.networking_score,
                        1 if draft.needs_followup else 0,
                        draft.followup_reason,
                        draft.suggested_action,
                        draft.priority,
                        draft.status,
                    ),
                )
                await db.commit()
                follow_up_id = cursor.lastrowid
                logger.debug(
                    "follow_up_saved",
                    user_id=user_id,
                    follow_up_id=follow_up_id,
                    priority=draft.priority,
                )
                return follow_up_id

        except aiosqlite.Error as e:
            logger.error("Failed to save follow-up", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to save follow-up: {e}") from e

    async def get_follow_ups_by_user(self, user_id: int) -> list[FollowUp]:
        """Get a user's follow-ups, highest score first."""
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    SELECT * FROM follow_ups
                    WHERE user_id = ?
                    ORDER BY networking_score DESC, created_at DESC, id DESC
                    """,
                    (user_id,),
                )
                rows = await cursor.fetchall()
                return [self._row_to_follow_up(row) for row in rows]

        except aiosqlite.Error as e:
            logger.error("Failed to get follow-ups", user_id=user_id, error=str(e))
            raise DatabaseError(f"Failed to get follow-ups for user {user_id}: {e}") from e

    async def update_follow_up_status(
        self,
        follow_up_id: int,
        status: str,
        user_id: int,
    ) -> bool:
        """Change a follow-up's status.

        Args:
            follow_up_id: Follow-up to update
            status: 'pending', 'completed' or 'dismissed'
            user_id: Owner of the row; another user's row is left untouched

        Returns:
            True if a row was updated

        Raises:
            ValueError: If status is not a known value
        """
        if status not in FOLLOW_UP_STATUSES:
            raise ValueError(
                f"Invalid follow-up status '{status}'. "
                f"Expected one of: {', '.join(sorted(FOLLOW_UP_STATUSES))}"
            )

        try:
            async with self._db() as db:
                cursor = await db.execute(
                    """
                    UPDATE follow_ups SET status = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND user_id = ?
                    """,
                    (status, follow_up_id, user_id),
                )
                await db.commit()
                updated = cursor.rowcount > 0
                logger.debug(
                    "follow_up_status_updated",
                    follow_up_id=follow_up_id,
                    status=status,
                    updated=updated,
                )
                return updated

        except aiosqlite.Error as e:
            logger.error("Failed to update follow-up", follow_up_id=follow_up_id, error=str(e))
            raise DatabaseError(f"Failed to update follow-up {follow_up_id}: {e}") from e

    async def delete_follow_up(self, follow_up_id: int, user_id: int) -> bool:
        """Delete a follow-up owned by user_id.

        Returns:
            True if a row was deleted
        """
        try:
            async with self._db() as db:
                cursor = await db.execute(
                    "DELETE FROM follow_ups WHERE id = ? AND user_id = ?",
                    (follow_up_id, user_id),
                )
                await db.commit()
                return cursor.rowcount > 0

        except aiosqlite.Error as e:
            logger.error("Failed to delete follow-up", follow_up_id=follow_up_id, error=str(e))
            raise DatabaseError(f"Failed to delete follow-up {follow_up_id}: {e}") from e

    def _row_to_follow_up(self, row: aiosqlite.Row) -> FollowUp:
        """Convert a database row to a FollowUp dataclass."""
        return FollowUp(
            id=row["id"],
            user_id=row["user_id"],
            contact_email=row["contact_email"],
            contact_name=row["contact_name"],
            conversation_summary=row["conversation_summary"],
            networking_score=row["networking_score"] or 0,
            needs_followup=bool(row["needs_followup"]),
            followup_reason=row["followup_reason"],
            suggested_action=row["suggested_action"],
            priority=row["priority"],
            status=row["status"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )
