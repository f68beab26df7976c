"""Mail sync service shared by manual sync and push intake.

One fetch-and-store pass over a trailing window:
1. Use the stored credential, refreshing (and persisting) it when expired
2. Fetch messages in the window
3. On a 401, refresh once and retry the fetch
4. Upsert emails, then contacts

Manual syncs use a wide window (default 7 days); push-triggered syncs use a
narrow one (default 1 minute). The config schema keeps the webhook window
strictly narrower.

Usage:
    from networking_hub.engine.sync import MailSyncService

    service = MailSyncService(store, fetcher, oauth, config)
    result = await service.fetch_window(user, service.manual_window)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from networking_hub.core.errors import AuthenticationError
from networking_hub.core.logging import get_logger

if TYPE_CHECKING:
    from networking_hub.auth.google_oauth import Credential, GoogleOAuthClient
    from networking_hub.config_schema import AppConfig
    from networking_hub.db.store import DatabaseStore, User
    from networking_hub.gmail.messages import MessageFetcher

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """Result of one sync pass.

    Attributes:
        user_id: User synced
        fetched: Messages returned by Gmail
        saved: Email rows written
        contacts: Contact rows written
        window: Width of the fetch window
        credential_refreshed: Whether the credential was refreshed
        credential: Credential the fetch succeeded with
    """

    user_id: int
    fetched: int
    saved: int
    contacts: int
    window: timedelta
    credential_refreshed: bool = False
    credential: Credential | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "fetched": self.fetched,
            "saved": self.saved,
            "contacts": self.contacts,
            "window_seconds": int(self.window.total_seconds()),
            "credential_refreshed": self.credential_refreshed,
        }


class MailSyncService:
    """Fetches a user's mail over a window and stores it."""

    def __init__(
        self,
        store: DatabaseStore,
        fetcher: MessageFetcher,
        oauth: GoogleOAuthClient,
        config: AppConfig,
    ):
        self._store = store
        self._fetcher = fetcher
        self._oauth = oauth
        self._config = config

    @property
    def manual_window(self) -> timedelta:
        return timedelta(hours=self._config.sync.manual_window_hours)

    @property
    def webhook_window(self) -> timedelta:
        return timedelta(minutes=self._config.sync.webhook_window_minutes)

    async def refresh_and_store(self, user: User, credential: Credential) -> Credential:
        """Refresh a credential and persist the result for the user.

        Raises:
            AuthenticationError: If the refresh is rejected
        """
        refreshed = self._oauth.refresh_credential(credential)
        await self._store.update_user_credential(user.google_id, refreshed)
        return refreshed

    async def ensure_fresh_credential(self, user: User) -> tuple[Credential, bool]:
        """Return a usable credential for the user.

        An expired credential with a refresh token is refreshed first. One
        without a refresh token is returned as is and left to fail at Gmail.

        Returns:
            Tuple of (credential, was_refreshed)

        Raises:
            AuthenticationError: If the user has no stored access token
        """
        credential = user.credential
        if credential is None:
            raise AuthenticationError(
                f"No Gmail access token stored for user {user.google_id}. "
                "Grant Gmail access and sync again."
            )

        skew = self._config.auth.token_expiry_skew_seconds
        if credential.is_expired(skew) and credential.refresh_token:
            logger.info("credential_expired_refreshing", user_id=user.id)
            return await self.refresh_and_store(user, credential), True

        return credential, False

    async def fetch_window(self, user: User, since: timedelta) -> SyncResult:
        """Fetch and store the user's mail from the trailing window.

        Args:
            user: User to sync (must hold an access token)
            since: Window width

        Returns:
            SyncResult

        Raises:
            AuthenticationError: If no usable credential can be obtained
            GmailAPIError: If Gmail fails
            DatabaseError: If storing fails
        """
        credential, refreshed = await self.ensure_fresh_credential(user)
        max_results = self._config.sync.max_results

        try:
            messages = self._fetcher.fetch_messages(credential, since, max_results=max_results)
        except AuthenticationError:
            if refreshed or not credential.refresh_token:
                raise
            logger.info("gmail_token_rejected_refreshing", user_id=user.id)
            credential = await self.refresh_and_store(user, credential)
            refreshed = True
            messages = self._fetcher.fetch_messages(credential, since, max_results=max_results)

        saved = await self._store.save_emails(user.id, messages)
        contacts = await self._store.update_contacts_from_emails(user.id, messages)

        result = SyncResult(
            user_id=user.id,
            fetched=len(messages),
            saved=saved,
            contacts=contacts,
            window=since,
            credential_refreshed=refreshed,
            credential=credential,
        )
        logger.info("mail_sync_complete", **result.to_dict())
        return result
