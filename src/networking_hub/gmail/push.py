"""Gmail push notification (users.watch) setup.

Gmail publishes mailbox changes to a Cloud Pub/Sub topic once a watch is
registered for the mailbox. Watches expire after about seven days, so they
are renewed on manual sync and, optionally, from the webhook itself (both
behind the shared SetupCooldown). With a PubSubProvisioner attached, the
topic and the push subscription targeting ``push_endpoint`` are created
first when missing; otherwise provisioning them is an operator task.

Usage:
    from networking_hub.gmail.push import PushSubscriptionManager

    manager = PushSubscriptionManager(client, topic_path="projects/p/topics/t")
    result = manager.setup_push_notifications(credential)
    print(result.history_id, result.expiration)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from networking_hub.core.logging import get_logger

if TYPE_CHECKING:
    from networking_hub.auth.google_oauth import Credential
    from networking_hub.gmail.client import GmailClient
    from networking_hub.gmail.pubsub import PubSubProvisioner

logger = get_logger(__name__)

WEBHOOK_PATH = "/webhook/gmail-push"


@dataclass
class WatchResult:
    """Outcome of a users.watch call.

    Attributes:
        history_id: Mailbox history id at registration time
        expiration: When Gmail stops publishing unless the watch is renewed
    """

    history_id: str | None
    expiration: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "history_id": self.history_id,
            "expiration": self.expiration.isoformat() if self.expiration else None,
        }


class PushSubscriptionManager:
    """Registers Gmail watches against the configured Pub/Sub topic."""

    def __init__(
        self,
        client: GmailClient,
        topic_path: str,
        label_ids: list[str] | None = None,
        webhook_base_url: str = "",
        provisioner: PubSubProvisioner | None = None,
    ):
        """Initialize the manager.

        Args:
            client: GmailClient used for users.watch
            topic_path: projects/<project>/topics/<topic>
            label_ids: Labels to watch (default INBOX)
            webhook_base_url: Public base URL of this service
            provisioner: Creates the topic and push subscription before watching
        """
        self.client = client
        self.topic_path = topic_path
        self.label_ids = label_ids or ["INBOX"]
        self.webhook_base_url = webhook_base_url.rstrip("/")
        self.provisioner = provisioner

    @property
    def push_endpoint(self) -> str | None:
        """URL the Pub/Sub push subscription should deliver to."""
        if not self.webhook_base_url:
            return None
        return f"{self.webhook_base_url}{WEBHOOK_PATH}"

    def setup_push_notifications(self, credential: Credential) -> WatchResult:
        """Register (or renew) the Gmail watch for a mailbox.

        Args:
            credential: The mailbox owner's credential

        Returns:
            WatchResult with history id and expiration

        Raises:
            AuthenticationError: If the token is rejected
            GmailAPIError: If Gmail refuses the watch (e.g. topic missing or
                publish permission not granted to gmail-api-push)
            PubSubProvisioningError: If the topic or subscription cannot be created
        """
        if self.provisioner is not None:
            self.provisioner.ensure(self.push_endpoint)

        response = self.client.post(
            "/users/me/watch",
            credential.access_token,
            json={
                "topicName": self.topic_path,
                "labelIds": self.label_ids,
                "labelFilterBehavior": "include",
            },
        )

        expiration = None
        if response.get("expiration"):
            expiration = datetime.fromtimestamp(int(response["expiration"]) / 1000, tz=UTC)

        result = WatchResult(history_id=response.get("historyId"), expiration=expiration)
        logger.info(
            "gmail_watch_registered",
            topic=self.topic_path,
            history_id=result.history_id,
            expiration=str(result.expiration),
        )
        return result
