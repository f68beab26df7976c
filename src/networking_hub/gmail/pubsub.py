"""Pub/Sub topic and push subscription provisioning.

Gmail can only publish to an existing topic, and notifications only reach
the webhook through a push subscription on it. When ``push.provision_pubsub``
is enabled, both are created before users.watch. Creation is idempotent: an
existing topic or subscription is left as it is.

The service credentials (Application Default Credentials) need Pub/Sub
Admin on the project, and the topic must grant
``gmail-api-push@system.gserviceaccount.com`` the Publisher role.

Usage:
    from networking_hub.gmail.pubsub import PubSubProvisioner

    provisioner = PubSubProvisioner(
        topic_path="projects/p/topics/gmail-push-notifications",
        subscription_path="projects/p/subscriptions/gmail-push-subscription",
    )
    provisioner.ensure("https://hub.example.com/webhook/gmail-push")
"""

from __future__ import annotations

from typing import Any

from google.api_core.exceptions import AlreadyExists, GoogleAPICallError
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import pubsub_v1

from networking_hub.core.errors import PubSubProvisioningError
from networking_hub.core.logging import get_logger

logger = get_logger(__name__)


class PubSubProvisioner:
    """Creates the Gmail topic and its push subscription when missing.

    Clients are created on first use so the app can start without Google
    Cloud credentials when provisioning never runs.
    """

    def __init__(
        self,
        topic_path: str,
        subscription_path: str,
        publisher: Any | None = None,
        subscriber: Any | None = None,
    ):
        """Initialize the provisioner.

        Args:
            topic_path: projects/<project>/topics/<topic>
            subscription_path: projects/<project>/subscriptions/<subscription>
            publisher: Optional PublisherClient (created if omitted)
            subscriber: Optional SubscriberClient (created if omitted)
        """
        self.topic_path = topic_path
        self.subscription_path = subscription_path
        self._publisher = publisher
        self._subscriber = subscriber

    @property
    def publisher(self) -> Any:
        if self._publisher is None:
            self._publisher = pubsub_v1.PublisherClient()
        return self._publisher

    @property
    def subscriber(self) -> Any:
        if self._subscriber is None:
            self._subscriber = pubsub_v1.SubscriberClient()
        return self._subscriber

    def ensure_topic(self) -> bool:
        """Create the topic unless it exists.

        Returns:
            True if the topic was created, False if it already existed

        Raises:
            PubSubProvisioningError: If Pub/Sub refuses the request
        """
        try:
            self.publisher.create_topic(request={"name": self.topic_path})
        except AlreadyExists:
            logger.debug("pubsub_topic_exists", topic=self.topic_path)
            return False
        except (GoogleAPICallError, DefaultCredentialsError) as e:
            logger.error("pubsub_topic_create_failed", topic=self.topic_path, error=str(e))
            raise PubSubProvisioningError(
                f"Could not create Pub/Sub topic {self.topic_path}: {e}. "
                "Check that the service credentials have Pub/Sub Admin on the project."
            ) from e

        logger.info("pubsub_topic_created", topic=self.topic_path)
        return True

    def ensure_subscription(self, push_endpoint: str | None) -> bool:
        """Create the push subscription unless it exists.

        Args:
            push_endpoint: Public URL of the webhook

        Returns:
            True if the subscription was created, False if it already existed

        Raises:
            PubSubProvisioningError: If there is no endpoint or Pub/Sub refuses
        """
        if not push_endpoint:
            raise PubSubProvisioningError(
                "Cannot create the push subscription without a webhook URL. "
                "Set WEBHOOK_BASE_URL (push.webhook_base_url) to the public HTTPS base URL."
            )

        try:
            self.subscriber.create_subscription(
                request={
                    "name": self.subscription_path,
                    "topic": self.topic_path,
                    "push_config": {"push_endpoint": push_endpoint},
                }
            )
        except AlreadyExists:
            logger.debug("pubsub_subscription_exists", subscription=self.subscription_path)
            return False
        except (GoogleAPICallError, DefaultCredentialsError) as e:
            logger.error(
                "pubsub_subscription_create_failed",
                subscription=self.subscription_path,
                error=str(e),
            )
            raise PubSubProvisioningError(
                f"Could not create Pub/Sub subscription {self.subscription_path}: {e}"
            ) from e

        logger.info(
            "pubsub_subscription_created",
            subscription=self.subscription_path,
            push_endpoint=push_endpoint,
        )
        return True

    def ensure(self, push_endpoint: str | None) -> None:
        """Make sure the topic and the push subscription both exist."""
        self.ensure_topic()
        self.ensure_subscription(push_endpoint)
