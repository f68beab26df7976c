"""Tests for the Gmail client, message normalization, fetching and watch setup."""

import base64
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
import requests
from google.api_core.exceptions import AlreadyExists, PermissionDenied

from networking_hub.auth.google_oauth import Credential
from networking_hub.core.errors import (
    AuthenticationError,
    GmailAPIError,
    PubSubProvisioningError,
    RateLimitExceeded,
)
from networking_hub.gmail.client import GmailClient
from networking_hub.gmail.messages import (
    MessageFetcher,
    decode_base64url,
    extract_body,
    normalize_message,
    parse_address,
)
from networking_hub.gmail.pubsub import PubSubProvisioner
from networking_hub.gmail.push import PushSubscriptionManager

OWNER = "owner@gmail.com"


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _response(status_code: int, json_body: dict | None = None, headers: dict | None = None):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.headers = headers or {}
    response.content = b"{}" if json_body is not None else b""
    response.text = str(json_body)
    response.json.return_value = json_body or {}
    return response


def _raw_message(
    message_id: str = "m1",
    sender: str = '"Alice Example" <Alice@Example.com>',
    to: str = OWNER,
    subject: str | None = "Hello",
    labels: list[str] | None = None,
    payload_extra: dict | None = None,
) -> dict:
    headers = [{"name": "From", "value": sender}, {"name": "To", "value": to}]
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    payload = {"mimeType": "text/plain", "headers": headers, "body": {"data": _b64("Hi there")}}
    payload.update(payload_extra or {})
    return {
        "id": message_id,
        "threadId": f"t-{message_id}",
        "labelIds": labels if labels is not None else ["INBOX", "UNREAD"],
        "snippet": "Hi &amp; hello",
        "internalDate": "1767225600000",
        "payload": payload,
    }


@pytest.fixture
def gmail_client() -> GmailClient:
    client = GmailClient(retry_delays=[0.0, 0.0, 0.0])
    client.session = MagicMock()
    return client


class TestParsing:
    def test_parse_address_with_display_name(self):
        assert parse_address('"Bob Smith" <Bob@Example.com>') == ("Bob Smith", "bob@example.com")

    def test_parse_address_without_name_uses_address(self):
        assert parse_address("carol@example.com") == ("carol@example.com", "carol@example.com")

    def test_parse_address_empty(self):
        assert parse_address("") == ("", "")

    def test_decode_base64url_tolerates_missing_padding(self):
        assert decode_base64url(_b64("abcd?")) == "abcd?"

    def test_extract_body_prefers_plain_text(self):
        payload = {
            "mimeType": "multipart/alternative",
            "parts": [
                {"mimeType": "text/html", "body": {"data": _b64("<p>HTML body</p>")}},
                {"mimeType": "text/plain", "body": {"data": _b64("Plain body")}},
            ],
        }
        assert extract_body(payload) == "Plain body"

    def test_extract_body_recurses_and_strips_html(self):
        payload = {
            "mimeType": "multipart/mixed",
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/html", "body": {"data": _b64("<b>Tom &amp; Jerry</b>")}},
                    ],
                },
            ],
        }
        assert extract_body(payload) == "Tom & Jerry"

    def test_normalize_received_message(self):
        message = normalize_message(_raw_message(), OWNER)
        assert message.gmail_id == "m1"
        assert message.sender == "Alice Example"
        assert message.sender_email == "alice@example.com"
        assert message.recipient_email == OWNER
        assert message.is_sent is False
        assert message.is_read is False
        assert message.body == "Hi there"
        assert message.snippet == "Hi & hello"
        assert message.date_sent == datetime(2026, 1, 1, tzinfo=UTC)

    def test_normalize_sent_message(self):
        raw = _raw_message(sender=f"Owner <{OWNER.upper()}>", to="bob@example.com", labels=["SENT"])
        message = normalize_message(raw, OWNER)
        assert message.is_sent is True
        assert message.is_read is True

    def test_missing_subject_defaults(self):
        assert normalize_message(_raw_message(subject=None), OWNER).subject == "No Subject"


class TestGmailClient:
    def test_success_returns_json(self, gmail_client: GmailClient):
        gmail_client.session.request.return_value = _response(200, {"emailAddress": OWNER})
        assert gmail_client.get_profile("token")["emailAddress"] == OWNER
        headers = gmail_client.session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer token"

    def test_401_raises_authentication_error(self, gmail_client: GmailClient):
        gmail_client.session.request.return_value = _response(
            401, {"error": {"message": "Invalid Credentials"}}
        )
        with pytest.raises(AuthenticationError):
            gmail_client.get("/users/me/profile", "bad-token")

    def test_retries_5xx_then_succeeds(self, gmail_client: GmailClient):
        gmail_client.session.request.side_effect = [
            _response(503, {"error": {"message": "busy"}}),
            _response(200, {"ok": True}),
        ]
        with patch("networking_hub.gmail.client.time.sleep"):
            assert gmail_client.get("/users/me/messages", "token") == {"ok": True}
        assert gmail_client.session.request.call_count == 2

    def test_404_raises_gmail_error(self, gmail_client: GmailClient):
        gmail_client.session.request.return_value = _response(
            404, {"error": {"message": "Not Found", "errors": [{"reason": "notFound"}]}}
        )
        with pytest.raises(GmailAPIError) as exc_info:
            gmail_client.get("/users/me/messages/x", "token")
        assert exc_info.value.status_code == 404

    def test_missing_token_raises(self, gmail_client: GmailClient):
        with pytest.raises(AuthenticationError):
            gmail_client.get("/users/me/profile", "")

    def test_timeouts_exhaust_into_gmail_error(self, gmail_client: GmailClient):
        gmail_client.session.request.side_effect = requests.exceptions.Timeout()
        with patch("networking_hub.gmail.client.time.sleep"):
            with pytest.raises(GmailAPIError, match="timed out"):
                gmail_client.get("/users/me/profile", "token")


class TestMessageFetcher:
    def _client(self, messages: dict[str, dict | Exception]) -> MagicMock:
        client = MagicMock()
        client.get_profile.return_value = {"emailAddress": OWNER, "messagesTotal": 42}

        def get(endpoint, token, params=None):
            if endpoint == "/users/me/messages":
                return {"messages": [{"id": mid} for mid in messages]}
            result = messages[endpoint.rsplit("/", 1)[-1]]
            if isinstance(result, Exception):
                raise result
            return result

        client.get.side_effect = get
        return client

    def test_fetch_uses_after_query_in_epoch_seconds(self):
        client = self._client({"m1": _raw_message("m1")})
        now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        fetcher = MessageFetcher(client)

        messages = fetcher.fetch_messages(
            Credential(access_token="t"), timedelta(minutes=1), max_results=50, now=now
        )

        assert [m.gmail_id for m in messages] == ["m1"]
        list_call = client.get.call_args_list[0]
        expected = int((now - timedelta(minutes=1)).timestamp())
        assert list_call.kwargs["params"] == {"q": f"after:{expected}", "maxResults": 50}

    def test_failed_message_is_skipped(self):
        client = self._client(
            {
                "m1": _raw_message("m1"),
                "m2": GmailAPIError("gone", status_code=404),
                "m3": _raw_message("m3"),
            }
        )
        messages = MessageFetcher(client).fetch_messages(Credential("t"), timedelta(days=7))
        assert [m.gmail_id for m in messages] == ["m1", "m3"]

    def test_rate_limited_message_is_skipped(self):
        client = self._client({"m1": RateLimitExceeded("bucket"), "m2": _raw_message("m2")})
        messages = MessageFetcher(client).fetch_messages(Credential("t"), timedelta(days=7))
        assert [m.gmail_id for m in messages] == ["m2"]

    def test_authentication_error_propagates(self):
        client = self._client({"m1": AuthenticationError("revoked")})
        with pytest.raises(AuthenticationError):
            MessageFetcher(client).fetch_messages(Credential("t"), timedelta(days=7))

    def test_test_connection_returns_profile(self):
        client = self._client({})
        assert MessageFetcher(client).test_connection(Credential("t")) == {
            "email": OWNER,
            "messages_total": 42,
        }


class TestPushSubscription:
    def test_watch_request_and_result(self):
        client = MagicMock()
        client.post.return_value = {"historyId": "9876", "expiration": "1767225600000"}
        manager = PushSubscriptionManager(
            client,
            topic_path="projects/p/topics/gmail-push",
            webhook_base_url="https://hub.example.com/",
        )

        result = manager.setup_push_notifications(Credential("token"))

        client.post.assert_called_once_with(
            "/users/me/watch",
            "token",
            json={
                "topicName": "projects/p/topics/gmail-push",
                "labelIds": ["INBOX"],
                "labelFilterBehavior": "include",
            },
        )
        assert result.history_id == "9876"
        assert result.expiration == datetime(2026, 1, 1, tzinfo=UTC)
        assert manager.push_endpoint == "https://hub.example.com/webhook/gmail-push"

    def test_provisioner_runs_before_watch(self):
        calls = []
        client = MagicMock()
        client.post.side_effect = lambda *args, **kwargs: calls.append("watch") or {}
        provisioner = MagicMock()
        provisioner.ensure.side_effect = lambda endpoint: calls.append(("ensure", endpoint))
        manager = PushSubscriptionManager(
            client,
            topic_path="projects/p/topics/gmail-push",
            webhook_base_url="https://hub.example.com",
            provisioner=provisioner,
        )

        manager.setup_push_notifications(Credential("token"))

        assert calls == [("ensure", "https://hub.example.com/webhook/gmail-push"), "watch"]

    def test_provisioning_failure_skips_watch(self):
        client = MagicMock()
        provisioner = MagicMock()
        provisioner.ensure.side_effect = PubSubProvisioningError("denied")
        manager = PushSubscriptionManager(
            client, topic_path="projects/p/topics/t", provisioner=provisioner
        )

        with pytest.raises(PubSubProvisioningError):
            manager.setup_push_notifications(Credential("token"))
        client.post.assert_not_called()


class TestPubSubProvisioner:
    TOPIC = "projects/p/topics/gmail-push-notifications"
    SUBSCRIPTION = "projects/p/subscriptions/gmail-push-subscription"
    ENDPOINT = "https://hub.example.com/webhook/gmail-push"

    def _provisioner(self) -> PubSubProvisioner:
        return PubSubProvisioner(
            topic_path=self.TOPIC,
            subscription_path=self.SUBSCRIPTION,
            publisher=MagicMock(),
            subscriber=MagicMock(),
        )

    def test_creates_topic_and_push_subscription(self):
        provisioner = self._provisioner()

        assert provisioner.ensure_topic() is True
        assert provisioner.ensure_subscription(self.ENDPOINT) is True

        provisioner.publisher.create_topic.assert_called_once_with(request={"name": self.TOPIC})
        provisioner.subscriber.create_subscription.assert_called_once_with(
            request={
                "name": self.SUBSCRIPTION,
                "topic": self.TOPIC,
                "push_config": {"push_endpoint": self.ENDPOINT},
            }
        )

    def test_existing_resources_are_left_alone(self):
        provisioner = self._provisioner()
        provisioner.publisher.create_topic.side_effect = AlreadyExists("topic exists")
        provisioner.subscriber.create_subscription.side_effect = AlreadyExists("sub exists")

        assert provisioner.ensure_topic() is False
        assert provisioner.ensure_subscription(self.ENDPOINT) is False
        provisioner.ensure(self.ENDPOINT)

    def test_missing_endpoint_raises(self):
        provisioner = self._provisioner()
        with pytest.raises(PubSubProvisioningError, match="WEBHOOK_BASE_URL"):
            provisioner.ensure(None)
        provisioner.subscriber.create_subscription.assert_not_called()

    def test_permission_denied_raises(self):
        provisioner = self._provisioner()
        provisioner.publisher.create_topic.side_effect = PermissionDenied("no admin")
        with pytest.raises(PubSubProvisioningError, match="Pub/Sub Admin"):
            provisioner.ensure(self.ENDPOINT)
        provisioner.subscriber.create_subscription.assert_not_called()
