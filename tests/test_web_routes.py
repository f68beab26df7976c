"""Tests for web routes and API endpoints.

Tests the FastAPI application routes using httpx AsyncClient, covering
the health and config endpoints, user and mail routes, follow-up
management, manual sync, the push webhook, and the error envelope.
"""

import json
from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from conftest import USER_EMAIL, USER_GOOGLE_ID, make_message, pubsub_envelope
from networking_hub.auth.google_oauth import Credential
from networking_hub.classifier.networking_classifier import NetworkingClassifier
from networking_hub.config_schema import AppConfig
from networking_hub.core.errors import AuthenticationError, GmailAPIError, RateLimitExceeded
from networking_hub.db.store import DatabaseStore, FollowUpDraft, UserProfile
from networking_hub.engine.cooldown import SetupCooldown
from networking_hub.engine.followups import FollowUpAnalyzer
from networking_hub.engine.push_intake import NotificationDedup, PushIntake
from networking_hub.engine.sync import MailSyncService
from networking_hub.web.app import create_app
from networking_hub.web.live import NotificationDispatcher
from networking_hub.web.validation import CALLER_HEADER

OTHER_GOOGLE_ID = "999999999999"

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fetcher() -> MagicMock:
    fetcher = MagicMock()
    fetcher.fetch_messages.return_value = [make_message("m1"), make_message("m2")]
    return fetcher


@pytest.fixture
def oauth_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def push_manager() -> MagicMock:
    return MagicMock()


@pytest.fixture
def app(
    store: DatabaseStore,
    sample_config: AppConfig,
    fetcher: MagicMock,
    oauth_client: MagicMock,
    push_manager: MagicMock,
) -> FastAPI:
    """Create a FastAPI app with test dependencies."""
    test_app = create_app()

    sync_service = MailSyncService(store, fetcher, oauth_client, sample_config)
    dispatcher = NotificationDispatcher()
    cooldown = SetupCooldown(timedelta(minutes=60))
    dedup = NotificationDedup()

    # Override app state with test dependencies
    test_app.state.store = store
    test_app.state.config = sample_config
    test_app.state.oauth_client = oauth_client
    test_app.state.message_fetcher = fetcher
    test_app.state.push_manager = push_manager
    test_app.state.sync_service = sync_service
    test_app.state.dispatcher = dispatcher
    test_app.state.cooldown = cooldown
    test_app.state.dedup = dedup
    test_app.state.analyzer = FollowUpAnalyzer(store, NetworkingClassifier(None))
    test_app.state.push_intake = PushIntake(
        store, sync_service, dispatcher, dedup, cooldown, push_manager, sample_config
    )

    return test_app


@pytest.fixture
async def client(app: FastAPI) -> AsyncClient:
    """Return an httpx AsyncClient for the test app, signed in as the test user."""
    # Override lifespan to avoid real initialization
    app.router.lifespan_context = _noop_lifespan
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers={CALLER_HEADER: USER_GOOGLE_ID}
    ) as c:
        yield c


@pytest.fixture
async def anonymous_client(app: FastAPI) -> AsyncClient:
    """Return an httpx AsyncClient that sends no caller header."""
    app.router.lifespan_context = _noop_lifespan
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@asynccontextmanager
async def _noop_lifespan(app: FastAPI):
    """No-op lifespan that preserves existing app.state."""
    yield


async def _seed_mail(store: DatabaseStore, user_id: int) -> None:
    messages = [
        make_message("net-1"),
        make_message(
            "receipt",
            sender_email="shop@example.com",
            sender="Shop",
            subject="Your receipt",
            snippet="Thanks for the order",
        ),
    ]
    await store.save_emails(user_id, messages)
    await store.update_contacts_from_emails(user_id, messages)


async def _seed_follow_up(store: DatabaseStore, user_id: int) -> int:
    return await store.save_follow_up(
        user_id,
        FollowUpDraft(
            contact_email="alice@example.com",
            contact_name="Alice Example",
            conversation_summary="Coffee chat",
            networking_score=8,
            needs_followup=True,
            followup_reason="Networking conversation: professional_connection",
            suggested_action="Follow up on this professional_connection conversation",
            priority="high",
        ),
    )


# ---------------------------------------------------------------------------
# Health, config and OAuth
# ---------------------------------------------------------------------------


class TestRootRoutes:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "OK"
        assert data["environment"] == "test"
        assert data["live_connections"] == 0

    async def test_client_config(self, client: AsyncClient):
        data = (await client.get("/api/config")).json()
        assert data["googleClientId"] == "test-client-id"
        assert data["appName"] == "Networking Hub Test"

    async def test_oauth_callback_requires_code(self, client: AsyncClient):
        response = await client.get("/oauth/callback")
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Authorization code not provided"}

    async def test_oauth_callback_exchanges_code(
        self, client: AsyncClient, oauth_client: MagicMock
    ):
        oauth_client.exchange_code.return_value = Credential("access", "refresh")

        response = await client.get("/oauth/callback", params={"code": "abc"})

        assert response.status_code == 200
        assert response.json()["credential"]["access_token"] == "access"
        oauth_client.exchange_code.assert_called_once_with("abc", "http://test/oauth/callback")

    async def test_rejected_code_maps_to_401(self, client: AsyncClient, oauth_client: MagicMock):
        oauth_client.exchange_code.side_effect = AuthenticationError("invalid_grant")
        response = await client.get("/oauth/callback", params={"code": "abc"})
        assert response.status_code == 401
        assert response.json()["success"] is False


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestSaveUser:
    async def test_save_user(self, client: AsyncClient, store: DatabaseStore):
        response = await client.post(
            "/api/save-user",
            json={
                "google_id": USER_GOOGLE_ID,
                "email": USER_EMAIL,
                "name": "Owner",
                "gmail_access_token": "token",
            },
        )
        assert response.status_code == 200
        user = await store.get_user_by_google_id(USER_GOOGLE_ID)
        assert response.json()["userId"] == user.id
        assert user.gmail_access_token == "token"

    async def test_malformed_google_id(self, client: AsyncClient):
        response = await client.post(
            "/api/save-user", json={"google_id": "abc", "email": USER_EMAIL}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid user ID format"

    async def test_caller_mismatch(self, client: AsyncClient):
        response = await client.post(
            "/api/save-user",
            json={"google_id": USER_GOOGLE_ID, "email": USER_EMAIL},
            headers={CALLER_HEADER: OTHER_GOOGLE_ID},
        )
        assert response.status_code == 403

    async def test_missing_field(self, client: AsyncClient):
        response = await client.post("/api/save-user", json={"google_id": USER_GOOGLE_ID})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")


# ---------------------------------------------------------------------------
# Emails and contacts
# ---------------------------------------------------------------------------


class TestMailRoutes:
    async def test_list_emails(self, client: AsyncClient, store: DatabaseStore, user_id: int):
        await _seed_mail(store, user_id)
        data = (await client.get(f"/api/emails/{USER_GOOGLE_ID}")).json()
        assert {e["gmail_id"] for e in data["emails"]} == {"net-1", "receipt"}

    async def test_unknown_user(self, client: AsyncClient):
        response = await client.get(
            f"/api/emails/{OTHER_GOOGLE_ID}", headers={CALLER_HEADER: OTHER_GOOGLE_ID}
        )
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "User not found"}

    async def test_delete_emails(self, client: AsyncClient, store: DatabaseStore, user_id: int):
        await _seed_mail(store, user_id)
        data = (await client.delete(f"/api/emails/{USER_GOOGLE_ID}")).json()
        assert data["deletedCount"] == 2
        assert data["message"] == "Deleted 2 emails"

    async def test_contacts(self, client: AsyncClient, store: DatabaseStore, user_id: int):
        await _seed_mail(store, user_id)
        data = (await client.get(f"/api/contacts/{USER_GOOGLE_ID}")).json()
        assert {c["contact_email"] for c in data["contacts"]} == {
            "alice@example.com",
            "shop@example.com",
        }

    async def test_conversation(self, client: AsyncClient, store: DatabaseStore, user_id: int):
        await _seed_mail(store, user_id)
        data = (await client.get(f"/api/conversation/{USER_GOOGLE_ID}/Alice@Example.com")).json()
        assert data["contact"]["contact_email"] == "alice@example.com"
        assert [e["gmail_id"] for e in data["conversation"]] == ["net-1"]

    async def test_conversation_unknown_contact(self, client: AsyncClient, user_id: int):
        response = await client.get(f"/api/conversation/{USER_GOOGLE_ID}/nobody@example.com")
        assert response.status_code == 404
        assert response.json()["error"] == "Contact not found"


# ---------------------------------------------------------------------------
# Manual sync
# ---------------------------------------------------------------------------


class TestSyncEmails:
    async def test_sync_stores_mail_and_sets_up_push(
        self,
        client: AsyncClient,
        store: DatabaseStore,
        user_id: int,
        fetcher: MagicMock,
        push_manager: MagicMock,
    ):
        response = await client.post("/api/sync-emails", json={"google_id": USER_GOOGLE_ID})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert data["pushSetup"] == "started"
        assert data["message"] == "Synced 2 emails and started real-time monitoring"
        assert fetcher.fetch_messages.call_args.args[1] == timedelta(hours=168)
        assert len(await store.get_emails_by_user(user_id)) == 2
        push_manager.setup_push_notifications.assert_called_once()

    async def test_second_sync_is_on_cooldown(
        self, client: AsyncClient, user_id: int, push_manager: MagicMock
    ):
        await client.post("/api/sync-emails", json={"google_id": USER_GOOGLE_ID})
        data = (await client.post("/api/sync-emails", json={"google_id": USER_GOOGLE_ID})).json()
        assert data["pushSetup"] == "cooldown"
        assert push_manager.setup_push_notifications.call_count == 1

    async def test_push_failure_does_not_fail_sync(
        self, client: AsyncClient, user_id: int, push_manager: MagicMock
    ):
        push_manager.setup_push_notifications.side_effect = GmailAPIError("topic missing")
        data = (await client.post("/api/sync-emails", json={"google_id": USER_GOOGLE_ID})).json()
        assert data["success"] is True
        assert data["pushSetup"] == "failed"

    async def test_supplied_token_replaces_stored_one(
        self, client: AsyncClient, store: DatabaseStore, user_id: int, fetcher: MagicMock
    ):
        await client.post(
            "/api/sync-emails",
            json={"google_id": USER_GOOGLE_ID, "access_token": "fresh-token"},
        )
        assert fetcher.fetch_messages.call_args.args[0].access_token == "fresh-token"
        user = await store.get_user_by_google_id(USER_GOOGLE_ID)
        assert user.gmail_refresh_token == "stored-refresh"

    async def test_user_without_token_gets_401(self, client: AsyncClient, store: DatabaseStore):
        await store.create_or_update_user(UserProfile(google_id=OTHER_GOOGLE_ID, email="o@x.com"))
        response = await client.post(
            "/api/sync-emails",
            json={"google_id": OTHER_GOOGLE_ID},
            headers={CALLER_HEADER: OTHER_GOOGLE_ID},
        )
        assert response.status_code == 401

    async def test_revoked_refresh_token_gets_401(
        self, client: AsyncClient, user_id: int, fetcher: MagicMock, oauth_client: MagicMock
    ):
        fetcher.fetch_messages.side_effect = AuthenticationError("expired")
        oauth_client.refresh_credential.side_effect = AuthenticationError("invalid_grant")
        response = await client.post("/api/sync-emails", json={"google_id": USER_GOOGLE_ID})
        assert response.status_code == 401
        oauth_client.refresh_credential.assert_called_once()

    async def test_gmail_failure_gets_502(
        self, client: AsyncClient, user_id: int, fetcher: MagicMock
    ):
        fetcher.fetch_messages.side_effect = GmailAPIError("unavailable", status_code=503)
        response = await client.post("/api/sync-emails", json={"google_id": USER_GOOGLE_ID})
        assert response.status_code == 502
        assert response.json()["success"] is False

    async def test_rate_limited_fetch_gets_503(
        self, client: AsyncClient, user_id: int, fetcher: MagicMock
    ):
        fetcher.fetch_messages.side_effect = RateLimitExceeded("wait too long")
        response = await client.post("/api/sync-emails", json={"google_id": USER_GOOGLE_ID})
        assert response.status_code == 503
        assert response.json() == {
            "success": False,
            "error": "Gmail request rate exceeded, please retry shortly",
        }


# ---------------------------------------------------------------------------
# Follow-ups
# ---------------------------------------------------------------------------


class TestFollowUpRoutes:
    async def test_analyze_conversations(
        self, client: AsyncClient, store: DatabaseStore, user_id: int
    ):
        await _seed_mail(store, user_id)
        data = (await client.post(f"/api/analyze-conversations/{USER_GOOGLE_ID}")).json()
        assert data["success"] is True
        assert data["message"] == "Analyzed 2 conversations and found 1 networking conversations"
        assert [f["contact_email"] for f in data["followUps"]] == ["alice@example.com"]

    async def test_list_follow_ups(self, client: AsyncClient, store: DatabaseStore, user_id: int):
        await _seed_follow_up(store, user_id)
        data = (await client.get(f"/api/follow-ups/{USER_GOOGLE_ID}")).json()
        assert len(data["followUps"]) == 1
        assert data["followUps"][0]["status"] == "pending"

    async def test_update_status(self, client: AsyncClient, store: DatabaseStore, user_id: int):
        follow_up_id = await _seed_follow_up(store, user_id)
        response = await client.put(
            f"/api/follow-up/{follow_up_id}/status", json={"status": "completed"}
        )
        assert response.status_code == 200
        assert (await store.get_follow_ups_by_user(user_id))[0].status == "completed"

    async def test_invalid_status(self, client: AsyncClient, store: DatabaseStore, user_id: int):
        follow_up_id = await _seed_follow_up(store, user_id)
        response = await client.put(
            f"/api/follow-up/{follow_up_id}/status", json={"status": "archived"}
        )
        assert response.status_code == 400

    async def test_update_missing(self, client: AsyncClient, user_id: int):
        response = await client.put("/api/follow-up/4242/status", json={"status": "dismissed"})
        assert response.status_code == 404
        assert response.json()["error"] == "Follow-up not found"

    async def test_delete_scoped_to_caller(
        self, client: AsyncClient, store: DatabaseStore, user_id: int
    ):
        follow_up_id = await _seed_follow_up(store, user_id)
        await store.create_or_update_user(UserProfile(google_id=OTHER_GOOGLE_ID, email="o@x.com"))

        foreign = await client.delete(
            f"/api/follow-up/{follow_up_id}", headers={CALLER_HEADER: OTHER_GOOGLE_ID}
        )
        own = await client.delete(
            f"/api/follow-up/{follow_up_id}", headers={CALLER_HEADER: USER_GOOGLE_ID}
        )

        assert foreign.status_code == 404
        assert own.status_code == 200


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------


class TestCallerIdentity:
    async def test_missing_header_on_user_route(
        self, anonymous_client: AsyncClient, user_id: int
    ):
        response = await anonymous_client.get(f"/api/emails/{USER_GOOGLE_ID}")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Missing X-Google-Id header"}

    async def test_missing_header_on_save_user(self, anonymous_client: AsyncClient):
        response = await anonymous_client.post(
            "/api/save-user", json={"google_id": USER_GOOGLE_ID, "email": USER_EMAIL}
        )
        assert response.status_code == 401

    async def test_missing_header_cannot_delete_follow_up(
        self, anonymous_client: AsyncClient, store: DatabaseStore, user_id: int
    ):
        follow_up_id = await _seed_follow_up(store, user_id)

        response = await anonymous_client.delete(f"/api/follow-up/{follow_up_id}")

        assert response.status_code == 401
        assert len(await store.get_follow_ups_by_user(user_id)) == 1

    async def test_missing_header_cannot_update_follow_up(
        self, anonymous_client: AsyncClient, store: DatabaseStore, user_id: int
    ):
        follow_up_id = await _seed_follow_up(store, user_id)

        response = await anonymous_client.put(
            f"/api/follow-up/{follow_up_id}/status", json={"status": "dismissed"}
        )

        assert response.status_code == 401
        assert (await store.get_follow_ups_by_user(user_id))[0].status == "pending"

    async def test_other_users_data_is_forbidden(
        self, client: AsyncClient, store: DatabaseStore, user_id: int
    ):
        await store.create_or_update_user(UserProfile(google_id=OTHER_GOOGLE_ID, email="o@x.com"))

        for response in (
            await client.get(f"/api/contacts/{OTHER_GOOGLE_ID}"),
            await client.get(f"/api/follow-ups/{OTHER_GOOGLE_ID}"),
            await client.post(f"/api/analyze-conversations/{OTHER_GOOGLE_ID}"),
            await client.delete(f"/api/emails/{OTHER_GOOGLE_ID}"),
        ):
            assert response.status_code == 403
            assert response.json()["success"] is False

    async def test_follow_up_mutation_by_unknown_caller(
        self, client: AsyncClient, store: DatabaseStore, user_id: int
    ):
        follow_up_id = await _seed_follow_up(store, user_id)
        response = await client.delete(
            f"/api/follow-up/{follow_up_id}", headers={CALLER_HEADER: OTHER_GOOGLE_ID}
        )
        assert response.status_code == 404
        assert len(await store.get_follow_ups_by_user(user_id)) == 1


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


class TestWebhook:
    async def test_notification_is_processed(
        self, client: AsyncClient, store: DatabaseStore, user_id: int
    ):
        response = await client.post(
            "/webhook/gmail-push", content=json.dumps(pubsub_envelope(USER_EMAIL, "100"))
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "processed"
        assert data["notificationId"]
        assert len(await store.get_emails_by_user(user_id)) == 2

    async def test_duplicate_is_acknowledged(self, client: AsyncClient, user_id: int):
        body = json.dumps(pubsub_envelope(USER_EMAIL, "100"))
        await client.post("/webhook/gmail-push", content=body)
        response = await client.post("/webhook/gmail-push", content=body)
        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"

    async def test_unknown_user_is_acknowledged(self, client: AsyncClient):
        response = await client.post(
            "/webhook/gmail-push", content=json.dumps(pubsub_envelope("x@example.com", "1"))
        )
        assert response.status_code == 200
        assert response.json()["status"] == "unknown_user"

    async def test_unparseable_body_returns_500(self, client: AsyncClient):
        response = await client.post("/webhook/gmail-push", content=b"{not json")
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Error processing notification"}
