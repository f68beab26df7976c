"""REST routes for Networking Hub.

Contains two routers:
- root_router: OAuth callback and health check
- api_router: JSON API under /api (users, sync, emails, contacts, follow-ups)

Every response is a JSON envelope ``{"success": bool, ...}``. Errors are
raised as HTTPException or domain errors and rendered as
``{"success": false, "error": "..."}`` by the handlers in web/app.py.

Every per-user route requires the caller's google_id in the ``X-Google-Id``
header: 401 when it is missing, 403 when it names a different user.

All routes use FastAPI dependency injection to access shared state.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from networking_hub.auth.google_oauth import Credential, GoogleOAuthClient
from networking_hub.config_schema import AppConfig
from networking_hub.core.logging import get_logger
from networking_hub.db.store import DatabaseStore, FollowUpStatus, User, UserProfile
from networking_hub.engine.cooldown import SetupCooldown
from networking_hub.engine.followups import FollowUpAnalyzer
from networking_hub.engine.push_intake import push_cooldown_key
from networking_hub.engine.sync import MailSyncService
from networking_hub.gmail.push import PushSubscriptionManager
from networking_hub.web.dependencies import (
    get_analyzer,
    get_caller_id,
    get_config,
    get_cooldown,
    get_oauth_client,
    get_push_manager,
    get_store,
    get_sync_service,
)
from networking_hub.web.validation import require_caller_match, require_google_id

logger = get_logger(__name__)

# Routers
root_router = APIRouter()
api_router = APIRouter(prefix="/api")

PushSetupStatus = Literal["started", "cooldown", "failed", "disabled"]


# ---------------------------------------------------------------------------
# Pydantic models for API input validation
# ---------------------------------------------------------------------------


class SaveUserRequest(BaseModel):
    """Request body for upserting a signed-in user."""

    google_id: str
    email: str = Field(min_length=3)
    name: str | None = None
    picture: str | None = None
    gmail_access_token: str | None = None
    gmail_refresh_token: str | None = None
    token_expires_at: datetime | None = None


class SyncEmailsRequest(BaseModel):
    """Request body for a manual sync.

    A token supplied here replaces the stored credential before the sync.
    """

    google_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None


class FollowUpStatusRequest(BaseModel):
    """Request body for changing a follow-up's status."""

    status: FollowUpStatus


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


async def resolve_user(
    google_id: str,
    store: DatabaseStore,
    caller_id: str,
) -> User:
    """Validate the path user against the caller header and load the user.

    Raises:
        HTTPException: 400 on a malformed id, 403 when the caller is someone
            else, 404 when the user does not exist
    """
    require_google_id(google_id)
    require_caller_match(google_id, caller_id)

    user = await store.get_user_by_google_id(google_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _caller_user_id(store: DatabaseStore, caller_id: str) -> int:
    """Row id of the caller, which every follow-up mutation is scoped to."""
    user = await resolve_user(caller_id, store, caller_id)
    return user.id


def setup_push_with_cooldown(
    user: User,
    credential: Credential,
    push_manager: PushSubscriptionManager | None,
    cooldown: SetupCooldown,
) -> PushSetupStatus:
    """Register the user's Gmail watch unless it ran within the cooldown.

    Failures are logged and reported, never raised: a sync that stored mail
    still succeeds when the watch cannot be set up.
    """
    if push_manager is None:
        return "disabled"

    try:
        ran = cooldown.run_if_due(
            push_cooldown_key(user.google_id),
            lambda: push_manager.setup_push_notifications(credential),
        )
    except Exception as e:
        logger.error("push_setup_failed", user_id=user.id, error=str(e))
        return "failed"

    if not ran:
        logger.info("push_setup_on_cooldown", user_id=user.id)
        return "cooldown"

    logger.info("push_setup_complete", user_id=user.id)
    return "started"


# ---------------------------------------------------------------------------
# Root routes
# ---------------------------------------------------------------------------


@root_router.get("/health")
async def health(request: Request):
    """Liveness check with environment and live connection count."""
    config: AppConfig | None = getattr(request.app.state, "config", None)
    dispatcher = getattr(request.app.state, "dispatcher", None)

    return {
        "success": True,
        "status": "OK",
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": config.app.environment if config else None,
        "version": config.app.version if config else None,
        "live_connections": dispatcher.connection_count() if dispatcher else 0,
    }


@root_router.get("/oauth/callback")
async def oauth_callback(
    request: Request,
    code: str | None = Query(default=None),
    config: AppConfig = Depends(get_config),  # noqa: B008
    oauth: GoogleOAuthClient = Depends(get_oauth_client),  # noqa: B008
):
    """Exchange an authorization code and hand the credential to the browser."""
    if not code:
        raise HTTPException(status_code=400, detail="Authorization code not provided")

    redirect_uri = f"{str(request.base_url).rstrip('/')}{config.auth.redirect_path}"
    credential = oauth.exchange_code(code, redirect_uri)

    return {"success": True, "credential": credential.to_dict()}


# ---------------------------------------------------------------------------
# API: config and users
# ---------------------------------------------------------------------------


@api_router.get("/config")
async def client_config(config: AppConfig = Depends(get_config)):  # noqa: B008
    """Public settings the browser needs to start Google sign-in."""
    return {
        "success": True,
        "googleClientId": config.auth.client_id,
        "appName": config.app.name,
        "appVersion": config.app.version,
        "environment": config.app.environment,
    }


@api_router.post("/save-user")
async def save_user(
    body: SaveUserRequest,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    """Create or update a user, storing the credential when one is supplied."""
    require_google_id(body.google_id)
    require_caller_match(body.google_id, caller_id)

    credential = None
    if body.gmail_access_token:
        credential = Credential(
            access_token=body.gmail_access_token,
            refresh_token=body.gmail_refresh_token,
            expires_at=body.token_expires_at,
        )

    user_id = await store.create_or_update_user(
        UserProfile(
            google_id=body.google_id,
            email=body.email,
            name=body.name,
            picture=body.picture,
            credential=credential,
        )
    )
    logger.info("user_saved", user_id=user_id, has_credential=credential is not None)

    return {"success": True, "userId": user_id}


@api_router.post("/sync-emails")
async def sync_emails(
    body: SyncEmailsRequest,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    sync_service: MailSyncService = Depends(get_sync_service),  # noqa: B008
    push_manager: PushSubscriptionManager | None = Depends(get_push_manager),  # noqa: B008
    cooldown: SetupCooldown = Depends(get_cooldown),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    """Sync the manual window, then set up push notifications under the cooldown."""
    user = await resolve_user(body.google_id, store, caller_id)

    if body.access_token:
        await store.update_user_credential(
            user.google_id,
            Credential(
                access_token=body.access_token,
                refresh_token=body.refresh_token,
                expires_at=body.token_expires_at,
            ),
        )
        user = await resolve_user(body.google_id, store, caller_id)

    result = await sync_service.fetch_window(user, sync_service.manual_window)

    push_setup: PushSetupStatus = "disabled"
    if result.credential is not None:
        push_setup = setup_push_with_cooldown(user, result.credential, push_manager, cooldown)

    return {
        "success": True,
        "count": result.fetched,
        "saved": result.saved,
        "contacts": result.contacts,
        "pushSetup": push_setup,
        "message": f"Synced {result.fetched} emails and started real-time monitoring",
    }


# ---------------------------------------------------------------------------
# API: emails and contacts
# ---------------------------------------------------------------------------


@api_router.get("/emails/{google_id}")
async def list_emails(
    google_id: str,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    config: AppConfig = Depends(get_config),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    """Stored emails from the last few days (sync.list_days), newest first."""
    user = await resolve_user(google_id, store, caller_id)
    emails = await store.get_emails_by_date_range(user.id, days=config.sync.list_days)
    return {"success": True, "emails": [email.to_dict() for email in emails]}


@api_router.delete("/emails/{google_id}")
async def delete_emails(
    google_id: str,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    """Delete every stored email of the user."""
    user = await resolve_user(google_id, store, caller_id)
    deleted = await store.delete_user_emails(user.id)
    logger.info("user_emails_deleted", user_id=user.id, deleted=deleted)
    return {"success": True, "message": f"Deleted {deleted} emails", "deletedCount": deleted}


@api_router.get("/contacts/{google_id}")
async def list_contacts(
    google_id: str,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    user = await resolve_user(google_id, store, caller_id)
    contacts = await store.get_contacts_by_user(user.id)
    return {"success": True, "contacts": [contact.to_dict() for contact in contacts]}


@api_router.get("/conversation/{google_id}/{contact_email}")
async def get_conversation(
    google_id: str,
    contact_email: str,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    """A contact and the full message history exchanged with them."""
    user = await resolve_user(google_id, store, caller_id)

    contact = await store.get_contact_by_email(user.id, contact_email.strip().lower())
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")

    conversation = await store.get_conversation_history(user.id, contact.contact_email)
    return {
        "success": True,
        "contact": contact.to_dict(),
        "conversation": [email.to_dict() for email in conversation],
    }


# ---------------------------------------------------------------------------
# API: follow-ups
# ---------------------------------------------------------------------------


@api_router.post("/analyze-conversations/{google_id}")
async def analyze_conversations(
    google_id: str,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    analyzer: FollowUpAnalyzer = Depends(get_analyzer),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    """Classify the user's conversations and record networking follow-ups."""
    user = await resolve_user(google_id, store, caller_id)
    report = await analyzer.analyze(user)
    result: dict[str, Any] = {"success": True}
    result.update(report.to_dict())
    return result


@api_router.get("/follow-ups/{google_id}")
async def list_follow_ups(
    google_id: str,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    user = await resolve_user(google_id, store, caller_id)
    follow_ups = await store.get_follow_ups_by_user(user.id)
    return {"success": True, "followUps": [item.to_dict() for item in follow_ups]}


@api_router.put("/follow-up/{follow_up_id}/status")
async def update_follow_up_status(
    follow_up_id: int,
    body: FollowUpStatusRequest,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    """Change the status of one of the caller's follow-ups."""
    owner_id = await _caller_user_id(store, caller_id)
    updated = await store.update_follow_up_status(follow_up_id, body.status, user_id=owner_id)
    if not updated:
        raise HTTPException(status_code=404, detail="Follow-up not found")

    logger.info("follow_up_status_updated", follow_up_id=follow_up_id, status=body.status)
    return {"success": True, "message": "Follow-up status updated"}


@api_router.delete("/follow-up/{follow_up_id}")
async def delete_follow_up(
    follow_up_id: int,
    store: DatabaseStore = Depends(get_store),  # noqa: B008
    caller_id: str = Depends(get_caller_id),  # noqa: B008
):
    owner_id = await _caller_user_id(store, caller_id)
    deleted = await store.delete_follow_up(follow_up_id, user_id=owner_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Follow-up not found")

    logger.info("follow_up_deleted", follow_up_id=follow_up_id)
    return {"success": True, "message": "Follow-up deleted"}
