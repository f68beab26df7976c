"""FastAPI dependency injection helpers.

Extracts shared dependencies from app.state for use in route handlers.
All dependencies are initialized during the FastAPI lifespan and stored
on app.state, so the webhook, the manual sync route and the live channel
share one dedup set, one cooldown registry and one connection registry.

Usage:
    from networking_hub.web.dependencies import get_store

    @api_router.get("/contacts/{google_id}")
    async def list_contacts(google_id: str, store: DatabaseStore = Depends(get_store)):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Header, Request

from networking_hub.web.validation import CALLER_HEADER, require_caller

if TYPE_CHECKING:
    from networking_hub.auth.google_oauth import GoogleOAuthClient
    from networking_hub.config_schema import AppConfig
    from networking_hub.db.store import DatabaseStore
    from networking_hub.engine.cooldown import SetupCooldown
    from networking_hub.engine.followups import FollowUpAnalyzer
    from networking_hub.engine.push_intake import PushIntake
    from networking_hub.engine.sync import MailSyncService
    from networking_hub.gmail.messages import MessageFetcher
    from networking_hub.gmail.push import PushSubscriptionManager
    from networking_hub.web.live import NotificationDispatcher


def get_store(request: Request) -> DatabaseStore:
    """Get the shared DatabaseStore from app state."""
    return request.app.state.store


def get_config(request: Request) -> AppConfig:
    """Get the current AppConfig from app state."""
    return request.app.state.config


def get_oauth_client(request: Request) -> GoogleOAuthClient:
    """Get the GoogleOAuthClient from app state."""
    return request.app.state.oauth_client


def get_message_fetcher(request: Request) -> MessageFetcher:
    """Get the MessageFetcher from app state."""
    return request.app.state.message_fetcher


def get_sync_service(request: Request) -> MailSyncService:
    """Get the MailSyncService from app state."""
    return request.app.state.sync_service


def get_push_manager(request: Request) -> PushSubscriptionManager | None:
    """Get the PushSubscriptionManager (None when no Cloud project is configured)."""
    return request.app.state.push_manager


def get_cooldown(request: Request) -> SetupCooldown:
    """Get the watch setup cooldown shared with the webhook."""
    return request.app.state.cooldown


def get_dispatcher(request: Request) -> NotificationDispatcher:
    """Get the live NotificationDispatcher from app state."""
    return request.app.state.dispatcher


def get_push_intake(request: Request) -> PushIntake:
    """Get the PushIntake from app state."""
    return request.app.state.push_intake


def get_analyzer(request: Request) -> FollowUpAnalyzer:
    """Get the FollowUpAnalyzer from app state."""
    return request.app.state.analyzer


def get_caller_id(x_google_id: str | None = Header(default=None, alias=CALLER_HEADER)) -> str:
    """Caller identity from the X-Google-Id header; 401 when it is missing."""
    return require_caller(x_google_id)
