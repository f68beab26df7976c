"""FastAPI application for Networking Hub.

Creates the FastAPI app with:
- Lifespan context manager for dependency initialization
- REST, webhook and live (WebSocket) routers
- Exception handlers that render every error as a JSON envelope

Push intake, manual sync and the live channel share the dedup set, the
setup cooldown and the connection registry created here. All of them are
process-local and start empty on every restart.

Usage:
    from networking_hub.web.app import create_app

    app = create_app()
    # Run with: uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from networking_hub import __version__
from networking_hub.core.errors import (
    AuthenticationError,
    DatabaseError,
    GmailAPIError,
    HubError,
    RateLimitExceeded,
)
from networking_hub.core.logging import get_logger

logger = get_logger(__name__)

ANTHROPIC_API_KEY_ENV = "ANTHROPIC_API_KEY"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize dependencies on startup, clean up on shutdown.

    On startup:
    1. Load config (defaults when the file is missing)
    2. Initialize database
    3. Initialize OAuth, Gmail client, fetcher and push manager
    4. Initialize classifier (Claude when an API key is set)
    5. Build sync service, dispatcher, dedup, cooldown and push intake

    On shutdown:
    - Drop live connections
    """
    import anthropic

    from networking_hub.auth.google_oauth import GoogleOAuthClient
    from networking_hub.classifier.networking_classifier import NetworkingClassifier
    from networking_hub.config import get_config_or_defaults
    from networking_hub.db.store import DatabaseStore
    from networking_hub.engine.cooldown import SetupCooldown
    from networking_hub.engine.followups import FollowUpAnalyzer
    from networking_hub.engine.push_intake import NotificationDedup, PushIntake
    from networking_hub.engine.sync import MailSyncService
    from networking_hub.gmail.client import GmailClient
    from networking_hub.gmail.messages import MessageFetcher
    from networking_hub.gmail.push import PushSubscriptionManager
    from networking_hub.web.live import NotificationDispatcher

    # 1. Load config
    config = get_config_or_defaults()
    app.state.config = config

    # 2. Initialize database
    store = DatabaseStore(config.database.path)
    try:
        await store.initialize()
    except DatabaseError as e:
        logger.critical("database_init_failed", path=config.database.path, error=str(e))
        raise SystemExit(1) from e
    app.state.store = store

    # 3. Initialize OAuth and Gmail clients
    if not config.auth.client_id or not config.auth.client_secret:
        logger.warning("oauth_client_not_configured")
    oauth_client = GoogleOAuthClient(
        client_id=config.auth.client_id,
        client_secret=config.auth.client_secret,
        token_url=config.auth.token_url,
    )
    gmail_client = GmailClient(requests_per_second=config.sync.requests_per_second)
    message_fetcher = MessageFetcher(gmail_client)

    push_manager = None
    if config.push.project_id:
        provisioner = None
        if config.push.provision_pubsub:
            from networking_hub.gmail.pubsub import PubSubProvisioner

            provisioner = PubSubProvisioner(
                topic_path=config.push.topic_path,
                subscription_path=config.push.subscription_path,
            )
        push_manager = PushSubscriptionManager(
            gmail_client,
            topic_path=config.push.topic_path,
            label_ids=config.push.label_ids,
            webhook_base_url=config.push.webhook_base_url,
            provisioner=provisioner,
        )
    else:
        logger.warning("push_notifications_disabled", reason="no Google Cloud project configured")

    app.state.oauth_client = oauth_client
    app.state.message_fetcher = message_fetcher
    app.state.push_manager = push_manager

    # 4. Initialize classifier
    anthropic_client = None
    if config.classifier.enabled and os.environ.get(ANTHROPIC_API_KEY_ENV):
        anthropic_client = anthropic.Anthropic(max_retries=3)
    else:
        logger.info("classifier_heuristic_only", enabled=config.classifier.enabled)
    classifier = NetworkingClassifier(anthropic_client=anthropic_client, config=config.classifier)
    app.state.anthropic_client = anthropic_client
    app.state.analyzer = FollowUpAnalyzer(store, classifier)

    # 5. Shared sync, dispatch and intake state
    sync_service = MailSyncService(store, message_fetcher, oauth_client, config)
    dispatcher = NotificationDispatcher()
    cooldown = SetupCooldown(timedelta(minutes=config.push.setup_cooldown_minutes))
    dedup = NotificationDedup(config.push.dedup_capacity)

    app.state.sync_service = sync_service
    app.state.dispatcher = dispatcher
    app.state.cooldown = cooldown
    app.state.dedup = dedup
    app.state.push_intake = PushIntake(
        store=store,
        sync_service=sync_service,
        dispatcher=dispatcher,
        dedup=dedup,
        cooldown=cooldown,
        push_manager=push_manager,
        config=config,
    )

    logger.info(
        "app_started",
        environment=config.app.environment,
        database=config.database.path,
        push_enabled=push_manager is not None,
        classifier_remote=classifier.uses_remote,
    )

    yield

    # Shutdown
    dispatcher.clear()
    logger.info("app_stopped")


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error(exc.status_code, detail)


async def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = []
    for err in exc.errors():
        loc = " -> ".join(str(part) for part in err["loc"])
        errors.append(f"{loc}: {err['msg']}")
    return _error(400, "Invalid request: " + "; ".join(errors))


async def _authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    logger.warning("request_unauthenticated", path=request.url.path, error=str(exc))
    return _error(401, f"Gmail authorization failed, please sign in again: {exc}")


async def _gmail_error_handler(request: Request, exc: GmailAPIError) -> JSONResponse:
    logger.error(
        "gmail_request_failed",
        path=request.url.path,
        status_code=exc.status_code,
        error=str(exc),
    )
    return _error(502, f"Gmail request failed: {exc}")


async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("request_rate_limited", path=request.url.path, error=str(exc))
    return _error(503, "Gmail request rate exceeded, please retry shortly")


async def _database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error("database_request_failed", path=request.url.path, error=str(exc))
    return _error(500, "Database error")


async def _hub_error_handler(request: Request, exc: HubError) -> JSONResponse:
    logger.error("request_failed", path=request.url.path, error=str(exc))
    return _error(500, str(exc))


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, error=str(exc))
    return _error(500, "Internal server error")


def install_exception_handlers(app: FastAPI) -> None:
    """Register the JSON error envelope handlers on an app."""
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(AuthenticationError, _authentication_error_handler)
    app.add_exception_handler(GmailAPIError, _gmail_error_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(DatabaseError, _database_error_handler)
    app.add_exception_handler(HubError, _hub_error_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    from networking_hub.web.live import ws_router
    from networking_hub.web.routes import api_router, root_router
    from networking_hub.web.webhook import webhook_router

    app = FastAPI(
        title="Networking Hub",
        description="Gmail networking follow-up service",
        version=__version__,
        lifespan=lifespan,
    )

    install_exception_handlers(app)

    # Include routers
    app.include_router(root_router)
    app.include_router(api_router)
    app.include_router(webhook_router)
    app.include_router(ws_router)

    return app
