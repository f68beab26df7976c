"""Pytest fixtures and configuration for Networking Hub tests.

Provides common fixtures for configuration, database, and sample mail.
"""

import base64
import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generator

import pytest

from networking_hub.auth.google_oauth import Credential
from networking_hub.config import reset_config
from networking_hub.config_schema import AppConfig
from networking_hub.db.store import DatabaseStore, UserProfile
from networking_hub.gmail.messages import NormalizedMessage

USER_GOOGLE_ID = "123456789012345678901"
USER_EMAIL = "owner@gmail.com"


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

app:
  name: "Networking Hub Test"
  environment: "test"

auth:
  client_id: "test-client-id"
  client_secret: "test-client-secret"

push:
  project_id: "test-project"
  topic_name: "gmail-push"

sync:
  manual_window_hours: 168
  webhook_window_minutes: 1
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "app": {"name": "Networking Hub Test", "environment": "test"},
        "auth": {"client_id": "test-client-id", "client_secret": "test-client-secret"},
        "push": {"project_id": "test-project", "topic_name": "gmail-push"},
        "sync": {"manual_window_hours": 168, "webhook_window_minutes": 1},
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the NETWORKING_HUB_CONFIG_PATH environment variable."""
    old_value = os.environ.get("NETWORKING_HUB_CONFIG_PATH")
    os.environ["NETWORKING_HUB_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["NETWORKING_HUB_CONFIG_PATH"]
    else:
        os.environ["NETWORKING_HUB_CONFIG_PATH"] = old_value


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory."""
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
async def store(data_dir: Path) -> DatabaseStore:
    """Return an initialized DatabaseStore on a fresh file."""
    s = DatabaseStore(data_dir / "test.db")
    await s.initialize()
    return s


@pytest.fixture
async def user_id(store: DatabaseStore) -> int:
    """Seed the mailbox owner with a stored credential."""
    return await store.create_or_update_user(
        UserProfile(
            google_id=USER_GOOGLE_ID,
            email=USER_EMAIL,
            name="Owner",
            credential=Credential(access_token="stored-token", refresh_token="stored-refresh"),
        )
    )


def make_message(
    gmail_id: str,
    sender_email: str = "alice@example.com",
    sender: str = "Alice Example",
    recipient_email: str = USER_EMAIL,
    recipient: str = "Owner",
    subject: str = "Coffee chat about the startup",
    snippet: str = "Would love to connect and hear about your career",
    date_sent: datetime | None = None,
    is_sent: bool = False,
    labels: list[str] | None = None,
) -> NormalizedMessage:
    """Build a NormalizedMessage as the fetcher would return it."""
    return NormalizedMessage(
        gmail_id=gmail_id,
        thread_id=f"thread-{gmail_id}",
        subject=subject,
        sender=sender,
        sender_email=sender_email,
        recipient=recipient,
        recipient_email=recipient_email,
        user_email=USER_EMAIL,
        is_sent=is_sent,
        date_sent=date_sent or datetime.now(UTC),
        snippet=snippet,
        body=snippet,
        labels=labels or ["INBOX"],
        is_read=True,
    )


def encode_push_data(data: dict[str, Any]) -> str:
    """Base64-encode a Gmail notification the way Pub/Sub delivers it."""
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


def pubsub_envelope(email_address: str, history_id: str, message_id: str = "pubsub-1") -> dict:
    """A Pub/Sub push body wrapping a Gmail notification."""
    return {
        "message": {
            "data": encode_push_data({"emailAddress": email_address, "historyId": history_id}),
            "messageId": message_id,
            "publishTime": "2026-01-01T00:00:00Z",
        },
        "subscription": "projects/test-project/subscriptions/gmail-push",
    }
