"""Gmail push notification intake.

Handles one Pub/Sub push delivery per call:
1. Parse the body (and decode an encoded envelope)
2. Fingerprint the payload and drop duplicates
3. Resolve the owning user by mailbox address
4. Skip users without a stored access token
5. Re-fetch the narrow webhook window and store it
6. Emit ``new_emails`` to the user's live connections
7. Renew the Gmail watch (behind the shared setup cooldown) with the
   credential the fetch used

Only a body that cannot be parsed raises (PushPayloadError). Every failure
after parsing is logged and reported in the PushOutcome, so the webhook can
acknowledge the delivery and Pub/Sub does not redeliver it forever.

Usage:
    from networking_hub.engine.push_intake import PushIntake

    intake = PushIntake(store, sync_service, dispatcher, dedup, cooldown, push_manager, config)
    outcome = await intake.handle(await request.body())
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Literal

from networking_hub.core.errors import PushPayloadError
from networking_hub.core.logging import get_logger, set_correlation_id

if TYPE_CHECKING:
    from networking_hub.auth.google_oauth import Credential
    from networking_hub.config_schema import AppConfig
    from networking_hub.db.store import DatabaseStore, User
    from networking_hub.engine.cooldown import SetupCooldown
    from networking_hub.engine.sync import MailSyncService
    from networking_hub.gmail.push import PushSubscriptionManager
    from networking_hub.web.live import NotificationDispatcher

logger = get_logger(__name__)

UNKNOWN = "unknown"
DEFAULT_DEDUP_CAPACITY = 100
NEW_EMAILS_EVENT = "new_emails"


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EncodedEnvelope:
    """Pub/Sub push body whose ``message.data`` is base64 JSON from Gmail."""

    kind: ClassVar[str] = "encoded_envelope"
    owner_address: str
    change_marker: str
    message_id: str | None = None


@dataclass(frozen=True)
class DirectJson:
    """Bare ``{"emailAddress": ..., "historyId": ...}`` body."""

    kind: ClassVar[str] = "direct_json"
    owner_address: str
    change_marker: str


@dataclass(frozen=True)
class TestPing:
    """Connectivity check, ``{"test": true}`` or ``{"type": "test"}``."""

    kind: ClassVar[str] = "test_ping"
    owner_address: str = UNKNOWN
    change_marker: str = UNKNOWN


@dataclass(frozen=True)
class Unrecognized:
    """Any JSON body of another shape."""

    kind: ClassVar[str] = "unrecognized"
    owner_address: str = UNKNOWN
    change_marker: str = UNKNOWN


PushPayload = EncodedEnvelope | DirectJson | TestPing | Unrecognized

OutcomeStatus = Literal[
    "duplicate",
    "test",
    "unrecognized",
    "unknown_user",
    "no_credential",
    "processed",
    "failed",
]


@dataclass
class PushOutcome:
    """What the intake did with one notification.

    Attributes:
        status: Terminal state of the notification
        owner_address: Mailbox address from the payload ('unknown' if absent)
        change_marker: Gmail history id from the payload ('unknown' if absent)
        fetched: Messages fetched by the re-fetch (0 when none ran)
        notification_id: Correlation id carried by every log line
        kind: Payload variant
    """

    status: OutcomeStatus
    owner_address: str = UNKNOWN
    change_marker: str = UNKNOWN
    fetched: int = 0
    notification_id: str | None = None
    kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "owner_address": self.owner_address,
            "change_marker": self.change_marker,
            "fetched": self.fetched,
            "notification_id": self.notification_id,
            "kind": self.kind,
        }


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def decode_body(raw: bytes | str) -> Any:
    """Parse a request body as JSON.

    Raises:
        PushPayloadError: If the body is not valid JSON
    """
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PushPayloadError(f"Push body is not valid JSON: {e}") from e


def _text(value: Any) -> str:
    """Stringify a present, non-empty value; 'unknown' otherwise."""
    if value is None or value == "":
        return UNKNOWN
    return str(value)


def _decode_envelope_data(data: Any) -> dict[str, Any]:
    """Decode base64 (standard or URL-safe) JSON envelope data.

    Raises:
        PushPayloadError: If the data is not base64-encoded JSON
    """
    if not isinstance(data, str):
        raise PushPayloadError("Push envelope data is not a string")
    padded = data + "=" * (-len(data) % 4)
    try:
        decoded = base64.b64decode(padded.replace("-", "+").replace("_", "/"), validate=True)
        inner = json.loads(decoded)
    except (binascii.Error, ValueError) as e:
        raise PushPayloadError(f"Push envelope data could not be decoded: {e}") from e
    if not isinstance(inner, dict):
        raise PushPayloadError("Push envelope data is not a JSON object")
    return inner


def parse_push_payload(data: Any) -> PushPayload:
    """Classify a parsed push body into its variant.

    Args:
        data: Parsed JSON body

    Returns:
        One of EncodedEnvelope, DirectJson, TestPing, Unrecognized

    Raises:
        PushPayloadError: If an envelope's data cannot be decoded
    """
    if not isinstance(data, dict):
        return Unrecognized()

    if data.get("test") is True or data.get("type") == "test":
        return TestPing()

    message = data.get("message")
    if isinstance(message, dict) and "data" in message:
        inner = _decode_envelope_data(message["data"])
        return EncodedEnvelope(
            owner_address=_text(inner.get("emailAddress")),
            change_marker=_text(inner.get("historyId")),
            message_id=message.get("messageId") or message.get("message_id"),
        )

    if "data" in data:
        inner = _decode_envelope_data(data["data"])
        return EncodedEnvelope(
            owner_address=_text(inner.get("emailAddress")),
            change_marker=_text(inner.get("historyId")),
        )

    if "emailAddress" in data or "historyId" in data:
        return DirectJson(
            owner_address=_text(data.get("emailAddress")),
            change_marker=_text(data.get("historyId")),
        )

    return Unrecognized()


def fingerprint(data: Any) -> str:
    """SHA-256 of the payload's canonical JSON (sorted keys, compact separators)."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Dedup
# ---------------------------------------------------------------------------


class NotificationDedup:
    """Bounded set of recently seen notification fingerprints.

    Holds at most ``capacity`` entries and evicts the oldest insertion when
    full. Seeing a fingerprint again does not refresh its position.
    """

    def __init__(self, capacity: int = DEFAULT_DEDUP_CAPACITY):
        if capacity < 1:
            raise ValueError("Dedup capacity must be at least 1")
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def check_and_record(self, key: str) -> bool:
        """Record a fingerprint.

        Returns:
            True if it was already present (duplicate), False if newly recorded
        """
        if key in self._seen:
            return True
        self._seen[key] = None
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return False

    def clear(self) -> None:
        self._seen.clear()


# ---------------------------------------------------------------------------
# Intake
# ---------------------------------------------------------------------------


class PushIntake:
    """Processes Gmail push notifications end to end."""

    def __init__(
        self,
        store: DatabaseStore,
        sync_service: MailSyncService,
        dispatcher: NotificationDispatcher,
        dedup: NotificationDedup,
        cooldown: SetupCooldown,
        push_manager: PushSubscriptionManager | None,
        config: AppConfig,
    ):
        self._store = store
        self._sync = sync_service
        self._dispatcher = dispatcher
        self._dedup = dedup
        self._cooldown = cooldown
        self._push_manager = push_manager
        self._config = config

    async def handle(self, raw_body: bytes | str) -> PushOutcome:
        """Parse and process one push delivery.

        Args:
            raw_body: Request body as received

        Returns:
            PushOutcome

        Raises:
            PushPayloadError: If the body or envelope cannot be parsed
        """
        data = decode_body(raw_body)
        return await self.process(data)

    async def process(self, data: Any) -> PushOutcome:
        """Process one parsed push body.

        Raises:
            PushPayloadError: If an envelope's data cannot be decoded
        """
        notification_id = str(uuid.uuid4())
        set_correlation_id(notification_id)
        try:
            payload = parse_push_payload(data)
            outcome = PushOutcome(
                status="processed",
                owner_address=payload.owner_address,
                change_marker=payload.change_marker,
                notification_id=notification_id,
                kind=payload.kind,
            )

            if self._dedup.check_and_record(fingerprint(data)):
                outcome.status = "duplicate"
                logger.info("push_duplicate_skipped", kind=payload.kind)
                return outcome

            logger.info(
                "push_received",
                kind=payload.kind,
                owner_address=payload.owner_address,
                change_marker=payload.change_marker,
            )

            try:
                await self._process_payload(payload, outcome)
            except Exception as e:
                outcome.status = "failed"
                logger.error(
                    "push_processing_failed",
                    owner_address=outcome.owner_address,
                    error=str(e),
                    error_type=type(e).__name__,
                )

            logger.info("push_complete", **outcome.to_dict())
            return outcome
        finally:
            set_correlation_id(None)

    async def _process_payload(self, payload: PushPayload, outcome: PushOutcome) -> None:
        """Resolve the user, re-fetch, store and emit."""
        if isinstance(payload, TestPing):
            outcome.status = "test"
            return

        if isinstance(payload, Unrecognized) or payload.owner_address == UNKNOWN:
            outcome.status = "unrecognized"
            logger.warning("push_without_owner", kind=payload.kind)
            return

        user = await self._store.get_user_by_email(payload.owner_address)
        if user is None:
            outcome.status = "unknown_user"
            logger.info("push_for_unknown_user", owner_address=payload.owner_address)
            return

        if not user.gmail_access_token:
            outcome.status = "no_credential"
            logger.warning("push_user_without_credential", user_id=user.id)
            return

        result = await self._sync.fetch_window(user, self._sync.webhook_window)
        outcome.fetched = result.fetched

        reached = await self._dispatcher.emit(
            user.google_id,
            NEW_EMAILS_EVENT,
            {
                "userId": user.google_id,
                "count": result.fetched,
                "message": f"New emails received! Found {result.fetched} emails.",
            },
        )
        logger.info("push_dispatched", user_id=user.id, count=result.fetched, connections=reached)

        if result.credential is not None:
            self._renew_watch(user, result.credential)

    def _renew_watch(self, user: User, credential: Credential) -> None:
        """Renew the user's Gmail watch under the shared cooldown; failures are logged."""
        if self._push_manager is None or not self._config.push.renew_watch_on_push:
            return

        try:
            self._cooldown.run_if_due(
                push_cooldown_key(user.google_id),
                lambda: self._push_manager.setup_push_notifications(credential),
            )
        except Exception as e:
            logger.warning("push_watch_renewal_failed", user_id=user.id, error=str(e))


def push_cooldown_key(google_id: str) -> str:
    """Cooldown key shared by manual sync and webhook watch renewal."""
    return f"push_{google_id}"
