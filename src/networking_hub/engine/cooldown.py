"""Per-key cooldown for Gmail watch setup.

Registering a Gmail watch is idempotent but costs quota, and both the
manual sync route and the push webhook want to renew it. One SetupCooldown
instance is shared by both so a user's watch is set up at most once per
window. State is process-local and cleared on restart.

Usage:
    from datetime import timedelta

    cooldown = SetupCooldown(timedelta(minutes=60))
    ran = cooldown.run_if_due(f"push_{google_id}", lambda: manager.setup_push_notifications(cred))
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from networking_hub.core.logging import get_logger

logger = get_logger(__name__)


class SetupCooldown:
    """Tracks the last successful run per key.

    Attributes:
        window: Minimum time between successful runs for one key
    """

    def __init__(self, window: timedelta):
        self.window = window
        self._last_run: dict[str, datetime] = {}

    def is_due(self, key: str, now: datetime | None = None) -> bool:
        """True when the key never ran or its last success is older than the window."""
        last = self._last_run.get(key)
        if last is None:
            return True
        now = now or datetime.now(UTC)
        return now - last >= self.window

    def mark(self, key: str, now: datetime | None = None) -> None:
        """Record a successful run for the key."""
        self._last_run[key] = now or datetime.now(UTC)

    def last_run(self, key: str) -> datetime | None:
        return self._last_run.get(key)

    def run_if_due(
        self,
        key: str,
        action: Callable[[], Any],
        now: datetime | None = None,
    ) -> bool:
        """Run the action unless the key is cooling down.

        The cooldown starts only when the action returns normally; an
        exception propagates and leaves the key due.

        Args:
            key: Cooldown key (typically per user)
            action: Zero-argument callable
            now: Current time (defaults to datetime.now(UTC))

        Returns:
            True if the action ran, False if it was skipped
        """
        now = now or datetime.now(UTC)
        if not self.is_due(key, now):
            logger.debug(
                "setup_on_cooldown",
                key=key,
                last_run=self._last_run[key].isoformat(),
            )
            return False

        action()
        self.mark(key, now)
        return True

    def clear(self) -> None:
        self._last_run.clear()
