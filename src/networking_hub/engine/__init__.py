"""Core processing engine.

This package provides the hub's workflows:
- Mail sync over a trailing window
- Gmail push notification intake with dedup
- Watch setup cooldown shared by sync and push
- Follow-up analysis over stored conversations
"""

from networking_hub.engine.cooldown import SetupCooldown
from networking_hub.engine.followups import (
    AnalysisReport,
    FollowUpAnalyzer,
    build_draft,
    priority_for_score,
)
from networking_hub.engine.push_intake import (
    DirectJson,
    EncodedEnvelope,
    NotificationDedup,
    PushIntake,
    PushOutcome,
    TestPing,
    Unrecognized,
    fingerprint,
    parse_push_payload,
    push_cooldown_key,
)
from networking_hub.engine.sync import MailSyncService, SyncResult

__all__ = [
    # Sync
    "MailSyncService",
    "SyncResult",
    # Cooldown
    "SetupCooldown",
    "push_cooldown_key",
    # Push intake
    "PushIntake",
    "PushOutcome",
    "NotificationDedup",
    "parse_push_payload",
    "fingerprint",
    "EncodedEnvelope",
    "DirectJson",
    "TestPing",
    "Unrecognized",
    # Follow-ups
    "FollowUpAnalyzer",
    "AnalysisReport",
    "build_draft",
    "priority_for_score",
]
