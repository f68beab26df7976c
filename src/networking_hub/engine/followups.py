"""Follow-up analysis over a user's stored conversations.

For every contact, load the conversation history, classify the non-empty
conversations in one pass, and save a follow-up for each networking
verdict. Each run inserts new follow-up rows.

Usage:
    from networking_hub.engine.followups import FollowUpAnalyzer

    analyzer = FollowUpAnalyzer(store, classifier)
    report = await analyzer.analyze(user)
    print(report.message)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from networking_hub.core.logging import get_logger
from networking_hub.db.store import FollowUpDraft, counterpart_of

if TYPE_CHECKING:
    from networking_hub.classifier.networking_classifier import NetworkingClassifier
    from networking_hub.classifier.verdict import Verdict
    from networking_hub.db.store import Contact, DatabaseStore, Email, FollowUpPriority, User

logger = get_logger(__name__)

HIGH_PRIORITY_SCORE = 7
MEDIUM_PRIORITY_SCORE = 4


def priority_for_score(score: int) -> FollowUpPriority:
    """Map a 0-10 networking score to a follow-up priority tier."""
    if score >= HIGH_PRIORITY_SCORE:
        return "high"
    if score >= MEDIUM_PRIORITY_SCORE:
        return "medium"
    return "low"


@dataclass
class AnalysisReport:
    """Outcome of one analysis pass.

    Attributes:
        contacts: Contacts considered
        conversations: Non-empty conversations classified
        follow_ups: Drafts saved, with their new ids
    """

    contacts: int = 0
    conversations: int = 0
    follow_ups: list[tuple[int, FollowUpDraft]] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.contacts == 0:
            return "No contacts found to analyze"
        if self.conversations == 0:
            return "No conversations found to analyze"
        return (
            f"Analyzed {self.conversations} conversations and found "
            f"{len(self.follow_ups)} networking conversations"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "contacts": self.contacts,
            "conversations": self.conversations,
            "followUps": [
                {
                    "id": follow_up_id,
                    "contact_email": draft.contact_email,
                    "contact_name": draft.contact_name,
                    "conversation_summary": draft.conversation_summary,
                    "networking_score": draft.networking_score,
                    "needs_followup": draft.needs_followup,
                    "followup_reason": draft.followup_reason,
                    "suggested_action": draft.suggested_action,
                    "priority": draft.priority,
                    "status": draft.status,
                }
                for follow_up_id, draft in self.follow_ups
            ],
        }


def build_draft(
    thread: list[Email],
    verdict: Verdict,
    contact: Contact | None = None,
) -> FollowUpDraft | None:
    """Turn a networking verdict into a follow-up draft.

    The contact address is the counterpart of the conversation's first
    message. Returns None when that message has no counterpart.
    """
    address, name = counterpart_of(thread[0])
    if not address:
        return None

    return FollowUpDraft(
        contact_email=address,
        contact_name=(contact.contact_name if contact else None) or name or "Unknown",
        conversation_summary=verdict.summary,
        networking_score=verdict.score,
        needs_followup=True,
        followup_reason=f"Networking conversation: {verdict.category}",
        suggested_action=f"Follow up on this {verdict.category} conversation",
        priority=priority_for_score(verdict.score),
    )


class FollowUpAnalyzer:
    """Classifies a user's conversations and records follow-ups."""

    def __init__(self, store: DatabaseStore, classifier: NetworkingClassifier):
        self._store = store
        self._classifier = classifier

    async def analyze(self, user: User) -> AnalysisReport:
        """Run one analysis pass for the user.

        Args:
            user: User whose stored mail is analyzed

        Returns:
            AnalysisReport

        Raises:
            DatabaseError: If reading or saving fails
        """
        report = AnalysisReport()
        contacts = await self._store.get_contacts_by_user(user.id)
        report.contacts = len(contacts)

        threads: list[list[Email]] = []
        thread_contacts: list[Contact] = []
        for contact in contacts:
            history = await self._store.get_conversation_history(user.id, contact.contact_email)
            if history:
                threads.append(history)
                thread_contacts.append(contact)

        report.conversations = len(threads)
        if not threads:
            logger.info("follow_up_analysis_skipped", user_id=user.id, contacts=report.contacts)
            return report

        verdicts = self._classifier.classify(threads)

        for thread, contact, verdict in zip(threads, thread_contacts, verdicts, strict=True):
            if not verdict.is_relevant:
                continue
            draft = build_draft(thread, verdict, contact)
            if draft is None:
                continue
            follow_up_id = await self._store.save_follow_up(user.id, draft)
            report.follow_ups.append((follow_up_id, draft))

        logger.info(
            "follow_up_analysis_complete",
            user_id=user.id,
            contacts=report.contacts,
            conversations=report.conversations,
            follow_ups=len(report.follow_ups),
        )
        return report
