"""Keyword heuristic for networking classification.

Used when the remote classifier is disabled, has no API key, or fails for a
conversation. Deterministic: the same thread always yields the same verdict.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from networking_hub.classifier.verdict import Verdict
from networking_hub.config_schema import DEFAULT_NETWORKING_KEYWORDS

if TYPE_CHECKING:
    from networking_hub.db.store import Email

BASE_SCORE = 5
MAX_SCORE = 10
RELEVANT_CATEGORY = "professional_connection"
IRRELEVANT_CATEGORY = "unknown"


def thread_text(thread: Iterable[Email]) -> str:
    """Lowercased subject plus snippet (body when no snippet) of every message."""
    return " ".join(
        f"{email.subject or ''} {email.snippet or email.body or ''}" for email in thread
    ).lower()


def matched_keywords(text: str, keywords: Iterable[str]) -> set[str]:
    """Distinct keywords occurring as substrings of text."""
    return {keyword for keyword in keywords if keyword and keyword in text}


def heuristic_verdict(
    thread: Sequence[Email],
    keywords: Sequence[str] | None = None,
) -> Verdict:
    """Classify a conversation by keyword matching.

    Args:
        thread: Messages of one conversation (first message supplies the subject)
        keywords: Lowercase keywords (defaults to DEFAULT_NETWORKING_KEYWORDS)

    Returns:
        Verdict with method 'heuristic'
    """
    hits = matched_keywords(thread_text(thread), keywords or DEFAULT_NETWORKING_KEYWORDS)
    is_relevant = bool(hits)
    first_subject = thread[0].subject if thread else None

    return Verdict(
        is_relevant=is_relevant,
        score=min(MAX_SCORE, BASE_SCORE + len(hits)) if is_relevant else 0,
        summary=f"Conversation about {first_subject or 'No Subject'}",
        category=RELEVANT_CATEGORY if is_relevant else IRRELEVANT_CATEGORY,
        method="heuristic",
    )
