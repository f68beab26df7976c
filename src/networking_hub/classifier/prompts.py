"""Prompt and tool definition for networking classification.

The system prompt is static. The user message renders one conversation
(newest messages last) with each message attributed to "You" or "Them".

Usage:
    from networking_hub.classifier.prompts import ASSESS_NETWORKING_TOOL, build_user_message

    message = build_user_message(thread, max_messages=20)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from networking_hub.db.store import Email

TOOL_NAME = "assess_networking"

VALID_CATEGORIES = frozenset(
    {
        "professional_connection",
        "job_opportunity",
        "career_advice",
        "industry_discussion",
        "business_partnership",
        "mentorship",
        "introduction",
        "event",
        "unknown",
    }
)

# Per-message text sent to the model
MAX_MESSAGE_CHARS = 1500

ASSESS_NETWORKING_TOOL: dict[str, Any] = {
    "name": TOOL_NAME,
    "description": "Record whether an email conversation is a networking opportunity",
    "input_schema": {
        "type": "object",
        "properties": {
            "is_networking": {
                "type": "boolean",
                "description": "True if the conversation is professional networking",
            },
            "networking_score": {
                "type": "integer",
                "minimum": 0,
                "maximum": 10,
                "description": "How valuable following up would be (0 = not networking)",
            },
            "conversation_summary": {
                "type": "string",
                "description": "One or two sentences summarizing the conversation",
            },
            "networking_type": {
                "type": "string",
                "enum": sorted(VALID_CATEGORIES),
            },
        },
        "required": [
            "is_networking",
            "networking_score",
            "conversation_summary",
            "networking_type",
        ],
    },
}

SYSTEM_PROMPT = """\
You are an expert at identifying networking conversations in professional email.

A networking conversation includes:
- Professional connections and introductions
- Job opportunities and career advice
- Industry discussions
- Business partnerships
- Mentorship
- Conference and event discussions

Newsletters, receipts, automated notifications and purely personal mail are
not networking. Score 0 when the conversation is not networking; otherwise
score 1-10 by how worthwhile a follow-up would be.

Always answer by calling the assess_networking tool."""


def _message_text(email: Email) -> str:
    text = email.snippet or email.body or ""
    if len(text) > MAX_MESSAGE_CHARS:
        text = text[:MAX_MESSAGE_CHARS] + "..."
    return text


def build_user_message(thread: Sequence[Email], max_messages: int = 20) -> str:
    """Render a conversation for the classifier.

    Args:
        thread: Messages exchanged with one contact, newest first (as the
            store returns them)
        max_messages: Only the newest N messages are included

    Returns:
        User message text
    """
    recent = list(thread[:max_messages])
    recent.reverse()

    lines = ["Analyze this email conversation and decide if it is a networking conversation.", ""]
    for email in recent:
        direction = "You" if email.is_sent else "Them"
        date = email.date_sent.strftime("%Y-%m-%d") if email.date_sent else "unknown date"
        lines.append(f"{direction} ({date}): {email.subject or '(no subject)'}")
        text = _message_text(email)
        if text:
            lines.append(text)
        lines.append("")

    if len(thread) > max_messages:
        lines.append(f"({len(thread) - max_messages} older messages omitted)")

    return "\n".join(lines).rstrip()
