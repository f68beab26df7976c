"""Classification verdict shared by the remote and heuristic classifiers."""

from dataclasses import dataclass
from typing import Any, Literal

VerdictMethod = Literal["claude_tool_use", "heuristic"]


@dataclass(frozen=True, slots=True)
class Verdict:
    """Networking assessment of one conversation.

    Attributes:
        is_relevant: Whether the conversation is a networking opportunity
        score: 0-10, 0 when not relevant
        summary: Short description of the conversation
        category: Networking type (e.g. 'job_opportunity', 'unknown')
        method: Which classifier produced the verdict
    """

    is_relevant: bool
    score: int
    summary: str
    category: str
    method: VerdictMethod

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_relevant": self.is_relevant,
            "score": self.score,
            "summary": self.summary,
            "category": self.category,
            "method": self.method,
        }
