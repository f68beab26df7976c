"""Claude classifier for networking conversations, with heuristic fallback.

Uses forced tool_choice so Claude always answers through the
assess_networking tool.

Error handling strategy:
- Transient errors (429, 5xx, network): Handled by Anthropic SDK (max_retries=3)
- Invalid tool output or API errors: that conversation falls back to the
  keyword heuristic. Errors are logged, never raised to callers.

Usage:
    import anthropic

    from networking_hub.classifier.networking_classifier import NetworkingClassifier

    classifier = NetworkingClassifier(
        anthropic_client=anthropic.Anthropic(max_retries=3),
        config=app_config.classifier,
    )
    verdicts = classifier.classify([thread_a, thread_b])
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import anthropic

from networking_hub.classifier.heuristic import heuristic_verdict
from networking_hub.classifier.prompts import (
    ASSESS_NETWORKING_TOOL,
    SYSTEM_PROMPT,
    TOOL_NAME,
    VALID_CATEGORIES,
    build_user_message,
)
from networking_hub.classifier.verdict import Verdict
from networking_hub.config_schema import ClassifierConfig
from networking_hub.core.errors import ClassificationError
from networking_hub.core.logging import get_logger
from networking_hub.db.store import counterpart_of

if TYPE_CHECKING:
    from networking_hub.db.store import Email

logger = get_logger(__name__)


class NetworkingClassifier:
    """Classifies conversations as networking opportunities.

    With no Anthropic client (no API key) or with the classifier disabled in
    config, every conversation goes through the heuristic.

    Attributes:
        _client: Anthropic API client, or None
        _config: Classifier configuration
    """

    def __init__(
        self,
        anthropic_client: anthropic.Anthropic | None,
        config: ClassifierConfig | None = None,
    ):
        """Initialize the classifier.

        Args:
            anthropic_client: Anthropic API client (configured with
                max_retries=3), or None to use the heuristic only
            config: Classifier configuration (defaults if omitted)
        """
        self._client = anthropic_client
        self._config = config or ClassifierConfig()

    @property
    def uses_remote(self) -> bool:
        """True when Claude will be consulted."""
        return self._client is not None and self._config.enabled

    def classify(self, threads: Sequence[Sequence[Email]]) -> list[Verdict]:
        """Produce one verdict per conversation, in input order.

        Args:
            threads: Conversations, each a list of messages newest first

        Returns:
            List of Verdicts, same length as threads
        """
        verdicts: list[Verdict] = []
        for thread in threads:
            if not self.uses_remote:
                verdicts.append(heuristic_verdict(thread, self._config.keywords))
                continue

            try:
                verdicts.append(self.classify_with_claude(thread))
            except ClassificationError as e:
                logger.warning(
                    "classification_fallback_to_heuristic",
                    contact_email=e.contact_email,
                    error=str(e),
                )
                verdicts.append(heuristic_verdict(thread, self._config.keywords))

        logger.info(
            "conversations_classified",
            count=len(verdicts),
            relevant=sum(1 for v in verdicts if v.is_relevant),
            remote=self.uses_remote,
        )
        return verdicts

    def classify_with_claude(self, thread: Sequence[Email]) -> Verdict:
        """Classify one conversation using Claude with forced tool use.

        Args:
            thread: Messages exchanged with one contact, newest first

        Returns:
            Verdict with method 'claude_tool_use'

        Raises:
            ClassificationError: On API errors or invalid tool output
        """
        if self._client is None:
            raise ClassificationError("No Anthropic client configured")

        contact_email = counterpart_of(thread[0])[0] if thread else None
        user_message = build_user_message(thread, self._config.max_messages_per_thread)
        start_time = time.monotonic()

        try:
            # SDK handles transient retries (429, 5xx, connection errors)
            response = self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": user_message}],
                tools=[ASSESS_NETWORKING_TOOL],
                tool_choice={"type": "tool", "name": TOOL_NAME},
            )
        except anthropic.RateLimitError as e:
            logger.error("classification_rate_limited", contact_email=contact_email, error=str(e))
            raise ClassificationError(
                f"Rate limited after SDK retries: {e}", contact_email=contact_email
            ) from e
        except anthropic.APIConnectionError as e:
            logger.error(
                "classification_connection_error", contact_email=contact_email, error=str(e)
            )
            raise ClassificationError(
                f"API connection error after SDK retries: {e}", contact_email=contact_email
            ) from e
        except anthropic.APIStatusError as e:
            logger.error(
                "classification_api_error",
                contact_email=contact_email,
                status_code=e.status_code,
                error=str(e),
            )
            raise ClassificationError(
                f"API status error {e.status_code}: {e.message}", contact_email=contact_email
            ) from e
        except anthropic.APIError as e:
            logger.error("classification_api_error", contact_email=contact_email, error=str(e))
            raise ClassificationError(f"API error: {e}", contact_email=contact_email) from e

        duration_ms = int((time.monotonic() - start_time) * 1000)

        tool_call = _extract_tool_call(response)
        if tool_call is None:
            raise ClassificationError(
                "No tool call in response (unexpected with forced tool_choice)",
                contact_email=contact_email,
            )

        validation_error = _validate_tool_call(tool_call)
        if validation_error:
            logger.warning(
                "classification_invalid_response",
                contact_email=contact_email,
                error=validation_error,
            )
            raise ClassificationError(validation_error, contact_email=contact_email)

        logger.debug(
            "classification_complete",
            contact_email=contact_email,
            duration_ms=duration_ms,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return _build_verdict(tool_call)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _extract_tool_call(response: anthropic.types.Message) -> Any | None:
    """Extract the assess_networking tool call input from the API response."""
    for block in response.content:
        if block.type == "tool_use" and block.name == TOOL_NAME:
            return block.input
    return None


def _validate_tool_call(data: Any) -> str | None:
    """Validate that a tool call contains all required fields with valid values.

    Args:
        data: Tool call input data

    Returns:
        Error message if invalid, None if valid
    """
    if not isinstance(data, dict):
        return f"Tool input is not an object: {type(data).__name__}"

    required = ("is_networking", "networking_score", "conversation_summary", "networking_type")
    missing = [f for f in required if f not in data]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"

    if not isinstance(data["is_networking"], bool):
        return f"Invalid is_networking: {data['is_networking']!r}. Must be a boolean"

    score = data["networking_score"]
    if isinstance(score, bool) or not isinstance(score, int | float) or not 0 <= score <= 10:
        return f"Invalid networking_score: {score!r}. Must be a number between 0 and 10"

    summary = data["conversation_summary"]
    if not isinstance(summary, str) or not summary.strip():
        return "Empty conversation_summary"

    if data["networking_type"] not in VALID_CATEGORIES:
        return (
            f"Invalid networking_type: '{data['networking_type']}'. "
            f"Must be one of: {', '.join(sorted(VALID_CATEGORIES))}"
        )

    return None


def _build_verdict(tool_call: dict[str, Any]) -> Verdict:
    """Build a Verdict from validated tool call data.

    A non-networking verdict always carries score 0.
    """
    is_relevant = tool_call["is_networking"]
    return Verdict(
        is_relevant=is_relevant,
        score=int(round(tool_call["networking_score"])) if is_relevant else 0,
        summary=tool_call["conversation_summary"].strip(),
        category=tool_call["networking_type"],
        method="claude_tool_use",
    )
