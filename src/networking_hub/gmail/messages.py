"""Gmail message fetching and normalization.

Lists a user's messages inside a trailing time window, fetches each one in
``full`` format and flattens it into a NormalizedMessage ready for storage.

Usage:
    from datetime import timedelta

    from networking_hub.gmail.client import GmailClient
    from networking_hub.gmail.messages import MessageFetcher

    fetcher = MessageFetcher(GmailClient())
    messages = fetcher.fetch_messages(credential, since=timedelta(days=7))
"""

from __future__ import annotations

import base64
import binascii
import html
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from email.utils import getaddresses
from typing import TYPE_CHECKING, Any

import regex

from networking_hub.core.errors import AuthenticationError, GmailAPIError, RateLimitExceeded
from networking_hub.core.logging import get_logger

if TYPE_CHECKING:
    from networking_hub.auth.google_oauth import Credential
    from networking_hub.gmail.client import GmailClient

logger = get_logger(__name__)

DEFAULT_SUBJECT = "No Subject"
DEFAULT_MAX_RESULTS = 100

# Regex timeout in seconds for operations on message content
REGEX_TIMEOUT = 1.0

HTML_TAG_PATTERN = regex.compile(r"<[^>]+>")
EXCESSIVE_NEWLINES = regex.compile(r"\n{3,}")


@dataclass
class NormalizedMessage:
    """A Gmail message flattened to the fields Networking Hub stores.

    Addresses are lowercased. ``recipient`` fields describe the first
    address of the To header.
    """

    gmail_id: str
    thread_id: str | None = None
    subject: str = DEFAULT_SUBJECT
    sender: str = ""
    sender_email: str = ""
    recipient: str = ""
    recipient_email: str = ""
    user_email: str = ""
    is_sent: bool = False
    date_sent: datetime | None = None
    snippet: str = ""
    body: str = ""
    labels: list[str] = field(default_factory=list)
    is_read: bool = True


def parse_address(header_value: str | None) -> tuple[str, str]:
    """Split a From/To header into (display name, address).

    Only the first address of a list is returned. When the header has no
    display name, the name is the address itself.

    Examples:
        >>> parse_address('"Bob Smith" <Bob@Example.com>')
        ('Bob Smith', 'bob@example.com')
        >>> parse_address("carol@example.com, dave@example.com")
        ('carol@example.com', 'carol@example.com')
    """
    if not header_value:
        return ("", "")

    addresses = getaddresses([header_value])
    if not addresses:
        return ("", "")

    name, address = addresses[0]
    address = address.strip().lower()
    name = name.strip().strip("\"'")
    if not address:
        return (name or header_value.strip(), "")
    return (name or address, address)


def decode_base64url(data: str | None) -> str:
    """Decode Gmail's base64url-encoded body data to text.

    Missing padding is tolerated and undecodable bytes are replaced.
    """
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError):
        logger.warning("Undecodable message body part", length=len(data))
        return ""
    return raw.decode("utf-8", errors="replace")


def html_to_text(content: str) -> str:
    """Strip tags and unescape entities from an HTML body."""
    try:
        text = HTML_TAG_PATTERN.sub(" ", content, timeout=REGEX_TIMEOUT)
        text = html.unescape(text)
        return EXCESSIVE_NEWLINES.sub("\n\n", text, timeout=REGEX_TIMEOUT).strip()
    except TimeoutError:
        logger.warning("Regex timeout while stripping HTML", length=len(content))
        return html.unescape(content)


def extract_body(payload: dict[str, Any]) -> str:
    """Extract a readable body from a message payload.

    Single-part messages carry the body in ``payload.body.data``. For
    multipart messages plain-text parts are preferred; HTML is only used
    when no plain text exists. Nested multiparts are searched recursively.
    """
    data = (payload.get("body") or {}).get("data")
    if data:
        text = decode_base64url(data)
        if payload.get("mimeType") == "text/html":
            return html_to_text(text)
        return text

    parts = payload.get("parts") or []
    plain, rich = _collect_parts(parts)
    if plain:
        return "\n".join(plain)
    if rich:
        return html_to_text("\n".join(rich))
    return ""


def _collect_parts(parts: list[dict[str, Any]]) -> tuple[list[str], list[str]]:
    """Walk MIME parts, returning (plain text bodies, html bodies)."""
    plain: list[str] = []
    rich: list[str] = []
    for part in parts:
        mime_type = part.get("mimeType", "")
        data = (part.get("body") or {}).get("data")
        if mime_type == "text/plain" and data:
            plain.append(decode_base64url(data))
        elif mime_type == "text/html" and data:
            rich.append(decode_base64url(data))
        elif part.get("parts"):
            nested_plain, nested_rich = _collect_parts(part["parts"])
            plain.extend(nested_plain)
            rich.extend(nested_rich)
    return plain, rich


def _header(headers: list[dict[str, str]], name: str) -> str:
    """Case-insensitive header lookup (first match)."""
    wanted = name.lower()
    for header in headers:
        if header.get("name", "").lower() == wanted:
            return header.get("value", "")
    return ""


def normalize_message(message: dict[str, Any], user_email: str) -> NormalizedMessage:
    """Flatten a Gmail ``format=full`` message resource.

    Args:
        message: Message resource from users.messages.get
        user_email: The mailbox address (decides is_sent)

    Returns:
        NormalizedMessage
    """
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    labels = list(message.get("labelIds") or [])

    sender, sender_email = parse_address(_header(headers, "From"))
    recipient, recipient_email = parse_address(_header(headers, "To"))

    date_sent = None
    internal_date = message.get("internalDate")
    if internal_date:
        date_sent = datetime.fromtimestamp(int(internal_date) / 1000, tz=UTC)

    return NormalizedMessage(
        gmail_id=message["id"],
        thread_id=message.get("threadId"),
        subject=_header(headers, "Subject") or DEFAULT_SUBJECT,
        sender=sender,
        sender_email=sender_email,
        recipient=recipient,
        recipient_email=recipient_email,
        user_email=user_email,
        is_sent=bool(sender_email) and sender_email == user_email.lower(),
        date_sent=date_sent,
        snippet=html.unescape(message.get("snippet") or ""),
        body=extract_body(payload),
        labels=labels,
        is_read="UNREAD" not in labels,
    )


class MessageFetcher:
    """Fetches and normalizes a user's recent Gmail messages.

    Attributes:
        client: GmailClient used for all requests
    """

    def __init__(self, client: GmailClient):
        self.client = client

    def test_connection(self, credential: Credential) -> dict[str, Any]:
        """Check that the credential can read the mailbox.

        Returns:
            Dict with email and messages_total

        Raises:
            AuthenticationError: If the token is rejected
            GmailAPIError: If Gmail cannot be reached
        """
        profile = self.client.get_profile(credential.access_token)
        return {
            "email": profile["emailAddress"],
            "messages_total": profile.get("messagesTotal"),
        }

    def fetch_messages(
        self,
        credential: Credential,
        since: timedelta,
        max_results: int = DEFAULT_MAX_RESULTS,
        now: datetime | None = None,
    ) -> list[NormalizedMessage]:
        """Fetch messages received or sent within a trailing window.

        A message that fails to download or parse is logged and skipped;
        failures of the profile or list calls propagate.

        Args:
            credential: The user's Gmail credential
            since: Width of the trailing window
            max_results: Maximum number of messages listed
            now: Window end (defaults to datetime.now(UTC))

        Returns:
            Normalized messages, in the order Gmail listed them

        Raises:
            AuthenticationError: If the token is rejected
            GmailAPIError: If the profile or list call fails
        """
        token = credential.access_token
        user_email = self.client.get_profile(token)["emailAddress"]

        window_start = (now or datetime.now(UTC)) - since
        query = f"after:{int(window_start.timestamp())}"

        listing = self.client.get(
            "/users/me/messages",
            token,
            params={"q": query, "maxResults": max_results},
        )
        refs = listing.get("messages") or []

        logger.info(
            "gmail_messages_listed",
            user_email=user_email,
            query=query,
            count=len(refs),
        )

        messages: list[NormalizedMessage] = []
        for ref in refs:
            message_id = ref.get("id")
            if not message_id:
                continue
            try:
                raw = self.client.get(
                    f"/users/me/messages/{message_id}",
                    token,
                    params={"format": "full"},
                )
                messages.append(normalize_message(raw, user_email))
            except AuthenticationError:
                raise
            except (GmailAPIError, RateLimitExceeded, KeyError, ValueError) as e:
                logger.warning(
                    "gmail_message_skipped",
                    message_id=message_id,
                    error=str(e),
                )

        logger.debug("gmail_messages_fetched", user_email=user_email, count=len(messages))
        return messages
