"""Gmail REST API integration.

Provides the HTTP client, message fetching/normalization and push watch
registration.

Usage:
    from networking_hub.gmail import GmailClient, MessageFetcher

    client = GmailClient()
    fetcher = MessageFetcher(client)
    messages = fetcher.fetch_messages(credential, since=timedelta(minutes=1))
"""

from networking_hub.gmail.client import GMAIL_BASE_URL, GmailClient
from networking_hub.gmail.messages import (
    MessageFetcher,
    NormalizedMessage,
    extract_body,
    normalize_message,
    parse_address,
)
from networking_hub.gmail.push import PushSubscriptionManager, WatchResult

__all__ = [
    "GMAIL_BASE_URL",
    "GmailClient",
    "MessageFetcher",
    "NormalizedMessage",
    "PushSubscriptionManager",
    "WatchResult",
    "extract_body",
    "normalize_message",
    "parse_address",
]
