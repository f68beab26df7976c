"""Custom exception types for Networking Hub.

Error messages follow one rule: say what failed, why, and how to fix it
when there is something the operator or user can do.
"""


class HubError(Exception):
    """Base exception for all Networking Hub errors."""

    pass


class ConfigValidationError(HubError):
    """Raised when config.yaml fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(HubError):
    """Raised when config.yaml cannot be loaded (file not found, YAML parse error)."""

    pass


class AuthenticationError(HubError):
    """Raised when a Google credential is missing, expired or rejected.

    The HTTP surface maps this to 401 and asks the user to sign in again.
    """

    pass


class GmailAPIError(HubError):
    """Raised when the Gmail API returns an error or cannot be reached.

    Attributes:
        status_code: HTTP status code from the API (None for network errors)
        reason: Error reason from the Gmail error payload (if available)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        reason: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class RateLimitExceeded(HubError):
    """Raised when API rate limits are exceeded and cannot be recovered.

    This is raised when the rate limiter would require an excessive wait time
    (>20 seconds) rather than blocking indefinitely.
    """

    pass


class ClassificationError(HubError):
    """Raised when the remote networking classifier returns no usable verdict.

    Attributes:
        contact_email: Counterpart address of the thread being classified
    """

    def __init__(self, message: str, contact_email: str | None = None):
        super().__init__(message)
        self.contact_email = contact_email


class DatabaseError(HubError):
    """Raised when SQLite operations fail."""

    pass


class PushPayloadError(HubError):
    """Raised when a push notification body cannot be parsed at all.

    The webhook answers 500 for this error only. Every other processing
    failure is acknowledged with 200.
    """

    pass


class PubSubProvisioningError(HubError):
    """Raised when the Pub/Sub topic or push subscription cannot be created.

    Usually missing Pub/Sub Admin permission for the service credentials, or
    no WEBHOOK_BASE_URL to point the push subscription at.
    """

    pass
