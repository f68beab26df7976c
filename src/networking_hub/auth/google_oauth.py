"""Google OAuth2 token client for Gmail access.

Exchanges authorization codes for tokens and refreshes expired access
tokens against Google's token endpoint. The interactive consent flow runs in
the browser; this module only handles the server side of it.

Usage:
    from networking_hub.auth.google_oauth import GoogleOAuthClient
    from networking_hub.config import get_config

    config = get_config()
    oauth = GoogleOAuthClient(
        client_id=config.auth.client_id,
        client_secret=config.auth.client_secret,
        token_url=config.auth.token_url,
    )

    credential = oauth.exchange_code(code, redirect_uri="http://localhost:3000/oauth/callback")
    if credential.is_expired():
        credential = oauth.refresh_credential(credential)
"""

import random
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import requests

from networking_hub.core.errors import AuthenticationError
from networking_hub.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Retry configuration for token endpoint calls
TOKEN_MAX_RETRIES = 3
TOKEN_RETRY_DELAYS = [1.0, 2.0, 4.0]  # Exponential backoff with jitter
TOKEN_TIMEOUT_SECONDS = 15


@dataclass
class Credential:
    """Gmail OAuth credential.

    Attributes:
        access_token: Bearer token for the Gmail API
        refresh_token: Long-lived token for obtaining new access tokens
        expires_at: When the access token stops working (None if unknown)
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def is_expired(self, skew_seconds: int = 60, now: datetime | None = None) -> bool:
        """Check whether the access token is expired or about to expire.

        Args:
            skew_seconds: Treat the token as expired this many seconds early
            now: Current time (defaults to datetime.now(UTC))

        Returns:
            True if the token should be refreshed before use. A credential with
            no known expiry is assumed valid.
        """
        if self.expires_at is None:
            return False
        now = now or datetime.now(UTC)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return now >= expires_at - timedelta(seconds=skew_seconds)

    def to_dict(self) -> dict[str, Any]:
        """JSON view returned to the browser after the code exchange."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "expiry_date": int(self.expires_at.timestamp() * 1000) if self.expires_at else None,
        }

    @classmethod
    def from_token_response(
        cls,
        data: dict[str, Any],
        previous_refresh_token: str | None = None,
        now: datetime | None = None,
    ) -> "Credential":
        """Build a Credential from a Google token endpoint response.

        Args:
            data: Parsed JSON response with access_token and expires_in
            previous_refresh_token: Kept when the response carries no new one
            now: Issue time (defaults to datetime.now(UTC))

        Raises:
            AuthenticationError: If the response has no access token
        """
        access_token = data.get("access_token")
        if not access_token:
            raise AuthenticationError("Token response did not include an access token")

        expires_at = None
        expires_in = data.get("expires_in")
        if expires_in is not None:
            expires_at = (now or datetime.now(UTC)) + timedelta(seconds=int(expires_in))

        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            expires_at=expires_at,
        )


class GoogleOAuthClient:
    """Server-side Google OAuth2 token operations.

    Attributes:
        client_id: OAuth client ID
        client_secret: OAuth client secret
        token_url: Token endpoint URL
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str = DEFAULT_TOKEN_URL,
        session: requests.Session | None = None,
    ):
        """Initialize the OAuth client.

        Args:
            client_id: OAuth client ID from Google Cloud Console
            client_secret: OAuth client secret
            token_url: Token endpoint (override for tests)
            session: Optional requests session (created if omitted)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self._session = session or requests.Session()

    def exchange_code(self, code: str, redirect_uri: str) -> Credential:
        """Exchange an authorization code for a credential.

        Args:
            code: Authorization code from the consent redirect
            redirect_uri: The redirect URI used in the consent request

        Returns:
            Credential with access and refresh tokens

        Raises:
            AuthenticationError: If Google rejects the code or is unreachable
        """
        if not code:
            raise AuthenticationError("No authorization code provided")

        data = self._post_token_request(
            {
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            operation="exchange_code",
        )
        credential = Credential.from_token_response(data)
        logger.info(
            "oauth_code_exchanged",
            has_refresh_token=credential.refresh_token is not None,
        )
        return credential

    def refresh_credential(self, credential: Credential) -> Credential:
        """Obtain a fresh access token using the credential's refresh token.

        Google usually omits the refresh token from refresh responses; the
        existing one is carried over in that case.

        Args:
            credential: Credential with a refresh token

        Returns:
            New Credential

        Raises:
            AuthenticationError: If there is no refresh token or Google rejects it
        """
        if not credential.refresh_token:
            raise AuthenticationError(
                "Gmail access expired and no refresh token is stored. Please sign in again."
            )

        data = self._post_token_request(
            {
                "refresh_token": credential.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
            operation="refresh_credential",
        )
        refreshed = Credential.from_token_response(
            data, previous_refresh_token=credential.refresh_token
        )
        logger.info("oauth_credential_refreshed", expires_at=str(refreshed.expires_at))
        return refreshed

    def _post_token_request(self, form: dict[str, str], operation: str) -> dict[str, Any]:
        """POST to the token endpoint with retry on transient network errors.

        Args:
            form: Form-encoded body
            operation: Name used in log entries

        Returns:
            Parsed JSON response

        Raises:
            AuthenticationError: On 4xx responses, or when retries are exhausted
        """
        last_error: Exception | None = None

        for attempt in range(TOKEN_MAX_RETRIES):
            try:
                response = self._session.post(
                    self.token_url, data=form, timeout=TOKEN_TIMEOUT_SECONDS
                )
            except requests.exceptions.RequestException as e:
                last_error = e
            else:
                if response.ok:
                    return response.json()

                if response.status_code < 500:
                    error, description = self._parse_error(response)
                    logger.warning(
                        "oauth_token_request_rejected",
                        operation=operation,
                        status_code=response.status_code,
                        error=error,
                    )
                    raise AuthenticationError(
                        f"Google rejected the {operation} request ({error}): {description}. "
                        "Please sign in again."
                    )
                last_error = AuthenticationError(
                    f"Google token endpoint returned {response.status_code}"
                )

            if attempt < TOKEN_MAX_RETRIES - 1:
                delay = TOKEN_RETRY_DELAYS[attempt]
                jitter = delay * 0.2 * (2 * random.random() - 1)
                actual_delay = delay + jitter
                logger.warning(
                    "Token request failed, retrying",
                    operation=operation,
                    attempt=attempt + 1,
                    max_retries=TOKEN_MAX_RETRIES,
                    delay=actual_delay,
                    error=str(last_error),
                )
                time.sleep(actual_delay)

        logger.error(
            "Token request failed after retries",
            operation=operation,
            max_retries=TOKEN_MAX_RETRIES,
            error=str(last_error),
        )
        raise AuthenticationError(
            f"Could not reach Google's token endpoint for {operation}: {last_error}"
        ) from last_error

    @staticmethod
    def _parse_error(response: requests.Response) -> tuple[str, str]:
        """Extract (error, error_description) from an OAuth error body."""
        try:
            body = response.json()
        except ValueError:
            return ("unknown_error", response.text[:200])
        if not isinstance(body, dict):
            return ("unknown_error", str(body)[:200])
        return (
            str(body.get("error", "unknown_error")),
            str(body.get("error_description", "no description")),
        )
