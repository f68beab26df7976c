"""Base Gmail REST API client with retry logic and error handling.

This module provides an HTTP client for the Gmail API, including:
- Automatic retry with exponential backoff for transient errors
- Handling of rate limits (429 responses) and a client-side token bucket
- Request/response logging for debugging

The client serves many users, so the bearer token is passed per call
rather than held by the client.

Usage:
    from networking_hub.gmail.client import GmailClient

    client = GmailClient()
    profile = client.get("/users/me/profile", access_token=credential.access_token)
    print(profile["emailAddress"])
"""

import random
import time
from typing import Any

import requests

from networking_hub.core.errors import AuthenticationError, GmailAPIError
from networking_hub.core.logging import get_logger
from networking_hub.core.rate_limiter import get_bucket

logger = get_logger(__name__)

# Gmail API base URL
GMAIL_BASE_URL = "https://gmail.googleapis.com/gmail/v1"

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAYS = [1.0, 2.0, 4.0]  # Exponential backoff delays in seconds

# Rate limiting configuration
GMAIL_RATE = 10.0  # requests per second
GMAIL_CAPACITY = 10  # burst capacity


class GmailClient:
    """Gmail API client with retry logic and error handling.

    This client wraps requests to the Gmail API with:
    - Retry logic with exponential backoff for 5xx errors and timeouts
    - Handling of 429 rate limit responses (Retry-After honored)
    - Structured logging of requests and errors

    Attributes:
        base_url: Gmail API base URL
        max_retries: Maximum number of retry attempts
        retry_delays: List of delay times (seconds) for each retry

    Example:
        client = GmailClient()

        listing = client.get(
            "/users/me/messages",
            access_token=token,
            params={"q": "after:1700000000", "maxResults": 100},
        )
    """

    def __init__(
        self,
        base_url: str = GMAIL_BASE_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delays: list[float] | None = None,
        requests_per_second: float = GMAIL_RATE,
    ):
        """Initialize the Gmail API client.

        Args:
            base_url: Gmail API base URL
            max_retries: Maximum number of retry attempts for transient errors
            retry_delays: List of delay times in seconds for each retry
            requests_per_second: Client-side rate limit shared by all users
        """
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delays = retry_delays or DEFAULT_RETRY_DELAYS

        # Create a session for connection pooling
        self.session = requests.Session()

        self._rate_bucket = get_bucket(
            name="gmail",
            rate=requests_per_second,
            capacity=max(1, int(requests_per_second)),
        )

        logger.debug(
            "GmailClient initialized",
            base_url=self.base_url,
            max_retries=self.max_retries,
        )

    def _get_headers(self, access_token: str) -> dict[str, str]:
        """Build request headers for a user's access token.

        Raises:
            AuthenticationError: If no token is given
        """
        if not access_token:
            raise AuthenticationError("No Gmail access token available. Please sign in again.")
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    def _make_url(self, endpoint: str) -> str:
        """Construct the full URL for an endpoint.

        Args:
            endpoint: API endpoint path (e.g., "/users/me/profile")

        Returns:
            Full URL including base URL
        """
        if endpoint.startswith("http"):
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return self.base_url + endpoint

    def _handle_error_response(
        self, response: requests.Response, method: str, endpoint: str
    ) -> None:
        """Handle error responses from the Gmail API.

        Args:
            response: The HTTP response object
            method: HTTP method used
            endpoint: API endpoint called

        Raises:
            AuthenticationError: For 401 responses
            GmailAPIError: For everything else
        """
        reason = "unknown"
        try:
            error_data = response.json()
            error_info = error_data.get("error", {})
            error_message = error_info.get("message", response.text)
            errors = error_info.get("errors") or []
            if errors:
                reason = errors[0].get("reason", reason)
            else:
                reason = error_info.get("status", reason)
        except (ValueError, AttributeError):
            error_message = response.text or f"HTTP {response.status_code}"

        logger.error(
            "Gmail API error",
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
            reason=reason,
            error_message=str(error_message)[:200],
        )

        if response.status_code == 401:
            raise AuthenticationError(
                f"Gmail rejected the access token (401): {error_message}. "
                "The token may have expired or been revoked. Please sign in again."
            )
        elif response.status_code == 403:
            raise GmailAPIError(
                f"Permission denied (403): {error_message}. "
                "Check that the Gmail API is enabled and the gmail.readonly scope was granted.",
                status_code=403,
                reason=reason,
            )
        elif response.status_code == 404:
            raise GmailAPIError(
                f"Resource not found (404): {error_message}. "
                f"The endpoint '{endpoint}' may be incorrect or the message was deleted.",
                status_code=404,
                reason=reason,
            )
        elif response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "unknown")
            raise GmailAPIError(
                f"Gmail rate limit exceeded (429). Retry after: {retry_after} seconds.",
                status_code=429,
                reason=reason,
            )
        else:
            raise GmailAPIError(
                f"Gmail API error ({response.status_code}): {error_message}",
                status_code=response.status_code,
                reason=reason,
            )

    def _should_retry(self, response: requests.Response, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            response: The HTTP response object
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried
        """
        if attempt >= self.max_retries:
            return False
        return response.status_code == 429 or 500 <= response.status_code < 600

    def _get_retry_delay(self, response: requests.Response, attempt: int) -> float:
        """Get the delay before retrying a request.

        Includes jitter (±20%) to prevent retry storms when many push
        notifications trigger fetches at once.

        Args:
            response: The HTTP response object
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds before retrying (with jitter)
        """
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    base_delay = float(retry_after)
                    jitter = base_delay * 0.2 * (2 * random.random() - 1)
                    return base_delay + jitter
                except ValueError:
                    pass  # HTTP-date form, fall back to backoff

        base_delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
        jitter = base_delay * 0.2 * (2 * random.random() - 1)
        return base_delay + jitter

    def request(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        timeout: float = 30.0,
    ) -> dict[str, Any]:
        """Make an HTTP request to the Gmail API with retry logic.

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint path
            access_token: The user's OAuth access token
            params: URL query parameters
            json: JSON body for POST requests
            timeout: Request timeout in seconds

        Returns:
            Parsed JSON response as a dictionary

        Raises:
            AuthenticationError: When the token is missing or rejected (401)
            GmailAPIError: For other API errors, timeouts and connection failures
            RateLimitExceeded: When the client-side bucket would wait too long
        """
        url = self._make_url(endpoint)
        headers = self._get_headers(access_token)
        last_response = None

        for attempt in range(self.max_retries + 1):
            try:
                self._rate_bucket.consume_sync()

                logger.debug(
                    "Gmail API request",
                    method=method,
                    endpoint=endpoint,
                    attempt=attempt + 1,
                    params=list(params.keys()) if params else None,
                )

                response = self.session.request(
                    method=method,
                    url=url,
                    headers=headers,
                    params=params,
                    json=json,
                    timeout=timeout,
                )
                last_response = response

                if response.status_code < 400:
                    if response.status_code == 204 or not response.content:
                        return {}
                    return response.json()

                if self._should_retry(response, attempt):
                    delay = self._get_retry_delay(response, attempt)
                    logger.warning(
                        "Retrying Gmail API request",
                        method=method,
                        endpoint=endpoint,
                        status_code=response.status_code,
                        attempt=attempt + 1,
                        max_retries=self.max_retries,
                        delay=delay,
                    )
                    time.sleep(delay)
                    continue

                self._handle_error_response(response, method, endpoint)

            except requests.exceptions.Timeout:
                if attempt < self.max_retries:
                    delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
                    logger.warning(
                        "Gmail API request timed out, retrying",
                        method=method,
                        endpoint=endpoint,
                        attempt=attempt + 1,
                        delay=delay,
                    )
                    time.sleep(delay)
                    continue
                raise GmailAPIError(
                    f"Request to {endpoint} timed out after {timeout}s and "
                    f"{self.max_retries} retries. Gmail may be experiencing issues.",
                    status_code=None,
                ) from None

            except requests.exceptions.ConnectionError as e:
                if attempt < self.max_retries:
                    delay = self.retry_delays[min(attempt, len(self.retry_delays) - 1)]
                    logger.warning(
                        "Gmail API connection error, retrying",
                        method=method,
                        endpoint=endpoint,
                        attempt=attempt + 1,
                        error=str(e),
                        delay=delay,
                    )
                    time.sleep(delay)
                    continue
                raise GmailAPIError(
                    f"Connection to Gmail failed: {e}. "
                    "Check your internet connection and try again.",
                    status_code=None,
                ) from e

        # All retries exhausted
        if last_response is not None:
            self._handle_error_response(last_response, method, endpoint)

        raise GmailAPIError(
            f"Request to {endpoint} failed after {self.max_retries} retries",
            status_code=None,
        )

    def get(
        self,
        endpoint: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        timeout: float = 30.0,
    ) -> dict[str, Any]:
        """Make a GET request to the Gmail API."""
        return self.request("GET", endpoint, access_token, params=params, timeout=timeout)

    def post(
        self,
        endpoint: str,
        access_token: str,
        json: dict[str, Any] | None = None,
        timeout: float = 30.0,
    ) -> dict[str, Any]:
        """Make a POST request to the Gmail API."""
        return self.request("POST", endpoint, access_token, json=json, timeout=timeout)

    def get_profile(self, access_token: str) -> dict[str, Any]:
        """Get the mailbox profile (emailAddress, messagesTotal, historyId).

        Raises:
            GmailAPIError: If the request fails or no address is returned
        """
        profile = self.get("/users/me/profile", access_token)
        if not profile.get("emailAddress"):
            raise GmailAPIError(
                "Gmail profile response did not include 'emailAddress'.",
                status_code=None,
            )
        return profile
