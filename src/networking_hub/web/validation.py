"""Identity checks shared by the HTTP and live routes.

A google_id is the numeric subject of a Google account: 10 to 32 digits.
Every per-user request names its caller in the ``X-Google-Id`` header, and
the caller may only touch their own rows.
"""

import regex
from fastapi import HTTPException

GOOGLE_ID_PATTERN = regex.compile(r"^\d{10,32}$")
REGEX_TIMEOUT = 1.0

CALLER_HEADER = "X-Google-Id"


def is_valid_google_id(value: str | None) -> bool:
    if not value:
        return False
    try:
        return GOOGLE_ID_PATTERN.match(value, timeout=REGEX_TIMEOUT) is not None
    except TimeoutError:
        return False


def require_google_id(google_id: str) -> str:
    """Return the google_id or raise a 400 when it is malformed."""
    if not is_valid_google_id(google_id):
        raise HTTPException(status_code=400, detail="Invalid user ID format")
    return google_id


def require_caller(caller_id: str | None) -> str:
    """Return the caller id or raise a 401 when the header is missing."""
    if not caller_id:
        raise HTTPException(status_code=401, detail=f"Missing {CALLER_HEADER} header")
    return caller_id


def require_caller_match(google_id: str, caller_id: str) -> None:
    """Raise a 403 when the caller header names a different user."""
    if caller_id != google_id:
        raise HTTPException(status_code=403, detail="Not allowed to access another user's data")
