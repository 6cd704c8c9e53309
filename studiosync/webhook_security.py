"""
Webhook Security Module

Verification helpers for inbound push notifications.
Google Calendar push channels carry no signature; the shared secret is
the channel token set at watch time and echoed in X-Goog-Channel-Token.
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def verify_google_channel_token(
    request: Request, expected_token: Optional[str], raise_on_failure: bool = True
) -> bool:
    """
    Check X-Goog-Channel-Token against the configured channel token.

    Args:
        request: FastAPI request object
        expected_token: CALENDAR_CHANNEL_TOKEN; verification is skipped when unset
        raise_on_failure: If True, raises HTTPException(401) on mismatch

    Returns:
        True if the token matches or no token is configured
    """
    if not expected_token:
        return True

    received = request.headers.get("X-Goog-Channel-Token", "")
    if not received:
        logger.warning("🚫 Google Calendar notification missing channel token")
        if raise_on_failure:
            raise HTTPException(status_code=401, detail="Missing channel token")
        return False

    if not constant_time_compare(expected_token, received):
        logger.warning("🚫 Google Calendar notification channel token mismatch")
        if raise_on_failure:
            raise HTTPException(status_code=401, detail="Invalid channel token")
        return False

    return True
