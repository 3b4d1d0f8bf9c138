"""Shared API dependencies."""

import logging
import re
from uuid import uuid4

from fastapi import Request, Response

from core import config as core_config

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session_id"


def validate_session_id(session_id: str) -> bool:
    """Validate that session_id is safe to use in cookies.

    Only allows alphanumeric characters and hyphens, with reasonable length.

    Examples:
        >>> validate_session_id("abc123def456")
        True
        >>> validate_session_id("bad;value=malicious")
        False
    """
    if not session_id or not isinstance(session_id, str):
        return False

    # Length check: reasonable session ID length (8-128 characters)
    if len(session_id) < 8 or len(session_id) > 128:
        return False

    if not re.match(r"^[a-zA-Z0-9-]+$", session_id):
        return False

    return True


async def get_session_id(request: Request) -> str:
    """Return the caller's session id, minting a new one if the cookie is absent or unsafe."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if not session_id or not validate_session_id(session_id):
        session_id = uuid4().hex
        logger.debug(f"Issued new session {session_id}")
    return session_id


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_id,
        httponly=core_config.COOKIE_HTTPONLY,
        secure=core_config.COOKIE_SECURE,
        samesite=core_config.COOKIE_SAMESITE,
        max_age=core_config.SESSION_COOKIE_MAX_AGE,
    )
