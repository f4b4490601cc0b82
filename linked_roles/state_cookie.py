"""
Signed correlation cookie (clientState). The value is an HS256 JWT carrying the state and an exp,
so tampering and expiry are both detected server-side, independent of the browser's max_age.
"""
import hmac
import logging
import time

import jwt

from linked_roles.config import STATE_COOKIE_MAX_AGE

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"


def sign_state(state: str, secret: str, max_age: int = STATE_COOKIE_MAX_AGE, now: int | None = None) -> str:
    """Cookie value for the given correlation token."""
    issued = int(time.time()) if now is None else now
    token = jwt.encode({"state": state, "iat": issued, "exp": issued + max_age}, secret, algorithm=_ALGORITHM)
    if isinstance(token, bytes):
        token = token.decode("utf-8")
    return token


def read_state(cookie_value: str | None, secret: str) -> str | None:
    """Correlation token from a signed cookie, or None if missing, expired or tampered."""
    if not cookie_value:
        return None
    try:
        claims = jwt.decode(cookie_value, secret, algorithms=[_ALGORITHM])
    except jwt.InvalidTokenError as e:
        logger.debug("State cookie rejected: %s", e)
        return None
    state = claims.get("state")
    return state if isinstance(state, str) else None


def state_matches(cookie_state: str | None, returned_state: str | None) -> bool:
    """Exact, constant-time comparison; anything missing never matches."""
    if not cookie_state or not returned_state:
        return False
    return hmac.compare_digest(cookie_state.encode("utf-8"), returned_state.encode("utf-8"))
