"""Password hashing and access tokens.

Passwords are hashed with bcrypt. Access tokens are a base64url JSON payload
signed with HMAC-SHA256 over SECRET_KEY:

    <payload>.<hexdigest>

The payload carries the user id (sub), role and expiry (exp, unix seconds).
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Optional

import bcrypt

from rukun.config import get_settings
from rukun.services.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def _to_bcrypt_secret(password: str) -> bytes:
    """bcrypt only uses the first 72 bytes of the password."""
    secret = password.encode("utf-8")
    if len(secret) > 72:
        secret = secret[:72]
    return secret


def hash_password(password: str) -> str:
    """Return a bcrypt hash as a UTF-8 string."""
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(_to_bcrypt_secret(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _sign(payload: str) -> str:
    return hmac.new(
        key=get_settings().secret_key.encode(),
        msg=payload.encode(),
        digestmod=hashlib.sha256,
    ).hexdigest()


def create_access_token(user_id: int, role: str, ttl_seconds: Optional[int] = None) -> str:
    """Issue a signed access token for a user.

    Args:
        user_id: User ID stored as the token subject
        role: Role value at issuance time
        ttl_seconds: Lifetime override (default: TOKEN_TTL_SECONDS)

    Returns:
        Token string for the Authorization: Bearer header
    """
    ttl = ttl_seconds if ttl_seconds is not None else get_settings().token_ttl_seconds
    claims = {"sub": user_id, "role": role, "exp": int(time.time()) + ttl}
    payload = _b64encode(json.dumps(claims, separators=(",", ":")).encode())
    return f"{payload}.{_sign(payload)}"


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify a token signature and expiry and return its claims.

    Raises:
        UnauthorizedError: If the token is malformed, tampered with or expired
    """
    try:
        payload, signature = token.split(".", 1)
    except (AttributeError, ValueError):
        raise UnauthorizedError("Invalid token") from None

    if not hmac.compare_digest(_sign(payload), signature):
        logger.debug("Token signature mismatch")
        raise UnauthorizedError("Invalid token")

    try:
        claims = json.loads(_b64decode(payload))
    except (ValueError, json.JSONDecodeError):
        raise UnauthorizedError("Invalid token") from None

    if not isinstance(claims, dict) or "sub" not in claims:
        raise UnauthorizedError("Invalid token")
    if int(claims.get("exp", 0)) < int(time.time()):
        raise UnauthorizedError("Token expired")
    return claims


__all__ = ["hash_password", "verify_password", "create_access_token", "decode_access_token"]
