"""Access token verification.

Tokens are issued by the account service; this API only checks the
signature, expiry and token type, then reads the caller identity.
"""

from typing import Any

from jose import JWTError, jwt

from orah.config import get_settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type (when present) == "access"
    - Presence of the ``sub`` and ``role`` claims

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type", "access") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    if not payload.get("sub") or not payload.get("role"):
        msg = "Token is missing identity claims"
        raise JWTError(msg)

    return payload
