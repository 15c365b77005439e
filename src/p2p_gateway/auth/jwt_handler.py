"""JWT verification.

Tokens are issued by the host identity service with the shared HS256
JWT_SECRET; this service only verifies them and reads `sub` and `roles`.

MVP NOTE: No token revocation. A token stays valid until `exp`.
"""

from typing import Any

from jose import JWTError, jwt

from config.settings import settings
from src.p2p_common.errors import InvalidCredentialsError

_ALGORITHM = settings.JWT_ALGORITHM  # "HS256"


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Returns:
        Decoded payload with at minimum {"sub": ...}; "roles" is optional.

    Raises:
        InvalidCredentialsError: signature invalid, token expired, wrong
            type, or malformed roles claim.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],  # Explicit list prevents algorithm confusion
        )
    except JWTError:
        raise InvalidCredentialsError() from None

    # Host tokens may omit "type"; a refresh token must never pass as access
    if payload.get("type", "access") != "access":
        raise InvalidCredentialsError()
    if not payload.get("sub"):
        raise InvalidCredentialsError()

    roles = payload.get("roles", [])
    if isinstance(roles, str):
        roles = [roles]
    if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
        raise InvalidCredentialsError()
    payload["roles"] = roles
    return payload
