"""FastAPI dependency: get_current_actor.

Usage in any protected router:
    from src.p2p_gateway.auth.dependencies import get_current_actor

    @router.get("/protected")
    async def protected(actor: Actor = Depends(get_current_actor)):
        ...
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.p2p_common.errors import InvalidCredentialsError
from src.p2p_gateway.auth.jwt_handler import decode_token
from src.p2p_gateway.auth.permissions import Actor

# Tokens come from the host identity service; tokenUrl only feeds Swagger UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """Validate the Bearer token and return the calling Actor.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    try:
        payload = decode_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None
    return Actor(id=str(payload["sub"]), roles=frozenset(payload["roles"]))
