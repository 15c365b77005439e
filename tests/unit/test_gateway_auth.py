"""Unit tests for JWT verification, the actor dependency and permission checks."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from config.settings import settings
from src.p2p_common.errors import InvalidCredentialsError, NotAuthorizedError
from src.p2p_gateway.auth.dependencies import get_current_actor
from src.p2p_gateway.auth.jwt_handler import decode_token
from src.p2p_gateway.auth.permissions import (
    AUDIT_VIEW,
    DISPUTE_RESOLVE,
    SWEEP_RUN,
    Actor,
    RoleAuthorizer,
    require_owner_or_permission,
    require_permission,
)


def _token(secret: str | None = None, **claims: object) -> str:
    payload: dict[str, object] = {
        "sub": "user-1",
        "exp": datetime.now(UTC) + timedelta(minutes=5),
    }
    payload.update(claims)
    return jwt.encode(payload, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class TestDecodeToken:
    def test_valid_token_without_roles(self) -> None:
        payload = decode_token(_token())
        assert payload["sub"] == "user-1"
        assert payload["roles"] == []

    def test_single_role_string_normalized(self) -> None:
        assert decode_token(_token(roles="support"))["roles"] == ["support"]

    def test_explicit_access_type_accepted(self) -> None:
        assert decode_token(_token(type="access"))["sub"] == "user-1"

    def test_refresh_token_rejected(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            decode_token(_token(type="refresh"))

    def test_expired_token_rejected(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            decode_token(_token(exp=datetime.now(UTC) - timedelta(seconds=1)))

    def test_wrong_secret_rejected(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            decode_token(_token(secret="someone-else"))

    def test_missing_sub_rejected(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            decode_token(_token(sub=""))

    def test_malformed_roles_rejected(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            decode_token(_token(roles=[1, 2]))

    def test_garbage_rejected(self) -> None:
        with pytest.raises(InvalidCredentialsError):
            decode_token("not-a-jwt")


class TestGetCurrentActor:
    async def test_builds_actor(self) -> None:
        actor = await get_current_actor(_token(roles=["admin"]))
        assert actor == Actor(id="user-1", roles=frozenset({"admin"}))

    async def test_invalid_token_is_401(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await get_current_actor("bad")
        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


class TestPermissions:
    def test_admin_has_everything(self) -> None:
        authorizer = RoleAuthorizer()
        admin = Actor("a", frozenset({"admin"}))
        assert authorizer.has_permission(admin, SWEEP_RUN)
        assert authorizer.has_permission(admin, DISPUTE_RESOLVE)

    def test_support_resolves_but_cannot_sweep(self) -> None:
        authorizer = RoleAuthorizer()
        support = Actor("s", frozenset({"support"}))
        assert authorizer.has_permission(support, DISPUTE_RESOLVE)
        assert not authorizer.has_permission(support, SWEEP_RUN)

    def test_plain_user_has_nothing(self) -> None:
        assert not RoleAuthorizer().has_permission(Actor("u"), AUDIT_VIEW)

    def test_custom_role_table(self) -> None:
        authorizer = RoleAuthorizer({"auditor": frozenset({AUDIT_VIEW})})
        assert authorizer.has_permission(Actor("x", frozenset({"auditor"})), AUDIT_VIEW)

    def test_require_permission_raises(self) -> None:
        with pytest.raises(NotAuthorizedError):
            require_permission(RoleAuthorizer(), Actor("u"), SWEEP_RUN)

    def test_owner_passes_without_permission(self) -> None:
        require_owner_or_permission(RoleAuthorizer(), Actor("u"), ("u", "v"), AUDIT_VIEW)
        with pytest.raises(NotAuthorizedError):
            require_owner_or_permission(RoleAuthorizer(), Actor("w"), ("u", "v"), AUDIT_VIEW)
