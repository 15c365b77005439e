"""Actors and permission checks.

The identity provider issues the bearer token; this service only reads the
`sub` and `roles` claims and asks an Authorizer whether an actor may perform a
named action. The host application may swap in its own Authorizer (e.g. one
backed by its RBAC tables) as long as it satisfies AuthorizerProtocol.
"""

from dataclasses import dataclass, field
from typing import Protocol

from src.p2p_common.errors import NotAuthorizedError

# Permission names
OFFER_MANAGE = "p2p.offer.manage"
TRADE_MANAGE = "p2p.trade.manage"
TRADE_VIEW = "p2p.trade.view"
DISPUTE_RESOLVE = "p2p.dispute.resolve"
LEDGER_MANAGE = "p2p.ledger.manage"
AUDIT_VIEW = "p2p.audit.view"
SWEEP_RUN = "p2p.sweep.run"

ALL_PERMISSIONS = frozenset(
    {OFFER_MANAGE, TRADE_MANAGE, TRADE_VIEW, DISPUTE_RESOLVE, LEDGER_MANAGE, AUDIT_VIEW, SWEEP_RUN}
)

DEFAULT_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": ALL_PERMISSIONS,
    "support": frozenset({DISPUTE_RESOLVE, TRADE_VIEW, AUDIT_VIEW}),
}


@dataclass(frozen=True)
class Actor:
    id: str
    roles: frozenset[str] = field(default_factory=frozenset)


class AuthorizerProtocol(Protocol):
    def has_permission(self, actor: Actor, action: str) -> bool: ...


class RoleAuthorizer:
    """Grants permissions by role name."""

    def __init__(self, role_permissions: dict[str, frozenset[str]] | None = None) -> None:
        self._role_permissions = role_permissions or DEFAULT_ROLE_PERMISSIONS

    def has_permission(self, actor: Actor, action: str) -> bool:
        return any(action in self._role_permissions.get(role, ()) for role in actor.roles)


def require_permission(authorizer: AuthorizerProtocol, actor: Actor, action: str) -> None:
    if not authorizer.has_permission(actor, action):
        raise NotAuthorizedError(actor.id, action)


def require_owner_or_permission(
    authorizer: AuthorizerProtocol, actor: Actor, owner_ids: tuple[str, ...], action: str
) -> None:
    """Pass when the actor is one of `owner_ids` or holds `action`."""
    if actor.id in owner_ids:
        return
    require_permission(authorizer, actor, action)
