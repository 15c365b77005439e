"""LedgerApplicationService — balance reads for users, host movements for operators.

Reads run without an explicit transaction. Deposit and withdraw commit their
own transaction; offer and trade flows call the LedgerProtocol directly inside
theirs.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.tracing import OperationTracer, ensure_tracer
from src.p2p_common.unit_of_work import committing
from src.p2p_gateway.auth.permissions import (
    LEDGER_MANAGE,
    Actor,
    AuthorizerProtocol,
    RoleAuthorizer,
    require_permission,
)
from src.p2p_ledger.application.schemas import (
    BalanceResponse,
    BalancesResponse,
    LedgerEntryItem,
    LedgerResponse,
    cursor_decode,
    cursor_encode,
)
from src.p2p_ledger.domain.models import LedgerRef
from src.p2p_ledger.domain.repository import LedgerProtocol
from src.p2p_ledger.infrastructure.persistence import LedgerRepository


def host_ref(reference: str, movement: str) -> LedgerRef:
    return LedgerRef("HOST", reference, f"host:{reference}:{movement}")


class LedgerApplicationService:
    def __init__(
        self,
        ledger: LedgerProtocol | None = None,
        authorizer: AuthorizerProtocol | None = None,
    ) -> None:
        self._ledger: LedgerProtocol = ledger or LedgerRepository()
        self._authorizer: AuthorizerProtocol = authorizer or RoleAuthorizer()

    async def get_balances(self, db: AsyncSession, actor: Actor) -> BalancesResponse:
        accounts = await self._ledger.list_balances(db, actor.id)
        return BalancesResponse(items=[BalanceResponse.from_balance(a) for a in accounts])

    async def list_ledger(
        self,
        db: AsyncSession,
        actor: Actor,
        asset: str | None,
        cursor: str | None,
        limit: int,
    ) -> LedgerResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._ledger.list_entries(
            db, actor.id, asset.upper() if asset else None, cursor_id, limit + 1
        )
        has_more = len(entries) > limit
        page = entries[:limit]
        return LedgerResponse(
            items=[LedgerEntryItem.from_entry(e) for e in page],
            next_cursor=cursor_encode(page[-1].id) if has_more and page else None,
            has_more=has_more,
        )

    async def deposit(
        self,
        db: AsyncSession,
        actor: Actor,
        user_id: str,
        asset: str,
        amount: int,
        reference: str,
        tracer: OperationTracer | None = None,
    ) -> BalanceResponse:
        tracer = ensure_tracer(tracer, "deposit")
        require_permission(self._authorizer, actor, LEDGER_MANAGE)
        async with committing(db, tracer):
            account = await self._ledger.deposit(
                db, user_id, asset.upper(), amount, host_ref(reference, "deposit")
            )
        tracer.success("Deposited %s %s to %s (ref %s)", amount, asset, user_id, reference)
        return BalanceResponse.from_balance(account)

    async def withdraw(
        self,
        db: AsyncSession,
        actor: Actor,
        user_id: str,
        asset: str,
        amount: int,
        reference: str,
        tracer: OperationTracer | None = None,
    ) -> BalanceResponse:
        tracer = ensure_tracer(tracer, "withdraw")
        require_permission(self._authorizer, actor, LEDGER_MANAGE)
        async with committing(db, tracer):
            account = await self._ledger.withdraw(
                db, user_id, asset.upper(), amount, host_ref(reference, "withdraw")
            )
        tracer.success("Withdrew %s %s from %s (ref %s)", amount, asset, user_id, reference)
        return BalanceResponse.from_balance(account)
