"""Transaction boundary shared by the application services.

    async with committing(db, tracer):
        ...lock, validate, mutate...

Commits when the block completes; otherwise rolls back and re-raises. A
LedgerInvariantViolationError is logged at ERROR: it means a caller bug or a
race that row locking should have prevented, and needs investigation.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from src.p2p_common.errors import AppError, LedgerInvariantViolationError
from src.p2p_common.tracing import OperationTracer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def committing(db: AsyncSession, tracer: OperationTracer) -> AsyncIterator[None]:
    try:
        yield
        await db.commit()
    except LedgerInvariantViolationError as exc:
        await db.rollback()
        tracer.fail(exc.message)
        logger.error(
            "Ledger invariant violated during %s: %s details=%s",
            tracer.operation,
            exc.message,
            exc.details,
        )
        raise
    except AppError as exc:
        await db.rollback()
        tracer.fail(exc.message)
        raise
    except Exception as exc:
        await db.rollback()
        tracer.fail(f"{type(exc).__name__}: {exc}")
        raise
