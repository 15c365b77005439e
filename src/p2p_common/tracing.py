"""OperationTracer — explicit step/success/failure recorder for core operations.

Every core operation takes a tracer argument instead of reaching for an ambient
per-request handle. Events are kept in order on the tracer (handy in tests and
for attaching to error reports) and mirrored to the ``p2p.trace`` logger.

Usage:
    tracer = OperationTracer("create_trade")
    tracer.step("Locking offer %s", offer_id)
    ...
    tracer.success("Trade %s created", trade.id)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from src.p2p_common.datetime_utils import utc_now

logger = logging.getLogger("p2p.trace")


@dataclass(frozen=True)
class TraceEvent:
    kind: str  # STEP / SUCCESS / FAIL
    message: str
    at: datetime = field(default_factory=utc_now)


class OperationTracer:
    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.events: list[TraceEvent] = []

    def step(self, message: str, *args: object) -> None:
        self._record("STEP", logging.DEBUG, message, args)

    def success(self, message: str, *args: object) -> None:
        self._record("SUCCESS", logging.INFO, message, args)

    def fail(self, message: str, *args: object) -> None:
        self._record("FAIL", logging.WARNING, message, args)

    @property
    def failed(self) -> bool:
        return any(e.kind == "FAIL" for e in self.events)

    def messages(self, kind: str | None = None) -> list[str]:
        return [e.message for e in self.events if kind is None or e.kind == kind]

    def _record(self, kind: str, level: int, message: str, args: tuple[object, ...]) -> None:
        text = message % args if args else message
        self.events.append(TraceEvent(kind=kind, message=text))
        logger.log(level, "[%s] %s: %s", self.operation, kind, text)


def ensure_tracer(tracer: OperationTracer | None, operation: str) -> OperationTracer:
    return tracer if tracer is not None else OperationTracer(operation)
