"""Time-ordered string IDs for offers, trades and disputes.

An ID is a 64-bit integer rendered in decimal:

    | 41 bits ms since 2023-11-14 | 10 bits node | 12 bits sequence |

IDs issued by one node strictly increase, and IDs from different nodes never
collide as long as each API process sharing a database has its own
P2P_NODE_ID.
"""

import threading
import time
from collections.abc import Callable

from config.settings import settings

EPOCH_MS = 1_700_000_000_000
NODE_BITS = 10
SEQUENCE_BITS = 12
MAX_NODE_ID = (1 << NODE_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1


def _wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class SnowflakeIdGenerator:
    def __init__(self, node_id: int = 0, clock: Callable[[], int] = _wall_clock_ms) -> None:
        if not 0 <= node_id <= MAX_NODE_ID:
            raise ValueError(f"node_id must be 0-{MAX_NODE_ID}, got {node_id}")
        self._node_id = node_id
        self._clock = clock
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_id(self) -> str:
        with self._lock:
            # A clock that steps backwards is treated as standing still
            now = max(self._clock(), self._last_ms)
            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    now = self._next_ms_after(now)
            else:
                self._sequence = 0
            self._last_ms = now
            value = (
                (now - EPOCH_MS) << (NODE_BITS + SEQUENCE_BITS)
                | self._node_id << SEQUENCE_BITS
                | self._sequence
            )
            return str(value)

    def _next_ms_after(self, ms: int) -> int:
        while (now := self._clock()) <= ms:
            time.sleep(0.0001)
        return now


_generator = SnowflakeIdGenerator(settings.P2P_NODE_ID)


def generate_id() -> str:
    return _generator.next_id()
