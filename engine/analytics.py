"""
Privacy-preserving error analytics.

Records which kinds of errors happen during which operations. Never stores
track names, artists, catalog IDs or error messages.
"""
from __future__ import annotations
import json
import time
from collections import Counter, deque
from dataclasses import dataclass, asdict
from typing import Deque, Dict, Optional

from logging_config import get_logger
from .errors import classify_exception

logger = get_logger(__name__)


@dataclass(frozen=True)
class ErrorEvent:
    timestamp: float
    kind: str
    operation: Optional[str]
    retryable: bool


class ErrorAnalytics:
    """Error-tracking sink shared by the resolver, the favorite cache and the reconciler."""

    def __init__(self, max_events: int = 100, clock=time.time):
        self._events: Deque[ErrorEvent] = deque(maxlen=max_events)
        self._counts: Counter = Counter()
        self._by_operation: Dict[str, Counter] = {}
        self._clock = clock

    def record(self, error: BaseException, operation: Optional[str] = None) -> None:
        classified = classify_exception(error)
        event = ErrorEvent(
            timestamp=self._clock(),
            kind=classified.kind.value,
            operation=operation,
            retryable=classified.retryable,
        )
        self._events.append(event)
        self._counts[event.kind] += 1
        if operation:
            self._by_operation.setdefault(operation, Counter())[event.kind] += 1
        logger.debug(f"Error recorded: {event.kind} in {operation or 'unknown'}")

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def count(self, kind: str) -> int:
        return self._counts.get(kind, 0)

    def summary(self, now: Optional[float] = None) -> Dict:
        now = self._clock() if now is None else now
        last_24h = sum(1 for e in self._events if now - e.timestamp < 86400)
        return {
            "total_errors": self.total,
            "errors_last_24h": last_24h,
            "by_kind": dict(self._counts.most_common()),
            "by_operation": {op: dict(c) for op, c in self._by_operation.items()},
            "retryable_share": (
                sum(1 for e in self._events if e.retryable) / len(self._events)
                if self._events else 0.0
            ),
        }

    def export_json(self) -> str:
        return json.dumps(
            {"summary": self.summary(), "events": [asdict(e) for e in self._events]},
            indent=2,
        )

    def clear(self) -> None:
        self._events.clear()
        self._counts.clear()
        self._by_operation.clear()
