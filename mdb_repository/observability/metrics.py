"""
Timing and failure counts for repository operations.

Every public operation of a repository is wrapped in ``timed_operation``.
Measurements are kept per operation and per repository (database and
collection), so one process serving several collections can tell them apart.

Usage:
    collector = get_metrics_collector()
    collector.summary()["repository.add_or_update"]["count"]
    collector.snapshot("repository.")       # per-collection detail
"""

import functools
import inspect
import threading
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, TypeVar

R = TypeVar("R")

Tags = tuple[tuple[str, str], ...]


@dataclass
class OperationStats:
    """Accumulated measurements for one operation under one set of tags."""

    operation: str
    tags: Tags = ()
    count: int = 0
    failures: int = 0
    total_ms: float = 0.0
    min_ms: Optional[float] = None
    max_ms: float = 0.0
    last_recorded: Optional[datetime] = field(default=None, compare=False)

    @property
    def label(self) -> str:
        """``operation`` followed by its tags, e.g. ``repository.count[collection=Person]``."""
        if not self.tags:
            return self.operation
        return f"{self.operation}[{','.join(f'{k}={v}' for k, v in self.tags)}]"

    @property
    def mean_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0

    def record(self, duration_ms: float, success: bool) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)
        if not success:
            self.failures += 1
        self.last_recorded = datetime.now()

    def absorb(self, other: "OperationStats") -> None:
        """Fold ``other`` into these stats."""
        self.count += other.count
        self.failures += other.failures
        self.total_ms += other.total_ms
        if other.min_ms is not None:
            self.min_ms = other.min_ms if self.min_ms is None else min(self.min_ms, other.min_ms)
        self.max_ms = max(self.max_ms, other.max_ms)
        if other.last_recorded and (
            self.last_recorded is None or other.last_recorded > self.last_recorded
        ):
            self.last_recorded = other.last_recorded

    def as_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "tags": dict(self.tags),
            "count": self.count,
            "failures": self.failures,
            "mean_ms": round(self.mean_ms, 2),
            "min_ms": round(self.min_ms, 2) if self.min_ms is not None else 0.0,
            "max_ms": round(self.max_ms, 2),
            "last_recorded": self.last_recorded.isoformat() if self.last_recorded else None,
        }


class MetricsCollector:
    """
    Thread-safe store of OperationStats.

    At most ``max_entries`` operation/tag combinations are kept; recording a
    new combination beyond that drops the one recorded least recently.
    """

    def __init__(self, max_entries: int = 10000):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._entries: OrderedDict[tuple[str, Tags], OperationStats] = OrderedDict()
        self._lock = threading.Lock()
        self._max_entries = max_entries

    def record(
        self, operation: str, duration_ms: float, success: bool = True, **tags: Any
    ) -> None:
        tag_items: Tags = tuple(sorted((k, str(v)) for k, v in tags.items()))
        key = (operation, tag_items)
        with self._lock:
            stats = self._entries.get(key)
            if stats is None:
                if len(self._entries) >= self._max_entries:
                    self._entries.popitem(last=False)
                stats = self._entries[key] = OperationStats(operation, tag_items)
            else:
                self._entries.move_to_end(key)
            stats.record(duration_ms, success)

    def snapshot(self, prefix: str = "") -> dict[str, dict[str, Any]]:
        """Per operation/tag stats whose operation name starts with ``prefix``."""
        with self._lock:
            return {
                stats.label: stats.as_dict()
                for (operation, _), stats in self._entries.items()
                if operation.startswith(prefix)
            }

    def summary(self) -> dict[str, dict[str, Any]]:
        """Stats per operation, added up across tags."""
        with self._lock:
            totals: dict[str, OperationStats] = {}
            for (operation, _), stats in self._entries.items():
                totals.setdefault(operation, OperationStats(operation)).absorb(stats)
        return {operation: stats.as_dict() for operation, stats in totals.items()}

    def count(self, operation: str) -> int:
        """Number of recorded calls of ``operation`` under any tags."""
        with self._lock:
            return sum(s.count for (name, _), s in self._entries.items() if name == operation)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics_collector() -> MetricsCollector:
    """Process-wide collector used by ``timed_operation``."""
    global _collector
    if _collector is None:
        with _collector_lock:
            if _collector is None:
                _collector = MetricsCollector()
    return _collector


def timed_operation(
    operation: str,
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R]]]:
    """
    Record the duration and outcome of an async method.

    When the bound object has a ``metric_tags`` mapping (repositories expose
    their database and collection there) the measurement is tagged with it.
    Any exception, cancellation included, counts as a failure and is
    re-raised.

    Usage:
        @timed_operation("repository.remove")
        async def remove(self, id):
            ...
    """

    def decorator(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"timed_operation needs an async function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> R:
            tags = getattr(args[0], "metric_tags", None) if args else None
            start = time.perf_counter()
            success = False
            try:
                result = await func(*args, **kwargs)
                success = True
                return result
            finally:
                get_metrics_collector().record(
                    operation,
                    (time.perf_counter() - start) * 1000,
                    success,
                    **(tags or {}),
                )

        return wrapper

    return decorator
