"""In-process metrics for the repair loop.

Tracks how often each error category and strategy is attempted, how often
sessions end resolved or failed, how many iterations a resolution takes and
how long completion calls run. Nothing here is persisted; export with
``get_all_metrics()`` or ``to_prometheus_format()``.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from threading import Lock
from types import TracebackType
from typing import Any

LabelKey = tuple[tuple[str, str], ...]


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted(labels.items())) if labels else ()


def _format_labels(key: LabelKey, extra: dict[str, str] | None = None) -> str:
    pairs = [*key, *(extra or {}).items()]
    if not pairs:
        return ""
    return "{" + ",".join(f'{name}="{value}"' for name, value in pairs) + "}"


def _format_bound(bound: float) -> str:
    return "+Inf" if math.isinf(bound) else str(bound)


@dataclass(frozen=True)
class Sample:
    """One labelled value of a counter."""

    name: str
    labels: dict[str, str]
    value: float


class Counter:
    """Monotonic counter, optionally split by labels.

    Example:
        attempts = Counter("repair_loop_fix_attempts_total", "Fix attempts")
        attempts.inc(labels={"strategy": "targeted_fix"})
    """

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._series: dict[LabelKey, float] = {}
        self._lock = Lock()

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        """Add `value` to the series for `labels`.

        Raises:
            ValueError: If value is negative
        """
        if value < 0:
            raise ValueError("Counter can only increase")

        key = _label_key(labels)
        with self._lock:
            self._series[key] = self._series.get(key, 0) + value

    def get(self, labels: dict[str, str] | None = None) -> float:
        """Value of one series. No labels reads the unlabelled series."""
        with self._lock:
            return self._series.get(_label_key(labels), 0)

    def total(self) -> float:
        with self._lock:
            return sum(self._series.values())

    def samples(self) -> list[Sample]:
        with self._lock:
            return [Sample(self.name, dict(key), value) for key, value in self._series.items()]

    def render(self) -> list[str]:
        with self._lock:
            series = sorted(self._series.items())
        return [f"{self.name}{_format_labels(key)} {value}" for key, value in series]


@dataclass
class _Distribution:
    bucket_counts: list[int]
    count: int = 0
    sum: float = 0.0
    min: float = field(default=math.inf)
    max: float = field(default=-math.inf)


class Histogram:
    """Distribution of observed values over fixed upper bounds.

    Bucket counts are cumulative, so the ``+Inf`` bucket equals the number
    of observations.
    """

    DEFAULT_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, math.inf)

    def __init__(
        self,
        name: str,
        help_text: str = "",
        buckets: tuple[float, ...] | None = None,
    ) -> None:
        self.name = name
        self.help_text = help_text
        bounds = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        self.buckets = bounds if math.isinf(bounds[-1]) else (*bounds, math.inf)
        self._series: dict[LabelKey, _Distribution] = {}
        self._lock = Lock()

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        with self._lock:
            dist = self._series.setdefault(key, _Distribution([0] * len(self.buckets)))
            dist.count += 1
            dist.sum += value
            dist.min = min(dist.min, value)
            dist.max = max(dist.max, value)
            for index, bound in enumerate(self.buckets):
                if value <= bound:
                    dist.bucket_counts[index] += 1

    def get_stats(self, labels: dict[str, str] | None = None) -> dict[str, float]:
        """Count, sum, min, max and mean of one series (all zero when empty)."""
        with self._lock:
            dist = self._series.get(_label_key(labels))
            if dist is None or dist.count == 0:
                return {"count": 0, "sum": 0, "min": 0, "max": 0, "mean": 0}
            return {
                "count": dist.count,
                "sum": dist.sum,
                "min": dist.min,
                "max": dist.max,
                "mean": dist.sum / dist.count,
            }

    def get_buckets(self, labels: dict[str, str] | None = None) -> dict[float, int]:
        """Cumulative count per upper bound."""
        with self._lock:
            dist = self._series.get(_label_key(labels))
            counts = dist.bucket_counts if dist else [0] * len(self.buckets)
            return dict(zip(self.buckets, counts, strict=True))

    def render(self) -> list[str]:
        with self._lock:
            series = sorted(self._series.items())
            lines: list[str] = []
            for key, dist in series:
                for bound, count in zip(self.buckets, dist.bucket_counts, strict=True):
                    le = {"le": _format_bound(bound)}
                    lines.append(f"{self.name}_bucket{_format_labels(key, le)} {count}")
                lines.append(f"{self.name}_sum{_format_labels(key)} {dist.sum}")
                lines.append(f"{self.name}_count{_format_labels(key)} {dist.count}")
        return lines


class MetricsRegistry:
    """Process-wide registry of repair loop metrics.

    Example:
        get_metrics().fix_attempts.inc(labels={"strategy": "targeted_fix"})
    """

    _instance: MetricsRegistry | None = None
    _lock = Lock()

    def __init__(self) -> None:
        self.errors_detected = Counter(
            "repair_loop_errors_detected_total",
            "Errors normalized by the detection service",
        )
        self.fix_attempts = Counter(
            "repair_loop_fix_attempts_total",
            "Fix attempts by category and strategy",
        )
        self.fix_failures = Counter(
            "repair_loop_fix_failures_total",
            "Fix attempts where the completion call failed",
        )
        self.estimated_tokens = Counter(
            "repair_loop_estimated_tokens_total",
            "Estimated tokens spent on repair prompts and replies",
        )
        self.sessions_resolved = Counter(
            "repair_loop_sessions_resolved_total",
            "Sessions that ended with working code",
        )
        self.sessions_failed = Counter(
            "repair_loop_sessions_failed_total",
            "Sessions that exhausted their retry budget",
        )
        self.iterations_to_resolve = Histogram(
            "repair_loop_iterations_to_resolve",
            "Iterations needed before a session resolved",
            buckets=(1, 2, 3, 4, 5, 10),
        )
        self.completion_duration = Histogram(
            "repair_loop_completion_duration_seconds",
            "Completion call duration in seconds",
        )
        self._created = time.monotonic()

    @classmethod
    def get_instance(cls) -> MetricsRegistry:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next access starts from zero."""
        with cls._lock:
            cls._instance = None

    def counters(self) -> list[Counter]:
        return [value for value in vars(self).values() if isinstance(value, Counter)]

    def histograms(self) -> list[Histogram]:
        return [value for value in vars(self).values() if isinstance(value, Histogram)]

    def get_uptime_seconds(self) -> float:
        return time.monotonic() - self._created

    def get_all_metrics(self) -> dict[str, Any]:
        """Summary suitable for a JSON status response."""
        return {
            "uptime_seconds": self.get_uptime_seconds(),
            "errors": {"detected": self.errors_detected.total()},
            "fixes": {
                "attempted": self.fix_attempts.total(),
                "failed": self.fix_failures.total(),
                "estimated_tokens": self.estimated_tokens.total(),
                "completion_duration": self.completion_duration.get_stats(),
            },
            "sessions": {
                "resolved": self.sessions_resolved.total(),
                "failed": self.sessions_failed.total(),
                "iterations_to_resolve": self.iterations_to_resolve.get_stats(),
            },
        }

    def to_prometheus_format(self) -> str:
        """Every counter and histogram in Prometheus text exposition format."""
        lines: list[str] = []
        metrics: list[tuple[str, Counter | Histogram]] = [
            *(("counter", counter) for counter in self.counters()),
            *(("histogram", histogram) for histogram in self.histograms()),
        ]
        for kind, metric in metrics:
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {kind}")
            lines.extend(metric.render())
        return "\n".join(lines) + "\n"


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    return MetricsRegistry.get_instance()


class Timer:
    """Records the duration of a ``with`` block into a histogram.

    Example:
        with Timer(metrics.completion_duration, labels={"strategy": "incremental"}):
            reply = await completion.complete(...)
    """

    def __init__(self, histogram: Histogram, labels: dict[str, str] | None = None) -> None:
        self._histogram = histogram
        self._labels = labels
        self._started = 0.0
        self.elapsed: float | None = None

    def __enter__(self) -> Timer:
        self._started = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.elapsed = time.perf_counter() - self._started
        self._histogram.observe(self.elapsed, labels=self._labels)
