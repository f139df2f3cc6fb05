"""
Query Metrics: In-Process Prometheus Exposition

The query engine records three things:
- How many day and hour buckets it visited, and how many it had to drop
- How many records it resolved to a latest version
- How long each facade call took (point vs range)

Instruments live in a MetricsCollector registry and render themselves in
the Prometheus text format, so a scrape endpoint only needs
`collector.export_prometheus()`.
"""

from __future__ import annotations

import threading
import time
from bisect import bisect_left
from typing import Any, ClassVar, Iterator, Optional, Sequence

LabelValues = tuple[str, ...]

# Query latencies are dominated by sequential store round-trips; a range
# over a few days issues tens to hundreds of them.
QUERY_LATENCY_BUCKETS: tuple[float, ...] = (
    0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05,
    0.1, 0.25, 0.5, 1.0, 2.5, 5.0,
)


class _Instrument:
    """Name, help text and label schema shared by every instrument."""

    kind: ClassVar[str] = "untyped"

    __slots__ = ("_name", "_help", "_label_names", "_lock")

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help

    def _values_for(self, labels: dict[str, str]) -> LabelValues:
        # Unknown label names are ignored; missing ones read as "".
        return tuple(str(labels.get(n, "")) for n in self._label_names)

    def _render_labels(self, values: LabelValues, **extra: str) -> str:
        pairs = list(zip(self._label_names, values)) + list(extra.items())
        if not pairs:
            return ""
        return "{" + ",".join(f'{k}="{v}"' for k, v in pairs) + "}"

    def _header(self) -> Iterator[str]:
        if self._help:
            yield f"# HELP {self._name} {self._help}"
        yield f"# TYPE {self._name} {self.kind}"

    def expose(self) -> Iterator[str]:
        raise NotImplementedError


class Counter(_Instrument):
    """
    Monotonic counter.

    Usage:
        dropped = Counter("chronomesh_bucket_fetch_failed_total", ["granularity"])
        dropped.inc(granularity="day")
    """

    kind = "counter"

    __slots__ = ("_totals",)

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._totals: dict[LabelValues, float] = {}

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError(f"{self._name}: counters cannot decrease (got {value})")
        key = self._values_for(labels)
        with self._lock:
            self._totals[key] = self._totals.get(key, 0.0) + value

    def get(self, **labels: str) -> float:
        with self._lock:
            return self._totals.get(self._values_for(labels), 0.0)

    def expose(self) -> Iterator[str]:
        yield from self._header()
        with self._lock:
            totals = sorted(self._totals.items())
        for values, total in totals:
            yield f"{self._name}{self._render_labels(values)} {total}"


class Histogram(_Instrument):
    """
    Cumulative-bucket histogram.

    Usage:
        latency = Histogram("chronomesh_query_seconds", ["kind"])
        with latency.time(kind="range"):
            await decomposer.fetch(start, end, base, Note)
    """

    kind = "histogram"

    __slots__ = ("_bounds", "_series")

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__(name, label_names, help_text)
        bounds = sorted(set(buckets or QUERY_LATENCY_BUCKETS))
        if bounds[-1] != float("inf"):
            bounds.append(float("inf"))
        self._bounds = tuple(bounds)
        # label values -> [per-bucket (non-cumulative) counts, sum, count]
        self._series: dict[LabelValues, list[Any]] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = self._values_for(labels)
        slot = bisect_left(self._bounds, value)
        with self._lock:
            series = self._series.setdefault(key, [[0] * len(self._bounds), 0.0, 0])
            series[0][slot] += 1
            series[1] += value
            series[2] += 1

    def time(self, **labels: str) -> HistogramTimer:
        return HistogramTimer(self, labels)

    def count(self, **labels: str) -> int:
        with self._lock:
            series = self._series.get(self._values_for(labels))
            return series[2] if series else 0

    def collect(self) -> Iterator[dict[str, Any]]:
        """Snapshot per label set: cumulative buckets, sum and count."""
        with self._lock:
            snapshot = [
                (values, list(counts), total, n)
                for values, (counts, total, n) in sorted(self._series.items())
            ]
        for values, counts, total, n in snapshot:
            running, cumulative = 0, []
            for bound, c in zip(self._bounds, counts):
                running += c
                cumulative.append((bound, running))
            yield {
                "labels": dict(zip(self._label_names, values)),
                "buckets": cumulative,
                "sum": total,
                "count": n,
            }

    def expose(self) -> Iterator[str]:
        yield from self._header()
        for data in self.collect():
            values = self._values_for(data["labels"])
            for bound, running in data["buckets"]:
                le = "+Inf" if bound == float("inf") else repr(bound)
                yield f"{self._name}_bucket{self._render_labels(values, le=le)} {running}"
            yield f"{self._name}_sum{self._render_labels(values)} {data['sum']}"
            yield f"{self._name}_count{self._render_labels(values)} {data['count']}"


class HistogramTimer:
    """Observes the wall-clock duration of a with-block."""

    __slots__ = ("_histogram", "_labels", "_started")

    def __init__(self, histogram: Histogram, labels: dict[str, str]) -> None:
        self._histogram = histogram
        self._labels = labels
        self._started = 0.0

    def __enter__(self) -> HistogramTimer:
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc: Any) -> None:
        self._histogram.observe(time.perf_counter() - self._started, **self._labels)


class MetricsCollector:
    """
    Registry of named instruments.

    Asking twice for the same name returns the same instrument, so
    components built independently share one series.
    """

    __slots__ = ("_instruments", "_lock")

    _instance: Optional[MetricsCollector] = None

    def __init__(self) -> None:
        self._instruments: dict[str, _Instrument] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> MetricsCollector:
        """Process-wide collector."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def counter(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Counter:
        return self._register(Counter, name, label_names, help_text)

    def histogram(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> Histogram:
        return self._register(Histogram, name, label_names, help_text, buckets=buckets)

    def _register(self, kind: type, name: str, label_names: Sequence[str], help_text: str, **kwargs: Any) -> Any:
        with self._lock:
            existing = self._instruments.get(name)
            if existing is None:
                existing = kind(name, label_names, help_text, **kwargs)
                self._instruments[name] = existing
            elif not isinstance(existing, kind):
                raise TypeError(f"{name} is already registered as a {existing.kind}")
            return existing

    def export_prometheus(self) -> str:
        with self._lock:
            instruments = list(self._instruments.values())
        return "\n".join(line for inst in instruments for line in inst.expose())


# =============================================================================
# QUERY ENGINE INSTRUMENTS
# =============================================================================
class QueryMetrics:
    """The instruments the fetchers and the facade record into."""

    __slots__ = ("bucket_fetches", "bucket_failures", "records_resolved", "query_seconds")

    def __init__(self, collector: Optional[MetricsCollector] = None) -> None:
        collector = collector or MetricsCollector.get_instance()
        self.bucket_fetches = collector.counter(
            "chronomesh_bucket_fetch_total",
            ["granularity"],
            "Time buckets visited by queries",
        )
        self.bucket_failures = collector.counter(
            "chronomesh_bucket_fetch_failed_total",
            ["granularity"],
            "Time buckets dropped because their fetch failed",
        )
        self.records_resolved = collector.counter(
            "chronomesh_records_resolved_total",
            help_text="Records resolved to their latest version",
        )
        self.query_seconds = collector.histogram(
            "chronomesh_query_seconds",
            ["kind"],
            "Wall-clock duration of facade queries",
        )
