"""Process-wide counters for requests, errors and job runs.

Backends are chosen by ``METRICS_BACKEND``: ``noop`` (default), ``log`` (one INFO
line per increment) or ``memory`` (tag-keyed counters, used by tests and /healthz
in debug mode).
"""
from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Mapping
from typing import Protocol

logger = logging.getLogger("metrics")

HTTP_REQUESTS = "storefront.http.requests"
HTTP_ERRORS = "storefront.http.errors"
JOB_RUNS = "storefront.jobs.runs"


class Metrics(Protocol):
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None: ...  # pragma: no cover - interface only


class NoopMetrics:
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:  # pragma: no cover - noop
        return


class LoggingMetrics:
    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:
        ordered = dict(sorted((tags or {}).items()))
        logger.info("metric name=%s tags=%s", name, ordered)


class CountingMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.counts: Counter[tuple[str, tuple[tuple[str, str], ...]]] = Counter()

    def increment(self, name: str, tags: Mapping[str, str] | None = None) -> None:
        key = (name, tuple(sorted((tags or {}).items())))
        with self._lock:
            self.counts[key] += 1

    def total(self, name: str, **tags: str) -> int:
        """Sum of every counter named ``name`` whose tags include ``tags``."""
        with self._lock:
            return sum(
                n for (metric, tagset), n in self.counts.items()
                if metric == name and set(tags.items()) <= set(tagset)
            )

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            out: Counter[str] = Counter()
            for (metric, _), n in self.counts.items():
                out[metric] += n
            return dict(out)


_BACKENDS = {"noop": NoopMetrics, "log": LoggingMetrics, "memory": CountingMetrics}

_metrics: Metrics = NoopMetrics()


def build_metrics(backend: str) -> Metrics:
    try:
        return _BACKENDS[backend]()
    except KeyError:
        raise ValueError(f"Unknown metrics backend: {backend}") from None


def set_metrics(m: Metrics) -> None:
    global _metrics
    _metrics = m


def get_metrics() -> Metrics:
    return _metrics


def increment(name: str, tags: Mapping[str, str] | None = None) -> None:
    _metrics.increment(name, tags)
