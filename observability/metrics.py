"""Counters for ledger calls, reconciliation and audit, with Prometheus export.

`get_metrics_client()` returns a no-op client unless METRICS_BACKEND is
"registry" or "prometheus"; the registry client backs the /metrics route.
"""

from __future__ import annotations

import os
import threading
from abc import ABC, abstractmethod
from collections import defaultdict

DEFAULT_PREFIX = "implant_ledger"


class MetricsClient(ABC):
    @abstractmethod
    def incr(self, name: str, tags: dict[str, str] | None = None, value: int = 1) -> None:
        """Increment a counter."""
        ...


class NullMetricsClient(MetricsClient):
    def incr(self, name: str, tags: dict[str, str] | None = None, value: int = 1) -> None:
        pass


def _labels(tags: dict[str, str] | None) -> str:
    if not tags:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in sorted(tags.items())) + "}"


def _metric_name(prefix: str, name: str) -> str:
    return f"{prefix}_{name.replace('.', '_').replace('-', '_')}_total"


class RegistryMetricsClient(MetricsClient):
    """Thread-safe in-process counter registry."""

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        self.prefix = prefix
        self._lock = threading.Lock()
        self._counters: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))

    def incr(self, name: str, tags: dict[str, str] | None = None, value: int = 1) -> None:
        with self._lock:
            self._counters[name][_labels(tags)] += value

    def counter_value(self, name: str, tags: dict[str, str] | None = None) -> float:
        with self._lock:
            series = self._counters.get(name)
            return series.get(_labels(tags), 0.0) if series else 0.0

    def export_prometheus(self) -> str:
        lines: list[str] = []
        with self._lock:
            for name in sorted(self._counters):
                metric = _metric_name(self.prefix, name)
                lines.append(f"# TYPE {metric} counter")
                for labels, value in sorted(self._counters[name].items()):
                    lines.append(f"{metric}{labels} {value}")
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()


_metrics_client: MetricsClient | None = None


def get_metrics_client() -> MetricsClient:
    global _metrics_client
    if _metrics_client is None:
        backend = os.getenv("METRICS_BACKEND", "null").lower()
        if backend in ("registry", "prometheus"):
            _metrics_client = RegistryMetricsClient()
        else:
            _metrics_client = NullMetricsClient()
    return _metrics_client


def set_metrics_client(client: MetricsClient) -> None:
    global _metrics_client
    _metrics_client = client


def reset_metrics_client() -> None:
    """Forget the global client; the next get_metrics_client() re-reads the env."""
    global _metrics_client
    _metrics_client = None


__all__ = [
    "MetricsClient",
    "NullMetricsClient",
    "RegistryMetricsClient",
    "get_metrics_client",
    "reset_metrics_client",
    "set_metrics_client",
]
