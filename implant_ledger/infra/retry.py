"""Backoff helpers for outbound ledger reads."""

from __future__ import annotations

import random
import time
from typing import Mapping


def parse_retry_after_seconds(headers: Mapping[str, str]) -> float | None:
    value = headers.get("retry-after") or headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()
    try:
        return float(value)
    except ValueError:
        return None


def backoff_seconds(attempt: int, *, base: float = 0.75, cap: float = 10.0) -> float:
    """Exponential backoff with jitter."""
    exp = base * (2**max(0, int(attempt)))
    jitter = random.uniform(0.0, base)
    return min(cap, exp + jitter)


def remaining_seconds(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())


__all__ = ["backoff_seconds", "parse_retry_after_seconds", "remaining_seconds"]
