"""PHI-safe logging helpers."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def safe_log_payload(payload: dict[str, Any] | None) -> str:
    """Return a PHI-safe representation of a clinical payload.

    Only a short hash, the key count and the tooth location are returned, so
    logs can correlate repeated writes without storing record contents.
    """
    if not payload:
        return "<empty>"
    normalized = json.dumps(payload, sort_keys=True, default=str)
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]
    location = payload.get("location")
    return f"<sha256={digest} keys={len(payload)} location={location}>"


__all__ = ["safe_log_payload"]
