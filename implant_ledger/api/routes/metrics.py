"""Prometheus scrape endpoint for the ledger and reconciliation counters.

Served only when METRICS_BACKEND is "registry"/"prometheus" or METRICS_ENABLED
is truthy; METRICS_ENABLED=false hides it regardless of backend.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from observability.metrics import RegistryMetricsClient, get_metrics_client

router = APIRouter()

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def metrics_enabled() -> bool:
    explicit = os.getenv("METRICS_ENABLED", "").strip().lower()
    if explicit in ("true", "1", "yes"):
        return True
    if explicit in ("false", "0", "no"):
        return False
    return os.getenv("METRICS_BACKEND", "null").strip().lower() in ("registry", "prometheus")


@router.get("/metrics", response_class=PlainTextResponse, summary="Counters in Prometheus text format")
def scrape() -> Response:
    if not metrics_enabled():
        return PlainTextResponse("# metrics disabled (set METRICS_BACKEND=registry)\n", status_code=404)

    client = get_metrics_client()
    if not isinstance(client, RegistryMetricsClient):
        # Enabled by METRICS_ENABLED while the process collects nothing.
        return PlainTextResponse(f"# no registry; collecting with {type(client).__name__}\n")
    return Response(content=client.export_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
