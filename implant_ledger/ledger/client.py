"""HTTP adapter for the implant registry contract on the Stability ledger.

Every call is a JSON POST of ``{to, abi, method, arguments}`` to one endpoint;
responses carry ``{hash, result?, output?, error?}``.

Failure classification:
- transport errors, timeouts, HTTP 429 and 5xx -> LedgerUnavailable
- other HTTP 4xx, an ``error`` field, or an append without a hash -> LedgerRejected

Appends are sent exactly once per call. Reads are retried with backoff inside
the configured time budget.
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

from config.settings import LedgerSettings
from implant_ledger.common.exceptions import (
    LedgerConfigurationError,
    LedgerRejected,
    LedgerUnavailable,
)
from implant_ledger.infra.retry import backoff_seconds, parse_retry_after_seconds, remaining_seconds
from implant_ledger.infra.safe_logging import safe_log_payload
from implant_ledger.ledger.ports import AuditEvent, LedgerEntry, ProcedureRecord
from observability.logging_config import get_logger
from observability.metrics import get_metrics_client

logger = get_logger("ledger_client")

CONTRACT_ABI = [
    "function addImplantRecord(string patientId, string recordType, string recordData) public returns (uint256)",
    "function getImplantRecords(string patientId) public view returns (tuple(uint256 id, string patientId, string recordType, string recordData, uint256 timestamp)[])",
    "function getRecordById(uint256 recordId) public view returns (tuple(uint256 id, string patientId, string recordType, string recordData, uint256 timestamp))",
    "function addAuditLog(string dentistId, string patientId, string action, string metadata) public returns (uint256)",
]

METHOD_ADD_RECORD = "addImplantRecord"
METHOD_GET_RECORDS = "getImplantRecords"
METHOD_ADD_AUDIT = "addAuditLog"


def _parse_timestamp(raw: Any) -> datetime | None:
    try:
        seconds = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _parse_record_data(raw: Any, *, patient_id: str, record_id: str) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        parsed = None
    if not isinstance(parsed, dict):
        # Keep the entry so later positions still line up.
        logger.warning(
            "Unparseable record payload on ledger",
            extra={"patient_id": patient_id, "record_id": record_id},
        )
        return {}
    return parsed


def parse_entries(output: Any, *, patient_id: str) -> list[LedgerEntry]:
    """Convert a `getImplantRecords` output array into entries, preserving order."""

    if not isinstance(output, list):
        return []

    entries: list[LedgerEntry] = []
    for row in output:
        if isinstance(row, dict):
            row = [
                row.get("id"),
                row.get("patientId"),
                row.get("recordType"),
                row.get("recordData"),
                row.get("timestamp"),
            ]
        if not isinstance(row, (list, tuple)) or len(row) < 5:
            logger.warning("Malformed ledger row skipped", extra={"patient_id": patient_id})
            continue
        record_id = str(row[0])
        entries.append(
            LedgerEntry(
                record_id=record_id,
                patient_id=str(row[1]),
                record_type=str(row[2]),
                record_data=_parse_record_data(row[3], patient_id=patient_id, record_id=record_id),
                appended_at=_parse_timestamp(row[4]),
            )
        )
    return entries


class StabilityLedgerClient:
    """LedgerPort implementation over HTTP."""

    def __init__(
        self,
        settings: LedgerSettings,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not settings.api_url:
            raise LedgerConfigurationError("Ledger API URL not configured")
        if not settings.contract_address:
            raise LedgerConfigurationError("Contract address not configured")

        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_s, connect=settings.connect_timeout_s)
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _body(self, method: str, arguments: list[Any]) -> dict[str, Any]:
        return {
            "to": self._settings.contract_address,
            "abi": CONTRACT_ABI,
            "method": method,
            "arguments": arguments,
        }

    async def _call(self, method: str, arguments: list[Any], *, deadline: float) -> dict[str, Any]:
        remaining = remaining_seconds(deadline)
        if remaining <= 0:
            raise LedgerUnavailable("Ledger time budget exhausted", method=method)

        try:
            resp = await asyncio.wait_for(
                self._client.post(
                    self._settings.api_url,
                    headers={"Content-Type": "application/json"},
                    json=self._body(method, arguments),
                ),
                timeout=remaining,
            )
        except asyncio.TimeoutError as exc:
            raise LedgerUnavailable(f"Ledger call {method} timed out", method=method) from exc
        except httpx.TransportError as exc:
            raise LedgerUnavailable(f"Ledger call {method} failed: {type(exc).__name__}", method=method) from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"output": body}

        status = resp.status_code
        if status == 429 or status >= 500:
            raise LedgerUnavailable(
                f"Ledger call {method} returned HTTP {status}",
                method=method,
                status_code=status,
                retry_after=parse_retry_after_seconds(resp.headers) if status == 429 else None,
            )
        if status >= 400:
            raise LedgerRejected(
                f"Ledger rejected {method}: {json.dumps(body.get('error', body), default=str)}",
                method=method,
                status_code=status,
            )
        if body.get("error"):
            raise LedgerRejected(
                f"Ledger rejected {method}: {json.dumps(body['error'], default=str)}",
                method=method,
                status_code=status,
            )
        return body

    async def _append(self, method: str, arguments: list[Any]) -> str:
        metrics = get_metrics_client()
        deadline = time.monotonic() + float(self._settings.timeout_s)
        try:
            body = await self._call(method, arguments, deadline=deadline)
        except LedgerUnavailable:
            metrics.incr("ledger.append", {"method": method, "outcome": "unavailable"})
            raise
        except LedgerRejected:
            metrics.incr("ledger.append", {"method": method, "outcome": "rejected"})
            raise

        tx_hash = body.get("hash") or body.get("transactionHash")
        if not tx_hash:
            metrics.incr("ledger.append", {"method": method, "outcome": "rejected"})
            raise LedgerRejected(f"Ledger accepted {method} but returned no transaction hash", method=method)

        metrics.incr("ledger.append", {"method": method, "outcome": "ok"})
        return str(tx_hash)

    async def append(self, record: ProcedureRecord) -> str:
        tx_hash = await self._append(
            METHOD_ADD_RECORD,
            [record.patient_id, record.record_type, json.dumps(record.record_data)],
        )
        logger.info(
            "Appended implant record",
            extra={
                "patient_id": record.patient_id,
                "record_type": record.record_type,
                "payload": safe_log_payload(record.record_data),
                "tx_hash": tx_hash,
            },
        )
        return tx_hash

    async def append_audit(self, event: AuditEvent) -> str:
        return await self._append(
            METHOD_ADD_AUDIT,
            [event.dentist_id, event.patient_id, event.action, json.dumps(event.metadata, default=str)],
        )

    async def read_all(self, patient_id: str) -> list[LedgerEntry]:
        metrics = get_metrics_client()
        deadline = time.monotonic() + float(self._settings.timeout_s)
        attempt = 0
        while True:
            attempt += 1
            try:
                body = await self._call(METHOD_GET_RECORDS, [patient_id], deadline=deadline)
            except LedgerUnavailable as exc:
                metrics.incr("ledger.read", {"outcome": "unavailable"})
                if attempt >= self._settings.read_max_retries or remaining_seconds(deadline) <= 0:
                    raise
                if exc.retry_after is not None:
                    sleep_s = exc.retry_after
                else:
                    sleep_s = backoff_seconds(attempt - 1, base=self._settings.read_backoff_base_s)
                logger.info(
                    "Ledger read failed, retrying",
                    extra={"patient_id": patient_id, "attempt": attempt, "error": str(exc)},
                )
                await self._sleep(min(sleep_s, remaining_seconds(deadline)))
                continue

            metrics.incr("ledger.read", {"outcome": "ok"})
            return parse_entries(body.get("output"), patient_id=patient_id)


__all__ = ["CONTRACT_ABI", "StabilityLedgerClient", "parse_entries"]
