"""Sync switch, status view and periodic sweep driver.

The sweep itself lives in `Reconciler`; this module decides whether it may run,
records when it last ran, and writes the housekeeping audit rows
(`SYNC_TOGGLE`, `BLOCKCHAIN_SYNC`).
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session, sessionmaker

from config.settings import ReconcilerSettings
from implant_ledger.audit.chain import AuditChain
from implant_ledger.common.exceptions import SyncDisabled
from implant_ledger.reconciliation.reconciler import Reconciler
from implant_ledger.store.db import as_utc, utcnow
from implant_ledger.store.models import AuditAction, SyncStatus
from implant_ledger.store.sync_status import SyncStatusStore
from implant_schemas.sync import SyncResult, SyncStatusView
from observability.logging_config import get_logger

logger = get_logger("sync_control")


def _view(row: SyncStatus) -> SyncStatusView:
    last_sync = as_utc(row.last_sync)
    next_sync = last_sync + timedelta(hours=row.sync_frequency_hours) if last_sync else None
    return SyncStatusView(
        sync_enabled=bool(row.sync_enabled),
        last_sync=last_sync,
        sync_frequency_hours=row.sync_frequency_hours,
        next_sync=next_sync,
    )


class SyncControl:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        reconciler: Reconciler,
        audit: AuditChain,
        settings: ReconcilerSettings,
        *,
        now: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._reconciler = reconciler
        self._audit = audit
        self._settings = settings
        self._now = now

    def _store(self, session: Session) -> SyncStatusStore:
        return SyncStatusStore(session, default_frequency_hours=self._settings.default_sync_frequency_hours)

    def status(self) -> SyncStatusView:
        with self._session_factory() as session:
            view = _view(self._store(session).get())
            session.commit()
            return view

    async def toggle(
        self,
        *,
        enabled: bool,
        dentist_id: str | None,
        sync_frequency_hours: int | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SyncStatusView:
        with self._session_factory() as session:
            view = _view(self._store(session).set_enabled(enabled, frequency_hours=sync_frequency_hours))
            session.commit()

        logger.info(
            "Ledger sync switched",
            extra={"enabled": enabled, "sync_frequency_hours": view.sync_frequency_hours, "dentist_id": dentist_id},
        )
        await self._audit.record(
            action=AuditAction.SYNC_TOGGLE,
            dentist_id=dentist_id,
            patient_id=None,
            metadata={
                "enabled": enabled,
                "syncFrequencyHours": sync_frequency_hours or "unchanged",
            },
            ip_address=ip_address,
            user_agent=user_agent,
            on_ledger=False,
        )
        return view

    async def run_sweep(
        self,
        *,
        dentist_id: str | None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> SyncResult:
        """Run a full sweep if sync is enabled; raises SyncDisabled otherwise."""
        if not self.status().sync_enabled:
            raise SyncDisabled("Blockchain sync is currently disabled")

        result = await self._reconciler.reconcile_all()

        with self._session_factory() as session:
            self._store(session).touch_last_sync(self._now())
            session.commit()

        await self._audit.record(
            action=AuditAction.BLOCKCHAIN_SYNC,
            dentist_id=dentist_id,
            patient_id=None,
            metadata={
                "syncedRecords": result.synced_records,
                "patientsProcessed": result.patients_processed,
                "errors": len(result.errors),
                "mismatches": len(result.mismatches),
            },
            ip_address=ip_address,
            user_agent=user_agent,
            on_ledger=False,
        )
        return result

    def _seconds_until_due(self, view: SyncStatusView) -> float:
        if not view.sync_enabled:
            return self._settings.sync_idle_poll_s
        if view.next_sync is None:
            return 0.0
        return max(0.0, (view.next_sync - self._now()).total_seconds())

    async def run_periodic(self, stop_event: asyncio.Event) -> None:
        """Sweep every `sync_frequency_hours` while enabled, until `stop_event` is set."""
        actor = self._settings.system_actor_id
        while not stop_event.is_set():
            try:
                view = self.status()
                wait_s = self._seconds_until_due(view)
                if view.sync_enabled and wait_s <= 0:
                    await self.run_sweep(dentist_id=actor)
                    wait_s = self._seconds_until_due(self.status())
            except SyncDisabled:
                wait_s = self._settings.sync_idle_poll_s
            except Exception as exc:  # noqa: BLE001
                logger.error("Periodic sweep failed", extra={"error": str(exc), "error_type": type(exc).__name__})
                wait_s = self._settings.sync_idle_poll_s

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(wait_s, 1.0))
            except asyncio.TimeoutError:
                continue


__all__ = ["SyncControl"]
