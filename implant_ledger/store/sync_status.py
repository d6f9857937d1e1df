"""Single-row sync switch: enabled flag, last sweep time, sweep frequency."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from implant_ledger.store.db import utcnow
from implant_ledger.store.models import SyncStatus


class SyncStatusStore:
    def __init__(self, session: Session, *, default_frequency_hours: int = 1):
        self._session = session
        self._default_frequency_hours = default_frequency_hours

    def get(self) -> SyncStatus:
        """Return the status row, creating the default (enabled) row on first use."""
        row = self._session.scalars(select(SyncStatus).order_by(SyncStatus.id).limit(1)).first()
        if row is None:
            row = SyncStatus(
                sync_enabled=True,
                last_sync=None,
                sync_frequency_hours=self._default_frequency_hours,
            )
            self._session.add(row)
            self._session.flush()
        return row

    def set_enabled(self, enabled: bool, *, frequency_hours: int | None = None) -> SyncStatus:
        row = self.get()
        row.sync_enabled = enabled
        if frequency_hours:
            row.sync_frequency_hours = frequency_hours
        self._session.flush()
        return row

    def touch_last_sync(self, when: datetime | None = None) -> SyncStatus:
        row = self.get()
        row.last_sync = when or utcnow()
        self._session.flush()
        return row


__all__ = ["SyncStatusStore"]
