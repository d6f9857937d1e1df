"""Local audit mirror rows for fast listing."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from implant_ledger.store.models import AuditAction, AuditLogEntry


class AuditLogStore:
    def __init__(self, session: Session):
        self._session = session

    def insert(
        self,
        *,
        action: AuditAction,
        dentist_id: str | None,
        patient_id: str | None,
        metadata: dict | None = None,
        audit_tx_hash: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLogEntry:
        row = AuditLogEntry(
            action=action,
            dentist_id=dentist_id,
            patient_id=patient_id,
            metadata_json=dict(metadata or {}),
            audit_tx_hash=audit_tx_hash,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._session.add(row)
        self._session.flush()
        return row

    def list_for_patient(
        self,
        patient_id: str,
        *,
        actions: Iterable[AuditAction] | None = None,
        limit: int = 50,
    ) -> list[AuditLogEntry]:
        stmt = select(AuditLogEntry).where(AuditLogEntry.patient_id == patient_id)
        if actions is not None:
            stmt = stmt.where(AuditLogEntry.action.in_(list(actions)))
        stmt = stmt.order_by(AuditLogEntry.created_at.desc()).limit(limit)
        return list(self._session.scalars(stmt))


__all__ = ["AuditLogStore"]
