"""Audit chain: every read or write of patient data becomes its own ledger entry.

Audit events are appended to the ledger first; the returned transaction hash is
stored on a local mirror row so views can list recent activity without reading
the ledger. Auditing is best effort relative to the operation being audited:
ledger failures leave the mirror row with ``audit_tx_hash = None`` and mirror
failures are rolled back. `record()` never raises.
"""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.orm import Session, sessionmaker

from implant_ledger.ledger.ports import AuditEvent, LedgerPort
from implant_ledger.store.audit_log import AuditLogStore
from implant_ledger.store.models import AuditAction
from implant_schemas.records import AuditTrailItem
from observability.logging_config import get_logger
from observability.metrics import get_metrics_client

logger = get_logger("audit_chain")


class AuditChain:
    def __init__(self, ledger: LedgerPort, session_factory: sessionmaker[Session]):
        self._ledger = ledger
        self._session_factory = session_factory

    async def record(
        self,
        *,
        action: AuditAction,
        dentist_id: str | None,
        patient_id: str | None,
        metadata: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        on_ledger: bool = True,
    ) -> str | None:
        """Append an audit event and mirror it locally. Returns the audit tx hash, if any.

        ``on_ledger=False`` writes the mirror row only (used for sync
        housekeeping events that carry no patient).
        """
        metadata = dict(metadata or {})
        audit_tx_hash: str | None = None

        if on_ledger:
            try:
                audit_tx_hash = await self._ledger.append_audit(
                    AuditEvent(
                        dentist_id=dentist_id or "",
                        patient_id=patient_id or "",
                        action=action.value,
                        metadata=metadata,
                    )
                )
            except Exception as exc:  # noqa: BLE001
                get_metrics_client().incr("audit.append_failed", {"action": action.value})
                logger.warning(
                    "Audit append failed; mirroring without ledger hash",
                    extra={"action": action.value, "patient_id": patient_id, "error": str(exc)},
                )

        session = self._session_factory()
        try:
            AuditLogStore(session).insert(
                action=action,
                dentist_id=dentist_id,
                patient_id=patient_id,
                metadata=metadata,
                audit_tx_hash=audit_tx_hash,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            session.commit()
        except Exception as exc:  # noqa: BLE001
            session.rollback()
            logger.error(
                "Audit mirror write failed",
                extra={"action": action.value, "patient_id": patient_id, "error": str(exc)},
            )
        finally:
            session.close()

        return audit_tx_hash

    def list_for_patient(
        self,
        patient_id: str,
        *,
        actions: Iterable[AuditAction] | None = None,
        limit: int = 20,
    ) -> list[AuditTrailItem]:
        with self._session_factory() as session:
            rows = AuditLogStore(session).list_for_patient(patient_id, actions=actions, limit=limit)
            return [
                AuditTrailItem(
                    action=row.action.value,
                    dentist_id=row.dentist_id,
                    metadata=row.metadata_json or {},
                    audit_tx_hash=row.audit_tx_hash,
                    created_at=row.created_at,
                )
                for row in rows
            ]


__all__ = ["AuditChain"]
