"""Dependency factories for API endpoints.

Long-lived components (ledger port, reconciler, task queue, sync control) are
built once in the app lifespan and kept on ``app.state``; request-scoped
services are assembled here around a fresh store session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from config.settings import ReconcilerSettings, get_reconciler_settings
from implant_ledger.audit.chain import AuditChain
from implant_ledger.corrections.service import CorrectionManager
from implant_ledger.records.service import ProcedureRecordService
from implant_ledger.reconciliation.sync_control import SyncControl


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str
    user_agent: str


def get_db(request: Request) -> Iterator[Session]:
    """Yield a store Session from the app's session factory."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_settings(request: Request) -> ReconcilerSettings:
    return getattr(request.app.state, "reconciler_settings", None) or get_reconciler_settings()


def get_audit_chain(request: Request) -> AuditChain:
    return request.app.state.audit_chain


def get_sync_control(request: Request) -> SyncControl:
    return request.app.state.sync_control


def current_dentist(x_dentist_id: str | None = Header(default=None, alias="X-Dentist-Id")) -> str:
    if not x_dentist_id or not x_dentist_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return x_dentist_id.strip()


def current_dentist_name(x_dentist_name: str | None = Header(default=None, alias="X-Dentist-Name")) -> str | None:
    return x_dentist_name.strip() if x_dentist_name else None


def client_info(request: Request) -> ClientInfo:
    headers = request.headers
    ip_address = headers.get("x-forwarded-for") or headers.get("x-real-ip")
    if not ip_address and request.client is not None:
        ip_address = request.client.host
    return ClientInfo(
        ip_address=ip_address or "unknown",
        user_agent=headers.get("user-agent") or "unknown",
    )


def get_record_service(
    request: Request,
    db: Session = Depends(get_db),
    settings: ReconcilerSettings = Depends(get_settings),
) -> ProcedureRecordService:
    state = request.app.state
    return ProcedureRecordService(
        db,
        state.ledger,
        state.audit_chain,
        settings,
        reconciler=state.reconciler,
        scheduler=state.task_queue,
    )


def get_correction_manager(request: Request, db: Session = Depends(get_db)) -> CorrectionManager:
    state = request.app.state
    return CorrectionManager(db, state.ledger, state.audit_chain)


__all__ = [
    "ClientInfo",
    "client_info",
    "current_dentist",
    "current_dentist_name",
    "get_audit_chain",
    "get_correction_manager",
    "get_db",
    "get_record_service",
    "get_settings",
    "get_sync_control",
]
