"""FastAPI application wiring for the implant ledger service.

Startup builds the store engine, the ledger port, the deferred task queue that
runs delayed single-record checks, and (when SYNC_LOOP_ENABLED) the periodic
sweep. Shutdown stops both background loops, drops queued checks, and closes
the ledger HTTP client.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from sqlalchemy.orm import Session, sessionmaker

from config.settings import (
    LedgerSettings,
    ReconcilerSettings,
    get_ledger_settings,
    get_reconciler_settings,
    get_store_settings,
)
from implant_ledger.api.routes.metrics import router as metrics_router
from implant_ledger.api.routes.records import router as records_router
from implant_ledger.api.routes.sync import router as sync_router
from implant_ledger.audit.chain import AuditChain
from implant_ledger.ledger.client import StabilityLedgerClient
from implant_ledger.ledger.memory import InMemoryLedger
from implant_ledger.ledger.ports import LedgerPort
from implant_ledger.reconciliation.reconciler import Reconciler
from implant_ledger.reconciliation.scheduler import Clock, DeferredTaskQueue
from implant_ledger.reconciliation.sync_control import SyncControl
from implant_ledger.store.dependencies import build_engine, build_session_factory, create_schema
from observability.logging_config import configure_logging

logger = logging.getLogger(__name__)


def _build_ledger(settings: LedgerSettings) -> LedgerPort:
    if settings.backend.strip().lower() == "memory":
        logger.warning("Using in-memory ledger (LEDGER_BACKEND=memory); records are not durable")
        return InMemoryLedger()
    # Raises LedgerConfigurationError when the endpoint or contract address is unset.
    return StabilityLedgerClient(settings)


def create_app(
    *,
    ledger: LedgerPort | None = None,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
    reconciler_settings: ReconcilerSettings | None = None,
    run_background: bool = True,
) -> FastAPI:
    """Build the app. Injected components replace the env-configured defaults."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        settings = reconciler_settings or get_reconciler_settings()

        factory = session_factory
        if factory is None:
            engine = build_engine(get_store_settings())
            create_schema(engine)
            logger.info("Store tables verified/created")
            factory = build_session_factory(engine)

        owned_client: StabilityLedgerClient | None = None
        port = ledger
        if port is None:
            port = _build_ledger(get_ledger_settings())
            if isinstance(port, StabilityLedgerClient):
                owned_client = port

        task_queue = DeferredTaskQueue(clock=clock)
        reconciler = Reconciler(port, factory)
        audit_chain = AuditChain(port, factory)

        app.state.session_factory = factory
        app.state.reconciler_settings = settings
        app.state.ledger = port
        app.state.task_queue = task_queue
        app.state.reconciler = reconciler
        app.state.audit_chain = audit_chain
        app.state.sync_control = SyncControl(factory, reconciler, audit_chain, settings)

        stop_event = asyncio.Event()
        app.state.stop_event = stop_event
        tasks: list[asyncio.Task] = []
        if run_background:
            tasks.append(asyncio.create_task(task_queue.run(stop_event), name="deferred-checks"))
            if settings.sync_loop_enabled:
                tasks.append(
                    asyncio.create_task(app.state.sync_control.run_periodic(stop_event), name="periodic-sync")
                )

        yield

        stop_event.set()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        task_queue.shutdown()
        if owned_client is not None:
            await owned_client.aclose()

    app = FastAPI(
        title="Implant Ledger API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(records_router)
    app.include_router(sync_router)
    app.include_router(metrics_router, tags=["metrics"])

    @app.get("/health", tags=["health"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
