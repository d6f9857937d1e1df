"""Ledger-to-cache reconciliation: sweep, delayed checks and sync control."""

from implant_ledger.reconciliation.reconciler import Reconciler
from implant_ledger.reconciliation.scheduler import DeferredTaskQueue, ManualClock, MonotonicClock
from implant_ledger.reconciliation.sync_control import SyncControl

__all__ = ["DeferredTaskQueue", "ManualClock", "MonotonicClock", "Reconciler", "SyncControl"]
