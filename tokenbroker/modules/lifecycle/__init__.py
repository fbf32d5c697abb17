"""
Lifecycle Module - Black Box Interface

Purpose: Issue tokens and reconcile expired ones
Interface: issue(), revoke(), validate(), list_tokens(), reconcile()
Hidden: Compensation on partial failure, single-flight reconciliation, timer

The engine only exposes a single-pass reconcile(); ReconcileScheduler is the
default way to call it on a fixed cadence.
"""

from .engine import LifecycleEngine, ReconcileReport, utc_now
from .scheduler import ReconcileScheduler

__all__ = ["LifecycleEngine", "ReconcileReport", "ReconcileScheduler", "utc_now"]
