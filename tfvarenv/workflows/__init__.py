"""Reconciliation workflows driving the version and deployment ledgers."""

from .base import WorkflowContext, verify_account
from .deploy import ApplyResult, DestroyResult, PlanResult, apply, destroy, init_backend, plan
from .download import DownloadResult, download
from .reconcile import ReconcileAction, ReconcileResult, SyncState, SyncStatus, check_sync_status, reconcile
from .upload import UploadOutcome, UploadResult, upload

__all__ = [
    "ApplyResult",
    "DestroyResult",
    "DownloadResult",
    "PlanResult",
    "ReconcileAction",
    "ReconcileResult",
    "SyncState",
    "SyncStatus",
    "UploadOutcome",
    "UploadResult",
    "WorkflowContext",
    "apply",
    "check_sync_status",
    "destroy",
    "download",
    "init_backend",
    "plan",
    "reconcile",
    "upload",
    "verify_account",
]
