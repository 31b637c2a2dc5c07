"""
Reconciliation of the local variable file against the version ledger.

Decision table over {local present/absent} x {remote present/absent} x
{hash equal/different}:

    neither       -> create an empty local placeholder, no ledger write
    remote only   -> offer download
    local only    -> offer upload (new ledger entry)
    equal hashes  -> nothing to do
    different     -> report divergence; never resolved automatically
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..errors import ConflictError
from ..models import Environment, Version
from ..util import short_id
from .base import WorkflowContext, latest_or_none
from .download import DownloadResult, download
from .upload import UploadResult, upload


class SyncState(str, Enum):
    MISSING = "missing"
    REMOTE_ONLY = "remote_only"
    LOCAL_ONLY = "local_only"
    IN_SYNC = "in_sync"
    DIVERGED = "diverged"


class ReconcileAction(str, Enum):
    NONE = "none"
    CREATED_PLACEHOLDER = "created_placeholder"
    DOWNLOADED = "downloaded"
    UPLOADED = "uploaded"
    DECLINED = "declined"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class SyncStatus:
    state: SyncState
    local_path: Path
    local_hash: str | None = None
    remote_version: Version | None = None

    def describe(self) -> str:
        remote = short_id(self.remote_version.version_id) if self.remote_version else "-"
        messages = {
            SyncState.MISSING: "no local file and no uploaded versions",
            SyncState.REMOTE_ONLY: f"local file missing; latest version is {remote}",
            SyncState.LOCAL_ONLY: "local file has never been uploaded",
            SyncState.IN_SYNC: f"local file matches latest version {remote}",
            SyncState.DIVERGED: f"local file differs from latest version {remote}",
        }
        return messages[self.state]

    def raise_for_conflict(self) -> None:
        if self.state is SyncState.DIVERGED:
            raise ConflictError(
                f"Local file {self.local_path} differs from the latest version; "
                "run 'tfvarenv upload' or 'tfvarenv download' to resolve"
            )


@dataclass(frozen=True)
class ReconcileResult:
    status: SyncStatus
    action: ReconcileAction
    upload: UploadResult | None = None
    download: DownloadResult | None = None

    def raise_for_conflict(self) -> None:
        self.status.raise_for_conflict()


def check_sync_status(ctx: WorkflowContext, env: Environment) -> SyncStatus:
    path = ctx.local_path(env)
    local_hash = ctx.files.calculate_hash(path) if ctx.files.file_exists(path) else None
    remote = latest_or_none(ctx.versions(env))

    if local_hash is None and remote is None:
        state = SyncState.MISSING
    elif local_hash is None:
        state = SyncState.REMOTE_ONLY
    elif remote is None:
        state = SyncState.LOCAL_ONLY
    elif local_hash == remote.hash:
        state = SyncState.IN_SYNC
    else:
        state = SyncState.DIVERGED
    return SyncStatus(state=state, local_path=path, local_hash=local_hash, remote_version=remote)


def reconcile(ctx: WorkflowContext, env: Environment, *, description: str = "Initial upload") -> ReconcileResult:
    """Bring the local file and the ledger together where that is unambiguous."""
    status = check_sync_status(ctx, env)
    console = ctx.console

    if status.state is SyncState.MISSING:
        ctx.files.write_file(status.local_path, b"", create_dirs=True, overwrite=False)
        console.print(f"Created empty variable file: {status.local_path}")
        return ReconcileResult(status=status, action=ReconcileAction.CREATED_PLACEHOLDER)

    if status.state is SyncState.REMOTE_ONLY:
        if not ctx.prompter.confirm(f"Local file missing. Download latest version from {env.full_s3_path()}?", True):
            return ReconcileResult(status=status, action=ReconcileAction.DECLINED)
        result = download(ctx, env, force=True)
        return ReconcileResult(status=status, action=ReconcileAction.DOWNLOADED, download=result)

    if status.state is SyncState.LOCAL_ONLY:
        if not ctx.prompter.confirm(f"Upload {status.local_path} to {env.full_s3_path()}?", True):
            return ReconcileResult(status=status, action=ReconcileAction.DECLINED)
        result = upload(ctx, env, description=description)
        return ReconcileResult(status=status, action=ReconcileAction.UPLOADED, upload=result)

    if status.state is SyncState.DIVERGED:
        console.print(f"[yellow]Local and remote differ:[/yellow] {status.describe()}")
        console.print("Use 'tfvarenv upload' or 'tfvarenv download' to resolve.")
        return ReconcileResult(status=status, action=ReconcileAction.CONFLICT)

    console.print(f"[green]In sync:[/green] {status.describe()}")
    return ReconcileResult(status=status, action=ReconcileAction.NONE)
