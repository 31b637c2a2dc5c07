"""Local/remote sync commands: upload, download, status."""

from __future__ import annotations

import json

from ..audit_log import log_operation
from ..context import AppContext
from ..util import short_id
from ..workflows import UploadOutcome, check_sync_status, download, reconcile, upload
from . import reports_errors


@reports_errors
def run_upload(
    app: AppContext,
    name: str,
    *,
    description: str = "",
    auto_backup: bool | None = None,
) -> int:
    env = app.environment(name)
    result = upload(app.workflow(env), env, description=description, auto_backup=auto_backup)
    if result.outcome is UploadOutcome.UNCHANGED:
        return 0

    log_operation(
        app.root,
        "upload",
        name,
        {
            "version_id": result.version.version_id,
            "hash": result.version.hash,
            "recorded": result.recorded,
        },
    )
    # The blob is stored even when the ledger append failed
    return 0 if result.recorded else 2


@reports_errors
def run_download(app: AppContext, name: str, *, version_id: str | None = None, force: bool = False) -> int:
    env = app.environment(name)
    result = download(app.workflow(env), env, version_id=version_id, force=force)
    if result.written:
        metadata = {"version_id": result.version.version_id, "path": str(result.path)}
        if result.backup_path:
            metadata["backup"] = str(result.backup_path)
        log_operation(app.root, "download", name, metadata)
    return 0


@reports_errors
def run_status(app: AppContext, name: str, *, check: bool = False, sync: bool = False, output_json: bool = False) -> int:
    """
    Show how the local file relates to the latest version.

    ``sync`` runs the interactive reconciliation; ``check`` fails with a
    conflict error when local and remote diverged.
    """
    env = app.environment(name)
    wf = app.workflow(env)

    if sync:
        result = reconcile(wf, env)
        if result.upload is not None:
            log_operation(app.root, "upload", name, {"version_id": result.upload.version.version_id})
        if result.download is not None and result.download.written:
            log_operation(app.root, "download", name, {"version_id": result.download.version.version_id})
        status = result.status
    else:
        status = check_sync_status(wf, env)

    if output_json:
        print(
            json.dumps(
                {
                    "environment": name,
                    "state": status.state.value,
                    "local_path": str(status.local_path),
                    "local_hash": status.local_hash,
                    "latest_version_id": status.remote_version.version_id if status.remote_version else None,
                },
                indent=2,
            )
        )
    elif not sync:
        app.console.print(f"{name}: {status.state.value} ({status.describe()})")
        if status.remote_version is not None:
            app.console.print(f"  Latest version: {short_id(status.remote_version.version_id)}")

    if check:
        status.raise_for_conflict()
    return 0
