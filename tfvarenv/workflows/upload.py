"""
Upload workflow.

Pushes the local variable file as a new version unless its hash already
matches the latest version. The blob upload and the ledger append are two
separate writes; when only the first lands the result is PARTIAL rather
than a failure, and re-running the upload repairs the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..errors import NotFoundError, StorageError
from ..models import Environment, Version
from ..util import current_user, short_id, utc_now
from .base import WorkflowContext, latest_or_none

logger = logging.getLogger(__name__)


class UploadOutcome(str, Enum):
    UNCHANGED = "unchanged"  # Local hash equals latest version; nothing written
    UPLOADED = "uploaded"  # Blob stored and ledger appended
    PARTIAL = "partial"  # Blob stored, ledger append failed


@dataclass(frozen=True)
class UploadResult:
    outcome: UploadOutcome
    version: Version
    backup_path: Path | None = None
    error: StorageError | None = None

    @property
    def recorded(self) -> bool:
        return self.outcome is not UploadOutcome.PARTIAL


def upload(
    ctx: WorkflowContext,
    env: Environment,
    *,
    description: str = "",
    auto_backup: bool | None = None,
    path: Path | None = None,
) -> UploadResult:
    """
    Upload the local variable file of ``env`` as a new version.

    Args:
        ctx: Workflow collaborators
        env: Target environment
        description: Free-text note stored with the version
        auto_backup: Override the environment's backup policy
        path: Upload this file instead of the environment's local path

    Returns:
        UploadResult; PARTIAL carries the ledger error
    """
    path = path or ctx.local_path(env)
    if not ctx.files.file_exists(path):
        raise NotFoundError(f"Local file not found: {path}")

    content = ctx.files.read_file(path)
    digest = ctx.files.compute_hash(content)
    ledger = ctx.versions(env)

    latest = latest_or_none(ledger)
    if latest is not None and latest.hash == digest:
        ctx.console.print(f"No changes: local file matches latest version [cyan]{short_id(latest.version_id)}[/cyan]")
        return UploadResult(outcome=UploadOutcome.UNCHANGED, version=latest)

    backup_path = None
    if env.deployment.auto_backup if auto_backup is None else auto_backup:
        backup_path = ctx.files.create_backup(path, ctx.backup_dir(env))
        ctx.console.print(f"Backup created: {backup_path}")

    user = current_user()
    version_id = ctx.storage.put_object(
        env.s3.bucket,
        env.s3_path(),
        content,
        metadata={"Hash": digest, "Description": description, "UploadedBy": user},
    )
    if not version_id:
        raise StorageError(
            f"Upload to {env.full_s3_path()} returned no version id; is versioning enabled on {env.s3.bucket}?"
        )

    version = Version(
        version_id=version_id,
        hash=digest,
        timestamp=utc_now(),
        uploaded_by=user,
        size=len(content),
        description=description,
    )

    try:
        ledger.add_version(version)
    except StorageError as e:
        logger.warning(f"uploaded {version_id} but failed to update version ledger: {e}")
        ctx.console.print(
            f"[yellow]Warning:[/yellow] uploaded version {short_id(version_id)} but failed to record it: {e}\n"
            "Run the upload again to record this version."
        )
        return UploadResult(outcome=UploadOutcome.PARTIAL, version=version, backup_path=backup_path, error=e)

    ctx.console.print(f"Uploaded {path} to {env.full_s3_path()} as version [cyan]{short_id(version_id)}[/cyan]")
    return UploadResult(outcome=UploadOutcome.UPLOADED, version=version, backup_path=backup_path)
