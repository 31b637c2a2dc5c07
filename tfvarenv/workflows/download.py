"""Download workflow: write a recorded version to the local path."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..errors import CancelledError
from ..models import Environment, Version
from ..util import short_id
from .base import WorkflowContext, print_deployment_status, print_version, resolve_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadResult:
    version: Version
    path: Path
    written: bool
    backup_path: Path | None = None


def download(
    ctx: WorkflowContext,
    env: Environment,
    *,
    version_id: str | None = None,
    force: bool = False,
) -> DownloadResult:
    """
    Fetch a version (latest unless ``version_id``) into the local path.

    A local file with the same hash is left alone. A differing local file
    is overwritten only after confirmation (or ``force``) and is backed up
    first when the environment's auto-backup policy is on.
    """
    ledger = ctx.versions(env)
    version = resolve_version(ledger, version_id)
    print_version(ctx.console, version)
    print_deployment_status(ctx.console, ctx.deployments(env).get_latest(), version)

    path = ctx.local_path(env)
    backup_path = None
    if ctx.files.file_exists(path):
        if ctx.files.calculate_hash(path) == version.hash:
            ctx.console.print("Local file is already up to date")
            return DownloadResult(version=version, path=path, written=False)
        if not force and not ctx.prompter.confirm(f"Local file {path} has different content. Overwrite?"):
            raise CancelledError("download cancelled by user")
        if env.deployment.auto_backup:
            backup_path = ctx.files.create_backup(path, ctx.backup_dir(env))
            ctx.console.print(f"Backup created: {backup_path}")

    content = ledger.download(version.version_id)
    if ctx.files.compute_hash(content) != version.hash:
        logger.warning(f"content of {version.version_id} does not match its recorded hash")
    ctx.files.write_file(path, content, create_dirs=True, overwrite=True)
    ctx.console.print(f"Downloaded version [cyan]{short_id(version.version_id)}[/cyan] to {path}")
    return DownloadResult(version=version, path=path, written=True, backup_path=backup_path)
