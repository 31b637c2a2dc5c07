"""
Shared plumbing for the reconciliation workflows.

Workflows receive every collaborator through a WorkflowContext so they can
run against in-memory fakes as easily as against S3 and terraform.
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from ..deployments import DeploymentLedger, LatestDeployment
from ..errors import NotFoundError, ValidationError
from ..files import DEFAULT_BACKUP_DIR, FileUtils
from ..models import Environment, Version
from ..prompt import Prompter
from ..runner import Runner
from ..storage.client import StorageClient
from ..util import short_id
from ..versions import VersionLedger


@dataclass
class WorkflowContext:
    """Collaborators for one workflow run."""

    storage: StorageClient
    files: FileUtils
    prompter: Prompter
    console: Console = field(default_factory=lambda: Console(stderr=True))
    runner: Runner | None = None
    root: Path = field(default_factory=Path.cwd)

    def local_path(self, env: Environment) -> Path:
        path = Path(env.local.tfvars_path)
        return path if path.is_absolute() else self.root / path

    def backup_dir(self, env: Environment) -> Path:
        return self.root / DEFAULT_BACKUP_DIR / env.name

    def versions(self, env: Environment) -> VersionLedger:
        return VersionLedger(self.storage, env)

    def deployments(self, env: Environment) -> DeploymentLedger:
        return DeploymentLedger(self.storage, env)

    def require_runner(self) -> Runner:
        if self.runner is None:
            raise ValidationError("No terraform runner configured")
        return self.runner


def latest_or_none(ledger: VersionLedger) -> Version | None:
    try:
        return ledger.get_latest_version()
    except NotFoundError:
        return None


def resolve_version(ledger: VersionLedger, version_id: str | None) -> Version:
    """An explicit version, or the latest one when ``version_id`` is empty."""
    if version_id:
        return ledger.get_version(version_id)
    return ledger.get_latest_version()


def verify_account(ctx: WorkflowContext, env: Environment) -> None:
    """Refuse to touch an environment bound to another AWS account."""
    if not env.aws.account_id:
        return
    actual = ctx.storage.get_caller_account_id()
    if actual != env.aws.account_id:
        raise ValidationError(
            f"AWS account mismatch for {env.name}: expected {env.aws.account_id}, current credentials are for {actual}"
        )


@contextmanager
def remote_var_file(ctx: WorkflowContext, env: Environment, version: Version) -> Iterator[Path]:
    """Download one version into a temporary directory removed on exit."""
    content = ctx.versions(env).download(version.version_id)
    with tempfile.TemporaryDirectory(prefix="tfvarenv-") as tmp:
        path = Path(tmp) / Path(env.s3.tfvars_key).name
        path.write_bytes(content)
        yield path


def print_version(console: Console, version: Version, *, label: str = "Version") -> None:
    console.print(f"{label}: [cyan]{short_id(version.version_id)}[/cyan]")
    console.print(f"  Uploaded: {version.timestamp:%Y-%m-%d %H:%M:%S} by {version.uploaded_by}")
    if version.description:
        console.print(f"  Description: {version.description}")


def print_deployment_status(console: Console, latest: LatestDeployment | None, version: Version | None = None) -> None:
    if latest is None or latest.deployment is None:
        if latest is not None and not latest.is_active:
            console.print("Deployment status: [red]destroyed[/red]")
        else:
            console.print("Deployment status: [dim]never deployed[/dim]")
        return

    record = latest.deployment
    state = "[green]active[/green]" if latest.is_active else "[red]destroyed[/red]"
    console.print(
        f"Deployment status: {state} (version {short_id(record.version_id)}, "
        f"{record.timestamp:%Y-%m-%d %H:%M:%S} by {record.deployed_by})"
    )
    if version is not None and latest.is_active and record.version_id == version.version_id:
        console.print("  [green]This version is currently deployed[/green]")
