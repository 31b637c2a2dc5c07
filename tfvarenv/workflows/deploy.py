"""
Terraform workflows: backend init, plan, apply and destroy.

Apply and destroy drive the deployment ledger: every apply attempt is
recorded (failures included), a successful destroy flips the live-state
pointer to destroyed, and a failed destroy is recorded as a failure.
Plan never writes to either ledger.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from ..errors import CancelledError, ExternalToolError, NotFoundError, StorageError, TfvarenvError
from ..models import (
    COMMAND_APPLY,
    COMMAND_DESTROY,
    STATUS_FAILURE,
    STATUS_SUCCESS,
    DeploymentCommand,
    DeploymentRecord,
    Environment,
    Version,
)
from ..runner import ExecutionResult
from ..util import current_user, format_duration, short_id, utc_now
from .base import (
    WorkflowContext,
    latest_or_none,
    print_deployment_status,
    print_version,
    remote_var_file,
    resolve_version,
    verify_account,
)
from .upload import UploadOutcome, UploadResult, upload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanResult:
    execution: ExecutionResult
    version: Version | None
    newer_available: bool = False


@dataclass(frozen=True)
class ApplyResult:
    execution: ExecutionResult
    version: Version
    record: DeploymentRecord
    upload: UploadResult | None = None


@dataclass(frozen=True)
class DestroyResult:
    execution: ExecutionResult
    version: Version


def _tool_error(action: str, result: ExecutionResult) -> ExternalToolError:
    return ExternalToolError(
        f"terraform {action} failed (exit code {result.exit_code}): {result.error_message}",
        exit_code=result.exit_code,
        stderr=result.stderr,
    )


@contextmanager
def _local_var_file(path: Path) -> Iterator[Path]:
    yield path


def _record(
    env: Environment,
    version: Version,
    command: DeploymentCommand,
    parameters: dict[str, str],
    *,
    duration: float,
    error_message: str = "",
) -> DeploymentRecord:
    """A deployment record; a non-empty ``error_message`` makes it a failure."""
    return DeploymentRecord(
        timestamp=utc_now(),
        version_id=version.version_id,
        deployed_by=current_user(),
        command=command,
        status=STATUS_FAILURE if error_message else STATUS_SUCCESS,
        environment=env.name,
        parameters=parameters,
        duration=duration,
        error_message=error_message,
    )


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


def init_backend(
    ctx: WorkflowContext,
    env: Environment,
    *,
    reconfigure: bool = True,
    force_copy: bool = False,
) -> ExecutionResult:
    """Point terraform at the environment's state backend."""
    verify_account(ctx, env)
    backend = env.backend.to_init_args()
    ctx.console.print(f"Initializing backend s3://{env.backend.bucket}/{env.backend.key} ({env.backend.region})")
    result = ctx.require_runner().init(backend, reconfigure=reconfigure, force_copy=force_copy)
    if not result.success:
        raise _tool_error("init", result)
    return result


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------


def plan(
    ctx: WorkflowContext,
    env: Environment,
    *,
    remote: bool = False,
    version_id: str | None = None,
    var_file: Path | None = None,
    options: list[str] | None = None,
) -> PlanResult:
    """
    Run ``terraform plan`` against a local file or a recorded version.

    Warns when the planned content is not the latest recorded version.
    """
    verify_account(ctx, env)
    runner = ctx.require_runner()
    versions = ctx.versions(env)
    latest = latest_or_none(versions)
    console = ctx.console

    if remote or version_id:
        version: Version | None = resolve_version(versions, version_id)
        source = remote_var_file(ctx, env, version)
    else:
        path = var_file or ctx.local_path(env)
        if not ctx.files.file_exists(path):
            raise NotFoundError(f"Local file not found: {path}")
        digest = ctx.files.calculate_hash(path)
        version = latest if latest is not None and latest.hash == digest else None
        console.print(f"Using local file: {path}")
        if version is None:
            console.print("  [yellow]Local file has changes not yet uploaded[/yellow]")
        source = _local_var_file(path)

    if version is not None:
        print_version(console, version)
    newer = latest is not None and version is not None and latest.version_id != version.version_id
    if newer:
        console.print(
            f"[yellow]Warning:[/yellow] planning with an older version; latest is {short_id(latest.version_id)}"
        )
    print_deployment_status(console, ctx.deployments(env).get_latest(), version)

    with source as path:
        result = runner.plan(path, options)
    if not result.success:
        raise _tool_error("plan", result)
    return PlanResult(execution=result, version=version, newer_available=newer)


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def apply(
    ctx: WorkflowContext,
    env: Environment,
    *,
    remote: bool = False,
    version_id: str | None = None,
    var_file: Path | None = None,
    auto_approve: bool = False,
    description: str = "",
    options: list[str] | None = None,
) -> ApplyResult:
    """
    Apply one version of the variables and record the attempt.

    Remote mode applies a recorded version (explicit or latest). Local mode
    first uploads the local file when it differs from the latest version.
    With ``require_approval`` the operator must confirm unless
    ``auto_approve``; declining raises CancelledError and records nothing.
    """
    verify_account(ctx, env)
    runner = ctx.require_runner()
    console = ctx.console
    uploaded: UploadResult | None = None

    if remote or version_id:
        version = resolve_version(ctx.versions(env), version_id)
        var_file_label = env.full_s3_path()
        source = remote_var_file(ctx, env, version)
    else:
        path = var_file or ctx.local_path(env)
        uploaded = upload(ctx, env, description=description or "Uploaded by apply", path=path)
        if uploaded.outcome is UploadOutcome.PARTIAL:
            raise StorageError(
                f"Version {uploaded.version.version_id} was uploaded but not recorded; "
                "run 'tfvarenv upload' before applying"
            ) from uploaded.error
        version = uploaded.version
        var_file_label = str(path)
        source = _local_var_file(path)

    console.print(f"Applying to environment [bold]{env.name}[/bold]")
    print_version(console, version)
    print_deployment_status(console, ctx.deployments(env).get_latest(), version)

    approved = auto_approve
    if env.deployment.require_approval and not auto_approve:
        if not ctx.prompter.confirm(f"Apply version {short_id(version.version_id)} to {env.name}?"):
            raise CancelledError("deployment cancelled by user")
        approved = True

    parameters = {
        "AutoApprove": str(auto_approve).lower(),
        "Remote": str(remote or bool(version_id)).lower(),
        "VarFile": var_file_label,
    }
    deployments = ctx.deployments(env)
    start = time.monotonic()
    try:
        with source as path:
            result = runner.apply(path, auto_approve=approved, options=options)
    except TfvarenvError as e:
        # Terraform never ran to completion (missing binary, download failure)
        deployments.add_record(
            _record(
                env,
                version,
                COMMAND_APPLY,
                parameters,
                duration=time.monotonic() - start,
                error_message=str(e) or type(e).__name__,
            )
        )
        raise

    record = _record(
        env,
        version,
        COMMAND_APPLY,
        parameters,
        duration=result.duration,
        error_message="" if result.success else result.error_message,
    )
    deployments.add_record(record)

    if not result.success:
        raise _tool_error("apply", result)
    console.print(
        f"[green]Applied[/green] version {short_id(version.version_id)} to {env.name} "
        f"in {format_duration(result.duration)}"
    )
    return ApplyResult(execution=result, version=version, record=record, upload=uploaded)


# ---------------------------------------------------------------------------
# Destroy
# ---------------------------------------------------------------------------


def resolve_deployed_version(ctx: WorkflowContext, env: Environment, version_id: str | None = None) -> Version:
    """The version behind the last successful apply, unless one is given."""
    versions = ctx.versions(env)
    if version_id:
        return versions.get_version(version_id)
    last = ctx.deployments(env).get_last_successful_deployment(COMMAND_APPLY)
    if last is None:
        raise NotFoundError(f"No successful deployment found for {env.name}; pass a version id to destroy")
    return versions.get_version(last.version_id)


def destroy(
    ctx: WorkflowContext,
    env: Environment,
    *,
    version_id: str | None = None,
    options: list[str] | None = None,
) -> DestroyResult:
    """
    Destroy the environment's resources.

    The operator must type the environment name; a yes/no answer is not
    enough. On success the live-state pointer is marked destroyed without a
    new history entry; on failure a destroy failure record is appended.
    """
    verify_account(ctx, env)
    runner = ctx.require_runner()
    console = ctx.console
    deployments = ctx.deployments(env)

    version = resolve_deployed_version(ctx, env, version_id)
    latest = deployments.get_latest()

    console.print(f"[bold red]Destroying environment {env.name}[/bold red]")
    print_version(console, version, label="Variables from version")
    print_deployment_status(console, latest, version)
    if latest is not None and not latest.is_active:
        console.print("[yellow]Warning:[/yellow] environment is already marked as destroyed")

    typed = ctx.prompter.ask(f"Type the environment name ({env.name}) to confirm")
    if typed.strip() != env.name:
        raise CancelledError("destroy cancelled: confirmation did not match environment name")

    parameters = {"VarFile": env.full_s3_path()}
    start = time.monotonic()
    try:
        with remote_var_file(ctx, env, version) as path:
            result = runner.destroy(path, auto_approve=True, options=options)
    except TfvarenvError as e:
        deployments.add_record(
            _record(
                env,
                version,
                COMMAND_DESTROY,
                parameters,
                duration=time.monotonic() - start,
                error_message=str(e) or type(e).__name__,
            )
        )
        raise

    if not result.success:
        deployments.add_record(
            _record(
                env,
                version,
                COMMAND_DESTROY,
                parameters,
                duration=result.duration,
                error_message=result.error_message,
            )
        )
        raise _tool_error("destroy", result)

    deployments.mark_as_destroyed()
    console.print(f"[green]Destroyed[/green] {env.name} in {format_duration(result.duration)}")
    return DestroyResult(execution=result, version=version)
