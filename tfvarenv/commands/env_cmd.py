"""Environment registry commands: init, add, list, remove, update, use."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from ..audit_log import log_operation
from ..context import AppContext
from ..errors import CancelledError, TfvarenvError
from ..models import AWSConfig, BackendConfig, DeploymentConfig, Environment, LocalConfig, S3Config
from ..registry import ENVS_DIR
from ..util import short_id
from ..workflows import init_backend, reconcile
from ..workflows.base import latest_or_none
from . import reports_errors

INIT_DIRECTORIES = [ENVS_DIR, ".backups", ".tmp"]
GITIGNORE_ENTRIES = ["*.tfvars", ".terraform/", ".terraform.lock.hcl", ".tmp/", ".backups/"]


def update_gitignore(path: Path, entries: list[str]) -> list[str]:
    """Append missing entries under a ``# tfvarenv`` header; return those added."""
    content = path.read_text(encoding="utf-8") if path.exists() else ""
    existing = {line.strip() for line in content.splitlines()}
    missing = [entry for entry in entries if entry not in existing]
    if not missing:
        return []
    if content and not content.endswith("\n"):
        content += "\n"
    content += "\n# tfvarenv\n" + "".join(f"{entry}\n" for entry in missing)
    path.write_text(content, encoding="utf-8")
    return missing


def _print_environment(console: Console, env: Environment) -> None:
    console.print(f"Environment: [bold]{env.name}[/bold]")
    if env.description:
        console.print(f"  Description: {env.description}")
    console.print(f"  AWS Account: {env.aws.account_id or '-'} ({env.aws.region})")
    console.print(f"  S3 Path: {env.full_s3_path()}")
    console.print(f"  Local Path: {env.local.tfvars_path}")
    console.print(f"  Auto Backup: {env.deployment.auto_backup}")
    console.print(f"  Require Approval: {env.deployment.require_approval}")
    console.print(f"  Backend: s3://{env.backend.bucket}/{env.backend.key} ({env.backend.region})")


@reports_errors
def run_init(app: AppContext, default_region: str) -> int:
    console = app.console
    app.registry.initialize(default_region)
    for directory in INIT_DIRECTORIES:
        app.files.ensure_directory(app.root / directory)
    added = update_gitignore(app.root / ".gitignore", GITIGNORE_ENTRIES)

    console.print(f"Created {app.registry.path.name} with default region: {app.registry.default_region}")
    console.print(f"Created directories: {', '.join(d + '/' for d in INIT_DIRECTORIES)}")
    if added:
        console.print(f"Updated .gitignore: {', '.join(added)}")
    console.print("\nNext: run 'tfvarenv add <name>' to add your first environment")
    log_operation(app.root, "init", metadata={"default_region": app.registry.default_region})
    return 0


@reports_errors
def run_add(
    app: AppContext,
    name: str,
    *,
    bucket: str,
    prefix: str,
    description: str = "",
    tfvars_key: str = "",
    account_id: str = "",
    region: str = "",
    local_path: str = "",
    auto_backup: bool = True,
    require_approval: bool = False,
    backend_bucket: str = "",
    backend_key: str = "",
    backend_region: str = "",
    check_versioning: bool = True,
    sync: bool = True,
) -> int:
    env = Environment(
        name=name,
        description=description,
        s3=S3Config(bucket=bucket, prefix=prefix, tfvars_key=tfvars_key),
        aws=AWSConfig(account_id=account_id, region=region),
        local=LocalConfig(tfvars_path=local_path),
        deployment=DeploymentConfig(auto_backup=auto_backup, require_approval=require_approval),
        backend=BackendConfig(bucket=backend_bucket, key=backend_key, region=backend_region),
    )
    if check_versioning and bucket:
        app.storage(region or app.registry.default_region).check_versioning_enabled(bucket)

    env = app.registry.add_environment(name, env)
    app.console.print(f"[green]Added environment {name}[/green]")
    _print_environment(app.console, env)
    log_operation(app.root, "add", name, {"s3_path": env.full_s3_path()})

    if sync:
        result = reconcile(app.workflow(env), env)
        if result.upload is not None:
            log_operation(app.root, "upload", name, {"version_id": result.upload.version.version_id})
    return 0


@reports_errors
def run_list(app: AppContext, *, output_json: bool = False) -> int:
    names = app.registry.list_environments()
    envs = [app.registry.get_environment(n) for n in names]

    if output_json:
        print(json.dumps([e.to_dict() for e in envs], indent=2))
        return 0

    if not envs:
        app.console.print("No environments configured. Use 'tfvarenv add' to add one.")
        return 0

    table = Table(title="Environments")
    table.add_column("name", style="cyan", no_wrap=True)
    table.add_column("description")
    table.add_column("account")
    table.add_column("region")
    table.add_column("s3 path", style="dim")
    table.add_column("local path", style="dim")
    for env in envs:
        table.add_row(
            env.name,
            env.description,
            env.aws.account_id,
            env.aws.region,
            env.full_s3_path(),
            env.local.tfvars_path,
        )
    Console().print(table)
    return 0


@reports_errors
def run_remove(app: AppContext, name: str, *, force: bool = False) -> int:
    env = app.environment(name)
    _print_environment(app.console, env)

    if not force and not app.prompter.confirm(f"Remove environment '{name}'?"):
        raise CancelledError("removal cancelled by user")

    wf = app.workflow(env)
    local = wf.local_path(env)
    backup_path = None
    if app.files.file_exists(local):
        try:
            backup_path = app.files.create_backup(local, wf.backup_dir(env))
            app.console.print(f"Created backup: {backup_path}")
        except TfvarenvError as e:
            app.console.print(f"[yellow]Warning:[/yellow] failed to create backup: {e}")

    app.registry.remove_environment(name)
    app.console.print(f"[green]Removed environment {name}[/green]")
    log_operation(app.root, "remove", name, {"backup": str(backup_path) if backup_path else None})
    return 0


@reports_errors
def run_update(app: AppContext, name: str, changes: dict[str, Any]) -> int:
    """
    Apply field changes to an environment.

    ``changes`` maps option names (``new_name``, ``bucket``, ``region``,
    ``require_approval``, ...) to values; ``None`` keeps the current value.
    """
    env = app.environment(name)
    setters = {
        "new_name": lambda v: setattr(env, "name", v),
        "description": lambda v: setattr(env, "description", v),
        "bucket": lambda v: setattr(env.s3, "bucket", v),
        "prefix": lambda v: setattr(env.s3, "prefix", v),
        "tfvars_key": lambda v: setattr(env.s3, "tfvars_key", v),
        "account_id": lambda v: setattr(env.aws, "account_id", v),
        "region": lambda v: setattr(env.aws, "region", v),
        "local_path": lambda v: setattr(env.local, "tfvars_path", v),
        "auto_backup": lambda v: setattr(env.deployment, "auto_backup", v),
        "require_approval": lambda v: setattr(env.deployment, "require_approval", v),
        "backend_bucket": lambda v: setattr(env.backend, "bucket", v),
        "backend_key": lambda v: setattr(env.backend, "key", v),
        "backend_region": lambda v: setattr(env.backend, "region", v),
    }
    applied = {}
    for key, value in changes.items():
        if value is None:
            continue
        if key not in setters:
            raise TfvarenvError(f"Unknown environment field: {key}")
        setters[key](value)
        applied[key] = value

    if not applied:
        app.console.print("Nothing to update")
        return 0

    env = app.registry.update_environment(name, env)
    app.console.print(f"[green]Updated environment {env.name}[/green]")
    _print_environment(app.console, env)
    log_operation(app.root, "update", env.name, {"previous_name": name, "fields": sorted(applied)})
    return 0


@reports_errors
def run_use(app: AppContext, name: str, *, force: bool = False) -> int:
    env = app.environment(name)
    wf = app.workflow(env)
    app.console.print(f"Switching to environment: [bold]{name}[/bold]")
    init_backend(wf, env, reconfigure=True, force_copy=force)

    _print_environment(app.console, env)
    latest = latest_or_none(wf.versions(env))
    if latest is not None:
        app.console.print(
            f"Latest version: [cyan]{short_id(latest.version_id)}[/cyan] "
            f"({latest.timestamp:%Y-%m-%d %H:%M:%S} by {latest.uploaded_by})"
        )
    app.console.print(f"[green]Switched to environment {name}[/green]")
    return 0
