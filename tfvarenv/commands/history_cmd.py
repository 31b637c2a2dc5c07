"""Read-only ledger commands: versions, history, diff, audit."""

from __future__ import annotations

import json
from datetime import datetime

from rich.console import Console
from rich.table import Table

from ..audit_log import format_audit_entry, read_audit_log
from ..context import AppContext
from ..deployments import DeploymentLedger
from ..util import format_duration, format_size, short_id
from ..versions import VersionLedger
from . import reports_errors


def _version_ledger(app: AppContext, name: str) -> VersionLedger:
    env = app.environment(name)
    return app.workflow(env).versions(env)


def _deployment_ledger(app: AppContext, name: str) -> DeploymentLedger:
    env = app.environment(name)
    return app.workflow(env).deployments(env)


@reports_errors
def run_versions(
    app: AppContext,
    name: str,
    *,
    since: datetime | None = None,
    before: datetime | None = None,
    search_text: str | None = None,
    latest_only: bool = False,
    sort_by_date: bool = True,
    limit: int | None = None,
    stats: bool = False,
    output_json: bool = False,
) -> int:
    ledger = _version_ledger(app, name)
    versions = ledger.get_versions(
        since=since,
        before=before,
        search_text=search_text,
        latest_only=latest_only,
        sort_by_date=sort_by_date,
        limit=limit,
    )
    deployed = DeploymentLedger(ledger.storage, ledger.env).get_latest()
    deployed_id = deployed.deployment.version_id if deployed and deployed.is_active and deployed.deployment else None

    if output_json:
        data = {"environment": name, "versions": [v.to_dict() for v in versions]}
        if stats:
            data["stats"] = ledger.get_stats().to_dict()
        print(json.dumps(data, indent=2))
        return 0

    if not versions:
        app.console.print(f"No versions found for {name}")
        return 0

    table = Table(title=f"Versions: {name}")
    table.add_column("version", style="cyan", no_wrap=True)
    table.add_column("uploaded")
    table.add_column("by")
    table.add_column("size", justify="right")
    table.add_column("description")
    table.add_column("", style="green")
    for v in versions:
        table.add_row(
            short_id(v.version_id),
            f"{v.timestamp:%Y-%m-%d %H:%M:%S}",
            v.uploaded_by,
            format_size(v.size),
            v.description,
            "deployed" if v.version_id == deployed_id else "",
        )
    console = Console()
    console.print(table)

    if stats:
        s = ledger.get_stats()
        console.print(f"Total versions: {s.total_versions}")
        console.print(f"Average size: {format_size(int(s.average_size))}")
        console.print(f"Most active user: {s.most_active_user or '-'}")
        for bucket, count in s.size_distribution.items():
            console.print(f"  {bucket}: {count}")
    return 0


@reports_errors
def run_history(
    app: AppContext,
    name: str,
    *,
    since: datetime | None = None,
    before: datetime | None = None,
    status: str | None = None,
    deployed_by: str | None = None,
    version_id: str | None = None,
    command: str | None = None,
    limit: int | None = 5,
    stats: bool = False,
    output_json: bool = False,
) -> int:
    ledger = _deployment_ledger(app, name)
    records = ledger.query_deployments(
        since=since,
        before=before,
        status=status,
        deployed_by=deployed_by,
        version_id=version_id,
        command=command,
        limit=limit,
    )
    latest = ledger.get_latest()

    if output_json:
        data = {
            "environment": name,
            "latest_deployment": latest.to_dict() if latest else None,
            "deployments": [r.to_dict() for r in records],
        }
        if stats:
            data["stats"] = ledger.get_stats().to_dict()
        print(json.dumps(data, indent=2))
        return 0

    console = Console()
    if latest is not None:
        state = "[green]active[/green]" if latest.is_active else "[red]destroyed[/red]"
        console.print(f"Current status: {state} (since {latest.modified_time:%Y-%m-%d %H:%M:%S})")

    if not records:
        app.console.print(f"No deployments found for {name}")
        return 0

    table = Table(title=f"Deployments: {name}")
    table.add_column("when")
    table.add_column("command")
    table.add_column("status")
    table.add_column("version", style="cyan", no_wrap=True)
    table.add_column("by")
    table.add_column("duration", justify="right")
    table.add_column("error", style="red")
    for r in records:
        table.add_row(
            f"{r.timestamp:%Y-%m-%d %H:%M:%S}",
            r.command,
            "[green]success[/green]" if r.succeeded else "[red]failure[/red]",
            short_id(r.version_id),
            r.deployed_by,
            format_duration(r.duration) if r.duration else "",
            r.error_message,
        )
    console.print(table)

    if stats:
        s = ledger.get_stats()
        console.print(
            f"Total: {s.total_deployments}  success: {s.successful_deployments}  failed: {s.failed_deployments}"
        )
        if s.average_duration:
            console.print(f"Average duration: {format_duration(s.average_duration)}")
        for message, count in sorted(s.common_errors.items(), key=lambda kv: -kv[1]):
            console.print(f"  {count}x {message}")
    return 0


@reports_errors
def run_diff(app: AppContext, name: str, version_a: str, version_b: str | None = None) -> int:
    """Diff two versions; with one id, diff it against the latest."""
    ledger = _version_ledger(app, name)
    if version_b is None:
        version_b = ledger.get_latest_version().version_id
    lines = ledger.compare_versions(version_a, version_b)
    if not lines:
        app.console.print("Versions have identical content")
        return 0

    console = Console(highlight=False)
    for line in lines:
        if line.startswith("+") and not line.startswith("+++"):
            console.print(line, style="green", markup=False)
        elif line.startswith("-") and not line.startswith("---"):
            console.print(line, style="red", markup=False)
        else:
            console.print(line, markup=False)
    return 0


def run_audit(app: AppContext, *, environment: str | None = None, last_n: int | None = 20) -> int:
    entries = read_audit_log(app.root, last_n=last_n, environment=environment)
    if not entries:
        app.console.print("No audit entries")
        return 0
    for entry in entries:
        print(format_audit_entry(entry))
    return 0
