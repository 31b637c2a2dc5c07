"""Terraform commands: plan, apply, destroy."""

from __future__ import annotations

from pathlib import Path

from ..audit_log import log_operation
from ..context import AppContext
from ..errors import ExternalToolError
from ..workflows import apply, destroy, plan
from . import reports_errors


@reports_errors
def run_plan(
    app: AppContext,
    name: str,
    *,
    remote: bool = False,
    version_id: str | None = None,
    var_file: Path | None = None,
    options: list[str] | None = None,
) -> int:
    env = app.environment(name)
    plan(app.workflow(env), env, remote=remote, version_id=version_id, var_file=var_file, options=options)
    return 0


@reports_errors
def run_apply(
    app: AppContext,
    name: str,
    *,
    remote: bool = False,
    version_id: str | None = None,
    var_file: Path | None = None,
    auto_approve: bool = False,
    description: str = "",
    options: list[str] | None = None,
) -> int:
    env = app.environment(name)
    try:
        result = apply(
            app.workflow(env),
            env,
            remote=remote,
            version_id=version_id,
            var_file=var_file,
            auto_approve=auto_approve,
            description=description,
            options=options,
        )
    except ExternalToolError as e:
        log_operation(app.root, "apply", name, {"status": "failure", "error": str(e)})
        raise

    log_operation(
        app.root,
        "apply",
        name,
        {"status": "success", "version_id": result.version.version_id, "duration": round(result.execution.duration, 2)},
    )
    return 0


@reports_errors
def run_destroy(
    app: AppContext,
    name: str,
    *,
    version_id: str | None = None,
    options: list[str] | None = None,
) -> int:
    env = app.environment(name)
    try:
        result = destroy(app.workflow(env), env, version_id=version_id, options=options)
    except ExternalToolError as e:
        log_operation(app.root, "destroy", name, {"status": "failure", "error": str(e)})
        raise

    log_operation(app.root, "destroy", name, {"status": "success", "version_id": result.version.version_id})
    return 0
