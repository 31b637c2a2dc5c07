"""CLI entrypoint for tfvarenv."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from rich.logging import RichHandler

from . import __version__
from .errors import TfvarenvError
from .registry import CONFIG_FILENAME, DEFAULT_REGION

DATE = click.DateTime(formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"])


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=verbose, rich_tracebacks=verbose)],
        force=True,
    )
    # botocore is very chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.INFO if verbose else logging.WARNING)


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


@click.group()
@click.version_option(__version__, prog_name="tfvarenv")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=CONFIG_FILENAME,
    envvar="TFVARENV_CONFIG",
    show_default=True,
    help="Path to the environment registry file",
)
@click.option(
    "--terraform-bin",
    default="terraform",
    envvar="TFVARENV_TERRAFORM_BIN",
    show_default=True,
    help="Terraform executable to run",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Path, terraform_bin: str, verbose: bool) -> None:
    """tfvarenv - Versioned Terraform variable files per environment.

    Stores tfvars files in S3 with native versioning and keeps a version
    ledger and a deployment history next to each file.
    """
    from .context import AppContext
    from .registry import EnvironmentRegistry
    from .runner import TerraformRunner

    _configure_logging(verbose)
    ctx.ensure_object(dict)
    try:
        registry = EnvironmentRegistry(config_path)
    except TfvarenvError as e:
        raise click.ClickException(str(e)) from e

    root = config_path.resolve().parent
    ctx.obj["app"] = AppContext(
        registry=registry,
        root=root,
        runner=TerraformRunner(terraform_bin, working_dir=Path.cwd()),
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--region", default=DEFAULT_REGION, show_default=True, help="Default AWS region")
@click.pass_context
def init(ctx: click.Context, region: str) -> None:
    """Create the registry file and working directories."""
    from .commands.env_cmd import run_init

    sys.exit(run_init(ctx.obj["app"], region))


@cli.command()
@click.argument("name")
@click.option("--bucket", prompt="S3 bucket name", help="Bucket holding the tfvars file")
@click.option("--prefix", prompt="S3 prefix", help="Key prefix for this environment")
@click.option("--description", "-d", default="", help="Environment description")
@click.option("--tfvars-key", default="", help="Object name of the tfvars file [terraform.tfvars]")
@click.option("--account-id", default="", help="AWS account the environment is bound to")
@click.option("--region", default="", help="AWS region [registry default]")
@click.option("--local-path", default="", help="Local tfvars path [envs/NAME/TFVARS_KEY]")
@click.option("--auto-backup/--no-auto-backup", default=True, show_default=True, help="Back up local files")
@click.option("--require-approval/--no-require-approval", default=False, show_default=True, help="Confirm applies")
@click.option("--backend-bucket", default="", help="Terraform state bucket [S3 bucket]")
@click.option("--backend-key", default="", help="Terraform state key [PREFIX/terraform.tfstate]")
@click.option("--backend-region", default="", help="Terraform state region [AWS region]")
@click.option("--skip-versioning-check", is_flag=True, help="Do not verify bucket versioning")
@click.option("--no-sync", is_flag=True, help="Do not reconcile the local file after adding")
@click.pass_context
def add(ctx: click.Context, name: str, skip_versioning_check: bool, no_sync: bool, **fields) -> None:
    """Register a new environment."""
    from .commands.env_cmd import run_add

    sys.exit(run_add(ctx.obj["app"], name, check_versioning=not skip_versioning_check, sync=not no_sync, **fields))


@cli.command("list")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_cmd(ctx: click.Context, output_json: bool) -> None:
    """List registered environments."""
    from .commands.env_cmd import run_list

    sys.exit(run_list(ctx.obj["app"], output_json=output_json))


@cli.command()
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Remove without confirmation")
@click.pass_context
def remove(ctx: click.Context, name: str, force: bool) -> None:
    """Remove an environment (the local file is backed up first)."""
    from .commands.env_cmd import run_remove

    sys.exit(run_remove(ctx.obj["app"], name, force=force))


@cli.command()
@click.argument("name")
@click.option("--name", "new_name", default=None, help="Rename the environment")
@click.option("--description", "-d", default=None)
@click.option("--bucket", default=None)
@click.option("--prefix", default=None)
@click.option("--tfvars-key", default=None)
@click.option("--account-id", default=None)
@click.option("--region", default=None)
@click.option("--local-path", default=None)
@click.option("--auto-backup/--no-auto-backup", default=None)
@click.option("--require-approval/--no-require-approval", default=None)
@click.option("--backend-bucket", default=None)
@click.option("--backend-key", default=None)
@click.option("--backend-region", default=None)
@click.pass_context
def update(ctx: click.Context, name: str, **changes) -> None:
    """Change environment settings; unspecified fields are kept."""
    from .commands.env_cmd import run_update

    sys.exit(run_update(ctx.obj["app"], name, changes))


@cli.command()
@click.argument("name")
@click.option("--force", "-f", is_flag=True, help="Copy existing state into the new backend")
@click.pass_context
def use(ctx: click.Context, name: str, force: bool) -> None:
    """Initialize terraform with the environment's backend."""
    from .commands.env_cmd import run_use

    sys.exit(run_use(ctx.obj["app"], name, force=force))


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name")
@click.option("--description", "-d", default="", help="Description for this version")
@click.option("--auto-backup/--no-auto-backup", default=None, help="Override the environment's backup policy")
@click.pass_context
def upload(ctx: click.Context, name: str, description: str, auto_backup: bool | None) -> None:
    """Upload the local tfvars file as a new version."""
    from .commands.sync_cmd import run_upload

    sys.exit(run_upload(ctx.obj["app"], name, description=description, auto_backup=auto_backup))


@cli.command()
@click.argument("name")
@click.option("--version-id", default=None, help="Version to download [latest]")
@click.option("--force", "-f", is_flag=True, help="Overwrite without confirmation")
@click.pass_context
def download(ctx: click.Context, name: str, version_id: str | None, force: bool) -> None:
    """Download a version to the local tfvars path."""
    from .commands.sync_cmd import run_download

    sys.exit(run_download(ctx.obj["app"], name, version_id=version_id, force=force))


@cli.command()
@click.argument("name")
@click.option("--check", is_flag=True, help="Exit non-zero when local and remote diverged")
@click.option("--sync", is_flag=True, help="Offer to download or upload when unambiguous")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, name: str, check: bool, sync: bool, output_json: bool) -> None:
    """Compare the local tfvars file with the latest version."""
    from .commands.sync_cmd import run_status

    sys.exit(run_status(ctx.obj["app"], name, check=check, sync=sync, output_json=output_json))


# ---------------------------------------------------------------------------
# Ledgers
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name")
@click.option("--since", type=DATE, default=None, help="Only versions since this date (YYYY-MM-DD)")
@click.option("--before", type=DATE, default=None, help="Only versions before this date (YYYY-MM-DD)")
@click.option("--search", "search_text", default=None, help="Search in version descriptions")
@click.option("--latest-only", is_flag=True, help="Show only the latest version")
@click.option("--sort-by-date/--append-order", default=True, show_default=True)
@click.option("--limit", type=int, default=None, help="Maximum versions to show")
@click.option("--stats", is_flag=True, help="Show version statistics")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def versions(
    ctx: click.Context,
    name: str,
    since: datetime | None,
    before: datetime | None,
    search_text: str | None,
    latest_only: bool,
    sort_by_date: bool,
    limit: int | None,
    stats: bool,
    output_json: bool,
) -> None:
    """List uploaded versions."""
    from .commands.history_cmd import run_versions

    sys.exit(
        run_versions(
            ctx.obj["app"],
            name,
            since=_utc(since),
            before=_utc(before),
            search_text=search_text,
            latest_only=latest_only,
            sort_by_date=sort_by_date,
            limit=limit,
            stats=stats,
            output_json=output_json,
        )
    )


@cli.command()
@click.argument("name")
@click.option("--limit", type=int, default=5, show_default=True, help="Maximum entries (0: unlimited)")
@click.option("--all", "show_all", is_flag=True, help="Show all entries")
@click.option("--since", type=DATE, default=None, help="Only entries since this date (YYYY-MM-DD)")
@click.option("--before", type=DATE, default=None, help="Only entries before this date (YYYY-MM-DD)")
@click.option("--status", type=click.Choice(["success", "failure"]), default=None)
@click.option("--user", "deployed_by", default=None, help="Only entries by this user")
@click.option("--version-id", default=None, help="Only entries for this full version id")
@click.option("--command", type=click.Choice(["apply", "destroy"]), default=None)
@click.option("--stats", is_flag=True, help="Show deployment statistics")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def history(
    ctx: click.Context,
    name: str,
    limit: int,
    show_all: bool,
    since: datetime | None,
    before: datetime | None,
    status: str | None,
    deployed_by: str | None,
    version_id: str | None,
    command: str | None,
    stats: bool,
    output_json: bool,
) -> None:
    """Show deployment history."""
    from .commands.history_cmd import run_history

    sys.exit(
        run_history(
            ctx.obj["app"],
            name,
            since=_utc(since),
            before=_utc(before),
            status=status,
            deployed_by=deployed_by,
            version_id=version_id,
            command=command,
            limit=None if show_all or limit == 0 else limit,
            stats=stats,
            output_json=output_json,
        )
    )


@cli.command()
@click.argument("name")
@click.argument("version_a")
@click.argument("version_b", required=False)
@click.pass_context
def diff(ctx: click.Context, name: str, version_a: str, version_b: str | None) -> None:
    """Show differences between two versions (or one version and the latest)."""
    from .commands.history_cmd import run_diff

    sys.exit(run_diff(ctx.obj["app"], name, version_a, version_b))


@cli.command()
@click.option("--env", "environment", default=None, help="Only entries for this environment")
@click.option("--last", "last_n", type=int, default=20, show_default=True)
@click.pass_context
def audit(ctx: click.Context, environment: str | None, last_n: int) -> None:
    """Show the local audit log."""
    from .commands.history_cmd import run_audit

    sys.exit(run_audit(ctx.obj["app"], environment=environment, last_n=last_n))


# ---------------------------------------------------------------------------
# Terraform
# ---------------------------------------------------------------------------


def _terraform_options(func):
    func = click.option(
        "--option",
        "-o",
        "options",
        multiple=True,
        help="Extra argument passed to terraform (repeatable)",
    )(func)
    func = click.option(
        "--version-id", default=None, help="Recorded version to use (implies --remote)"
    )(func)
    return func


@cli.command()
@click.argument("name")
@click.option("--remote", is_flag=True, help="Use the recorded version instead of the local file")
@click.option("--var-file", "-v", type=click.Path(dir_okay=False, path_type=Path), default=None)
@_terraform_options
@click.pass_context
def plan(
    ctx: click.Context,
    name: str,
    remote: bool,
    var_file: Path | None,
    version_id: str | None,
    options: tuple[str, ...],
) -> None:
    """Run terraform plan with an environment's variables."""
    from .commands.deploy_cmd import run_plan

    sys.exit(
        run_plan(ctx.obj["app"], name, remote=remote, version_id=version_id, var_file=var_file, options=list(options))
    )


@cli.command()
@click.argument("name")
@click.option("--remote", is_flag=True, help="Use the recorded version instead of the local file")
@click.option("--var-file", "-v", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.option("--auto-approve", is_flag=True, help="Skip interactive approval")
@click.option("--description", "-d", default="", help="Description if the local file is uploaded")
@_terraform_options
@click.pass_context
def apply(
    ctx: click.Context,
    name: str,
    remote: bool,
    var_file: Path | None,
    auto_approve: bool,
    description: str,
    version_id: str | None,
    options: tuple[str, ...],
) -> None:
    """Run terraform apply and record the deployment."""
    from .commands.deploy_cmd import run_apply

    sys.exit(
        run_apply(
            ctx.obj["app"],
            name,
            remote=remote,
            version_id=version_id,
            var_file=var_file,
            auto_approve=auto_approve,
            description=description,
            options=list(options),
        )
    )


@cli.command()
@click.argument("name")
@_terraform_options
@click.pass_context
def destroy(ctx: click.Context, name: str, version_id: str | None, options: tuple[str, ...]) -> None:
    """Destroy an environment using its last deployed variables."""
    from .commands.deploy_cmd import run_destroy

    sys.exit(run_destroy(ctx.obj["app"], name, version_id=version_id, options=list(options)))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
