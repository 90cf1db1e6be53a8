"""Main CLI entry point for secret-rotator.

This module provides the command-line interface for secret-rotator, a tool that
flags credentials for periodic rotation, finds the ones that are due, rotates
them with freshly generated values and optionally exports them to shell
profiles. Rotation state lives in each backend's own metadata.

The CLI is built using Click. The backend is selected once per invocation
from the configuration file, the environment or the global options.
"""

from typing import Any, Dict, Optional

import click

from secretrotator import __version__
from secretrotator.utils.errors import ErrorHandler, RotatorError
from secretrotator.utils.logging import setup_logging

STATUS_LABELS = {
    "not-flagged": "NOT FLAGGED",
    "flagged-not-due": "OK",
    "flagged-due": "DUE",
}


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    "config_path",
    envvar="ROTATOR_CONFIG",
    type=click.Path(dir_okay=False),
    help="Path to rotator.yml (default: configure from environment variables)",
)
@click.option(
    "--backend",
    type=click.Choice(["vault", "aws", "file"], case_sensitive=False),
    help="Secret backend (overrides configuration)",
)
@click.option("--vault-addr", help="Vault server address")
@click.option("--vault-token", help="Vault token")
@click.option("--vault-mount", help="Vault KV v2 mount point")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--log-file", help="Log to file in addition to console")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    backend: Optional[str],
    vault_addr: Optional[str],
    vault_token: Optional[str],
    vault_mount: Optional[str],
    verbose: bool,
    log_file: Optional[str],
) -> None:
    """secret-rotator - Automatic secret rotation for Vault, AWS and local files.

    Flag secrets for rotation, scan for the ones that are due and rotate them.
    Rotation state is stored as metadata on the secrets themselves.

    Args:
        ctx: Click context object containing shared state
        config_path: Optional YAML configuration file
        backend: Backend override
        vault_addr: Vault address override
        vault_token: Vault token override
        vault_mount: Vault mount override
        verbose: Enable verbose output for detailed logging
        log_file: Optional path to log file for additional logging
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file
    ctx.obj["config_path"] = config_path
    ctx.obj["overrides"] = {
        "backend": backend,
        "vault.address": vault_addr,
        "vault.token": vault_token,
        "vault.mount": vault_mount,
    }
    ctx.obj["error_handler"] = ErrorHandler(verbose=verbose)

    # Setup logging
    setup_logging(verbose=verbose, log_file=log_file)


def _get_config(ctx: click.Context):
    """Load and cache the configuration for this invocation."""
    if "config" not in ctx.obj:
        from secretrotator.config import ConfigManager

        ctx.obj["config"] = ConfigManager().load(ctx.obj.get("config_path"), overrides=ctx.obj.get("overrides"))
    return ctx.obj["config"]


def _get_backend(ctx: click.Context):
    if "backend" not in ctx.obj:
        from secretrotator.backends import create_backend

        ctx.obj["backend"] = create_backend(_get_config(ctx))
    return ctx.obj["backend"]


def _get_engine(ctx: click.Context):
    from secretrotator.secrets import RotationEngine

    config = _get_config(ctx)
    return RotationEngine(
        _get_backend(ctx),
        default_period_months=config.rotation.period_months,
        secret_length=config.rotation.secret_length,
        field=config.rotation.field,
    )


def _get_env_bridge(ctx: click.Context):
    from secretrotator.environments import EnvSyncBridge, ShellProfileWriter

    config = _get_config(ctx)
    writer = ShellProfileWriter(profiles=config.env_sync.profiles)
    return EnvSyncBridge(_get_backend(ctx), writer, field=config.rotation.field)


def _get_target(ctx: click.Context, target_type: Optional[str]):
    from secretrotator.targets import create_target

    return create_target(_get_config(ctx), _get_backend(ctx), target_type=target_type)


def _target_options(func):
    func = click.option(
        "--target-type",
        type=click.Choice(["postgres", "postgresql", "api"], case_sensitive=False),
        help="Target to update (default: first configured)",
    )(func)
    func = click.option(
        "--update-target",
        is_flag=True,
        help="Also set the new password in the configured target (database, API)",
    )(func)
    return func


def _batch_options(ctx: click.Context, workers: Optional[int]) -> Dict[str, Any]:
    config = _get_config(ctx)
    return {
        "workers": workers or config.rotation.workers,
        "timeout": config.rotation.timeout_seconds,
    }


def _echo_sync_result(result) -> None:
    if result.updated:
        click.echo(f"✓ Exported {result.var_name} in:")
        for profile in result.profiles:
            click.echo(f"  - {profile}")
        click.echo("Open a new shell (or source your profile) to pick up the change")
    else:
        click.echo(f"⚠ No shell profiles found; {result.var_name} was not exported")


def _echo_secret_warning() -> None:
    click.echo("⚠ The following output contains a secret value. Do not share or log it.")


@cli.command()
@click.option("--output", "-o", default="rotator.yml", show_default=True, help="Where to write the sample")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init(ctx: click.Context, output: str, force: bool) -> None:
    """Write a sample configuration file."""
    try:
        from secretrotator.config import ConfigManager

        path = ConfigManager().create_sample(output, overwrite=force)

        click.echo(f"✓ Sample configuration written to {path}")
        click.echo("\nNext steps:")
        click.echo("  1. Edit the backend settings in the file")
        click.echo(f"  2. Run 'secret-rotator --config {path} list' to verify access")
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, "Configuration initialization")


@cli.command()
@click.argument("path")
@click.option(
    "--period",
    "-p",
    type=click.IntRange(min=1),
    help="Rotation period in months (default from configuration)",
)
@click.option("--target-username", help="Role or account to update at the rotation target")
@click.pass_context
def flag(ctx: click.Context, path: str, period: Optional[int], target_username: Optional[str]) -> None:
    """Flag a secret for automatic rotation."""
    try:
        from secretrotator.secrets.metadata import format_timestamp, next_rotation_due

        engine = _get_engine(ctx)
        metadata = engine.flag(path, period_months=period, target_username=target_username)

        click.echo(f"✓ Flagged {path} for rotation every {metadata.period_months} months")
        due_at = next_rotation_due(metadata, engine.default_period_months)
        if due_at is not None:
            click.echo(f"  Next rotation due: {format_timestamp(due_at)}")
        if metadata.target_username:
            click.echo(f"  Target username: {metadata.target_username}")
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Flagging {path}")


@cli.command()
@click.argument("path")
@click.pass_context
def unflag(ctx: click.Context, path: str) -> None:
    """Disable automatic rotation for a secret."""
    try:
        _get_engine(ctx).unflag(path)
        click.echo(f"✓ Rotation disabled for {path}")
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Unflagging {path}")


@cli.command()
@click.argument("path")
@click.pass_context
def check(ctx: click.Context, path: str) -> None:
    """Show whether a secret is due for rotation."""
    try:
        decision = _get_engine(ctx).check(path)
        click.echo(f"{path}: {STATUS_LABELS[decision.status.value]} ({decision.reason})")
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Checking {path}")


@cli.command()
@click.argument("prefix", default="")
@click.option("--workers", type=click.IntRange(min=1), help="Secrets checked concurrently")
@click.pass_context
def scan(ctx: click.Context, prefix: str, workers: Optional[int]) -> None:
    """Scan secrets under PREFIX and report which are due for rotation."""
    try:
        from secretrotator.secrets.scanner import batch_exit_code, summarize

        engine = _get_engine(ctx)
        results = []
        for result in engine.scan(prefix, **_batch_options(ctx, workers)):
            results.append(result)
            if result.error is not None:
                click.echo(f"  ✗ {result.ref.path}: {result.error.message}")
            elif result.decision.is_flagged or ctx.obj["verbose"]:
                label = STATUS_LABELS[result.decision.status.value]
                click.echo(f"  {label:<11} {result.ref.path} ({result.decision.reason})")

        counts = summarize(results)
        click.echo("\nScan completed:")
        click.echo(f"  Secrets: {len(results)}")
        click.echo(f"  Due for rotation: {counts['flagged-due']}")
        click.echo(f"  Flagged, not due: {counts['flagged-not-due']}")
        click.echo(f"  Not flagged: {counts['not-flagged']}")
        if counts["failed"]:
            click.echo(f"  ✗ Failed: {counts['failed']}")

        exit_code = batch_exit_code(result.error for result in results)
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Scanning {prefix or '/'}")
    else:
        if exit_code:
            ctx.exit(exit_code)


@cli.command()
@click.argument("path")
@click.option("--key", "-k", "field", help="Payload field to rotate (default from configuration)")
@click.option("--update-env", is_flag=True, help="Export the new value to shell profiles")
@click.option("--env-var", "-e", help="Environment variable name (implies --update-env)")
@_target_options
@click.option("--target-username", help="Role or account at the target (default from secret metadata)")
@click.pass_context
def rotate(
    ctx: click.Context,
    path: str,
    field: Optional[str],
    update_env: bool,
    env_var: Optional[str],
    update_target: bool,
    target_type: Optional[str],
    target_username: Optional[str],
) -> None:
    """Rotate a secret now, whether or not it is due."""
    try:
        engine = _get_engine(ctx)
        field = field or engine.field
        target = _get_target(ctx, target_type) if update_target or target_type else None

        value = engine.rotate(path, field=field, target=target, target_username=target_username)

        click.echo(f"✓ Rotated {path} ({field})")
        if target is not None:
            username = target_username or engine.backend.read_metadata(path).target_username
            click.echo(f"✓ Updated {target.target_type} password for user: {username}")
        _echo_secret_warning()
        click.echo(value)

        if update_env or env_var:
            result = _get_env_bridge(ctx).sync(path, field=field, var_name=env_var, value=value)
            _echo_sync_result(result)
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Rotating {path}")


@cli.command()
@click.argument("prefix", default="")
@click.option("--dry-run", is_flag=True, help="Show what would be rotated without changing anything")
@click.option("--update-env", is_flag=True, help="Export rotated values to shell profiles")
@_target_options
@click.option("--key", "-k", "field", help="Payload field to rotate (default from configuration)")
@click.option("--workers", type=click.IntRange(min=1), help="Secrets processed concurrently")
@click.pass_context
def auto(
    ctx: click.Context,
    prefix: str,
    dry_run: bool,
    update_env: bool,
    update_target: bool,
    target_type: Optional[str],
    field: Optional[str],
    workers: Optional[int],
) -> None:
    """Rotate every flagged secret under PREFIX that is due.

    With --update-target, secrets flagged with a target username also have
    their password set in the configured target.
    """
    try:
        engine = _get_engine(ctx)
        field = field or engine.field
        target = _get_target(ctx, target_type) if update_target or target_type else None

        on_rotated = None
        if update_env and not dry_run:
            bridge = _get_env_bridge(ctx)

            def on_rotated(ref, value):
                bridge.sync(ref.path, field=field, value=value)

        if dry_run:
            click.echo("DRY RUN: No secrets will be changed")

        report = engine.rotate_due(
            prefix,
            dry_run=dry_run,
            field=field,
            on_rotated=on_rotated,
            target=None if dry_run else target,
            **_batch_options(ctx, workers),
        )

        for outcome in report.outcomes:
            if outcome.rotated and outcome.failed:
                click.echo(f"  ⚠ {outcome.ref.path}: rotated, but {outcome.error.message}")
            elif outcome.failed:
                click.echo(f"  ✗ {outcome.ref.path}: {outcome.error.message}")
            elif outcome.rotated:
                suffix = f" (updated {target.target_type} password)" if outcome.target_updated else ""
                click.echo(f"  ✓ {outcome.ref.path}: rotated{suffix}")
            elif outcome.due:
                click.echo(f"  - {outcome.ref.path}: would rotate ({outcome.decision.reason})")

        click.echo("\nRotation completed:" if not dry_run else "\nDry run completed:")
        click.echo(f"  Secrets checked: {len(report.outcomes)}")
        click.echo(f"  Due for rotation: {len(report.due)}")
        if not dry_run:
            click.echo(f"  ✓ Rotated: {len(report.rotated)}")
        click.echo(f"  ✗ Failed: {len(report.failed)}")

        exit_code = report.exit_code
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Automatic rotation of {prefix or '/'}")
    else:
        if exit_code:
            ctx.exit(exit_code)


@cli.command()
@click.argument("path")
@click.pass_context
def read(ctx: click.Context, path: str) -> None:
    """Print a secret's payload."""
    try:
        payload = _get_backend(ctx).read_payload(path)

        _echo_secret_warning()
        for key in sorted(payload):
            click.echo(f"{key}: {payload[key]}")
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Reading {path}")


@cli.command(name="list")
@click.argument("prefix", default="")
@click.pass_context
def list_secrets(ctx: click.Context, prefix: str) -> None:
    """List secret paths under PREFIX."""
    try:
        count = 0
        for ref in _get_backend(ctx).list(prefix):
            click.echo(ref.path)
            count += 1

        if count == 0:
            click.echo(f"No secrets found under {prefix or '/'}", err=True)
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Listing {prefix or '/'}")


@cli.command(name="update-env")
@click.argument("path")
@click.option("--key", "-k", "field", help="Payload field to export (default from configuration)")
@click.option("--env-var", "-e", help="Environment variable name (default derived from PATH)")
@click.pass_context
def update_env(ctx: click.Context, path: str, field: Optional[str], env_var: Optional[str]) -> None:
    """Export a secret field to shell profiles."""
    try:
        result = _get_env_bridge(ctx).sync(path, field=field, var_name=env_var)
        _echo_sync_result(result)
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Updating environment from {path}")


@cli.command(name="gen-password")
@click.argument("path")
@click.option("--key", "-k", "field", help="Payload field to set (default from configuration)")
@click.option("--env-var", "-e", help="Also export the value under this variable name")
@click.option("--length", "-l", type=click.IntRange(min=1), help="Password length (default from configuration)")
@click.pass_context
def gen_password(
    ctx: click.Context,
    path: str,
    field: Optional[str],
    env_var: Optional[str],
    length: Optional[int],
) -> None:
    """Generate a password and store it at PATH, creating the secret if needed."""
    try:
        from secretrotator.secrets import SecretGenerator

        config = _get_config(ctx)
        field = field or config.rotation.field
        value = SecretGenerator().generate(length or config.rotation.secret_length)

        _get_backend(ctx).write_payload(path, {field: value}, merge=True)

        click.echo(f"✓ Stored generated password at {path} ({field})")
        _echo_secret_warning()
        click.echo(value)

        if env_var:
            result = _get_env_bridge(ctx).sync(path, field=field, var_name=env_var, value=value)
            _echo_sync_result(result)
    except RotatorError as e:
        ctx.obj["error_handler"].exit_with_error(e, f"Generating password for {path}")


if __name__ == "__main__":
    cli()
