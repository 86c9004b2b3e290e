from __future__ import annotations

import logging
import sys
from typing import Optional

import click

from . import __version__
from .api import SalesforceAPI
from .backup import RESTRICTED_OBJECTS, incremental_boundary, run_backup, select_objects
from .config import BackupConfig, write_sample_config
from .exceptions import (
    CatalogError,
    ConfigError,
    FatalBackupError,
    MissingCredentialsError,
    NotificationError,
)
from .logging_config import configure_logging
from .planner import plan_columns
from .report import Report
from .schema import SchemaCatalog, parse_global_describe
from .soql import compile_query
from .utils import lower_set

_logger = logging.getLogger(__name__)


def _load_config(path: str) -> BackupConfig:
    try:
        return BackupConfig.from_file(path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def _connect(cfg: BackupConfig) -> SalesforceAPI:
    api = SalesforceAPI(cfg.sf_config())
    try:
        api.connect()
    except MissingCredentialsError as e:
        needed = ", ".join(e.missing)
        msg = (
            f"Missing Salesforce credentials: {needed}\n\n"
            "Put them in the config file or set environment variables "
            "(or a .env next to the config file), e.g.:\n"
            "  SF_CLIENT_ID=...        # Connected App Consumer Key\n"
            "  SF_CLIENT_SECRET=...    # Connected App Client Secret\n"
            "  SF_USERNAME=... SF_PASSWORD=... SF_SECURITY_TOKEN=...\n\n"
            "Tip: run `sfbackup init-config <file>` for a sample config."
        )
        raise click.ClickException(msg) from e
    return api


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
)
@click.version_option(__version__, "--version", prog_name="sfbackup")
@click.option(
    "-v",
    "--verbose",
    "loglevel",
    flag_value=logging.INFO,
    default=None,
    help="Enable INFO logs.",
)
@click.option(
    "-vv",
    "--very-verbose",
    "loglevel",
    flag_value=logging.DEBUG,
    help="Enable DEBUG logs.",
)
@click.pass_context
def cli(ctx: click.Context, loglevel: Optional[int]) -> None:
    """Salesforce backup: export every object to CSV."""
    ctx.ensure_object(dict)
    ctx.obj["loglevel"] = loglevel
    configure_logging(loglevel)
    _logger.debug("CLI start, version=%s", __version__)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("init-config")
@click.argument("path", type=click.Path(dir_okay=False))
def init_config_cmd(path: str) -> None:
    """Write a sample config file to PATH (never overwrites)."""
    try:
        write_sample_config(path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Wrote sample config -> {path}")


@cli.command("run")
@click.argument("config_path", metavar="CONFIG", type=click.Path(exists=True, dir_okay=False))
@click.option("--progress", is_flag=True, help="Show a progress bar over objects.")
@click.pass_context
def run_cmd(ctx: click.Context, config_path: str, progress: bool) -> None:
    """Back up all selected objects as described by CONFIG."""
    cfg = _load_config(config_path)
    if cfg.log:
        configure_logging(ctx.obj.get("loglevel") or logging.INFO, log_file=cfg.log)

    try:
        report = Report(cfg.email)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    api = SalesforceAPI(cfg.sf_config())
    try:
        run_backup(api, cfg, report, progress=progress)
    except FatalBackupError as e:
        click.echo(f"Backup failed to start: {e}", err=True)
        sys.exit(1)
    except NotificationError as e:
        raise click.ClickException(f"Backup finished but the report was not delivered: {e}") from e


@cli.command("objects")
@click.argument("config_path", metavar="CONFIG", type=click.Path(exists=True, dir_okay=False))
def objects_cmd(config_path: str) -> None:
    """List the sObjects that `run` would back up."""
    cfg = _load_config(config_path)
    api = _connect(cfg)
    summaries = parse_global_describe(api.describe_global())
    selected = select_objects(
        summaries,
        include=lower_set(cfg.include),
        exclude=lower_set(cfg.exclude),
        restricted=RESTRICTED_OBJECTS,
    )
    for s in selected:
        click.echo(s.name)


@cli.command("plan")
@click.argument("config_path", metavar="CONFIG", type=click.Path(exists=True, dir_okay=False))
@click.argument("object_name", metavar="OBJECT")
def plan_cmd(config_path: str, object_name: str) -> None:
    """Show the columns and SOQL that `run` would use for OBJECT."""
    cfg = _load_config(config_path)
    api = _connect(cfg)
    summaries = parse_global_describe(api.describe_global())
    try:
        catalog = SchemaCatalog.build(api, summaries)
    except CatalogError as e:
        raise click.ClickException(str(e)) from e

    descriptor = catalog.lookup(object_name)
    if descriptor is None:
        raise click.ClickException(f"object not described: {object_name}")

    plan = plan_columns(descriptor, catalog)
    soql = compile_query(
        plan.object_name,
        plan.columns,
        plan.blob_fields,
        since=incremental_boundary(cfg.hours),
        timestamp_field=plan.timestamp_field,
    )
    click.echo(f"Object: {plan.object_name}")
    click.echo("Columns: " + ", ".join(plan.columns))
    click.echo("Blob fields: " + (", ".join(plan.blob_fields) or "(none)"))
    click.echo(f"Timestamp field: {plan.timestamp_field or '(none)'}")
    click.echo(f"SOQL: {soql or '(skipped: no timestamp field for incremental backup)'}")
