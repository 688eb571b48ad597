"""papertray CLI: run the print server and inspect its environment.

Provides a ``papertray`` command with subcommands:

    papertray serve       start the REST API and the print scheduler
    papertray printers    list the printers CUPS knows about
    papertray config      show the effective configuration

``printers`` and ``config`` accept ``--json`` for machine-readable output.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from papertray.cli.output import format_config, format_devices, format_error
from papertray.config import ConfigError, PapertrayConfig, get_config_path, load_config
from papertray.printers.base import PrinterError

logger = logging.getLogger(__name__)


def _load(ctx: click.Context, json_mode: bool = False, **overrides) -> PapertrayConfig:
    try:
        return load_config(ctx.obj.get("config_path"), **overrides)
    except ConfigError as exc:
        click.echo(format_error(str(exc), code="CONFIG_ERROR", json_mode=json_mode), err=not json_mode)
        sys.exit(1)


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    envvar="PAPERTRAY_CONFIG",
    help="Config file (default: ~/.papertray/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level to stderr.")
@click.version_option(package_name="papertray")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """papertray: a document print queue in front of CUPS."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", default=None, help="Bind address (default 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Port number (default 8080).")
@click.option("--auth-token", default=None, help="Bearer token (defaults to PAPERTRAY_AUTH_TOKEN).")
@click.option("--upload-dir", default=None, type=click.Path(file_okay=False), help="Where uploads are stored.")
@click.option("--log-dir", default=None, type=click.Path(file_okay=False), help="Rotating log file directory.")
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    auth_token: str | None,
    upload_dir: str | None,
    log_dir: str | None,
) -> None:
    """Start the REST API together with the print scheduler."""
    from papertray.log_config import configure_logging
    from papertray.rest_api import run_rest_server

    config = _load(ctx, host=host, port=port, auth_token=auth_token, upload_dir=upload_dir)
    log_path = configure_logging(log_dir)
    click.echo(f"Starting papertray on {config.host}:{config.port} (log: {log_path})")
    try:
        run_rest_server(config)
    except RuntimeError as exc:
        click.echo(format_error(str(exc), code="REFUSED"), err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# printers
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def printers(ctx: click.Context, json_mode: bool) -> None:
    """List printers available through CUPS."""
    from papertray.printers.cups import CupsBackend

    config = _load(ctx, json_mode)
    backend = CupsBackend(lp_path=config.lp_path, lpstat_path=config.lpstat_path, lp_timeout=config.lp_timeout)
    try:
        devices = backend.list_devices()
    except PrinterError as exc:
        click.echo(format_error(str(exc), code="DISCOVERY_ERROR", json_mode=json_mode))
        sys.exit(1)
    click.echo(format_devices([d.to_dict() for d in devices], json_mode=json_mode))


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command("config")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.option("--show-secrets", is_flag=True, help="Print the auth token instead of masking it.")
@click.pass_context
def show_config(ctx: click.Context, json_mode: bool, show_secrets: bool) -> None:
    """Show the effective configuration after env and file overrides."""
    config = _load(ctx, json_mode)
    source = ctx.obj.get("config_path") or get_config_path()
    click.echo(format_config(config.to_dict(reveal_secrets=show_secrets), str(source), json_mode=json_mode))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
