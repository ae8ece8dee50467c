"""CLI interface for the schroot provisioning tool."""
from pathlib import Path
from typing import List, Optional

import click
import sh
import typer
from typer.core import TyperCommand

from . import utils
from . import steps
from .config import DEFAULT_MIRROR, DEFAULT_RELEASE, ProvisionRequest
from .errors import ProvisionError


class BadUsage(click.UsageError):
    """Usage error reported with exit status 1."""

    exit_code = 1


class ProvisionCommand(TyperCommand):
    """Command whose parse errors also exit with status 1."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            e.exit_code = 1
            raise


def _single(ctx: typer.Context, values: Optional[List[str]], what: str) -> Optional[str]:
    """Get the value of an option that may be given at most once."""
    values = list(values or [])
    if len(values) > 1:
        raise BadUsage(f"Duplicate {what}.", ctx)
    return values[0] if values else None


def build_request(
    ctx: typer.Context,
    names: Optional[List[str]],
    release: Optional[List[str]],
    path: Optional[List[str]],
    friendly_name: Optional[List[str]],
    force: bool,
    skip: bool,
    mirror: str,
) -> ProvisionRequest:
    """Validate command line input and turn it into a ProvisionRequest."""
    name = _single(ctx, names, "schroot name")
    release_value = _single(ctx, release, "Ubuntu release")
    path_value = _single(ctx, path, "chroot path")
    friendly_value = _single(ctx, friendly_name, "friendly name")

    if skip and not force:
        raise BadUsage("Can't use --skip without --force.", ctx)
    if not name:
        raise BadUsage("Missing schroot name.", ctx)

    return ProvisionRequest(
        name=name,
        release=release_value or DEFAULT_RELEASE,
        path=Path(path_value) if path_value else None,
        friendly_name=friendly_value or None,
        force=force,
        skip=skip,
        mirror=mirror,
    )


app = typer.Typer(
    name="mkschroot",
    help="Create an isolated Ubuntu schroot for development builds.",
    add_completion=False,
)


@app.command(cls=ProvisionCommand)
def setup(
    ctx: typer.Context,
    names: Optional[List[str]] = typer.Argument(
        None, metavar="NAME", help="Schroot name, e.g. xenial-build", show_default=False,
    ),
    release: Optional[List[str]] = typer.Option(
        None, "--release", "-r", metavar="RELEASE",
        help=f"Ubuntu release  [default: {DEFAULT_RELEASE}]", show_default=False,
    ),
    path: Optional[List[str]] = typer.Option(
        None, "--path", "-p", metavar="DIR",
        help="Path of the chroot  [default: /var/chroots/NAME]", show_default=False,
    ),
    friendly_name: Optional[List[str]] = typer.Option(
        None, "--name", metavar="FRIENDLY_NAME",
        help="Friendly name of the schroot  [default: '<Release> Schroot']", show_default=False,
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing schroot"),
    skip: bool = typer.Option(False, "--skip", help="With --force, skip steps that might already be complete"),
    mirror: str = typer.Option(DEFAULT_MIRROR, "--mirror", envvar="MKSCHROOT_MIRROR", help="Mirror to debootstrap from"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview changes without applying them"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every command before it runs"),
):
    """Create an isolated Ubuntu schroot for development builds."""
    request = build_request(ctx, names, release, path, friendly_name, force, skip, mirror)
    utils.setup_logging(verbose)

    try:
        steps.provision_schroot(request, dry_run=dry_run)
    except ProvisionError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)
    except sh.ErrorReturnCode as e:
        typer.echo(f"Command failed (exit {e.exit_code}): {e.full_cmd}", err=True)
        raise typer.Exit(1)

    if dry_run:
        typer.echo("Dry run complete. Nothing was changed.")
        return

    typer.echo(f"Setup complete. Use 'schroot -c {request.name}' to use your schroot.")
    typer.echo("You may wish to uncomment Apt sources in /etc/apt/sources.list")
    typer.echo("before installing more packages.")


if __name__ == "__main__":
    app()
