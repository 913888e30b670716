"""CLI for building complement blueprint images."""

import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .blueprints import load_blueprints
from .config import ComplementConfig
from .docker import Builder
from .docker.labels import (
    ACCESS_TOKEN_PREFIX,
    APPLICATION_SERVICE_PREFIX,
    BLUEPRINT_LABEL,
    COMPLEMENT_LABEL,
    HS_NAME_LABEL,
    label_filter,
)
from .errors import DOCKER_API_ERRORS, ComplementError


console = Console()


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _builder(show_progress: bool = False) -> Builder:
    config = ComplementConfig.from_env()
    _setup_logging(config.debug_logging)
    return Builder(config, show_progress=show_progress)


@click.group()
@click.version_option(version=__version__, prog_name="complement")
def cli():
    """Complement – build homeserver blueprints into reusable images."""
    pass


@cli.command()
@click.argument("blueprints_path", type=click.Path(exists=True))
@click.option("--force", "-f", is_flag=True, help="Rebuild blueprints which already have images")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output")
def build(blueprints_path: str, force: bool, quiet: bool):
    """Build every blueprint in BLUEPRINTS_PATH into images."""
    try:
        blueprints = load_blueprints(blueprints_path)
        builder = _builder(show_progress=not quiet)

        if not quiet:
            names = ", ".join(bp.name for bp in blueprints) or "-"
            console.print(f"[bold]Building blueprints:[/bold] {names}")

        if force:
            builder.construct_blueprints(blueprints)
        else:
            builder.construct_blueprints_if_not_exist(blueprints)

        if not quiet:
            console.print("[green]✓ Blueprints built[/green]")
    except (ComplementError, *DOCKER_API_ERRORS, OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
def cleanup():
    """Remove complement containers, images and networks."""
    builder = _builder()
    builder.cleanup()
    kept = ", ".join(sorted(builder.keep_blueprints))
    if kept:
        console.print(f"[green]Cleaned up[/green] (kept: {kept})")
    else:
        console.print("[green]Cleaned up[/green]")


@cli.command()
def images():
    """List images built from blueprints."""
    builder = _builder()
    table = Table(title="Complement images")
    table.add_column("Blueprint", style="cyan")
    table.add_column("Homeserver", style="blue")
    table.add_column("Context")
    table.add_column("Tokens", justify="right")
    table.add_column("App services", justify="right")
    table.add_column("Image ID")

    try:
        listed = builder.docker.images(filters=label_filter(COMPLEMENT_LABEL))
    except DOCKER_API_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    for img in listed:
        labels = img.get("Labels") or {}
        tokens = sum(1 for k in labels if k.startswith(ACCESS_TOKEN_PREFIX))
        app_services = sum(1 for k in labels if k.startswith(APPLICATION_SERVICE_PREFIX))
        table.add_row(
            labels.get(BLUEPRINT_LABEL, "-"),
            labels.get(HS_NAME_LABEL, "-"),
            labels.get(COMPLEMENT_LABEL, "-"),
            str(tokens),
            str(app_services),
            str(img.get("Id", "")).replace("sha256:", "")[:12],
        )

    console.print(table)


def main():
    cli()


if __name__ == "__main__":
    main()
