"""CLI main entry point."""

import click

from . import __version__
from .commands.bootstrap import bootstrap


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Zero-touch Kubernetes node bootstrap CLI."""
    ctx.ensure_object(dict)


cli.add_command(bootstrap)


@cli.command()
def version() -> None:
    """Show version information."""
    click.echo(f"zerotouch version {__version__}")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
