"""Bootstrap command for initializing the first control-plane node.

This module provides the `zerotouch bootstrap` command which runs the
node-1 step sequence, and its `status` and `reset` subcommands which
inspect and edit the completion markers.
"""

from __future__ import annotations

import sys

import click
from rich.console import Console
from rich.table import Table

from ..bootstrap import MarkerStore, StepSequencer, build_context, build_node1_steps, run_bootstrap
from ..config import ConfigError, load_config
from ..shared import configure_logging, ensure_dirs

console = Console()


def _load(config_path: str | None):
    try:
        return load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Config file path (default: /etc/zerotouch/config.yaml)",
)
@click.option("--dry-run", is_flag=True, help="List the steps that would run, then exit")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON log lines")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default="info",
    help="Log level",
)
@click.pass_context
def bootstrap(ctx, config_path, dry_run, json_output, log_level):
    """Initialize this machine as the first control-plane node.

    Runs every step in order, skipping steps already marked complete.
    On failure the run stops and the next invocation resumes at the
    failed step.

    Examples:

        # Run with /etc/zerotouch/config.yaml and the environment
        zerotouch bootstrap

        # Show what would run without touching the host
        zerotouch bootstrap --dry-run

        # Use another config file
        zerotouch bootstrap --config ./node1.yaml
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    if ctx.invoked_subcommand is not None:
        return  # Subcommand handles it

    config = _load(config_path)

    if dry_run:
        configure_logging("warning")
        store = MarkerStore(config.marker_dir)
        plan = StepSequencer(store).plan(build_node1_steps(config))
        click.echo(f"Marker directory: {config.marker_dir}\n")
        for step, done in plan:
            click.echo(f"  {'skip' if done else 'run '}  {step.name:<15} {step.description}")
        return

    ensure_dirs(config.bootstrap_dir, config.log_file)
    configure_logging(log_level, log_file=config.log_file, json_output=json_output)

    result = run_bootstrap(build_context(config))
    if not result.success:
        click.echo(
            f"\n✗ Bootstrap failed at step '{result.failed_step}'. "
            f"See {config.log_file}; re-run to resume.",
            err=True,
        )
        sys.exit(1)
    click.echo(f"\n✓ Bootstrap complete in {result.elapsed_seconds:.0f}s.")


@bootstrap.command()
@click.pass_context
def status(ctx):
    """Show which steps are complete."""
    configure_logging("warning")
    config = _load(ctx.obj.get("config_path"))
    store = MarkerStore(config.marker_dir)

    table = Table(title=f"Bootstrap steps ({config.marker_dir})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Step", style="cyan")
    table.add_column("Description")
    table.add_column("State")
    table.add_column("Completed at", style="dim")

    for index, step in enumerate(build_node1_steps(config), start=1):
        completed_at = store.completed_at(step.name)
        if store.is_complete(step.name):
            state = "[green]completed[/green]"
        else:
            state = "[yellow]pending[/yellow]"
        table.add_row(
            str(index),
            step.name,
            step.description,
            state,
            completed_at.isoformat(timespec="seconds") if completed_at else "-",
        )

    console.print(table)


@bootstrap.command()
@click.argument("step", required=False)
@click.option("--all", "reset_all", is_flag=True, help="Remove every completion marker")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset(ctx, step, reset_all, yes):
    """Forget a completed step so the next run repeats it."""
    if not step and not reset_all:
        raise click.UsageError("Give a STEP name or --all.")
    if step and reset_all:
        raise click.UsageError("STEP and --all are mutually exclusive.")

    configure_logging("warning")
    config = _load(ctx.obj.get("config_path"))
    store = MarkerStore(config.marker_dir)

    if reset_all:
        if not yes and not click.confirm("Remove all completion markers?"):
            return
        store.clear()
        click.echo("✓ All completion markers removed.")
        return

    known = {s.name for s in build_node1_steps(config)}
    if step not in known:
        raise click.BadParameter(
            f"unknown step '{step}' (known: {', '.join(sorted(known))})", param_hint="STEP"
        )
    if not yes and not click.confirm(f"Mark step '{step}' as not completed?"):
        return
    if store.reset(step):
        click.echo(f"✓ Step '{step}' will run again.")
    else:
        click.echo(f"Step '{step}' was not marked complete.")
