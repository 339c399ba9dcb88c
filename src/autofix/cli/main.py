"""Main CLI entry point for the auto-fix agent.

``autofix run`` performs one poll cycle and is meant to be called by an
external scheduler. The other commands manage watches and inspect the
agent's state.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from autofix import __version__
from autofix.core.config import AutoFixConfig, load_config
from autofix.core.state_manager import ErrorStatus, StateManager
from autofix.exceptions import AutoFixError

console = Console()


def setup_logging(level: str = "INFO") -> None:
    """Setup logging with Rich formatting.

    Args:
        level: Logging level
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def handle_error(error: Exception, show_traceback: bool = False) -> None:
    """Display an error in a user-friendly way.

    Args:
        error: Exception to handle
        show_traceback: Whether to show full traceback
    """
    if isinstance(error, AutoFixError):
        console.print(f"\n[red]Error:[/red] {error.message}")

        if error.context:
            console.print("\n[yellow]Context:[/yellow]")
            for key, value in error.context.items():
                console.print(f"  {key}: {value}")
    else:
        console.print(f"\n[red]Unexpected error:[/red] {str(error)}")

    if show_traceback:
        console.print_exception()


class AutoFixGroup(click.Group):
    """Click group that reports errors and exits non-zero."""

    def invoke(self, ctx: click.Context) -> None:
        """Invoke command with error handling."""
        try:
            return super().invoke(ctx)
        except (click.ClickException, click.exceptions.Exit, click.exceptions.Abort):
            raise
        except Exception as e:
            handle_error(e, ctx.obj.get("debug", False) if ctx.obj else False)
            sys.exit(1)


def get_config(ctx: click.Context) -> AutoFixConfig:
    """Load configuration once per invocation."""
    if "config" not in ctx.obj:
        ctx.obj["config"] = load_config(ctx.obj.get("config_file"))
    return ctx.obj["config"]


def get_state(ctx: click.Context) -> StateManager:
    """State store for the configured state file."""
    if "state" not in ctx.obj:
        ctx.obj["state"] = StateManager(get_config(ctx).state_file)
    return ctx.obj["state"]


@click.group(cls=AutoFixGroup)
@click.option(
    "--config-file", type=click.Path(exists=True, path_type=Path), help="Path to configuration file"
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (defaults to AUTOFIX_LOG_LEVEL or INFO)",
)
@click.option("--debug", is_flag=True, help="Enable debug mode with full tracebacks")
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context, config_file: Optional[Path], log_level: Optional[str], debug: bool
) -> None:
    """Auto-Fix Agent - automated remediation of production errors.

    Watches deployment logs, analyzes new errors and opens pull requests
    with fixes for the ones that are safe to fix automatically.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["debug"] = debug

    setup_logging("DEBUG" if debug else (log_level or get_config(ctx).log_level))


@cli.command()
@click.option("--dry-run", is_flag=True, help="Analyze errors without touching the repository")
@click.pass_context
def run(ctx: click.Context, dry_run: bool) -> None:
    """Run one poll cycle.

    Exits with status 1 if any error could not be processed.
    """
    from autofix.cli.commands.run import run_cycle

    config = get_config(ctx)
    if dry_run:
        config.dry_run = True

    result = run_cycle(config)

    table = Table(title="Auto-Fix Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Errors found", str(result.errors_found))
    table.add_row("Errors analyzed", str(result.errors_analyzed))
    table.add_row("Fixes attempted", str(result.fixes_attempted))
    table.add_row("PRs created", str(result.prs_created))
    console.print(table)

    if result.has_failures:
        console.print(f"\n[red]{len(result.errors)} error(s) failed to process:[/red]")
        for failure in result.errors:
            console.print(f"  {failure['fingerprint']}: {failure['error']}")
        sys.exit(1)

    console.print("\n[green]✓[/green] Run complete")


@cli.command()
@click.option(
    "--format", type=click.Choice(["table", "json", "yaml"]), default="table", help="Output format"
)
@click.pass_context
def status(ctx: click.Context, format: str) -> None:
    """Show watches, last poll and error counts."""
    from autofix.cli.commands.status import show_status

    status_data = show_status(get_config(ctx), get_state(ctx))

    if format == "json":
        console.print(json.dumps(status_data, indent=2))
        return
    if format == "yaml":
        console.print(yaml.safe_dump(status_data, default_flow_style=False))
        return

    info_table = Table(title="Auto-Fix Agent Status")
    info_table.add_column("Property", style="cyan")
    info_table.add_column("Value")
    info_table.add_row("State file", status_data["agent"]["state_file"])
    info_table.add_row("Analyzer", status_data["agent"]["analyzer"])
    info_table.add_row("Dry run", "yes" if status_data["agent"]["dry_run"] else "no")
    info_table.add_row(
        "Watches", f"{status_data['watches']['enabled']} enabled / {status_data['watches']['total']}"
    )
    info_table.add_row("Last poll", status_data["last_poll_at"] or "never")
    info_table.add_row(
        "PRs this hour",
        f"{status_data['prs_created_this_hour']} / {status_data['agent']['max_prs_per_hour']}",
    )
    console.print(info_table)

    error_table = Table(title=f"Tracked Errors ({status_data['total_errors']})")
    error_table.add_column("Status", style="cyan")
    error_table.add_column("Count", justify="right")
    for error_status, count in status_data["errors_by_status"].items():
        error_table.add_row(error_status, str(count))
    console.print(error_table)


@cli.group(name="watch")
def watch_group() -> None:
    """Manage watched services."""


@watch_group.command(name="add")
@click.argument("project_id")
@click.argument("environment_id")
@click.argument("service_name")
@click.option("--disabled", is_flag=True, help="Add the watch without polling it")
@click.pass_context
def watch_add(
    ctx: click.Context, project_id: str, environment_id: str, service_name: str, disabled: bool
) -> None:
    """Watch a service for production errors."""
    from autofix.cli.commands.watch import add_watch

    add_watch(get_state(ctx), project_id, environment_id, service_name, enabled=not disabled)
    console.print(f"[green]✓[/green] Watching {service_name} in {environment_id}")


@watch_group.command(name="remove")
@click.argument("project_id")
@click.argument("environment_id")
@click.argument("service_name")
@click.pass_context
def watch_remove(ctx: click.Context, project_id: str, environment_id: str, service_name: str) -> None:
    """Stop watching a service."""
    from autofix.cli.commands.watch import remove_watch

    if remove_watch(get_state(ctx), project_id, environment_id, service_name):
        console.print(f"[green]✓[/green] Removed watch for {service_name}")
    else:
        raise click.ClickException(f"No watch for {service_name} in {environment_id}")


@watch_group.command(name="list")
@click.pass_context
def watch_list(ctx: click.Context) -> None:
    """List watched services."""
    from autofix.cli.commands.watch import list_watches

    watches = list_watches(get_state(ctx))
    if not watches:
        console.print("[dim]No watches configured[/dim]")
        return

    table = Table(title="Watches")
    table.add_column("Project", style="cyan")
    table.add_column("Environment")
    table.add_column("Service")
    table.add_column("Enabled")
    for watch in watches:
        table.add_row(
            watch["project_id"],
            watch["environment_id"],
            watch["service_name"],
            "[green]yes[/green]" if watch["enabled"] else "[dim]no[/dim]",
        )
    console.print(table)


@cli.group(name="errors")
def errors_group() -> None:
    """Inspect and triage tracked errors."""


@errors_group.command(name="list")
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in ErrorStatus]),
    help="Only show errors with this status",
)
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1))
@click.pass_context
def errors_list(ctx: click.Context, status_filter: Optional[str], limit: int) -> None:
    """List tracked errors, most recent first."""
    from autofix.cli.commands.errors import list_errors

    errors = list_errors(get_state(ctx), status=status_filter, limit=limit)
    if not errors:
        console.print("[dim]No tracked errors[/dim]")
        return

    table = Table(title="Tracked Errors")
    table.add_column("Fingerprint", style="cyan")
    table.add_column("Status")
    table.add_column("Service")
    table.add_column("Seen", justify="right")
    table.add_column("Last Seen")
    table.add_column("Message", overflow="fold")
    for error in errors:
        table.add_row(
            error["fingerprint"],
            error["status"],
            error["service"],
            str(error["occurrences"]),
            error["last_seen"],
            error["message"][:80],
        )
    console.print(table)


@errors_group.command(name="ignore")
@click.argument("fingerprint")
@click.pass_context
def errors_ignore(ctx: click.Context, fingerprint: str) -> None:
    """Never try to fix an error."""
    from autofix.cli.commands.errors import set_error_status

    set_error_status(get_state(ctx), fingerprint, ErrorStatus.IGNORED)
    console.print(f"[green]✓[/green] Ignoring {fingerprint}")


@errors_group.command(name="resolve")
@click.argument("fingerprint")
@click.pass_context
def errors_resolve(ctx: click.Context, fingerprint: str) -> None:
    """Mark an error as resolved."""
    from autofix.cli.commands.errors import set_error_status

    set_error_status(get_state(ctx), fingerprint, ErrorStatus.RESOLVED)
    console.print(f"[green]✓[/green] Resolved {fingerprint}")


@cli.group(name="config")
def config_group() -> None:
    """Inspect configuration."""


@config_group.command(name="show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show effective settings with secrets redacted."""
    settings = get_config(ctx).get_effective_settings()
    console.print(yaml.safe_dump(settings, default_flow_style=False, sort_keys=False))


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Abort:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
