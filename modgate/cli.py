"""modgate CLI — manage the blacklist config and replay scripted sessions."""

import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from modgate import __version__
from modgate.config import DEFAULT_CONFIG_PATH, BlacklistConfig, ConfigStore

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", "config_path",
    default=str(DEFAULT_CONFIG_PATH),
    show_default=True,
    help="Path to the blacklist config file",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """modgate — server-side mod blacklist enforcement.

    Edit the blacklist config used by a running server, or replay a
    scripted session to see who would be flagged and kicked.
    """
    _configure_logging(verbose)
    ctx.obj = {"config_path": config_path}


def _store(ctx: click.Context) -> ConfigStore:
    store = ConfigStore(ctx.obj["config_path"])
    store.load()
    return store


# ── Config ───────────────────────────────────────────────────────────


@main.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx: click.Context, force: bool):
    """Write a config file with default settings."""
    store = ConfigStore(ctx.obj["config_path"], BlacklistConfig())
    if store.path.exists() and not force:
        console.print(f"[yellow]Config already exists:[/] {store.path} (use --force to overwrite)")
        return
    if store.save():
        console.print(f"[green]Config written to:[/] {store.path}")
    else:
        console.print(f"[red]Could not write config to {store.path}. See errors above.[/]")


@main.command()
@click.pass_context
def show(ctx: click.Context):
    """Show the current configuration."""
    store = _store(ctx)

    table = Table(title=f"Config ({store.path})")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    for key, value in store.current.to_dict().items():
        if key == "blacklisted_mod_ids":
            value = ", ".join(str(m) for m in value) or "-"
        table.add_row(key, str(value))

    console.print(table)


# ── Blacklist ────────────────────────────────────────────────────────


@main.group()
def blacklist():
    """Edit the list of blacklisted mod ids."""


@blacklist.command()
@click.argument("mod_ids", nargs=-1, required=True, type=click.IntRange(min=0))
@click.pass_context
def add(ctx: click.Context, mod_ids: tuple):
    """Add MOD_IDS to the blacklist."""
    store = _store(ctx)
    before = store.current.blacklisted_mod_ids
    config = store.add_blacklisted(mod_ids)
    added = sorted(config.blacklisted_mod_ids - before)
    if added:
        console.print(f"[green]Blacklisted:[/] {', '.join(str(m) for m in added)}")
    else:
        console.print("[yellow]All given mods were already blacklisted.[/]")


@blacklist.command()
@click.argument("mod_ids", nargs=-1, required=True, type=click.IntRange(min=0))
@click.pass_context
def remove(ctx: click.Context, mod_ids: tuple):
    """Remove MOD_IDS from the blacklist."""
    store = _store(ctx)
    before = store.current.blacklisted_mod_ids
    config = store.remove_blacklisted(mod_ids)
    removed = sorted(before - config.blacklisted_mod_ids)
    if removed:
        console.print(f"[green]Removed:[/] {', '.join(str(m) for m in removed)}")
    else:
        console.print("[yellow]None of the given mods were blacklisted.[/]")


@blacklist.command(name="list")
@click.pass_context
def list_mods(ctx: click.Context):
    """List blacklisted mod ids."""
    store = _store(ctx)
    ids = sorted(store.current.blacklisted_mod_ids)

    if not ids:
        console.print("[yellow]Blacklist is empty.[/]")
        return

    table = Table(title=f"Blacklisted mods ({len(ids)})")
    table.add_column("Mod ID", style="cyan", justify="right")
    for mod_id in ids:
        table.add_row(str(mod_id))
    console.print(table)


# ── Simulate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("script_path", type=click.Path(exists=True, dir_okay=False))
def simulate(script_path: str):
    """Replay a scripted session against the engine.

    SCRIPT_PATH is a YAML file with optional config overrides, a workshop
    catalog and a list of timed connect/team/disconnect/item_details events.
    """
    import yaml

    from modgate.simulation import ScriptError, load_script, run_script

    console.print(f"\n[bold blue]modgate[/] — Simulating: {script_path}\n")

    try:
        result = run_script(load_script(script_path))
    except (ScriptError, yaml.YAMLError) as e:
        console.print(f"  [red]Failed to run script:[/] {e}")
        return

    table = Table(title=f"Timeline ({len(result.timeline)} entries)")
    table.add_column("Time", justify="right", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Detail")

    for entry in result.timeline:
        table.add_row(f"{entry.at:.2f}", entry.kind, Text(entry.detail))

    console.print(table)
    kicked = ", ".join(str(c) for c in result.kicked) or "none"
    flagged = ", ".join(str(c) for c in result.flagged) or "none"
    console.print(f"\n  Kicked: [red]{kicked}[/]   Still flagged: [yellow]{flagged}[/]")
