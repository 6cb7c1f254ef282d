"""CLI for the watchtrack tool."""

import json
import logging
import os
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from watchtrack import __version__
from watchtrack.config import Config, ConfigError
from watchtrack.models import MEDIA_TYPES
from watchtrack.mutations import ItemNotFoundError, MutationEngine
from watchtrack.reclassify import ReclassificationJob
from watchtrack.storage import StoreError, WatchlistStore, select_backend
from watchtrack.tmdb_client import TMDBClient, TMDBConfigError, TMDBError
from watchtrack.tvmaze_client import TVMazeClient

console = Console()

type_option = click.option(
    "--type",
    "media_type",
    type=click.Choice(MEDIA_TYPES),
    default="movie",
    show_default=True,
    help="Movie or show",
)


def get_data_dir() -> Path:
    """Get data directory from env or default."""
    env_dir = os.environ.get("WATCHTRACK_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "data"


def setup_logging(log_path: Path, verbose: bool) -> None:
    """Send warnings to the console and everything to the log file."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        if getattr(handler, "installed_by_watchtrack", False):
            root.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(console=console, show_path=False)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)

    file_handler = logging.FileHandler(log_path)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    for handler in (console_handler, file_handler):
        handler.installed_by_watchtrack = True
        root.addHandler(handler)


def load_config() -> Config:
    """Load config or exit with a setup hint."""
    config = Config(data_dir=get_data_dir())
    try:
        config.load()
        config.apply_env()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    return config


def build_engine(config: Config) -> MutationEngine:
    try:
        client = TMDBClient(api_key=config.tmdb_api_key)
    except TMDBConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    store = WatchlistStore(select_backend(config))
    return MutationEngine(store, client, config.region, tvmaze=TVMazeClient())


def run_mutation(action, *args):
    """Run one engine call, mapping failures to exit codes."""
    try:
        return action(*args)
    except (TMDBConfigError, ConfigError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(1)
    except ItemNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise SystemExit(1)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    except (TMDBError, StoreError) as e:
        console.print(f"[red]Change not saved:[/red] {e}")
        raise SystemExit(2)


def print_item(item) -> None:
    if item is None:
        return
    console.print(
        f"[green]✓[/green] {item.title} [dim]({item.type} {item.external_id})[/dim] "
        f"→ [bold]{item.status.value}[/bold]"
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", is_flag=True, help="Show debug logging")
def cli(verbose):
    """Watch tracker - classify and sync your movie and show watchlist."""
    data_dir = get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(data_dir / "watchtrack.log", verbose)


@cli.command()
def setup():
    """Configure TMDB access and your region."""
    config = Config(data_dir=get_data_dir())

    if config.exists():
        config.load()
        console.print(
            "[yellow]Configuration already exists at:[/yellow] "
            f"{config.config_path}"
        )
        if not click.confirm("Overwrite existing configuration?"):
            console.print("[dim]Setup cancelled.[/dim]")
            return

    console.print("\n[bold]Watchtrack Setup[/bold]\n")

    api_key = click.prompt("TMDB API key or read token", hide_input=True, type=str)
    region = click.prompt("Region", default=config.region, type=str)

    try:
        config.set_region(region)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    console.print("\n[dim]Checking TMDB credentials...[/dim]")
    if not TMDBClient(api_key=api_key).test_connection():
        console.print("[red]TMDB rejected the credentials.[/red]")
        raise SystemExit(1)

    config.set_tmdb_api_key(api_key)
    config.save()

    console.print("\n[green]✓ Setup complete![/green]")
    console.print(f"  Config saved to: {config.config_path}")


@cli.command("remote-setup")
@click.option("--disconnect", is_flag=True, help="Return to local-only storage")
def remote_setup(disconnect):
    """Connect a remote watchlist table for signed-in use."""
    config = load_config()

    if disconnect:
        config.clear_remote()
        config.save()
        console.print("[green]✓ Using local storage.[/green]")
        return

    url = click.prompt("Remote store URL", type=str)
    api_key = click.prompt("Remote API key", hide_input=True, type=str)
    user_id = click.prompt("User ID", type=str)
    access_token = click.prompt(
        "Access token (blank to use the API key)",
        default="",
        show_default=False,
        hide_input=True,
        type=str,
    )

    config.set_remote(url, api_key, user_id, access_token or None)
    config.save()
    console.print("\n[green]✓ Remote store connected![/green]")


@cli.command("list")
@click.option("--type", "media_type", type=click.Choice(MEDIA_TYPES), help="Only movies or shows")
@click.option("--status", "status_filter", help="Only items with this status")
def list_items(media_type, status_filter):
    """Show tracked movies and shows."""
    config = load_config()
    store = WatchlistStore(select_backend(config))

    try:
        items = store.get()
    except StoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(2)

    if media_type:
        items = [i for i in items if i.type == media_type]
    if status_filter:
        items = [i for i in items if i.status.value == status_filter]

    if not items:
        console.print("[yellow]Watchlist is empty.[/yellow]")
        console.print("Run [bold]watchtrack add[/bold] to track something.")
        return

    table = Table(title="Watchlist")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Title", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Season", justify="right")
    table.add_column("Library")

    for item in items:
        table.add_row(
            str(item.external_id),
            item.type,
            item.title,
            item.status.value,
            str(item.last_watched_season) if item.type == "show" else "",
            "yes" if item.moved_to_library else "no",
        )

    console.print(table)


@cli.command()
@click.argument("external_id", type=int)
@type_option
def add(external_id, media_type):
    """Track a movie or show by its TMDB id."""
    engine = build_engine(load_config())
    item = run_mutation(engine.add, {"id": external_id}, media_type)
    print_item(item)


@cli.command()
@click.argument("external_id", type=int)
@type_option
def remove(external_id, media_type):
    """Stop tracking a movie or show."""
    engine = build_engine(load_config())
    run_mutation(engine.remove, external_id, media_type)
    console.print(f"[green]✓ Removed {media_type} {external_id}[/green]")


@cli.command("set-status")
@click.argument("external_id", type=int)
@click.argument("status")
@type_option
def set_status(external_id, status, media_type):
    """Set an explicit status."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.update_status, external_id, media_type, status))


@cli.command()
@click.argument("external_id", type=int)
@type_option
def watched(external_id, media_type):
    """Mark a movie watched, or a show watched through its latest season."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.mark_watched, external_id, media_type))


@cli.command()
@click.argument("external_id", type=int)
@type_option
def unwatched(external_id, media_type):
    """Mark a movie or show unwatched."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.mark_unwatched, external_id, media_type))


@cli.command("season-watched")
@click.argument("external_id", type=int)
@click.argument("season", type=int)
def season_watched(external_id, season):
    """Mark a show watched through SEASON."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.mark_season_watched, external_id, season))


@cli.command("season-unwatched")
@click.argument("external_id", type=int)
@click.argument("season", type=int)
def season_unwatched(external_id, season):
    """Mark SEASON of a show (and later) unwatched."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.mark_season_unwatched, external_id, season))


@cli.command()
@click.argument("external_id", type=int)
@click.argument("episodes", type=int)
def progress(external_id, episodes):
    """Record EPISODES watched in a show's current season."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.update_progress, external_id, "show", episodes))


@cli.command("move-to-library")
@click.argument("external_id", type=int)
@type_option
def move_to_library(external_id, media_type):
    """Move an upcoming item into the main library."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.move_to_library, external_id, media_type))


@cli.command()
@click.argument("external_id", type=int)
@type_option
def drop(external_id, media_type):
    """Mark a movie or show dropped."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.drop, external_id, media_type))


@cli.command()
@click.argument("external_id", type=int)
@type_option
def restore(external_id, media_type):
    """Restore a dropped movie or show."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.restore, external_id, media_type))


@cli.command()
@click.argument("external_id", type=int)
@type_option
def dismiss(external_id, media_type):
    """Hide an item from the upcoming view."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.dismiss_from_upcoming, external_id, media_type))


@cli.command()
@click.argument("external_id", type=int)
@type_option
def undismiss(external_id, media_type):
    """Show a dismissed item in the upcoming view again."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.restore_to_upcoming, external_id, media_type))


@cli.command("manual-date")
@click.argument("external_id", type=int)
@click.option("--date", "release_date", required=True, help="Digital release date (YYYY-MM-DD)")
@click.option("--ott", "ott_name", help="Streaming service name")
@type_option
def manual_date(external_id, release_date, ott_name, media_type):
    """Pin a digital release date by hand."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.set_manual_date, external_id, media_type, release_date, ott_name))


@cli.command("clear-manual-date")
@click.argument("external_id", type=int)
@type_option
def clear_manual_date(external_id, media_type):
    """Remove a hand-pinned digital release date."""
    engine = build_engine(load_config())
    print_item(run_mutation(engine.clear_manual_date, external_id, media_type))


@cli.command()
@click.argument("external_id", type=int)
@type_option
def refresh(external_id, media_type):
    """Re-fetch metadata for one item and reclassify it."""
    engine = build_engine(load_config())
    item = run_mutation(engine.refresh, external_id, media_type)
    if item is None:
        console.print(f"[yellow]{media_type} {external_id} is not in the watchlist[/yellow]")
        raise SystemExit(1)
    print_item(item)


@cli.command()
@click.option("--limit", type=int, help="Items per batch (overrides config)")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
def reclassify(limit, as_json):
    """Reclassify a batch of still-active items."""
    config = load_config()

    try:
        client = TMDBClient(api_key=config.tmdb_api_key)
    except TMDBConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    job = ReclassificationJob(
        select_backend(config),
        client,
        config.region,
        limit=limit or config.batch_limit,
        tvmaze=TVMazeClient(),
    )

    try:
        if as_json:
            result = job.run()
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress_bar:
                progress_bar.add_task("Reclassifying...", total=None)
                result = job.run()
    except StoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(2)
    except TMDBConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(title=f"Reclassified {result.processed} items")
    table.add_column("Title", style="cyan")
    table.add_column("Old")
    table.add_column("New", style="green")
    table.add_column("Result")
    for detail in result.details:
        table.add_row(
            detail.title,
            detail.old_status,
            detail.new_status or "",
            "[green]ok[/green]" if detail.success else f"[red]{detail.error}[/red]",
        )
    console.print(table)

    if result.failed:
        raise SystemExit(3)


@cli.command()
def validate():
    """Validate configuration and test TMDB access."""
    config = Config(data_dir=get_data_dir())

    if not config.exists():
        console.print("[red]Configuration not found.[/red]")
        console.print("Run [bold]watchtrack setup[/bold] to configure.")
        raise SystemExit(1)

    config = load_config()
    console.print(f"[dim]Region:[/dim] {config.region}")
    console.print(
        f"[dim]Storage:[/dim] {'remote (' + config.remote_url + ')' if config.signed_in else 'local'}"
    )

    console.print("\n[dim]Testing TMDB connection...[/dim]")
    try:
        client = TMDBClient(api_key=config.tmdb_api_key)
    except TMDBConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)

    if client.test_connection():
        console.print("[green]✓ Connection valid![/green]")
    else:
        console.print("[red]✗ Connection failed.[/red]")
        raise SystemExit(2)


if __name__ == "__main__":
    cli()
