"""Command-line interface for Scrobble Enricher."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .config.database import DatabaseHandler
from .config.settings import Settings
from .core.loader import FetchMode
from .service import ScrobbleService, build_loader
from .utils.logger import setup_logger
from .utils.platform import get_config_dir

app = typer.Typer(help="Last.fm scrobble loader with MusicBrainz enrichment")
console = Console()


def get_settings(config_path: Optional[Path] = None) -> Settings:
    """Load .env, then settings from file or defaults."""
    load_dotenv()
    return Settings.from_file_or_default(config_path)


def get_database(settings: Settings) -> DatabaseHandler:
    """Get database handler."""
    return DatabaseHandler(settings.database.path)


def format_uts(uts: Optional[int]) -> str:
    """Format an epoch timestamp for display."""
    if uts is None:
        return "-"
    return datetime.fromtimestamp(uts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


@app.command()
def load(
    user: str = typer.Argument(..., help="Last.fm user name"),
    mode: FetchMode = typer.Option(
        FetchMode.BACKFILL,
        "--mode",
        "-m",
        help="backfill: older history, sync: scrobbles newer than the last load"
    ),
    max_batches: Optional[int] = typer.Option(
        None,
        "--max-batches",
        help="Stop after this many batches"
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")
):
    """Load and enrich scrobbles for one user until caught up."""
    if not user.strip():
        console.print("[red]Error: User param not defined[/red]")
        raise typer.Exit(1)

    settings = get_settings(config)

    try:
        logger = setup_logger(settings.logging, level="DEBUG" if verbose else None)
        db = DatabaseHandler(settings.database.path, logger=logger)
        loader = build_loader(settings, db, logger)
        if max_batches is not None:
            loader.max_batches = max_batches

        console.print(f"[cyan]Loading scrobbles for {user} ({mode.value})...[/cyan]")
        summary = loader.run(user.strip(), mode=mode)

    except Exception as e:
        console.print(f"[red]Load failed: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]Done: {summary.batches} batch(es), {summary.inserted} new scrobble(s), "
        f"{summary.duplicates} already stored, {summary.failed} failed[/green]"
    )


@app.command()
def start(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file"
    )
):
    """Start the scheduled loading service."""
    console.print("[cyan]Starting Scrobble Enricher service...[/cyan]")

    try:
        service = ScrobbleService(settings=get_settings(config))
        service.start()
    except KeyboardInterrupt:
        console.print("\n[yellow]Service stopped by user[/yellow]")
    except Exception as e:
        console.print(f"[red]Service error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def status(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file"
    )
):
    """Show stored scrobbles and metadata cache sizes."""
    settings = get_settings(config)

    try:
        db = get_database(settings)
        user_stats = db.get_user_stats()
        cache_stats = db.get_cache_stats()

        console.print("[cyan]Scrobble Enricher Status[/cyan]\n")

        console.print(f"Config directory: {get_config_dir()}")
        console.print(f"Database: {settings.database.path}")
        console.print(f"Log file: {settings.logging.path}\n")

        if user_stats:
            table = Table(title="Stored Scrobbles")
            table.add_column("User", style="cyan")
            table.add_column("Scrobbles", justify="right")
            table.add_column("Oldest")
            table.add_column("Newest")

            for stats in user_stats:
                table.add_row(
                    stats.user,
                    str(stats.scrobbles),
                    format_uts(stats.oldest_uts),
                    format_uts(stats.newest_uts)
                )

            console.print(table)
        else:
            console.print("[yellow]No scrobbles stored yet[/yellow]")
            console.print("\nUse the 'load' command to load a user's history")

        console.print("\n[bold]Metadata cache:[/bold]")
        console.print(f"  Artists: {cache_stats['artists']}")
        console.print(f"  Albums: {cache_stats['albums']}")

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def init_config(
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output path for config file"
    )
):
    """Initialize a configuration file with defaults."""
    if output is None:
        output = get_config_dir() / 'config.yaml'

    if output.exists():
        overwrite = typer.confirm(
            f"Config file already exists at {output}. Overwrite?",
            default=False
        )
        if not overwrite:
            console.print("[yellow]Cancelled[/yellow]")
            return

    settings = Settings()
    settings.save(output)

    console.print(f"[green]Configuration file created: {output}[/green]")
    console.print("\nEdit this file to add users and your Last.fm API key")


if __name__ == "__main__":
    app()
