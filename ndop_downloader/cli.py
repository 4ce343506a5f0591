"""
Command-line interface for NDOP Downloader.

Usage:
    ndop-download --species "Mantis religiosa" --output mantis.csv
    ndop-download --family Mantidae --mode both --format geojson
    ndop-download --config my_search.yaml
"""

from __future__ import annotations

import sys
import warnings
from pathlib import Path

import click
from click.core import ParameterSource
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from ndop_downloader import __version__
from ndop_downloader.api import CountMismatchWarning, NDOPClient, NDOPError
from ndop_downloader.config import Config, create_example_config, list_presets
from ndop_downloader.engine import ExportEngine, Mode, ProgressEvent
from ndop_downloader.exporters import EXTENSIONS, get_exporter
from ndop_downloader.locations import LocationFetcher, layer_kind
from ndop_downloader.search import SearchFilter
from ndop_downloader.utils import sanitize_filename, setup_logging

console = Console()


def print_banner():
    """Print the application banner."""
    console.print(
        "\n[bold blue]NDOP Downloader[/bold blue] "
        f"[dim]v{__version__}[/dim]",
    )
    console.print(
        "[dim]Download species occurrence records from portal.nature.cz[/dim]\n"
    )


@click.group(invoke_without_command=True)
@click.option(
    "--species", "-s",
    help="Species or genus name to search (e.g., 'Mantis religiosa')",
)
@click.option(
    "--family", "-f",
    help="Family name to search (e.g., Mantidae)",
)
@click.option(
    "--group", "-g",
    help="Predefined higher taxon category to search",
)
@click.option(
    "--mode", "-m",
    type=click.Choice([m.value for m in Mode]),
    default=Mode.TABLE_ONLY.value,
    help="Download table data, raw localizations, or both (default: table)",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(list(EXTENSIONS)),
    default="csv",
    help="Output format for table data (default: csv)",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Output file path",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True),
    help="Load settings from YAML config file",
)
@click.option(
    "--username", "-u",
    envvar="NDOP_USERNAME",
    help="Portal account name (or NDOP_USERNAME)",
)
@click.option(
    "--password", "-p",
    envvar="NDOP_PASSWORD",
    help="Portal account password (or NDOP_PASSWORD)",
)
@click.option(
    "--login-hash",
    envvar="NDOP_LOGIN_HASH",
    help="Existing isop_loginhash cookie instead of a login (or NDOP_LOGIN_HASH)",
)
@click.option(
    "--workers", "-w",
    type=click.IntRange(min=1),
    default=1,
    help="Page requests in flight at once (default: 1, sequential)",
)
@click.option(
    "--page-retries",
    type=click.IntRange(min=0),
    default=0,
    help="Extra attempts for a failed page request (default: 0)",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--version",
    is_flag=True,
    help="Show version and exit",
)
@click.pass_context
def main(
    ctx,
    species,
    family,
    group,
    mode,
    output_format,
    output,
    config_file,
    username,
    password,
    login_hash,
    workers,
    page_retries,
    verbose,
    version,
):
    """
    Download species occurrence records from the NDOP portal.

    Examples:

    \b
    # Download all records of a species as CSV
    ndop-download --species "Mantis religiosa" -o mantis.csv

    \b
    # Download table data and raw localizations
    ndop-download --family Mantidae --mode both

    \b
    # Use a config file
    ndop-download --config my_search.yaml
    """
    if version:
        console.print(f"ndop-downloader version {__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is not None:
        return

    if not (species or family or group or config_file):
        click.echo(ctx.get_help())
        sys.exit(0)

    setup_logging(verbose=verbose)

    print_banner()

    if config_file:
        try:
            config = Config.load(config_file)
            config.get_search_filter()
            console.print(f"[green]Loaded config from: {config_file}[/green]\n")
        except Exception as e:
            console.print(f"[red]Error loading config: {e}[/red]")
            sys.exit(1)
        apply_option_overrides(ctx, config, mode, output_format, workers, page_retries)
    else:
        try:
            config = Config(
                search_filter=SearchFilter(species=species, family=family, group=group),
                mode=mode,
                output_format=output_format,
                workers=workers,
                page_retries=page_retries,
            )
        except ValueError as e:
            console.print(f"[red]Configuration error: {e}[/red]")
            sys.exit(1)

    if output:
        config.output_path = output
    if username:
        config.username = username

    if not config.output_path:
        safe_name = sanitize_filename(config.get_search_filter().describe())
        config.output_path = f"{safe_name}_NDOP{EXTENSIONS[config.output_format]}"

    run_download(config, password=password, login_hash=login_hash)


def apply_option_overrides(
    ctx: click.Context,
    config: Config,
    mode: str,
    output_format: str,
    workers: int,
    page_retries: int,
) -> Config:
    """Apply options given on the command line or environment over a loaded config."""

    def given(name: str) -> bool:
        return ctx.get_parameter_source(name) not in (None, ParameterSource.DEFAULT)

    if given("mode"):
        config.mode = Mode.parse(mode)
    if given("output_format"):
        config.output_format = output_format
    if given("workers"):
        config.workers = workers
    if given("page_retries"):
        config.page_retries = page_retries

    return config


def run_download(
    config: Config,
    password: str | None = None,
    login_hash: str | None = None,
):
    """
    Run the download process.

    Args:
        config: Download configuration
        password: Portal account password
        login_hash: Existing login cookie value
    """
    show_config(config)

    client = NDOPClient(
        username=config.username,
        password=password,
        login_hash=login_hash,
        timeout=(10, config.timeout),
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeRemainingColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("[cyan]Opening search...", total=None)

            def progress_callback(event: ProgressEvent):
                progress.update(
                    task,
                    total=event.total_records,
                    completed=event.rows_downloaded,
                    description=f"[cyan]Page {event.pages_done}/{event.page_count}",
                )

            engine = ExportEngine(
                client,
                LocationFetcher(client),
                workers=config.workers,
                page_retries=config.page_retries,
                progress_callback=progress_callback,
            )

            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always", CountMismatchWarning)
                result = engine.run(config.get_search_filter(), config.mode)

        for warning in caught:
            if issubclass(warning.category, CountMismatchWarning):
                console.print(f"[yellow]Warning: {warning.message}[/yellow]")

        if config.mode is Mode.LOCATIONS_ONLY:
            layers, table = result, None
        elif config.mode is Mode.LOCATIONS_AND_TABLE:
            layers, table = result
        else:
            layers, table = None, result

        if layers is not None:
            save_layers(layers, Path(config.output_path))

        if table is not None:
            save_table(table, config)

    except NDOPError as e:
        console.print(f"\n[red]NDOP error: {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Download interrupted by user.[/yellow]")
        sys.exit(130)
    finally:
        client.close()


def save_table(table, config: Config):
    """Export the occurrence table in the configured format."""
    console.print(f"[green]Records downloaded:[/green] {len(table):,}")

    if table.empty:
        console.print("[yellow]No records found matching the criteria.[/yellow]")
        return

    with console.status(f"[bold blue]Exporting to {config.output_format}..."):
        exporter = get_exporter(config.output_format)()
        output_file = exporter.export(table, config.output_path)

    console.print(f"\n[bold green]Success![/bold green] Saved to: {output_file}")


def save_layers(layers, output_path: Path):
    """Write each localization layer next to the table output as GeoJSON."""
    for index, layer in enumerate(layers, start=1):
        kind = layer_kind("", layer) or f"layer{index}"
        path = output_path.with_name(f"{output_path.stem}_{kind}.geojson")
        layer.to_file(path, driver="GeoJSON")
        console.print(f"[green]Localizations ({kind}):[/green] {len(layer):,} -> {path}")


def show_config(config: Config):
    """Display the current configuration."""
    search_filter = config.get_search_filter()

    table = Table(title="Search Configuration", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    if search_filter.species:
        table.add_row("Species", search_filter.species)
    if search_filter.family:
        table.add_row("Family", search_filter.family)
    if search_filter.group:
        table.add_row("Group", search_filter.group)
    table.add_row("Mode", config.mode.value)
    table.add_row("Format", config.output_format)
    table.add_row("Workers", str(config.workers))
    if config.username:
        table.add_row("Account", config.username)

    console.print(table)
    console.print()


@main.command()
@click.argument("path", type=click.Path(), default="example_config.yaml")
def init(path):
    """Create an example configuration file."""
    print_banner()

    output_path = create_example_config(path)
    console.print(f"[green]Created example config:[/green] {output_path}")
    console.print("[dim]Edit this file and use with: ndop-download --config example_config.yaml[/dim]")


@main.command()
def presets():
    """List available preset configurations."""
    print_banner()

    preset_list = list_presets()

    if not preset_list:
        console.print("[yellow]No presets found.[/yellow]")
        console.print("[dim]Create one with: ndop-download init ~/.ndop_downloader/my_preset.yaml[/dim]")
        return

    console.print("[bold]Available presets:[/bold]\n")
    for preset in preset_list:
        console.print(f"  - {preset}")

    console.print("\n[dim]Use with: ndop-download --config ~/.ndop_downloader/PRESET.yaml[/dim]")


if __name__ == "__main__":
    main()
