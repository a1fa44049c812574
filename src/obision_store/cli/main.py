"""
Obision Store CLI — search, browse and manage Debian and Flatpak packages.

Usage:
    obision-store search debian vim
    obision-store search flatpak "text editor" --refresh
    obision-store browse games --limit 10
    obision-store cache stats
    obision-store icons build
"""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from obision_store import __version__

console = Console()

SOURCES = click.Choice(["debian", "flatpak"])


def format_bytes(size: int) -> str:
    """1536 -> '1.5 KB'."""
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


def _run(settings, operation):
    """Build the service, run one async operation against it, then close it."""
    from obision_store.core.service import build_service

    async def main():
        service = build_service(settings)
        try:
            return await operation(service)
        finally:
            await service.aclose()

    return asyncio.run(main())


async def _load_icons(service) -> None:
    if not service.icons.is_ready():
        with console.status("[bold cyan]Loading AppStream icon index...[/bold cyan]"):
            await service.start()


def _print_records(records, title: str) -> None:
    if not records:
        console.print("[yellow]No results[/yellow]")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Version")
    table.add_column("Size", justify="right")
    table.add_column("Category")
    table.add_column("Installed", justify="center")
    table.add_column("Summary")
    for record in records:
        table.add_row(
            record.id,
            record.version,
            format_bytes(record.size),
            record.category or "-",
            "✓" if record.installed else "",
            record.summary,
        )
    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="obision-store")
@click.option(
    "--cache-dir",
    "-c",
    type=click.Path(file_okay=False),
    default=None,
    help="Cache directory (default: $XDG_CACHE_HOME/obision-store).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def cli(ctx, cache_dir, verbose):
    """Obision Store — Debian and Flatpak package browser."""
    from obision_store.config import Settings

    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = Settings.from_env(cache_dir=Path(cache_dir) if cache_dir else None)


@cli.command()
@click.argument("source", type=SOURCES)
@click.argument("query")
@click.option("--refresh", "-r", is_flag=True, help="Ignore the cached result and query the source.")
@click.pass_obj
def search(settings, source, query, refresh):
    """Search SOURCE for packages matching QUERY."""

    async def operation(service):
        if source == "debian":
            await _load_icons(service)
        if refresh:
            return await service.refresh(source, query)
        return await service.search(source, query)

    _print_records(_run(settings, operation), f"{source}: {query}")


@cli.command()
@click.argument("source", type=SOURCES)
@click.argument("name")
@click.pass_obj
def show(settings, source, name):
    """Show details for package NAME from SOURCE."""

    async def operation(service):
        if source == "debian":
            await _load_icons(service)
        return await service.get_details(source, name)

    record = _run(settings, operation)
    if record is None:
        raise click.ClickException(f"Package not found: {name}")

    for field_name, value in record.to_dict().items():
        if field_name == "size":
            value = format_bytes(value)
        elif field_name == "screenshots":
            value = "\n".join(value) or "-"
        console.print(f"[cyan]{field_name:>12}[/cyan]  {value}")


@cli.command()
@click.argument("source", type=SOURCES)
@click.argument("name")
@click.pass_obj
def install(settings, source, name):
    """Install package NAME from SOURCE."""
    if not _run(settings, lambda service: service.install(source, name)):
        raise click.ClickException(f"Failed to install {name}")
    console.print(f"[bold green]Installed {name}[/bold green]")


@cli.command()
@click.argument("source", type=SOURCES)
@click.argument("name")
@click.pass_obj
def remove(settings, source, name):
    """Remove package NAME installed from SOURCE."""
    if not _run(settings, lambda service: service.remove(source, name)):
        raise click.ClickException(f"Failed to remove {name}")
    console.print(f"[bold green]Removed {name}[/bold green]")


@cli.command()
@click.pass_obj
def sections(settings):
    """List the Debian archive sections."""
    for section in _run(settings, lambda service: service.get_available_sections()):
        console.print(section)


@cli.command()
@click.pass_obj
def categories(settings):
    """List the desktop categories available from Debian."""
    for category in _run(settings, lambda service: service.get_available_categories()):
        console.print(category)


@cli.command()
@click.argument("section")
@click.option("--limit", "-l", type=int, default=20, help="Maximum number of packages.")
@click.pass_obj
def browse(settings, section, limit):
    """List Debian packages in SECTION."""

    async def operation(service):
        await _load_icons(service)
        return await service.get_packages_by_section(section, limit)

    _print_records(_run(settings, operation), f"section: {section}")


@cli.command()
@click.argument("name")
@click.option("--limit", "-l", type=int, default=20, help="Maximum number of packages.")
@click.pass_obj
def category(settings, name, limit):
    """List Debian desktop packages in category NAME."""

    async def operation(service):
        await _load_icons(service)
        return await service.get_packages_by_category(name, limit)

    _print_records(_run(settings, operation), f"category: {name}")


# ──────────────────────────────────────────────
# Cache maintenance
# ──────────────────────────────────────────────


@cli.group()
def cache():
    """Inspect or clear the package cache."""


@cache.command("stats")
@click.pass_obj
def cache_stats(settings):
    """Show cache entry and package counts."""
    from obision_store.core.cache import PackageCache

    stats = PackageCache(settings.cache_file, max_age=settings.cache_max_age).get_stats()
    console.print(f"[cyan]Entries:[/cyan]  {stats.entry_count}")
    console.print(f"[cyan]Packages:[/cyan] {stats.total_record_count}")
    console.print(f"[cyan]File:[/cyan]     {settings.cache_file}")


@cache.command("clear")
@click.pass_obj
def cache_clear(settings):
    """Remove every cached search result."""
    from obision_store.core.cache import PackageCache

    PackageCache(settings.cache_file).clear()
    console.print("[bold green]Cache cleared[/bold green]")


# ──────────────────────────────────────────────
# Icon index
# ──────────────────────────────────────────────


@cli.group()
def icons():
    """Manage the AppStream icon index."""


@icons.command("build")
@click.pass_obj
def icons_build(settings):
    """Rebuild the icon index from the system AppStream metadata."""

    async def operation(service):
        with console.status("[bold cyan]Building AppStream icon index...[/bold cyan]"):
            await service.icons.rebuild()
        return len(service.icons)

    count = _run(settings, operation)
    console.print(f"[bold green]Icon index built:[/bold green] {count} entries")


@icons.command("resolve")
@click.argument("name")
@click.option("--section", "-s", default="", help="Debian section used for the fallback icon.")
@click.pass_obj
def icons_resolve(settings, name, section):
    """Print the icon resolved for package NAME."""

    async def operation(service):
        await _load_icons(service)
        return service.icons.resolve_icon(name, section)

    console.print(_run(settings, operation))


if __name__ == "__main__":
    cli()
