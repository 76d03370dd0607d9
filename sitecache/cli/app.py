"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
from dataclasses import replace
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from sitecache import __version__
from sitecache.core.lifecycle import WorkerState
from sitecache.core.messaging import MessageChannel
from sitecache.core.registration import WorkerRegistration
from sitecache.core.worker import GET_CACHE_SIZE, OfflineCacheWorker
from sitecache.exceptions import SiteCacheError
from sitecache.models.config import WorkerConfig
from sitecache.models.http import Request, Response
from sitecache.models.stats import CacheStats
from sitecache.network.fetcher import NetworkFetcher
from sitecache.storage.cache_storage import CacheStorage
from sitecache.storage.config_manager import ConfigManager
from sitecache.utils.formatting import format_size
from sitecache.utils.structured_logger import create_event_logger
from sitecache.utils.url import resolve_url

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_fetch_result,
    print_partitions_table,
    print_stats_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("sitecache")

app = typer.Typer(
    name="sitecache",
    help=(
        "A cache-first offline cache for static websites. Use 'sitecache"
        " <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "sitecache"


def get_cache_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("LOCALAPPDATA", "~\\AppData\\Local"))
    else:
        base_dir = Path(os.getenv("XDG_CACHE_HOME", "~/.cache"))
    return base_dir.expanduser() / "sitecache"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"
CACHE_DIR = get_cache_dir()
LOG_DIR = CONFIG_DIR / "logs"

_json_logs = False


def _load_config() -> WorkerConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config()
    except SiteCacheError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _build_registration(
    config: WorkerConfig,
) -> tuple[WorkerRegistration, NetworkFetcher]:
    storage = CacheStorage(CACHE_DIR)
    fetcher = NetworkFetcher(config.origin, timeout_seconds=config.timeout_seconds)
    _, events = create_event_logger(LOG_DIR, enable_json=_json_logs)
    return WorkerRegistration(storage, fetcher, events=events), fetcher


def _describe_source(
    before: CacheStats, after: CacheStats, response: Response | None
) -> str:
    """Names where a fetched response came from, judging by the worker counters."""
    if response is None:
        return "bypassed"
    if after.cache_hits > before.cache_hits:
        return "cache"
    if after.offline_fallbacks > before.offline_fallbacks:
        return "offline fallback"
    if after.timeouts_served > before.timeouts_served:
        return "offline (timeout)"
    return "network"


async def _ensure_active(
    registration: WorkerRegistration, config: WorkerConfig
) -> OfflineCacheWorker:
    """Resumes the recorded active version, installing it if needed."""
    worker = await registration.resume(config)
    if worker is None:
        worker = await registration.register(config)
    return worker


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Also write worker events as JSON lines."
    ),
):
    """Offline cache manager CLI"""
    global _json_logs

    if version:
        console.print(f"[bold]sitecache[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    elif verbose == 0:
        log_level = "WARNING"
    logging.getLogger("sitecache").setLevel(log_level)
    _json_logs = json_logs

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]sitecache init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager.load_config()
        print_config(CONFIG_FILE, config_manager.get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    origin: str = typer.Option(
        ..., "--origin", "-o", help="The site origin, e.g. https://example.com."
    ),
    cache_version: str = typer.Option(
        "1.0.0", "--cache-version", help="Version stamp for the cache partitions."
    ),
    site_name: str = typer.Option(
        "sitecache", "--site-name", help="Name shown in push notifications."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create a configuration file for a site."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {"origin": origin, "version": cache_version, "site_name": site_name}
    try:
        ConfigManager(CONFIG_FILE).save_new_config(settings)
    except SiteCacheError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(
        f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]"
    )
    console.print("Next: [cyan]sitecache install[/cyan]")


@app.command()
def install():
    """Install and activate the configured cache version."""
    config = _load_config()

    async def _install_async() -> OfflineCacheWorker:
        registration, fetcher = _build_registration(config)
        try:
            await registration.resume(config)
            return await registration.register(config)
        finally:
            await registration.close()
            await fetcher.close()

    console.print(
        f"[cyan]Installing cache version {config.version} "
        f"({len(config.static_assets)} static assets)...[/cyan]"
    )
    worker = asyncio.run(_install_async())
    if worker.state is WorkerState.FAILED:
        console.print(
            f"[red]✗ Install of version {config.version} failed.[/red] "
            "Run with -v for details."
        )
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓ Version {config.version} is {worker.state.value}.[/green] "
        f"Caches: [dim]{config.static_cache_name}, {config.dynamic_cache_name}[/dim]"
    )


@app.command()
def fetch(
    url: str = typer.Argument(..., help="An absolute URL or a root-relative path."),
    accept: str = typer.Option(
        "*/*", "--accept", "-a", help="Accept header to send, e.g. text/html."
    ),
    show_stats: bool = typer.Option(
        False, "--stats", help="Show session statistics afterwards."
    ),
):
    """Fetch a URL through the offline cache."""
    config = _load_config()
    if url.startswith("/"):
        url = resolve_url(config.origin, url)

    async def _fetch_async():
        registration, fetcher = _build_registration(config)
        try:
            worker = await _ensure_active(registration, config)
            if worker.state is not WorkerState.ACTIVATED:
                console.print(
                    f"[red]✗ Version {config.version} could not be installed.[/red]"
                )
                raise typer.Exit(code=1)
            request = Request(url, headers={"Accept": accept})
            before = replace(worker.stats)
            response = await registration.handle_fetch(request)
            source = _describe_source(before, worker.stats, response)
            print_fetch_result(url, response, source)
            await worker.drain()
            if show_stats:
                print_stats_table(worker.stats)
        finally:
            await registration.close()
            await fetcher.close()

    try:
        asyncio.run(_fetch_async())
    except SiteCacheError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@app.command()
def size():
    """Report the total size of all cached responses."""
    config = _load_config()

    async def _size_async() -> int | None:
        registration, fetcher = _build_registration(config)
        try:
            if await registration.resume(config) is None:
                return None
            channel = MessageChannel()
            await registration.post_message(
                {"type": GET_CACHE_SIZE}, [channel.port2]
            )
            reply = await channel.port1.receive(timeout=30)
            return reply["cacheSize"]
        finally:
            await registration.close()
            await fetcher.close()

    try:
        total = asyncio.run(_size_async())
    except SiteCacheError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    if total is None:
        console.print(
            "[yellow]No active cache version.[/yellow] "
            "Run [cyan]sitecache install[/cyan] first."
        )
        raise typer.Exit(code=1)
    console.print(
        f"Cache size: [bold green]{format_size(total)}[/bold green] ({total} bytes)"
    )


@app.command()
def partitions():
    """List cache partitions with their entry counts and sizes."""
    config = _load_config()
    storage = CacheStorage(CACHE_DIR)
    summary = asyncio.run(storage.describe())
    print_partitions_table(summary, config.cache_whitelist)


@app.command()
def clear(
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete every cache partition."""
    if not force and not typer.confirm(
        "Are you sure you want to delete all cached responses?"
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    storage = CacheStorage(CACHE_DIR)
    console.print("[cyan]Clearing cache partitions...[/cyan]")
    try:
        removed = asyncio.run(storage.clear())
    except SiteCacheError as e:
        console.print(f"[red]✗ Failed to clear cache: {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"[green]✓ Cache cleared ({removed} partitions removed).[/green]")


@app.command()
def validate():
    """Validate the current configuration."""
    config = _load_config()
    print_validation_table(config)
