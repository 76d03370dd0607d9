"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sitecache.models.config import WorkerConfig
from sitecache.models.http import Response
from sitecache.models.stats import CacheStats
from sitecache.utils.formatting import format_ratio, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `sitecache init --origin https://your.site` to create a config.",
            "• Run `sitecache validate` to see which setting is rejected.",
        ],
        "InstallError": [
            "• Every static asset must return HTTP 200 from the origin.",
            "• Check the `static_assets` list for typos or removed files.",
            "• The previously active version, if any, is still serving.",
        ],
        "StorageError": [
            "• The cache directory may be unwritable or damaged.",
            "• Run `sitecache clear` and install again.",
        ],
        "NetworkError": [
            "• The site origin could not be reached.",
            "• Check your internet connection and the configured origin.",
        ],
        "LifecycleError": [
            "• A worker was driven through an unexpected state change.",
            "• Run the command with -vv for detailed logs.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration file contents."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: WorkerConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Origin:", config.origin)
    table.add_row("Version:", config.version)
    table.add_row("Static Cache:", config.static_cache_name)
    table.add_row("Dynamic Cache:", config.dynamic_cache_name)
    table.add_row("Static Assets:", str(len(config.static_assets)))
    table.add_row("Allowed Origins:", ", ".join(config.allowed_origins) or "-")
    table.add_row("Offline Document:", config.offline_document)

    console.print(
        Panel(
            table,
            title="[bold green]✓ Configuration is valid[/bold green]",
            border_style="green",
            expand=False,
        )
    )


def print_partitions_table(partitions: list[dict[str, Any]], whitelist: set[str]):
    """Displays each cache partition with its entry count and size."""
    console = Console()
    if not partitions:
        console.print("[yellow]No cache partitions found.[/yellow]")
        return

    table = Table(title="Cache Partitions", box=box.ROUNDED)
    table.add_column("Partition", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("Size", justify="right", style="green")
    table.add_column("Status")

    total_entries = 0
    total_size = 0
    for partition in partitions:
        if partition["name"] in whitelist:
            status = "[green]current[/green]"
        else:
            status = "[dim]stale[/dim]"
        table.add_row(
            partition["name"],
            str(partition["entries"]),
            format_size(partition["size"]),
            status,
        )
        total_entries += partition["entries"]
        total_size += partition["size"]

    table.add_section()
    table.add_row("[bold]Total[/bold]", str(total_entries), format_size(total_size), "")
    console.print(table)


def print_fetch_result(url: str, response: Response | None, source: str):
    """Displays how a fetched URL was answered."""
    console = Console()
    if response is None:
        console.print(f"[yellow]Not intercepted:[/yellow] {url} ({source})")
        return

    color = "green" if response.ok else "red"
    content_type = response.headers.get("Content-Type", "-")
    console.print(
        f"[{color}]{response.status} {response.status_text}[/{color}] "
        f"[dim]{url}[/dim]\n"
        f"  source: [cyan]{source}[/cyan]  type: {response.type}  "
        f"content-type: {content_type}  size: {format_size(response.size)}"
    )


def print_stats_table(stats: CacheStats):
    """Displays counters collected by a worker during this session."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column(justify="right")

    table.add_row("Cache Hits:", str(stats.cache_hits))
    table.add_row("Network Fetches:", str(stats.network_fetches))
    table.add_row("Network Failures:", str(stats.network_failures))
    table.add_row("Offline Fallbacks:", str(stats.offline_fallbacks))
    table.add_row("Cache Writes:", str(stats.cache_writes))
    if stats.write_failures:
        table.add_row("Write Failures:", f"[red]{stats.write_failures}[/red]")
    table.add_row("Hit Rate:", format_ratio(stats.hit_rate))

    console.print(
        Panel(table, title="Session Statistics", border_style="blue", expand=False)
    )
