"""Cache commands -- inspect and clear the response cache.

Provides the ``ovrmnd cache`` sub-command group.  ``TARGET`` arguments are
``service`` or ``service.endpoint`` labels, or shell-style globs such as
``github.list*``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import typer

from ovrmnd.output import OutputFormat, get_output, info, print_table, success, warning


cache_app = typer.Typer(no_args_is_help=True)


def _open_store():
    from ovrmnd.cache import CacheStore
    from ovrmnd.config import load_global_config, resolve_cache_dir

    config = load_global_config()
    return CacheStore(resolve_cache_dir(config.cache), config.cache)


def format_bytes(size: int) -> str:
    """Human-readable byte count (``512 B``, ``1.5 KB``, ``2.0 MB``)."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def format_duration(seconds: int) -> str:
    """Compact duration (``45s``, ``3m 20s``, ``2h 5m``)."""
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


@cache_app.command("clear")
def cache_clear(
    target: Optional[str] = typer.Argument(None, help="service or service.endpoint to clear."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt."),
) -> None:
    """Clear cached responses, all of them or those matching TARGET.

    Example::

        ovrmnd cache clear --force
        ovrmnd cache clear github
        ovrmnd cache clear github.listRepos
    """
    output = get_output()
    if not force and output.format != OutputFormat.JSON:
        question = f"Clear cache for {target}?" if target else "Clear ALL cache entries?"
        if not typer.confirm(question):
            info("Cancelled.")
            raise typer.Exit()

    with _open_store() as store:
        count = store.clear_by_pattern(target) if target else store.clear_all()

    if output.format == OutputFormat.JSON:
        output.print_json({"action": "clear", "target": target or "all", "cleared": count})
    elif count:
        success(f"Cleared {count} cache entries")
    else:
        warning("No cache entries to clear")


@cache_app.command("stats")
def cache_stats() -> None:
    """Show entry count, size and age range of the cache, per service.

    Example::

        ovrmnd cache stats
        ovrmnd --json cache stats
    """
    output = get_output()
    with _open_store() as store:
        stats = store.stats()
        directory = store.directory

    if output.format == OutputFormat.JSON:
        output.print_json(stats.model_dump(mode="json"))
        return

    info(f"Cache directory: {directory}")
    rows = [
        ["Total entries", str(stats.total_entries)],
        ["Total size", format_bytes(stats.total_size_bytes)],
    ]
    if stats.oldest is not None:
        rows.append(["Oldest entry", _local_time(stats.oldest)])
    if stats.newest is not None:
        rows.append(["Newest entry", _local_time(stats.newest)])
    print_table(["Metric", "Value"], rows, title="Cache")

    if stats.by_service:
        service_rows = []
        for name, bucket in sorted(stats.by_service.items()):
            share = bucket.size / stats.total_size_bytes * 100 if stats.total_size_bytes else 0.0
            service_rows.append(
                [name, str(bucket.entries), format_bytes(bucket.size), f"{share:.1f}%"]
            )
        print_table(["Service", "Entries", "Size", "% of Total"], service_rows, title="By service")


@cache_app.command("list")
def cache_list(
    target: Optional[str] = typer.Argument(None, help="service or service.endpoint filter."),
    show_all: bool = typer.Option(False, "--all", "-a", help="Include expired entries."),
) -> None:
    """List cached entries, newest first.

    Example::

        ovrmnd cache list
        ovrmnd cache list github --all
    """
    output = get_output()
    with _open_store() as store:
        entries = store.list_all(target)
    if not show_all:
        entries = [e for e in entries if not e.expired]

    if output.format == OutputFormat.JSON:
        output.print_json({"entries": [e.model_dump(mode="json") for e in entries]})
        return
    if not entries:
        warning("No cached entries found")
        return

    rows = [
        [
            f"{e.service}.{e.endpoint}",
            e.url,
            format_duration(e.age_seconds),
            "expired" if e.expired else format_duration(e.ttl_remaining),
            format_bytes(e.size),
        ]
        for e in entries
    ]
    print_table(["Endpoint", "URL", "Age", "TTL left", "Size"], rows, title="Cached entries")


def _local_time(moment: datetime) -> str:
    return moment.astimezone().strftime("%Y-%m-%d %H:%M:%S")
