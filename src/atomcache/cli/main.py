"""
Main CLI entry point for atomcache.

Provides commands for inspecting and maintaining the configured stores and
for fetching URLs through the cache.
"""

import sys
from typing import Optional

import click

from atomcache import __version__
from atomcache.cli.output import (
    print_atom,
    print_error,
    print_info,
    print_keys_table,
    print_resolution,
    print_stats,
    print_success,
    print_warning,
)
from atomcache.core.exceptions import AtomCacheError


@click.group()
@click.version_option(version=__version__, prog_name="atomcache")
@click.option(
    "--store-index", "-s",
    type=int,
    default=0,
    show_default=True,
    help="Index of the store to operate on.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level, overrides ATOMCACHE_LOG_LEVEL.",
)
@click.pass_context
def cli(ctx: click.Context, store_index: int, log_level: Optional[str]) -> None:
    """atomcache - Persistent cache for fetched content.

    Stores are configured through ATOMCACHE_* environment variables or a
    .env file in the working directory.
    """
    from atomcache.cache.registry import StoreRegistry
    from atomcache.config import get_settings
    from atomcache.logging import setup_logging

    settings = get_settings()
    setup_logging(log_level or settings.LOG_LEVEL)

    registry = StoreRegistry.from_settings(settings)
    ctx.call_on_close(registry.close_all)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["registry"] = registry
    ctx.obj["store_index"] = store_index


def _store(ctx: click.Context):
    """Get the selected store, exiting if the index is not configured."""
    try:
        return ctx.obj["registry"].get(ctx.obj["store_index"])
    except IndexError as e:
        print_error(str(e))
        sys.exit(1)


@cli.command()
@click.pass_context
def keys(ctx: click.Context) -> None:
    """List the keys of the store with their size and last update."""
    store = _store(ctx)
    try:
        key_list = store.get_keys()
        if not key_list:
            print_info(f"Store {store.index} is empty.")
            return
        # Keys removed since get_keys() have no last update
        timestamps = {}
        for key in key_list:
            last_update = store.get_last_update(key)
            if last_update is not None:
                timestamps[key] = last_update
        print_keys_table(store.index, timestamps, store.sizes())
    except AtomCacheError as e:
        print_error(f"Listing failed: {e}")
        sys.exit(1)


@cli.command()
@click.argument("key")
@click.pass_context
def show(ctx: click.Context, key: str) -> None:
    """Show the atom stored under KEY."""
    store = _store(ctx)
    try:
        atom = store.read_atom(key)
    except AtomCacheError as e:
        print_error(f"Reading failed: {e}")
        sys.exit(1)

    if atom is None:
        print_error(f"No atom stored under '{key}'.")
        sys.exit(1)
    print_atom(key, atom)


@cli.command()
@click.argument("key")
@click.pass_context
def remove(ctx: click.Context, key: str) -> None:
    """Remove the atom stored under KEY."""
    store = _store(ctx)
    try:
        store.remove(key)
    except AtomCacheError as e:
        print_error(f"Removal failed: {e}")
        sys.exit(1)
    print_success(f"Removed '{key}'.")


@cli.command()
@click.option("--all", "all_stores", is_flag=True, help="Clear every configured store.")
@click.pass_context
def clear(ctx: click.Context, all_stores: bool) -> None:
    """Remove every atom of the store."""
    try:
        if all_stores:
            ctx.obj["registry"].clear_all()
            print_success("All stores cleared.")
        else:
            store = _store(ctx)
            store.clear()
            print_success(f"Store {store.index} cleared.")
    except AtomCacheError as e:
        print_error(f"Clear failed: {e}")
        sys.exit(1)


@cli.command()
@click.option("--retention-ms", type=click.IntRange(min=0), help="Remove atoms older than this.")
@click.option("--max-entries", type=click.IntRange(min=0), help="Keep only the newest atoms.")
@click.pass_context
def cleanup(ctx: click.Context, retention_ms: Optional[int], max_entries: Optional[int]) -> None:
    """Remove atoms according to a clean-up policy.

    Without options, the policy configured through ATOMCACHE_RETENTION_MS
    and ATOMCACHE_MAX_ENTRIES is applied.

    \b
    Examples:
        atomcache cleanup --retention-ms 86400000   # Drop atoms older than a day
        atomcache cleanup --max-entries 100         # Keep the 100 newest atoms
    """
    from atomcache.cache.policies import CombinedPolicy, MaxEntriesPolicy, RetentionPolicy

    policies = []
    if retention_ms is not None:
        policies.append(RetentionPolicy(retention_ms))
    if max_entries is not None:
        policies.append(MaxEntriesPolicy(max_entries))

    store = _store(ctx)
    policy = CombinedPolicy(*policies) if policies else store.clean_up_policy
    if policy is None:
        print_warning("No clean-up policy given or configured, nothing removed.")
        return

    try:
        count = store.clean_up(policy)
    except AtomCacheError as e:
        print_error(f"Cleanup failed: {e}")
        sys.exit(1)
    print_success(f"Cleanup complete. Removed {count} entries.")


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show statistics of the store."""
    store = _store(ctx)
    try:
        print_stats(store.stats())
    except AtomCacheError as e:
        print_error(f"Statistics failed: {e}")
        sys.exit(1)


@cli.command()
@click.argument("url")
@click.option(
    "--max-age-ms",
    type=click.IntRange(min=0),
    default=3_600_000,
    show_default=True,
    help="Maximum age of a stored atom served without fetching.",
)
@click.option("--no-cache", is_flag=True, help="Always fetch and overwrite the store.")
@click.pass_context
def fetch(ctx: click.Context, url: str, max_age_ms: int, no_cache: bool) -> None:
    """Fetch URL through the cache and print the body.

    \b
    Examples:
        atomcache fetch https://example.com/data.json
        atomcache fetch https://example.com/data.json --no-cache
    """
    from atomcache.core.models import CacheKey, CachePolicy, FetchDescriptor
    from atomcache.fetch.coordinator import FetchCoordinator
    from atomcache.sources.http import HttpDataSource

    settings = ctx.obj["settings"]
    store = _store(ctx)
    descriptor = FetchDescriptor(url)
    policy = CachePolicy(use_cache=not no_cache, max_age_ms=max_age_ms)
    source = HttpDataSource(timeout=settings.FETCH_TIMEOUT)

    try:
        with FetchCoordinator(store, source, max_workers=settings.REFRESH_WORKERS) as coordinator:
            resolution = coordinator.resolve_atom(CacheKey.from_descriptor(descriptor), descriptor, policy)
    except AtomCacheError as e:
        print_error(str(e))
        sys.exit(1)

    print_resolution(resolution)
    click.echo(resolution.content.decode("utf-8", errors="replace"))
