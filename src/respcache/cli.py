"""respcache CLI entry point."""

from __future__ import annotations

import asyncio
import sys
import time
from typing import Optional, Tuple

import click

from . import __version__
from .cache.manager import ResponseCache
from .config import CacheSettings, ConfigLoader
from .errors import CacheError
from .http_fetcher import HttpFetcher
from .keys import cache_key
from .refresh import BackgroundRefresher
from .utils.logger import configure_logging


def _parse_params(raw: Tuple[str, ...]) -> dict:
    params: dict = {}
    for item in raw:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--param")
        params.setdefault(name, []).append(value)
    return {name: values[0] if len(values) == 1 else values for name, values in params.items()}


def _build_cache(settings: CacheSettings, base_url: Optional[str] = None) -> ResponseCache:
    fetcher = HttpFetcher(base_url=base_url or settings.base_url, timeout=settings.http_timeout)
    return ResponseCache.from_settings(settings, fetcher=fetcher)


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except CacheError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Override general.log_level (debug, info, warning, error)")
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str]) -> None:
    """respcache - client-side response cache."""
    settings = CacheSettings.from_config(ConfigLoader())
    configure_logging(log_level or settings.log_level, settings.log_format)
    ctx.obj = settings


@main.command()
@click.argument("path")
@click.option("--param", "-p", "params", multiple=True, help="Query parameter NAME=VALUE (repeatable)")
@click.option("--ttl", type=float, default=None, help="Freshness window in seconds")
@click.option("--base-url", default=None, help="Origin base URL (default: http.base_url)")
@click.option("--force", is_flag=True, help="Revalidate even when the cached copy is fresh")
@click.pass_obj
def get(settings: CacheSettings, path: str, params: Tuple[str, ...], ttl: Optional[float], base_url: Optional[str], force: bool) -> None:
    """Fetch PATH through the cache and print the body."""
    key = cache_key(path, _parse_params(params))

    async def _get() -> None:
        async with _build_cache(settings, base_url) as cache:
            result = await (cache.refresh(key, ttl=ttl) if force else cache.fetch(key, ttl=ttl))
        click.echo(f"[{result.status.value}] {key} (source: {result.source})", err=True)
        if result.error:
            click.echo(f"  origin error: {result.error}", err=True)
        click.echo(result.payload.decode("utf-8", errors="replace"))

    _run(_get())


@main.command()
@click.argument("key")
@click.pass_obj
def show(settings: CacheSettings, key: str) -> None:
    """Show stored metadata for KEY."""

    async def _show() -> None:
        async with _build_cache(settings) as cache:
            entry = await cache.peek(key)
            ttl = cache.resolve_ttl(key)
        if entry is None:
            click.echo(f"{key}: not cached")
            return
        now = time.time()
        click.echo(f"key:       {entry.key}")
        click.echo(f"size:      {entry.size} bytes")
        click.echo(f"validator: {entry.validator or '-'}")
        click.echo(f"age:       {entry.age(now):.1f}s (ttl {ttl:g}s)")
        click.echo(f"fresh:     {'yes' if entry.is_fresh(now, ttl) else 'no'}")

    _run(_show())


@main.command()
@click.argument("key")
@click.option("--prefix", is_flag=True, help="Treat KEY as a prefix and drop every matching entry")
@click.pass_obj
def invalidate(settings: CacheSettings, key: str, prefix: bool) -> None:
    """Drop KEY from the cache."""

    async def _invalidate() -> None:
        async with _build_cache(settings) as cache:
            if prefix:
                removed = await cache.invalidate_prefix(key)
                click.echo(f"Invalidated {len(removed)} entr{'y' if len(removed) == 1 else 'ies'}")
            else:
                await cache.invalidate(key)
                click.echo(f"Invalidated {key}")

    _run(_invalidate())


@main.command()
@click.pass_obj
def clear(settings: CacheSettings) -> None:
    """Remove every cached entry."""

    async def _clear() -> None:
        async with _build_cache(settings) as cache:
            await cache.invalidate_all()
        click.echo("Cache cleared")

    _run(_clear())


@main.command()
@click.pass_obj
def stats(settings: CacheSettings) -> None:
    """Show persistent store usage."""

    async def _stats() -> None:
        async with _build_cache(settings) as cache:
            tier = cache.persistent
            click.echo(f"backend:  {settings.store_backend} ({settings.store_path})")
            click.echo(f"entries:  {len(tier)} / {tier.max_entries or 'unbounded'}")
            click.echo(f"bytes:    {tier.used_bytes} / {tier.max_bytes or 'unbounded'}")

    _run(_stats())


@main.command()
@click.argument("keys", nargs=-1)
@click.option("--interval", type=float, default=None, help="Seconds between passes (default: refresh.interval)")
@click.option("--once", is_flag=True, help="Run a single pass and exit")
@click.pass_obj
def refresh(settings: CacheSettings, keys: Tuple[str, ...], interval: Optional[float], once: bool) -> None:
    """Revalidate KEYS (default: refresh.keys) periodically."""
    targets = list(keys) or settings.refresh_keys
    if not targets:
        raise click.UsageError("No keys given and refresh.keys is empty")

    async def _refresh() -> None:
        async with _build_cache(settings) as cache:
            refresher = BackgroundRefresher(cache, targets, interval=interval or settings.refresh_interval)
            if once:
                report = await refresher.tick()
                for label in ("refreshed", "degraded", "failed", "skipped"):
                    for key in getattr(report, label):
                        click.echo(f"{label}: {key}")
                return
            refresher.start()
            try:
                while True:
                    await asyncio.sleep(3600)
            finally:
                await refresher.stop()

    try:
        _run(_refresh())
    except KeyboardInterrupt:  # pragma: no cover - interactive exit
        click.echo("Stopped")


if __name__ == "__main__":
    main()
