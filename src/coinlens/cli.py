"""Click-based CLI for coinlens.

Thin wrapper around library modules. Every command delegates to the
repository, the cache or the durable store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code.

    Library errors are printed and turned into exit status 1.
    """
    from coinlens.core import CoinLensError

    try:
        return asyncio.run(coro)
    except CoinLensError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from coinlens.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


@asynccontextmanager
async def _open_repository(config):
    """Wire client, cache and store into a repository; flush writes on exit."""
    from coinlens.cache import create_cache
    from coinlens.remote import CoinGeckoClient
    from coinlens.repository import CryptoRepository
    from coinlens.storage import create_store

    store = await create_store(config.storage)
    client = CoinGeckoClient(config.api)
    repository = CryptoRepository(client, create_cache(config.cache), store)
    try:
        yield repository
    finally:
        await repository.wait_for_pending_writes()
        await client.close()
        await store.close()


def _change_markup(pct: float) -> str:
    color = "green" if pct >= 0 else "red"
    return f"[{color}]{pct:+.2f}%[/{color}]"


def _output_records_table(records, title: str) -> None:
    """Render records as a Rich table."""
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Symbol", style="bold")
    table.add_column("Name")
    table.add_column("Price", justify="right")
    table.add_column("24h", justify="right")
    table.add_column("Market Cap", justify="right")

    for r in records:
        if r.is_partial:
            table.add_row(
                str(r.market_cap_rank or ""), r.symbol.upper(), r.name, "-", "-", "-"
            )
            continue
        table.add_row(
            str(r.market_cap_rank or ""),
            r.symbol.upper(),
            r.name,
            f"${r.formatted_current_price}",
            _change_markup(r.price_change_percentage_24h),
            f"${r.formatted_market_cap}",
        )

    console.print(table)


def _output_records_json(records) -> None:
    """Write records as JSON to stdout."""
    output = [r.model_dump(mode="json") for r in records]
    click.echo(json.dumps(output, indent=2))


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="COINLENS_CONFIG",
    default=None,
    help="Path to coinlens.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="coinlens")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """coinlens: cached cryptocurrency market listings."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ---------------------------------------------------------------------------
# list / show / search
# ---------------------------------------------------------------------------


@cli.command(name="list")
@click.option("--limit", "-n", type=int, default=None, help="Show only the top N coins.")
@click.option("--filter", "-f", "text", default="", help="Keep coins whose name or symbol contains TEXT.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def list_coins(ctx: click.Context, limit: int | None, text: str, as_json: bool) -> None:
    """Fetch the market listing (always from the network)."""
    from coinlens.listing import CryptoListModel, FetchCryptoCurrenciesUseCase

    config = _load_config(ctx)

    async def _run():
        async with _open_repository(config) as repository:
            model = CryptoListModel(FetchCryptoCurrenciesUseCase(repository))
            model.search_text = text
            await model.load()
            return model

    model = _run_async(_run())
    if model.has_error:
        console.print(f"[red]Error:[/red] {model.error_message}")
        sys.exit(1)

    records = model.filtered
    if limit is not None:
        records = records[:limit]
    if as_json:
        _output_records_json(records)
    else:
        _output_records_table(records, f"Top {len(records)} by market cap")


@cli.command()
@click.argument("crypto_id")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def show(ctx: click.Context, crypto_id: str, as_json: bool) -> None:
    """Show one coin, from cache when fresh."""
    config = _load_config(ctx)

    async def _run():
        async with _open_repository(config) as repository:
            return await repository.fetch_one(crypto_id)

    record = _run_async(_run())
    if as_json:
        click.echo(json.dumps(record.model_dump(mode="json"), indent=2))
        return

    table = Table(title=f"{record.name} ({record.symbol.upper()})")
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Rank", str(record.market_cap_rank))
    table.add_row("Price", f"${record.formatted_current_price}")
    table.add_row("24h change", _change_markup(record.price_change_percentage_24h))
    table.add_row("24h high / low", f"${record.high_24h:,.2f} / ${record.low_24h:,.2f}")
    table.add_row("Market cap", f"${record.formatted_market_cap}")
    table.add_row("Volume", f"${record.formatted_volume}")
    table.add_row("Circulating supply", f"{record.circulating_supply:,.0f}")
    table.add_row(
        "Max supply",
        f"{record.max_supply:,.0f}" if record.max_supply is not None else "∞",
    )
    table.add_row("All-time high", f"${record.ath:,.2f} ({record.ath_date or 'n/a'})")
    table.add_row("Last updated", record.last_updated or "n/a")
    console.print(table)


@cli.command()
@click.argument("query")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def search(ctx: click.Context, query: str, as_json: bool) -> None:
    """Search by name or symbol: cache first, then the API."""
    config = _load_config(ctx)

    async def _run():
        async with _open_repository(config) as repository:
            return await repository.search(query)

    records = _run_async(_run())
    if as_json:
        _output_records_json(records)
        return
    if not records:
        console.print(f"[yellow]No coins match {query!r}.[/yellow]")
        return
    _output_records_table(records, f"Results for {query!r}")
    if any(r.is_partial for r in records):
        console.print("[dim]Rows without prices are search hits; use `show ID` for details.[/dim]")


# ---------------------------------------------------------------------------
# history
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("crypto_id")
@click.option("--hours", "-h", type=float, default=24, help="How far back to look.")
@click.pass_context
def history(ctx: click.Context, crypto_id: str, hours: float) -> None:
    """Show locally recorded prices for a coin."""
    config = _load_config(ctx)

    async def _run():
        async with _open_repository(config) as repository:
            return await repository.price_history(crypto_id, hours)

    samples = _run_async(_run())
    if not samples:
        console.print(f"[yellow]No price samples for {crypto_id} in the last {hours:g}h.[/yellow]")
        return

    table = Table(title=f"{crypto_id} price history ({hours:g}h)")
    table.add_column("Time (UTC)")
    table.add_column("Price", justify="right")
    for s in samples:
        table.add_row(
            s.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            f"${s.price:,.2f}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# clear / status
# ---------------------------------------------------------------------------


@cli.command()
@click.confirmation_option(prompt="Delete all cached and stored coin data?")
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Drop the cache and every stored record and price sample."""
    config = _load_config(ctx)

    async def _run():
        from coinlens.cache import create_cache
        from coinlens.storage import create_store

        create_cache(config.cache).clear()
        store = await create_store(config.storage)
        try:
            await store.clear_all()
        finally:
            await store.close()

    _run_async(_run())
    console.print("[green]✓[/green] Cleared cache and durable store")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration, cache freshness and stored record count."""
    config = _load_config(ctx)

    async def _run():
        from coinlens.cache import create_cache
        from coinlens.storage import create_store

        cache = create_cache(config.cache)
        store = await create_store(config.storage)
        try:
            stored = await store.count()
        finally:
            await store.close()
        return cache, stored

    cache, stored = _run_async(_run())
    saved_at = cache.saved_at()

    table = Table(title="coinlens Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("API", config.api.base_url)
    table.add_row("Currency", config.api.vs_currency)
    table.add_section()
    table.add_row("Cache backend", config.cache.backend.value)
    table.add_row("Cached records", str(len(cache.snapshot())))
    table.add_row(
        "Cache saved",
        datetime.fromtimestamp(saved_at, tz=timezone.utc).isoformat(timespec="seconds")
        if saved_at is not None
        else "never",
    )
    table.add_row("Cache fresh", "no" if cache.is_expired() else "yes")
    table.add_section()
    table.add_row("Database path", config.storage.sqlite_path)
    table.add_row("Stored records", str(stored))
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
