"""CLI entry point for Bullion Rate: derived precious-metal retail prices.

Provides the ``bullion-rate`` command with subcommands for serving the HTTP
API, computing a price once, watching a running server, and managing daily
closes.

This is the ONLY module where console output is allowed. All other modules
use ``logging``. Async internals are bridged to typer's synchronous interface
via ``asyncio.run()``.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Annotated

import httpx
import typer
from rich.console import Console
from rich.table import Table

from Bullion_Rate.analysis.formula import MarkupFactors
from Bullion_Rate.config import Settings, get_settings
from Bullion_Rate.data.database import Database
from Bullion_Rate.data.repository import PriceRepository
from Bullion_Rate.logging_config import configure_logging
from Bullion_Rate.models.api import DailyCloseResponse, PriceResponse
from Bullion_Rate.models.enums import Metal
from Bullion_Rate.models.extremes import ClientExtremesView, StoredDailyPrice
from Bullion_Rate.services._helpers import create_http_client
from Bullion_Rate.services.cache import ServiceCache
from Bullion_Rate.services.extremes import DailyExtremesTracker
from Bullion_Rate.services.health import HealthService
from Bullion_Rate.services.pricing import DEFAULT_HISTORY_DAYS, PriceService
from Bullion_Rate.services.rate_fetcher import RateFetcher, build_rate_fetcher
from Bullion_Rate.utils.exceptions import PriceEngineError

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(name="bullion-rate", help="Derived precious-metal retail price engine")

console = Console()

VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]
QuietOption = Annotated[bool, typer.Option("--quiet", "-q", help="Only show warnings")]
MetalOption = Annotated[Metal, typer.Option(help="Metal to price")]


# ---------------------------------------------------------------------------
# Shared pipeline wiring
# ---------------------------------------------------------------------------


@dataclass
class _Pipeline:
    database: Database
    fetcher: RateFetcher
    price_service: PriceService


@contextlib.asynccontextmanager
async def _open_pipeline(settings: Settings) -> AsyncIterator[_Pipeline]:
    """Open the same resources the web lifespan opens, for one CLI run."""
    database = Database(settings.database_path)
    await database.connect()
    http_client = create_http_client()
    try:
        cache = ServiceCache(database=database)
        await cache.initialize()
        fetcher = build_rate_fetcher(settings, http_client)
        repository = PriceRepository(database)
        service = PriceService(
            fetcher=fetcher,
            cache=cache,
            repository=repository,
            tracker=DailyExtremesTracker(repository, timezone=settings.timezone),
            currency=settings.target_currency,
            markups=MarkupFactors(
                import_duty=settings.import_duty_rate,
                tax=settings.tax_rate,
                premium=settings.premium_rate,
            ),
            ttl_seconds=settings.cache_ttl_seconds,
        )
        yield _Pipeline(database=database, fetcher=fetcher, price_service=service)
    finally:
        await http_client.aclose()
        await database.close()


def _money(value: object) -> str:
    return "\u2014" if value is None else f"{value:,}"


def _render_price(response: PriceResponse) -> None:
    """Print one price response as a rich table."""
    table = Table(title=f"{response.metal.value.title()} price ({response.currency})")
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Per gram", _money(response.price_per_gram))
    table.add_row("Per 10 g", _money(response.price_per_ten_grams))
    table.add_row("Per kg", _money(response.price_per_kilogram))
    table.add_row("Per tola", _money(response.price_per_traditional_unit))
    color = "green" if response.change_24h >= 0 else "red"
    table.add_row(
        "24h change",
        f"[{color}]{response.change_24h:+} ({response.change_percent_24h:+}%)[/{color}]",
    )
    table.add_row("Today open", _money(response.today_open))
    table.add_row("Today high", _money(response.today_high))
    table.add_row("Today low", _money(response.today_low))
    if response.purities:
        for grade, per_gram in response.purities.items():
            table.add_row(f"{grade.upper()} per gram", _money(per_gram))
    table.add_row("Benchmark", f"{response.benchmark_quote} USD/oz")
    table.add_row("Exchange rate", str(response.exchange_rate))
    table.add_row("Source", response.source)

    console.print(table)
    console.print(f"[dim]As of {response.timestamp.isoformat()}[/dim]")


# ---------------------------------------------------------------------------
# serve command
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port")] = 8000,
    workers: Annotated[int, typer.Option(help="Worker processes")] = 1,
    verbose: VerboseOption = False,
) -> None:
    """Serve the price API with uvicorn."""
    import uvicorn

    configure_logging(verbose=verbose)
    uvicorn.run(
        "Bullion_Rate.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        workers=workers,
        log_config=None,
    )


# ---------------------------------------------------------------------------
# price command
# ---------------------------------------------------------------------------


@app.command()
def price(
    metal: MetalOption = Metal.SILVER,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Compute the current price once, without a running server."""
    configure_logging(verbose=verbose, quiet=quiet)
    try:
        response = asyncio.run(_price_async(metal))
    except PriceEngineError as exc:
        console.print(f"[red]Price unavailable:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    _render_price(response)


async def _price_async(metal: Metal) -> PriceResponse:
    async with _open_pipeline(get_settings()) as pipeline:
        return await pipeline.price_service.get_price_response(metal)


# ---------------------------------------------------------------------------
# watch command
# ---------------------------------------------------------------------------


@app.command()
def watch(
    metal: MetalOption = Metal.SILVER,
    interval: Annotated[
        float | None, typer.Option(help="Seconds between polls (default from settings)")
    ] = None,
    base_url: Annotated[
        str | None, typer.Option(help="Price API base URL (default from settings)")
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Poll a running server and show the reconciled intraday high/low."""
    configure_logging(verbose=verbose)
    settings = get_settings()
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(
            _watch_async(
                settings,
                metal=metal,
                interval=interval or settings.poll_interval_seconds,
                base_url=base_url or settings.api_base_url,
            )
        )
    console.print("\n[dim]Stopped watching.[/dim]")


async def _watch_async(
    settings: Settings,
    *,
    metal: Metal,
    interval: float,
    base_url: str,
) -> None:
    from Bullion_Rate.client import (
        ClientExtremesStore,
        ExtremesReconciler,
        LivePriceClient,
        PollScheduler,
    )

    def show(response: PriceResponse, view: ClientExtremesView) -> None:
        console.print(
            f"[bold]{response.timestamp:%H:%M:%S}[/bold] "
            f"{metal.value} {response.price_per_gram} {response.currency}/g  "
            f"high [green]{view.best_high.value}[/green]  "
            f"low [red]{view.best_low.value}[/red]"
        )

    reconciler = ExtremesReconciler(
        timezone=settings.timezone,
        store=ClientExtremesStore(settings.client_state_path),
    )
    async with httpx.AsyncClient(base_url=base_url) as http:
        live = LivePriceClient(http, metal=metal, reconciler=reconciler, on_update=show)
        scheduler = PollScheduler(live.refresh, interval_seconds=interval, name=f"watch-{metal}")
        await scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()


# ---------------------------------------------------------------------------
# save-close command
# ---------------------------------------------------------------------------


@app.command("save-close")
def save_close(
    metal: MetalOption = Metal.SILVER,
    force: Annotated[bool, typer.Option(help="Overwrite an existing close")] = False,
    verbose: VerboseOption = False,
) -> None:
    """Store today's close in the local database."""
    configure_logging(verbose=verbose)
    try:
        result = asyncio.run(_save_close_async(metal, force=force))
    except PriceEngineError as exc:
        console.print(f"[red]Could not save close:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    style = "yellow" if result.skipped else "green"
    console.print(f"[{style}]{result.message}[/{style}]")


async def _save_close_async(metal: Metal, *, force: bool) -> DailyCloseResponse:
    async with _open_pipeline(get_settings()) as pipeline:
        return await pipeline.price_service.save_daily_close(metal, force=force)


# ---------------------------------------------------------------------------
# history command
# ---------------------------------------------------------------------------


@app.command()
def history(
    metal: MetalOption = Metal.SILVER,
    days: Annotated[int, typer.Option(min=1, help="Number of closes")] = DEFAULT_HISTORY_DAYS,
) -> None:
    """Show stored daily closes, oldest first."""
    configure_logging(quiet=True)
    closes = asyncio.run(_history_async(metal, days=days))
    if not closes:
        console.print(f"[yellow]No stored closes for {metal.value}.[/yellow]")
        return

    table = Table(title=f"{metal.value.title()} daily closes")
    table.add_column("Date")
    table.add_column("Per gram", justify="right")
    table.add_column("Per kg", justify="right")
    table.add_column("Benchmark", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Source")
    for close in closes:
        table.add_row(
            close.date.isoformat(),
            _money(close.price_per_gram),
            _money(close.price_per_kilogram),
            str(close.benchmark_quote),
            str(close.exchange_rate),
            close.source,
        )
    console.print(table)


async def _history_async(metal: Metal, *, days: int) -> list[StoredDailyPrice]:
    async with _open_pipeline(get_settings()) as pipeline:
        return await pipeline.price_service.history(metal, days=days)


# ---------------------------------------------------------------------------
# health command
# ---------------------------------------------------------------------------


@app.command()
def health(verbose: VerboseOption = False) -> None:
    """Check the health of all external dependencies."""
    configure_logging(verbose=verbose)
    asyncio.run(_health_async())


async def _health_async() -> None:
    settings = get_settings()
    async with _open_pipeline(settings) as pipeline:
        service = HealthService(
            database=pipeline.database,
            fetcher=pipeline.fetcher,
            currency=settings.target_currency,
        )
        console.print("\n[bold]Running health checks...[/bold]\n")
        status = await service.check_all()

    table = Table(title="Health Status")
    table.add_column("Dependency", style="bold", width=16)
    table.add_column("Status", width=10)
    table.add_column("Details", width=40)

    def mark(ok: bool) -> str:
        return "[green]OK[/green]" if ok else "[red]DOWN[/red]"

    table.add_row("Benchmark", mark(status.benchmark_available), "silver quote chain")
    table.add_row(
        "Exchange rate",
        mark(status.exchange_rate_available),
        f"USD/{settings.target_currency} chain",
    )
    table.add_row("SQLite", mark(status.sqlite_available), settings.database_path)

    console.print(table)
    console.print(f"\n[dim]Last check: {status.last_check.isoformat()}[/dim]")


if __name__ == "__main__":
    app()
