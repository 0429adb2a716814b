"""Typer CLI entrypoint for ticker-news."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import ConfigRepository
from .errors import EntityNotFoundError, TickerNewsError
from .infra import SQLiteManager
from .logging_conf import available_source_logs, configure_logging, log_dir, tail_log
from .models import NewsItem, WatchedEntity
from .notifiers import build_notifier
from .orchestrator import CrawlSummary
from .service import Repositories, build_runtime, open_repositories, serve

app = typer.Typer(
    help="ticker-news: watch stock tickers and get notified about new headlines.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
watch_app = typer.Typer(name="watch", help="Manage the watchlist.", no_args_is_help=True, rich_markup_mode=None)
news_app = typer.Typer(name="news", help="Browse stored news.", no_args_is_help=True, rich_markup_mode=None)
source_app = typer.Typer(name="source", help="Inspect news sources.", no_args_is_help=True, rich_markup_mode=None)
log_app = typer.Typer(name="log", help="View log files.", no_args_is_help=True, rich_markup_mode=None)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    storage: SQLiteManager
    repos: Repositories
    # extra keyword arguments for build_runtime (HTTP client, crawler registry, ...)
    runtime_overrides: dict[str, Any] = field(default_factory=dict)


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    configure_logging(verbose=verbose)
    storage = SQLiteManager()
    repos = open_repositories(repository, storage)
    return AppState(repository=repository, storage=storage, repos=repos)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _fail(message: str) -> NoReturn:
    console.print(message, style="red", markup=False)
    raise typer.Exit(code=1)


def _parse_ticker(ticker: str) -> tuple[str, str]:
    exchange, sep, symbol = ticker.partition(":")
    if not sep or not exchange.strip() or not symbol.strip():
        raise typer.BadParameter(f"expected EXCHANGE:SYMBOL, got {ticker!r}")
    return exchange.strip().upper(), symbol.strip().upper()


def _resolve_entity(state: AppState, ticker: str) -> WatchedEntity:
    exchange, symbol = _parse_ticker(ticker)
    entity = state.repos.watchlist.find(exchange, symbol)
    if entity is None:
        raise EntityNotFoundError(f"{exchange}:{symbol} is not on the watchlist")
    return entity


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def _render_watchlist_table(state: AppState, entities: Sequence[WatchedEntity]) -> Table:
    table = Table(title=f"Watchlist · {len(entities)} tickers", box=box.SIMPLE_HEAD)
    table.add_column("Ticker", style="cyan", no_wrap=True)
    table.add_column("Company")
    table.add_column("Alerts", style="magenta")
    table.add_column("Sources", style="green", overflow="fold")
    for entity in entities:
        links = state.repos.watchlist.sources_for(entity.id)
        sources = ", ".join(
            link.source.name + ("" if link.enabled and link.source.enabled else " (off)") for link in links
        )
        table.add_row(
            entity.ticker,
            entity.company_name or "-",
            "on" if entity.alerts_enabled else "off",
            sources or "-",
        )
    return table


def _render_news_table(entity: WatchedEntity, items: Sequence[NewsItem]) -> Table:
    table = Table(title=f"{entity.ticker} · {len(items)} items", box=box.SIMPLE_HEAD)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Time", style="green", no_wrap=True)
    table.add_column("Title", overflow="fold")
    table.add_column("Read", style="magenta")
    for item in items:
        table.add_row(item.id, _fmt_time(item.sort_time), escape(item.title), "yes" if item.is_read else "")
    return table


def _render_summary_table(summary: CrawlSummary) -> Table:
    table = Table(title=f"Crawl · {summary.ticker}", box=box.SIMPLE_HEAD)
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Result", overflow="fold")
    for name, count in summary.new_items.items():
        table.add_row(name, f"{count} new")
    for name, error in summary.failures.items():
        partial = summary.partial_new.get(name)
        suffix = f" ({partial} new before failing)" if partial else ""
        table.add_row(name, f"[red]failed: {escape(error)}[/]{suffix}")
    for name in summary.skipped:
        table.add_row(name, "[dim]skipped[/]")
    return table


app.add_typer(watch_app, name="watch")
app.add_typer(news_app, name="news")
app.add_typer(source_app, name="source")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    if ctx.obj is None:
        ctx.obj = build_state(verbose)


# --------------------------------------------------------------------------- watch
@watch_app.command("add", help="Add EXCHANGE SYMBOL to the watchlist.")
def watch_add(
    ctx: typer.Context,
    exchange: str = typer.Argument(..., help="Exchange code, e.g. NASDAQ."),
    symbol: str = typer.Argument(..., help="Ticker symbol, e.g. MSFT."),
    name: Optional[str] = typer.Option(None, "--name", help="Company name to display."),
    no_alerts: bool = typer.Option(False, "--no-alerts", help="Do not notify about new items.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    try:
        entity = state.repos.watchlist.add(exchange, symbol, company_name=name, alerts_enabled=not no_alerts)
    except ValueError as exc:
        _fail(str(exc))
    console.print(f"Watching {entity.ticker}.", style="green")


@watch_app.command("remove", help="Remove TICKER (EXCHANGE:SYMBOL) and its stored news.")
def watch_remove(ctx: typer.Context, ticker: str = typer.Argument(...)) -> None:
    state = _get_state(ctx)
    try:
        entity = _resolve_entity(state, ticker)
    except TickerNewsError as exc:
        _fail(str(exc))
    state.repos.watchlist.remove(entity.id)
    console.print(f"Removed {entity.ticker}.", style="green")


@watch_app.command("list", help="Show the watchlist.")
def watch_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    entities = state.repos.watchlist.list()
    if not entities:
        console.print("The watchlist is empty; add one with `ticker-news watch add`.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_watchlist_table(state, entities))


@watch_app.command("alerts", help="Turn notifications for TICKER on or off.")
def watch_alerts(
    ctx: typer.Context,
    ticker: str = typer.Argument(...),
    switch: str = typer.Argument(..., help="on | off"),
) -> None:
    state = _get_state(ctx)
    value = switch.strip().lower()
    if value not in ("on", "off"):
        _fail(f"Expected 'on' or 'off', got {switch!r}.")
    try:
        entity = _resolve_entity(state, ticker)
    except TickerNewsError as exc:
        _fail(str(exc))
    state.repos.watchlist.set_alerts(entity.id, value == "on")
    console.print(f"Alerts for {entity.ticker} turned {value}.", style="green")


@watch_app.command("source", help="Enable or disable SOURCE for TICKER.")
def watch_source(
    ctx: typer.Context,
    ticker: str = typer.Argument(...),
    source: str = typer.Argument(..., help="Source name, e.g. YahooFinance."),
    enable: bool = typer.Option(True, "--enable/--disable", help="Crawl this source for the ticker."),
    query: Optional[str] = typer.Option(None, "--query", help="Source-specific query override."),
) -> None:
    state = _get_state(ctx)
    try:
        entity = _resolve_entity(state, ticker)
        link = state.repos.watchlist.set_source(entity.id, source, enabled=enable, custom_query=query)
    except TickerNewsError as exc:
        _fail(str(exc))
    status = "enabled" if link.enabled else "disabled"
    console.print(f"{link.source.name} {status} for {entity.ticker}.", style="green")


# --------------------------------------------------------------------------- news
@news_app.command("list", help="List recent news for TICKER.")
def news_list(
    ctx: typer.Context,
    ticker: str = typer.Argument(...),
    days: int = typer.Option(7, "--days", min=1, help="How many days back to show."),
    unread: bool = typer.Option(False, "--unread", help="Only unread items.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    try:
        entity = _resolve_entity(state, ticker)
    except TickerNewsError as exc:
        _fail(str(exc))
    items = state.repos.news.list_recent(entity.id, days=days, unread_only=unread)
    if not items:
        console.print(f"No news for {entity.ticker} in the last {days} days.", style="dim")
        return
    console.print(_render_news_table(entity, items))


@news_app.command("read", help="Mark a news item as read.")
def news_read(
    ctx: typer.Context,
    news_id: str = typer.Argument(...),
    unread: bool = typer.Option(False, "--unread", help="Mark as unread instead.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    if not state.repos.news.mark_read(news_id, is_read=not unread):
        _fail(f"Unknown news item: {news_id}")
    console.print(f"Marked {news_id} as {'unread' if unread else 'read'}.", style="green")


# --------------------------------------------------------------------------- source
@source_app.command("list", help="Show the source catalog and crawl health.")
def source_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    table = Table(title="Sources", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Host")
    table.add_column("Enabled", style="magenta")
    table.add_column("Last crawl", style="green")
    table.add_column("Errors", style="yellow")
    table.add_column("Last error", overflow="fold")
    for source, crawl_state in state.repos.states.list_with_sources():
        table.add_row(
            source.name,
            source.host,
            "yes" if source.enabled else "no",
            _fmt_time(crawl_state.last_crawl_utc) if crawl_state else "-",
            str(crawl_state.consecutive_errors) if crawl_state else "0",
            (crawl_state.last_error or "") if crawl_state else "",
        )
    console.print(table)


# --------------------------------------------------------------------------- crawl / serve
async def _crawl_once(state: AppState, entity_id: str) -> CrawlSummary | None:
    settings = state.repository.load_settings()
    overrides = {"notifier": build_notifier(settings.notifier, console), **state.runtime_overrides}
    runtime = build_runtime(state.repository, state.repos, **overrides)
    try:
        if not runtime.orchestrator.crawl_now(entity_id):
            return None
        summaries = await runtime.orchestrator.drain()
    finally:
        await runtime.aclose()
    return summaries[0] if summaries else None


@app.command("crawl", help="Crawl TICKER now and print a summary.")
def crawl(ctx: typer.Context, ticker: str = typer.Argument(...)) -> None:
    state = _get_state(ctx)
    try:
        entity = _resolve_entity(state, ticker)
    except TickerNewsError as exc:
        _fail(str(exc))
    summary = asyncio.run(_crawl_once(state, entity.id))
    if summary is None:
        _fail(f"A crawl for {entity.ticker} is already running.")
    console.print(_render_summary_table(summary))
    console.print(
        f"{summary.total_new} new item(s), {len(summary.notified)} notification(s) sent.",
        style="green" if not summary.failures else "yellow",
    )


async def _serve(state: AppState) -> None:
    runtime = build_runtime(state.repository, state.repos, **state.runtime_overrides)
    await serve(runtime)


@app.command("serve", help="Run the poller and crawl consumer until interrupted.")
def serve_command(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print("ticker-news service running; press Ctrl+C to stop.", style="cyan")
    try:
        asyncio.run(_serve(state))
    except KeyboardInterrupt:
        pass
    finally:
        state.storage.close_all()
    console.print("Service stopped.", style="dim")


# --------------------------------------------------------------------------- log
@log_app.command("list", help="List the available log files.")
def log_list() -> None:
    base = log_dir()
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for name in ("service.log", "error.log"):
        if (base / name).exists():
            table.add_row(name)
    for path in available_source_logs():
        table.add_row(f"sources/{path.name}")
    if not table.row_count:
        console.print("No log files yet.", style="dim")
        return
    console.print(table)


@log_app.command("show", help="Show the tail of the service log, the error log or a source log.")
def log_show(
    source: Optional[str] = typer.Option(None, "--source", help="Source name; omit for the service log."),
    errors: bool = typer.Option(False, "--errors", help="Show the error log.", is_flag=True),
    tail: int = typer.Option(100, "--tail", min=1, help="Number of trailing lines."),
) -> None:
    base = log_dir()
    if source:
        path = base / "sources" / f"{source}.log"
    elif errors:
        path = base / "error.log"
    else:
        path = base / "service.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
