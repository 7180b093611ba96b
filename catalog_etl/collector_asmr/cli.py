"""CLI for the catalog collector."""
from __future__ import annotations

import contextlib
import logging
import signal
import sys
import threading
from typing import Iterator, List, Optional

import click
import orjson
from pydantic import ValidationError

from catalog_etl.config import CONFIG_FILE_NAME, Settings, load_settings, resolve_base_url, save_settings
from catalog_etl.errors import CatalogError
from catalog_etl.models import Category, PageResult
from catalog_etl.upsert import count_downloads, ensure_schema, get_db_connection

from .aggregator import Aggregator
from .channel import Channel
from .crawl import CrawlSummary, run_crawl

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr),
    ],
)

LOGGER = logging.getLogger(__name__)

CATEGORY_CHOICES = ["both", Category.SUBTITLED.label, Category.UNSUBTITLED.label]


class JsonLinesSink:
    """Consumer that prints every item as one JSON line instead of storing it."""

    def __init__(self) -> None:
        self.items = 0

    def drain(self, channel: Channel[PageResult]) -> int:
        pages = 0
        for page in channel:
            for item in page.items:
                click.echo(orjson.dumps(item.model_dump()).decode())
                self.items += 1
            pages += 1
        return pages


def _categories(choice: str) -> List[Category]:
    if choice == "both":
        return [Category.SUBTITLED, Category.UNSUBTITLED]
    return [Category.from_label(choice)]


def _load(config_path: str, max_pages: Optional[int], workers: Optional[int]) -> Settings:
    overrides = {}
    if max_pages is not None:
        overrides["page_limit"] = max_pages
    if workers is not None:
        overrides["max_workers"] = workers
    try:
        settings = load_settings(config_path)
        if overrides:
            settings = Settings.model_validate({**settings.model_dump(), **overrides})
    except (ValidationError, ValueError) as exc:
        # JSONDecodeError is a ValueError
        raise click.ClickException(f"invalid configuration in {config_path}: {exc}") from exc
    LOGGER.info("Settings: %s", settings.safe_dict())
    return settings


@contextlib.contextmanager
def _cancel_on_signals(cancel_event: threading.Event) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into a graceful crawl cancellation."""

    def handle(signum, frame) -> None:
        LOGGER.info("Received signal %s, cancelling crawl...", signum)
        cancel_event.set()

    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {sig: signal.signal(sig, handle) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _echo_summary(summary: CrawlSummary) -> None:
    for report in summary.reports:
        status = "complete" if report.complete else f"partial, failed pages: {sorted(report.failed_pages)}"
        click.echo(
            f"{report.category.label}: {report.pages_published}/{report.max_page} page(s) "
            f"of {report.total_count} work(s) ({status})"
        )


common_options = [
    click.option(
        "--config",
        "config_path",
        default=CONFIG_FILE_NAME,
        show_default=True,
        type=click.Path(dir_okay=False),
        help="Path to JSON config",
    ),
    click.option(
        "--category",
        type=click.Choice(CATEGORY_CHOICES),
        default="both",
        show_default=True,
        help="Which listing partition to crawl",
    ),
    click.option("--max-pages", type=click.IntRange(min=1), help="Cap pages per category"),
    click.option("--workers", type=click.IntRange(min=1), help="Concurrent page fetches per category"),
]


def with_common_options(func):
    for option in reversed(common_options):
        func = option(func)
    return func


@click.group()
def cli():
    """Catalog collector CLI."""
    pass


@cli.command()
@with_common_options
def crawl(config_path: str, category: str, max_pages: Optional[int], workers: Optional[int]) -> None:
    """Crawl the catalog and store works not seen before."""
    settings = _load(config_path, max_pages, workers)
    cancel_event = threading.Event()
    try:
        conn = get_db_connection()
    except Exception as exc:
        raise click.ClickException(f"cannot connect to database: {exc}") from exc
    try:
        ensure_schema(conn)
        base_url = resolve_base_url(settings)
        aggregator = Aggregator(conn, id_prefix=settings.id_prefix)
        with _cancel_on_signals(cancel_event):
            summary = run_crawl(
                settings,
                aggregator,
                _categories(category),
                base_url=base_url,
                cancel_event=cancel_event,
            )
    except CatalogError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        conn.close()

    _echo_summary(summary)
    stats = aggregator.stats
    click.echo(
        f"✅ pages={summary.pages} items={stats.items} inserted={stats.inserted} "
        f"skipped={stats.skipped} failed={stats.failed}"
    )


@cli.command()
@with_common_options
def pull(config_path: str, category: str, max_pages: Optional[int], workers: Optional[int]) -> None:
    """Crawl the catalog and print works as JSON lines."""
    settings = _load(config_path, max_pages, workers)
    cancel_event = threading.Event()
    sink = JsonLinesSink()
    try:
        base_url = resolve_base_url(settings)
        with _cancel_on_signals(cancel_event):
            summary = run_crawl(settings, sink, _categories(category), base_url=base_url, cancel_event=cancel_event)
    except CatalogError as exc:
        raise click.ClickException(str(exc)) from exc
    LOGGER.info("pulled_items=%s pages=%s", sink.items, summary.pages)


@cli.command("init-config")
@click.option(
    "--config",
    "config_path",
    default=CONFIG_FILE_NAME,
    show_default=True,
    type=click.Path(dir_okay=False),
)
def init_config(config_path: str) -> None:
    """Interactively write a config file."""
    defaults = Settings()
    account = click.prompt("Account", default=defaults.account)
    password = click.prompt("Password", default=defaults.password, hide_input=True)
    max_workers = click.prompt("Concurrent page fetches", default=defaults.max_workers, type=click.IntRange(min=1))
    max_failed_retry = click.prompt(
        "Max retries per failed page",
        default=defaults.max_failed_retry,
        type=click.IntRange(min=0),
    )
    settings = Settings(
        account=account,
        password=password,
        max_workers=max_workers,
        max_failed_retry=max_failed_retry,
    )
    path = save_settings(settings, config_path)
    click.echo(f"✅ Wrote {path}")


@cli.command()
def stats() -> None:
    """Show number of stored works."""
    conn = get_db_connection()
    try:
        ensure_schema(conn)
        total = count_downloads(conn)
    finally:
        conn.close()
    click.echo(f"Stored works: {total}")


if __name__ == "__main__":
    cli()
