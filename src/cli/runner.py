# src/cli/runner.py

"""Headless CLI commands built on the async tracker core."""

import asyncio
import json
import logging
import signal

from rich.console import Console
from rich.table import Table

from src.config.settings import Settings
from src.models.product import TrackedProduct
from src.scrapers.errors import ScrapeError
from src.services.health_checker import HealthChecker
from src.services.tracker_service import PriceTracker

logger = logging.getLogger("pricepulse.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

_CURRENCY_BY_DOMAIN: dict[str, str] = {
    "in": "₹",
    "com": "$",
    "ca": "CA$",
    "com.au": "A$",
    "co.uk": "£",
    "de": "€",
    "fr": "€",
    "it": "€",
    "es": "€",
    "co.jp": "¥",
    "ae": "AED ",
}


def format_price(price: float, domain: str) -> str:
    """Render a currency-less price using the listing's locale."""
    symbol = _CURRENCY_BY_DOMAIN.get(domain, "")
    return f"{symbol}{price:,.2f}"


def product_to_dict(product: TrackedProduct) -> dict[str, object]:
    """Serialise a product (with history) to plain JSON-able data."""
    return {
        "id": product.id,
        "asin": product.asin,
        "domain": product.domain,
        "url": product.url,
        "title": product.title,
        "image": product.image,
        "current_price": product.current_price,
        "updated_at": product.updated_at.isoformat(),
        "price_history": [
            {"price": s.price, "timestamp": s.scraped_at.isoformat()}
            for s in product.price_history
        ],
    }


def _print_products(products: list[TrackedProduct]) -> None:
    """Render a Rich table of tracked products to stdout."""
    table = Table(
        title="Tracked Products",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("ID", style="dim", width=5)
    table.add_column("Title", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Low / High (window)", justify="right")
    table.add_column("Updated", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    for p in products:
        prices = [s.price for s in p.price_history] or [p.current_price]
        table.add_row(
            str(p.id),
            p.title[:60],
            format_price(p.current_price, p.domain),
            (
                f"{format_price(min(prices), p.domain)} / "
                f"{format_price(max(prices), p.domain)}"
            ),
            p.updated_at.strftime("%Y-%m-%d %H:%M"),
            p.url,
        )

    Console().print(table)


def _report_scrape_error(exc: ScrapeError) -> int:
    _err.print(f"[red]Tracking failed ({exc.kind.value}): {exc}[/red]")
    return 1


async def cli_track(
    url: str,
    email: str | None,
    target_price: float | None,
    output_format: str,
) -> int:
    """Track a product URL and print it. Returns an exit code."""
    tracker = PriceTracker.build()
    try:
        product = await tracker.track_product(url, email, target_price)
    except ScrapeError as exc:
        return _report_scrape_error(exc)
    except (LookupError, ValueError) as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        await tracker.shutdown()

    if output_format == "json":
        print(json.dumps(product_to_dict(product), ensure_ascii=False, indent=2))
    else:
        _print_products([product])
    if email and target_price is not None:
        _err.print(
            f"[dim]Alert set for {email} at "
            f"{format_price(target_price, product.domain)}[/dim]"
        )
    return 0


async def cli_show(product_id: int, output_format: str) -> int:
    """Print one tracked product without re-scraping it."""
    tracker = PriceTracker.build()
    try:
        product = await tracker.get_product(product_id)
    finally:
        await tracker.shutdown()
    if product is None:
        _err.print(f"[red]Product {product_id} is not tracked[/red]")
        return 1
    if output_format == "json":
        print(json.dumps(product_to_dict(product), ensure_ascii=False, indent=2))
    else:
        _print_products([product])
    return 0


async def cli_list(output_format: str) -> int:
    """Print every tracked product."""
    tracker = PriceTracker.build()
    try:
        products = await tracker.list_products()
    finally:
        await tracker.shutdown()
    if output_format == "json":
        print(json.dumps(
            [product_to_dict(p) for p in products],
            ensure_ascii=False,
            indent=2,
        ))
    elif products:
        _print_products(products)
    else:
        _err.print("[yellow]No products tracked yet.[/yellow]")
    return 0


async def cli_subscribe(
    product_id: int, email: str, target_price: float,
) -> int:
    """Create or update a price-drop alert."""
    tracker = PriceTracker.build()
    try:
        subscription = await tracker.subscribe(product_id, email, target_price)
    except (LookupError, ValueError) as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        await tracker.shutdown()
    _err.print(
        f"[green]Alert {subscription.id}: {subscription.email} at "
        f"{subscription.target_price:,.2f}[/green]"
    )
    return 0


async def run_scheduler() -> int:
    """Run the recurring scheduler until SIGINT/SIGTERM."""
    tracker = PriceTracker.build()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, tracker.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            logger.debug("Signal handler for %s unavailable", sig)

    _err.print(
        f"[cyan]Scheduler running: every "
        f"{Settings.SCRAPE_INTERVAL_MINUTES} min, max "
        f"{Settings.MAX_CONCURRENT_SCRAPES} concurrent scrapes "
        f"(Ctrl+C to stop)[/cyan]"
    )
    try:
        await tracker.run()
    except Exception:
        logger.critical("Scheduler crashed", exc_info=True)
        return 1
    return 0


async def run_health_check() -> int:
    """Probe browser, database and target connectivity."""
    tracker = PriceTracker.build()
    try:
        checker = HealthChecker(tracker.sessions, tracker.db)
        results = await checker.check_all()
    finally:
        await tracker.shutdown()

    table = Table(title="Health Check", title_style="bold cyan")
    table.add_column("Component")
    table.add_column("Status")
    table.add_column("Latency", justify="right")
    table.add_column("Message", style="dim")
    styles = {"ok": "green", "slow": "yellow", "down": "red"}
    for r in results:
        style = styles.get(r.status, "white")
        table.add_row(
            r.source_id,
            f"[{style}]{r.status}[/{style}]",
            f"{r.latency_ms:.0f}ms",
            r.message,
        )
    Console().print(table)
    return 0 if all(r.status != "down" for r in results) else 1
