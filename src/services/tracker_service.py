# src/services/tracker_service.py

"""Entry points used by the outer layers: track, read, subscribe, run."""

import asyncio
import logging
from datetime import datetime, timezone

from src.models.price_snapshot import PriceSnapshot
from src.models.product import TrackedProduct
from src.models.subscription import PriceAlertSubscription
from src.scrapers.browser_session import BrowserSessionManager
from src.scrapers.errors import PersistenceError
from src.scrapers.image_downloader import ImageDownloader
from src.scrapers.scrape_task import ScrapeTask
from src.scrapers.url_parser import parse_product_url
from src.services.alert_notifier import AlertNotifier
from src.services.mailer import Mailer, SmtpMailer
from src.services.scheduler import Clock, RecurringScheduler
from src.storage.image_store import ImageStore
from src.storage.tracker_db import TrackerDB

logger = logging.getLogger("pricepulse.tracker")


class PriceTracker:
    """Wires the scrape core together and exposes its operations."""

    def __init__(
        self,
        db: TrackerDB,
        sessions: BrowserSessionManager,
        scrape_task: ScrapeTask,
        scheduler: RecurringScheduler,
        notifier: AlertNotifier,
    ) -> None:
        self.db = db
        self.sessions = sessions
        self.scrape_task = scrape_task
        self.scheduler = scheduler
        self.notifier = notifier
        self._track_locks: dict[tuple[str, str], asyncio.Lock] = {}

    @classmethod
    def build(
        cls,
        db: TrackerDB | None = None,
        mailer: Mailer | None = None,
        clock: Clock | None = None,
    ) -> "PriceTracker":
        """Assemble the default production object graph."""
        db = db or TrackerDB()
        sessions = BrowserSessionManager()
        scrape_task = ScrapeTask(
            sessions,
            image_store=ImageStore(),
            downloader=ImageDownloader(),
        )
        notifier = AlertNotifier(db, mailer or SmtpMailer())
        scheduler = RecurringScheduler(db, scrape_task, notifier, clock=clock)
        return cls(db, sessions, scrape_task, scheduler, notifier)

    # ── Operations ───────────────────────────────────────

    async def track_product(
        self,
        url: str,
        email: str | None = None,
        target_price: float | None = None,
    ) -> TrackedProduct:
        """Start tracking the listing behind *url*.

        An already-tracked ``(asin, domain)`` is returned as-is (the
        subscriber, if any, is attached to it). Otherwise the page is
        scraped in full, the product stored and its job registered.

        Raises:
            ScrapeError: the URL is invalid or the first scrape failed;
                the tag says why (``invalid_url``, ``unavailable``,
                ``price_not_found``, ...).
        """
        ref = parse_product_url(url)

        # one listing is scraped once; different listings run in parallel
        lock = self._track_locks.setdefault(
            (ref.asin, ref.domain), asyncio.Lock(),
        )
        async with lock:
            product = await asyncio.to_thread(
                self.db.find_product_by_site_id, ref.asin, ref.domain,
            )
            if product is None:
                product = await self._create(
                    ref.canonical_url, ref.asin, ref.domain,
                )

        if email and target_price is not None and product.id is not None:
            await self.subscribe(product.id, email, target_price)
        return product

    async def _create(
        self, url: str, asin: str, domain: str,
    ) -> TrackedProduct:
        result = await self.scrape_task.scrape_full(url)
        now = self.scheduler.clock.now()
        product = TrackedProduct(
            asin=asin,
            domain=domain,
            url=url,
            title=result.title or "",
            image=result.image,
            current_price=result.price,
            price_history=[PriceSnapshot(result.price, now)],
            created_at=now,
            updated_at=now,
        )
        stored = await asyncio.to_thread(self.db.create_product, product)
        if stored.id is None:
            raise PersistenceError("Product stored without an id", url=url)
        await self.scheduler.register_product(stored.id)
        logger.info(
            "Now tracking product %d: %s at %.2f",
            stored.id,
            stored.title,
            stored.current_price,
        )
        return stored

    async def get_product(self, product_id: int) -> TrackedProduct | None:
        """Read-through lookup; never triggers a scrape."""
        return await asyncio.to_thread(self.db.find_product, product_id)

    async def list_products(self) -> list[TrackedProduct]:
        """Every tracked product."""
        return await asyncio.to_thread(self.db.list_products)

    async def subscribe(
        self, product_id: int, email: str, target_price: float,
    ) -> PriceAlertSubscription:
        """Create or update a price-drop alert for a tracked product.

        The new alert is checked against the current price right away, so
        a target already met is notified without waiting for a tick.
        """
        if target_price < 0:
            raise ValueError("target_price must be non-negative")
        product = await self.get_product(product_id)
        if product is None:
            raise LookupError(f"Product {product_id} is not tracked")
        subscription = await asyncio.to_thread(
            self.db.add_subscription, product_id, email, target_price,
        )
        logger.info(
            "Alert %s: %s wants product %d at %.2f",
            subscription.id,
            subscription.email,
            product_id,
            target_price,
        )
        await self.notifier.notify_price_drops(product)
        return subscription

    # ── Lifecycle ────────────────────────────────────────

    async def start(self) -> int:
        """Rebuild scheduled jobs and begin browser health monitoring."""
        count = await self.scheduler.rehydrate()
        self.sessions.start_monitor()
        return count

    async def run(self) -> None:
        """Start, run the scheduler until stopped, then shut down."""
        await self.start()
        try:
            await self.scheduler.run_forever()
        finally:
            await self.shutdown()

    def stop(self) -> None:
        """Signal-safe request to stop :meth:`run`."""
        self.scheduler.stop()

    async def shutdown(self) -> None:
        """Cancel ticks, close the browser and the database."""
        await self.scheduler.shutdown()
        await self.sessions.close()
        self.db.close()
        logger.info(
            "Tracker shut down at %s",
            datetime.now(timezone.utc).isoformat(),
        )
