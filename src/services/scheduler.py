# src/services/scheduler.py

"""Recurring per-product scrape scheduler.

Each tracked product owns exactly one :class:`ScheduledJob`. Due times
live in a heap keyed by the job's generation, so re-registering a
product simply bumps the generation and leaves the old heap entry to be
skipped. A job is either waiting for its next fire time or running one
tick; the next fire time is only armed once the running tick has
finished, so ticks for one product never overlap.

Time comes from an injectable :class:`Clock` so tests can advance it
instead of sleeping through real intervals.
"""

import asyncio
import contextlib
import heapq
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from src.config.settings import Settings
from src.scrapers.errors import PersistenceError, ScrapeError
from src.scrapers.scrape_task import ScrapeTask
from src.services.alert_notifier import AlertNotifier
from src.storage.tracker_db import TrackerDB

logger = logging.getLogger("pricepulse.scheduler")

# products tracked by another process are picked up this often
_SYNC_SECONDS = 60.0


class Clock(Protocol):
    """Source of the current time (timezone-aware UTC)."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class ScheduledJob:
    """One product's recurring registration."""

    product_id: int
    interval: timedelta
    next_fire: datetime
    generation: int
    overdue: bool = False


class RecurringScheduler:
    """Fires one price-only scrape per product per interval."""

    def __init__(
        self,
        db: TrackerDB,
        scrape_task: ScrapeTask,
        notifier: AlertNotifier,
        *,
        clock: Clock | None = None,
        interval: timedelta | None = None,
        retention: timedelta | None = None,
        max_concurrent: int | None = None,
    ) -> None:
        self.db = db
        self.scrape_task = scrape_task
        self.notifier = notifier
        self.clock: Clock = clock or SystemClock()
        self.interval = interval or timedelta(
            minutes=Settings.SCRAPE_INTERVAL_MINUTES
        )
        self.retention = retention or timedelta(
            days=Settings.HISTORY_RETENTION_DAYS
        )
        self.task_name = Settings.SCRAPE_TASK_NAME
        self.max_concurrent = max_concurrent or Settings.MAX_CONCURRENT_SCRAPES

        self._jobs: dict[int, ScheduledJob] = {}
        self._heap: list[tuple[datetime, int, int, int]] = []
        self._seq = itertools.count()
        self._generations = itertools.count(1)
        self._running: set[int] = set()
        self._tasks: set[asyncio.Task[None]] = set()
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._wakeup = asyncio.Event()
        self._stopping = False
        self.active_scrapes = 0
        self.peak_active_scrapes = 0

    # ── Registration ─────────────────────────────────────

    @property
    def jobs(self) -> dict[int, ScheduledJob]:
        """Snapshot of the live registrations, keyed by product id."""
        return dict(self._jobs)

    def is_running(self, product_id: int) -> bool:
        """True while a tick for *product_id* is queued or executing."""
        return product_id in self._running

    def register(
        self, product_id: int, first_fire: datetime | None = None,
    ) -> ScheduledJob:
        """Register (or replace) the in-memory job for a product."""
        job = ScheduledJob(
            product_id=product_id,
            interval=self.interval,
            next_fire=first_fire or self.clock.now() + self.interval,
            generation=next(self._generations),
        )
        previous = self._jobs.get(product_id)
        if previous is not None:
            logger.debug(
                "Replacing job for product %d (generation %d -> %d)",
                product_id,
                previous.generation,
                job.generation,
            )
        self._jobs[product_id] = job
        self._push(job)
        self._wakeup.set()
        return job

    def unregister(self, product_id: int) -> None:
        """Drop a product's job; stale heap entries are skipped later."""
        if self._jobs.pop(product_id, None) is not None:
            logger.info("Unregistered job for product %d", product_id)

    async def register_product(
        self, product_id: int, first_fire: datetime | None = None,
    ) -> ScheduledJob:
        """Persist and register the recurring job for a product."""
        job = self.register(product_id, first_fire)
        await asyncio.to_thread(
            self.db.upsert_recurring_job,
            self.task_name,
            product_id,
            self.interval.total_seconds(),
            job.next_fire,
        )
        logger.info(
            "Scheduled product %d every %s, first run at %s",
            product_id,
            self.interval,
            job.next_fire.isoformat(),
        )
        return job

    async def rehydrate(self) -> int:
        """Cancel persisted jobs and rebuild exactly one per product.

        First fires are spread evenly across one interval so a restart
        does not scrape every product at the same instant.
        """
        removed = await asyncio.to_thread(
            self.db.cancel_recurring_jobs, self.task_name,
        )
        products = await asyncio.to_thread(self.db.list_products)
        self._jobs.clear()
        self._heap.clear()

        now = self.clock.now()
        total = len(products)
        for index, product in enumerate(products):
            if product.id is None:
                continue
            offset = self.interval * ((index + 1) / total)
            await self.register_product(product.id, now + offset)

        logger.info(
            "Rehydrated %d job(s) (cancelled %d stale definition(s))",
            len(self._jobs),
            removed,
        )
        return len(self._jobs)

    async def sync_new_products(self) -> int:
        """Register jobs for products created since the last rebuild."""
        products = await asyncio.to_thread(self.db.list_products)
        added = 0
        for product in products:
            if product.id is not None and product.id not in self._jobs:
                await self.register_product(product.id)
                added += 1
        if added:
            logger.info("Picked up %d newly tracked product(s)", added)
        return added

    def _push(self, job: ScheduledJob) -> None:
        heapq.heappush(
            self._heap,
            (job.next_fire, next(self._seq), job.product_id, job.generation),
        )

    # ── Dispatch ─────────────────────────────────────────

    def next_due(self) -> datetime | None:
        """Earliest live fire time, discarding stale heap entries."""
        while self._heap:
            due, _, product_id, generation = self._heap[0]
            job = self._jobs.get(product_id)
            if job is None or job.generation != generation:
                heapq.heappop(self._heap)
                continue
            return due
        return None

    def dispatch_due(self) -> list[asyncio.Task[None]]:
        """Start a tick for every job whose fire time has passed."""
        now = self.clock.now()
        started: list[asyncio.Task[None]] = []
        while self._heap and self._heap[0][0] <= now:
            due, _, product_id, generation = heapq.heappop(self._heap)
            job = self._jobs.get(product_id)
            if job is None or job.generation != generation:
                continue
            if product_id in self._running:
                # fire again as soon as the running tick completes
                job.overdue = True
                continue
            self._running.add(product_id)
            task = asyncio.create_task(
                self._run_tick(product_id, generation, due),
                name=f"tick-{product_id}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started.append(task)
        return started

    async def run_pending(self) -> int:
        """Dispatch due ticks and wait for them. Returns how many ran."""
        tasks = self.dispatch_due()
        if tasks:
            await asyncio.gather(*tasks)
        return len(tasks)

    async def _run_tick(
        self, product_id: int, generation: int, fired_at: datetime,
    ) -> None:
        try:
            async with self._semaphore:
                self.active_scrapes += 1
                self.peak_active_scrapes = max(
                    self.peak_active_scrapes, self.active_scrapes
                )
                try:
                    await self.tick(product_id)
                finally:
                    self.active_scrapes -= 1
        except Exception:
            logger.error(
                "Unhandled error in tick for product %d",
                product_id,
                exc_info=True,
            )
        finally:
            self._rearm(product_id, generation, fired_at)

    def _rearm(
        self, product_id: int, generation: int, fired_at: datetime,
    ) -> None:
        self._running.discard(product_id)
        job = self._jobs.get(product_id)
        if job is None or self._stopping:
            return
        now = self.clock.now()
        if job.overdue:
            job.overdue = False
            job.next_fire = now
        elif job.generation == generation:
            job.next_fire = max(fired_at + job.interval, now)
        else:
            # re-registered mid-tick; its own heap entry is still pending
            return
        self._push(job)
        self._wakeup.set()

    # ── One tick ─────────────────────────────────────────

    async def tick(self, product_id: int) -> bool:
        """Scrape, persist and notify for one product.

        Never raises for scrape or persistence failures; returns True
        only when a new price was stored.
        """
        try:
            product = await asyncio.to_thread(self.db.find_product, product_id)
        except PersistenceError as exc:
            logger.error("Tick for product %d: load failed: %s", product_id, exc)
            return False

        if product is None:
            logger.warning(
                "Product %d no longer exists, dropping its job", product_id,
            )
            self.unregister(product_id)
            await asyncio.to_thread(
                self.db.cancel_recurring_jobs, self.task_name, product_id,
            )
            return False

        try:
            result = await self.scrape_task.scrape_price_only(product.url)
        except ScrapeError as exc:
            logger.warning(
                "Tick for product %d (%s/%s) failed: kind=%s transient=%s: %s",
                product_id,
                product.domain,
                product.asin,
                exc.kind.value,
                exc.transient,
                exc,
            )
            return False

        previous = product.current_price
        product.record_price(result.price, self.clock.now(), self.retention)
        try:
            await asyncio.to_thread(self.db.save_product, product)
        except PersistenceError as exc:
            logger.error(
                "Tick for product %d scraped %.2f but could not be saved: %s",
                product_id,
                result.price,
                exc,
            )
            return False

        logger.info(
            "Product %d price %.2f -> %.2f (%d history entries)",
            product_id,
            previous,
            product.current_price,
            len(product.price_history),
        )
        await self.notifier.notify_price_drops(product)
        return True

    # ── Main loop ────────────────────────────────────────

    async def run_forever(self) -> None:
        """Dispatch ticks until :meth:`stop` is called."""
        logger.info(
            "Scheduler started: %d job(s), interval %s, max %d concurrent",
            len(self._jobs),
            self.interval,
            self.max_concurrent,
        )
        last_sync = self.clock.now()
        while not self._stopping:
            now = self.clock.now()
            if (now - last_sync).total_seconds() >= _SYNC_SECONDS:
                last_sync = now
                try:
                    await self.sync_new_products()
                except PersistenceError as exc:
                    logger.error("Product sync failed: %s", exc)
            self.dispatch_due()
            due = self.next_due()
            delay = _SYNC_SECONDS
            if due is not None:
                delay = min(
                    delay,
                    max(0.0, (due - self.clock.now()).total_seconds()),
                )
            self._wakeup.clear()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
        await self.shutdown()

    def stop(self) -> None:
        """Ask :meth:`run_forever` to exit after the current iteration."""
        self._stopping = True
        self._wakeup.set()

    async def shutdown(self) -> None:
        """Cancel in-flight ticks and wait for them to unwind."""
        self._stopping = True
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled %d in-flight tick(s)", len(pending))
