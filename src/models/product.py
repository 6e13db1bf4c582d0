# src/models/product.py

"""Tracked product model and the price-update rule applied on each tick."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from src.models.price_snapshot import PriceSnapshot


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass
class TrackedProduct:
    """A single Amazon listing whose price is re-scraped on a schedule.

    ``(asin, domain)`` identifies the listing; ``current_price`` carries
    no currency, which is inferred from ``domain`` at display time.
    """

    asin: str
    domain: str
    url: str
    title: str
    current_price: float
    image: str | None = None
    price_history: list[PriceSnapshot] = field(
        default_factory=lambda: list[PriceSnapshot]()
    )
    id: int | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def site_id(self) -> tuple[str, str]:
        """The ``(asin, domain)`` uniqueness key."""
        return (self.asin, self.domain)

    @property
    def latest_snapshot(self) -> PriceSnapshot | None:
        """Most recent history entry, if any."""
        return self.price_history[-1] if self.price_history else None

    def record_price(
        self,
        price: float,
        scraped_at: datetime,
        retention: timedelta,
    ) -> None:
        """Append a scraped price and drop history older than *retention*.

        After this call ``current_price`` equals the newest snapshot and
        every snapshot lies within ``[scraped_at - retention, scraped_at]``.
        """
        # keep history non-decreasing even if the clock steps backwards
        latest = self.latest_snapshot
        if latest is not None and scraped_at < latest.scraped_at:
            scraped_at = latest.scraped_at

        self.price_history.append(PriceSnapshot(price, scraped_at))
        self.current_price = price
        cutoff = scraped_at - retention
        self.price_history = [
            s for s in self.price_history if s.scraped_at >= cutoff
        ]
        self.updated_at = scraped_at
