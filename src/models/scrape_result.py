# src/models/scrape_result.py

"""Value objects passed between the scrape layers."""

from dataclasses import dataclass
from enum import Enum


class FetchMode(str, Enum):
    """How much of a product page a scrape needs."""

    FULL = "full"
    PRICE_ONLY = "price_only"


@dataclass(frozen=True)
class ScrapeResult:
    """Outcome of a successful scrape.

    ``title`` and ``image`` are ``None`` in price-only mode; ``image``
    may also be ``None`` in full mode when the listing has no usable
    picture or it could not be stored.
    """

    price: float
    title: str | None = None
    image: str | None = None
