# src/models/price_snapshot.py

"""Temporal price snapshot model for price history tracking."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PriceSnapshot:
    """A single price observation for a product at a point in time."""

    price: float
    scraped_at: datetime
