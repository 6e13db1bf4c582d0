# src/models/subscription.py

"""Price-drop alert subscription model."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class PriceAlertSubscription:
    """A subscriber waiting for a product to reach ``target_price``."""

    product_id: int
    email: str
    target_price: float
    id: int | None = None
    created_at: datetime | None = None
