# src/services/alert_notifier.py

"""Dispatches price-drop e-mails and retires the triggered subscriptions."""

import asyncio
import logging

from src.models.product import TrackedProduct
from src.models.subscription import PriceAlertSubscription
from src.services.mailer import Mailer
from src.storage.tracker_db import TrackerDB

logger = logging.getLogger("pricepulse.alerts")


def build_alert_message(
    product: TrackedProduct, subscription: PriceAlertSubscription,
) -> tuple[str, str]:
    """Return the ``(subject, body)`` for one triggered subscription."""
    subject = f"Price Drop Alert: {product.title}"
    body = (
        "Hi there,\n\n"
        f'The price of "{product.title}" has dropped to '
        f"{product.current_price:,.2f}, which is at or below your "
        f"target of {subscription.target_price:,.2f}.\n\n"
        f"View it here: {product.url}\n\n"
        "You will not receive further alerts for this product unless "
        "you subscribe again.\n\n"
        "- PricePulse\n"
    )
    return subject, body


class AlertNotifier:
    """Notifies every subscriber whose target the current price has met."""

    def __init__(self, db: TrackerDB, mailer: Mailer) -> None:
        self.db = db
        self.mailer = mailer

    async def notify_price_drops(self, product: TrackedProduct) -> int:
        """Send one alert per matching subscription, then delete it.

        A subscription matches when ``target_price >= current_price``.
        Each match is handled independently: a failed send is logged
        and the subscription is still deleted, so every threshold
        crossing produces at most one notification.

        Returns the number of e-mails sent successfully.
        """
        if product.id is None:
            return 0
        try:
            matches = await asyncio.to_thread(
                self.db.find_subscriptions_for_product,
                product.id,
                product.current_price,
            )
        except Exception:
            logger.error(
                "Could not load alerts for product %d", product.id,
                exc_info=True,
            )
            return 0

        if not matches:
            return 0
        logger.info(
            "Product %d at %.2f triggered %d alert(s)",
            product.id,
            product.current_price,
            len(matches),
        )

        sent = 0
        for subscription in matches:
            if await self._deliver(product, subscription):
                sent += 1
        return sent

    async def _deliver(
        self,
        product: TrackedProduct,
        subscription: PriceAlertSubscription,
    ) -> bool:
        subject, body = build_alert_message(product, subscription)
        delivered = False
        try:
            delivered = bool(await asyncio.to_thread(
                self.mailer.send, subscription.email, subject, body,
            ))
            if not delivered:
                logger.warning(
                    "Alert %s to %s was not delivered",
                    subscription.id,
                    subscription.email,
                )
        except Exception:
            logger.error(
                "Alert %s to %s raised during send",
                subscription.id,
                subscription.email,
                exc_info=True,
            )
        finally:
            await self._retire(subscription)
        return delivered

    async def _retire(self, subscription: PriceAlertSubscription) -> None:
        if subscription.id is None:
            return
        try:
            await asyncio.to_thread(
                self.db.delete_subscription, subscription.id,
            )
        except Exception:
            logger.error(
                "Could not delete alert %s", subscription.id, exc_info=True,
            )
