# src/scrapers/product_extractor.py

"""Extracts title, price, image and availability from a product page."""

import json
import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Protocol

from bs4 import BeautifulSoup, Tag

from src.config.settings import Settings
from src.models.scrape_result import FetchMode
from src.scrapers.errors import (
    PageUnusableError,
    ParseError,
    PriceNotFoundError,
    PriceParseError,
    UnavailableError,
)
from src.scrapers.selectors import load_selectors, split_selector

logger = logging.getLogger("pricepulse.extractor")

_NON_DIGITS = re.compile(r"[^\d]")
_CENTS = Decimal("0.01")


class HtmlSource(Protocol):
    """Anything that can hand over a page's HTML (e.g. ``PageHandle``)."""

    url: str

    async def content(self) -> str: ...


@dataclass(frozen=True)
class ExtractedProduct:
    """Raw fields read from the page; ``image`` is a remote URL."""

    price: float
    title: str | None = None
    image_url: str | None = None


def parse_price(whole: str, fraction: str | None) -> float:
    """Join Amazon's two price fragments into a number.

    ``parse_price("1,299", "99")`` returns ``1299.99``. The fraction
    defaults to ``"00"``; both fragments are reduced to digits first.

    Raises:
        PriceParseError: the fragments do not form a number.
    """
    whole_digits = _NON_DIGITS.sub("", whole or "")
    fraction_digits = _NON_DIGITS.sub("", fraction or "") or "00"
    if not whole_digits:
        raise PriceParseError(f"Failed to parse price from {whole!r}")
    try:
        value = Decimal(f"{whole_digits}.{fraction_digits}")
    except InvalidOperation as exc:
        raise PriceParseError(
            f"Failed to parse price from {whole!r}.{fraction!r}"
        ) from exc
    return float(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


class ProductExtractor:
    """Reads product fields out of a loaded Amazon product page."""

    def __init__(self) -> None:
        self.settings = Settings()
        self.selectors = load_selectors("amazon")

    async def extract(
        self, handle: HtmlSource, mode: FetchMode,
    ) -> ExtractedProduct:
        """Extract the fields needed for *mode* from a loaded page."""
        html = await handle.content()
        return self.extract_from_html(html, mode, url=handle.url)

    def extract_from_html(
        self,
        html: str,
        mode: FetchMode,
        url: str | None = None,
    ) -> ExtractedProduct:
        """Parse product fields from raw HTML.

        Availability is checked first so a delisted product fails with
        :class:`UnavailableError` before any price lookup.
        """
        soup = BeautifulSoup(html, "lxml")
        self._check_availability(soup, url)

        title: str | None = None
        if mode is FetchMode.FULL:
            title = self._extract_title(soup, url)

        price = self._extract_price(soup, html, url)

        image_url: str | None = None
        if mode is FetchMode.FULL:
            image_url = self._extract_image(soup)

        return ExtractedProduct(price=price, title=title, image_url=image_url)

    # ── Helpers ──────────────────────────────────────────

    def _select(self, soup: BeautifulSoup, key: str) -> Tag | None:
        """First match for the most specific selector configured for *key*."""
        for selector in split_selector(self.selectors.get(key, "")):
            el = soup.select_one(selector)
            if el is not None:
                return el
        return None

    def _check_availability(
        self, soup: BeautifulSoup, url: str | None,
    ) -> None:
        el = self._select(soup, "availability")
        if el is None:
            return
        text = " ".join(el.get_text(" ", strip=True).split()).lower()
        for phrase in self.settings.UNAVAILABLE_PHRASES:
            if phrase in text:
                raise UnavailableError(
                    f"Product unavailable: {text[:80]}", url=url
                )

    def _extract_title(
        self, soup: BeautifulSoup, url: str | None,
    ) -> str:
        el = self._select(soup, "title")
        title = el.get_text(" ", strip=True) if el else ""
        if not title:
            raise ParseError("Product title not found", url=url)
        return " ".join(title.split())

    def _extract_price(
        self, soup: BeautifulSoup, html: str, url: str | None,
    ) -> float:
        whole_el = self._select(soup, "price_whole")
        if whole_el is None:
            if self._looks_like_robot_check(html):
                raise PageUnusableError("Robot check page served", url=url)
            raise PriceNotFoundError("Price not found", url=url)

        # the fraction must come from the same price block as the whole
        fraction_el: Tag | None = None
        parent = whole_el.find_parent(class_="a-price")
        if isinstance(parent, Tag):
            fraction_el = parent.select_one(".a-price-fraction")
        if fraction_el is None:
            fraction_el = self._select(soup, "price_fraction")

        whole = whole_el.get_text(strip=True)
        fraction = fraction_el.get_text(strip=True) if fraction_el else None
        try:
            return parse_price(whole, fraction)
        except PriceParseError as exc:
            exc.url = url
            raise

    def _extract_image(self, soup: BeautifulSoup) -> str | None:
        el = self._select(soup, "image")
        if el is None:
            return None
        for attr in ("data-old-hires", "src"):
            value = el.get(attr)
            if isinstance(value, str) and value.startswith("http"):
                return value
        dynamic = el.get("data-a-dynamic-image")
        if isinstance(dynamic, str):
            return self._largest_dynamic_image(dynamic)
        return None

    @staticmethod
    def _largest_dynamic_image(raw: str) -> str | None:
        """Pick the biggest URL from ``{"url": [w, h], ...}``."""
        try:
            sizes: dict[str, list[int]] = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(sizes, dict) or not sizes:
            return None
        return max(
            sizes,
            key=lambda u: sizes[u][0] * sizes[u][1]
            if isinstance(sizes[u], list) and len(sizes[u]) == 2
            else 0,
        )

    def _looks_like_robot_check(self, html: str) -> bool:
        lower = html.lower()
        for keyword in self.settings.CAPTCHA_KEYWORDS:
            if keyword in lower:
                logger.warning(
                    "CAPTCHA keyword '%s' detected", keyword
                )
                return True
        return False
