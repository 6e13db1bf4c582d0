# tests/test_product_extractor.py

"""Tests for product field extraction against HTML fixtures."""

import unittest
from dataclasses import dataclass
from pathlib import Path

from src.models.scrape_result import FetchMode
from src.scrapers.errors import (
    ErrorKind,
    PageUnusableError,
    ParseError,
    PriceNotFoundError,
    PriceParseError,
    UnavailableError,
)
from src.scrapers.product_extractor import ProductExtractor, parse_price

FIXTURES_DIR = Path(__file__).parent / "fixtures"
PRODUCT_URL = "https://www.amazon.in/dp/B07PR1CL3S"


def _load_fixture(name: str) -> str:
    """Read an HTML fixture file."""
    with open(FIXTURES_DIR / name, encoding="utf-8") as f:
        return f.read()


@dataclass
class _StaticPage:
    """Minimal stand-in for a loaded page handle."""

    url: str
    html: str

    async def content(self) -> str:
        return self.html


class TestParsePrice(unittest.TestCase):
    """Joining the whole and fraction fragments."""

    def test_thousands_separator_and_fraction(self) -> None:
        """'1,299' + '99' is 1299.99."""
        self.assertEqual(parse_price("1,299", "99"), 1299.99)

    def test_missing_fraction_defaults_to_zero(self) -> None:
        """No fraction fragment means .00."""
        self.assertEqual(parse_price("499", None), 499.0)

    def test_trailing_decimal_point_in_whole(self) -> None:
        """Amazon renders the whole part as '1,299.'."""
        self.assertEqual(parse_price("1,299.", "00"), 1299.0)

    def test_european_grouping(self) -> None:
        """Dots as thousands separators are stripped too."""
        self.assertEqual(parse_price("1.049", "50"), 1049.5)

    def test_rounds_long_fraction_to_cents(self) -> None:
        """A three-digit fraction is rounded half-up to two places."""
        self.assertEqual(parse_price("10", "005"), 10.01)

    def test_non_numeric_whole_raises(self) -> None:
        """A whole part without digits is a parse error."""
        with self.assertRaises(PriceParseError) as ctx:
            parse_price("N/A", "00")
        self.assertIs(ctx.exception.kind, ErrorKind.PRICE_PARSE_ERROR)


class TestProductExtractor(unittest.TestCase):
    """extract_from_html against fixture pages."""

    def setUp(self) -> None:
        """Create a fresh extractor."""
        self.extractor = ProductExtractor()

    def test_full_mode_fields(self) -> None:
        """Full mode yields title, price and the hi-res image URL."""
        result = self.extractor.extract_from_html(
            _load_fixture("amazon_product.html"), FetchMode.FULL, PRODUCT_URL,
        )
        self.assertEqual(result.price, 1299.99)
        self.assertEqual(
            result.title,
            "boAt Rockerz 450 Bluetooth On Ear Headphones "
            "with Mic, Upto 15 Hours Playback",
        )
        self.assertEqual(
            result.image_url,
            "https://m.media-amazon.com/images/I/61u1VALn6JL._SL1500_.jpg",
        )

    def test_price_only_skips_title_and_image(self) -> None:
        """Price-only mode reads nothing but the price."""
        result = self.extractor.extract_from_html(
            _load_fixture("amazon_product.html"), FetchMode.PRICE_ONLY,
        )
        self.assertEqual(result.price, 1299.99)
        self.assertIsNone(result.title)
        self.assertIsNone(result.image_url)

    def test_unavailable_before_price(self) -> None:
        """'Currently unavailable' wins even though a price is on the page."""
        with self.assertRaises(UnavailableError) as ctx:
            self.extractor.extract_from_html(
                _load_fixture("amazon_unavailable.html"),
                FetchMode.PRICE_ONLY,
                PRODUCT_URL,
            )
        self.assertEqual(ctx.exception.url, PRODUCT_URL)
        self.assertFalse(ctx.exception.transient)

    def test_missing_price_raises_price_not_found(self) -> None:
        """No whole-price fragment is a layout mismatch."""
        with self.assertRaises(PriceNotFoundError):
            self.extractor.extract_from_html(
                _load_fixture("amazon_no_price.html"), FetchMode.FULL,
            )

    def test_robot_check_is_page_unusable(self) -> None:
        """A CAPTCHA page without a price is reported as unusable."""
        with self.assertRaises(PageUnusableError) as ctx:
            self.extractor.extract_from_html(
                _load_fixture("amazon_robot_check.html"),
                FetchMode.PRICE_ONLY,
            )
        self.assertTrue(ctx.exception.transient)

    def test_full_mode_requires_title(self) -> None:
        """A page with a price but no title fails in full mode."""
        html = (
            "<html><body><div id='corePrice_feature_div'>"
            "<span class='a-price'>"
            "<span class='a-price-whole'>12</span>"
            "<span class='a-price-fraction'>50</span></span>"
            "</div></body></html>"
        )
        with self.assertRaises(ParseError):
            self.extractor.extract_from_html(html, FetchMode.FULL)
        # price-only mode does not care
        result = self.extractor.extract_from_html(html, FetchMode.PRICE_ONLY)
        self.assertEqual(result.price, 12.5)

    def test_dynamic_image_fallback(self) -> None:
        """Without data-old-hires the largest dynamic image wins."""
        html = (
            "<html><body><span id='productTitle'>Mug</span>"
            "<div id='apex_desktop'><span class='a-price-whole'>9</span></div>"
            "<img id='landingImage' src='data:image/gif;base64,AA' "
            "data-a-dynamic-image='{\"https://img/s.jpg\": [100, 100], "
            "\"https://img/l.jpg\": [800, 800]}'></body></html>"
        )
        result = self.extractor.extract_from_html(html, FetchMode.FULL)
        self.assertEqual(result.image_url, "https://img/l.jpg")
        self.assertEqual(result.price, 9.0)

    def test_missing_image_is_not_an_error(self) -> None:
        """A product without an image still extracts."""
        html = (
            "<html><body><span id='productTitle'>Mug</span>"
            "<div id='apex_desktop'>"
            "<span class='a-price-whole'>9</span></div></body></html>"
        )
        result = self.extractor.extract_from_html(html, FetchMode.FULL)
        self.assertIsNone(result.image_url)

    def test_carousel_price_is_not_the_product_price(self) -> None:
        """Prices outside the buy box never stand in for a missing one."""
        with self.assertRaises(PriceNotFoundError):
            self.extractor.extract_from_html(
                _load_fixture("amazon_similar_items_only.html"),
                FetchMode.PRICE_ONLY,
                PRODUCT_URL,
            )

    def test_title_keeps_word_boundaries_across_tags(self) -> None:
        """Nested markup inside the title does not glue words together."""
        html = (
            "<html><body><span id='productTitle'>Ceramic<b>Dripper</b>"
            "\n   Size 02</span><div id='apex_desktop'>"
            "<span class='a-price-whole'>21</span></div></body></html>"
        )
        result = self.extractor.extract_from_html(html, FetchMode.FULL)
        self.assertEqual(result.title, "Ceramic Dripper Size 02")


class TestExtractFromHandle(unittest.IsolatedAsyncioTestCase):
    """extract() reads HTML through the page handle."""

    async def test_extract_reads_handle_content(self) -> None:
        """The handle's URL is attached to raised errors."""
        page = _StaticPage(
            url=PRODUCT_URL, html=_load_fixture("amazon_no_price.html"),
        )
        with self.assertRaises(PriceNotFoundError) as ctx:
            await ProductExtractor().extract(page, FetchMode.PRICE_ONLY)
        self.assertEqual(ctx.exception.url, PRODUCT_URL)


if __name__ == "__main__":
    unittest.main()
