# tests/test_scrape_task.py

"""Tests for the composed scrape task."""

import unittest
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from playwright.async_api import Error as PlaywrightError

from src.models.scrape_result import FetchMode
from src.scrapers.errors import (
    ErrorKind,
    ImagePersistError,
    InvalidUrlError,
    LaunchFailureError,
    NavigationError,
    NavigationTimeoutError,
    ScrapeError,
    UnavailableError,
)
from src.scrapers.product_extractor import ProductExtractor
from src.scrapers.scrape_task import ScrapeTask

FIXTURES_DIR = Path(__file__).parent / "fixtures"
PRODUCT_URL = "https://www.amazon.in/dp/B07PR1CL3S"


@dataclass
class _Handle:
    url: str
    html: str

    async def content(self) -> str:
        return self.html


class _FixtureFetcher:
    """Serves a fixture page (or raises) instead of driving a browser."""

    def __init__(self, html: str = "", error: Exception | None = None):
        self.html = html
        self.error = error
        self.modes: list[FetchMode] = []
        self.released = 0

    @asynccontextmanager
    async def fetch(
        self, session: Any, url: str, mode: FetchMode,
    ) -> AsyncIterator[_Handle]:
        self.modes.append(mode)
        try:
            if self.error is not None:
                raise self.error
            yield _Handle(url=url, html=self.html)
        finally:
            self.released += 1


def _fixture(name: str) -> str:
    with open(FIXTURES_DIR / name, encoding="utf-8") as f:
        return f.read()


def _sessions() -> MagicMock:
    sessions = MagicMock()
    sessions.acquire_session = AsyncMock(return_value=MagicMock())
    return sessions


class TestScrapeTask(unittest.IsolatedAsyncioTestCase):
    """scrape_full / scrape_price_only outcomes."""

    async def test_price_only(self) -> None:
        """Price-only scrapes return just the price."""
        fetcher = _FixtureFetcher(_fixture("amazon_product.html"))
        task = ScrapeTask(_sessions(), fetcher=fetcher)  # type: ignore[arg-type]

        result = await task.scrape_price_only(PRODUCT_URL)

        self.assertEqual(result.price, 1299.99)
        self.assertIsNone(result.title)
        self.assertEqual(fetcher.modes, [FetchMode.PRICE_ONLY])
        self.assertEqual(fetcher.released, 1)

    async def test_full_scrape_stores_image(self) -> None:
        """Full scrapes download the image and return its stored key."""
        downloader = MagicMock()
        downloader.download.return_value = b"\xff\xd8jpeg"
        store = MagicMock()
        store.upload.return_value = "uploads/1_abc.jpg"
        task = ScrapeTask(
            _sessions(),
            fetcher=_FixtureFetcher(_fixture("amazon_product.html")),  # type: ignore[arg-type]
            image_store=store,
            downloader=downloader,
        )

        result = await task.scrape_full(PRODUCT_URL)

        self.assertEqual(result.price, 1299.99)
        self.assertTrue(result.title)
        self.assertEqual(result.image, "uploads/1_abc.jpg")
        downloader.download.assert_called_once_with(
            "https://m.media-amazon.com/images/I/61u1VALn6JL._SL1500_.jpg",
            PRODUCT_URL,
        )
        store.upload.assert_called_once_with(b"\xff\xd8jpeg", ".jpg")

    async def test_image_failure_does_not_fail_scrape(self) -> None:
        """A broken image download leaves image as None."""
        downloader = MagicMock()
        downloader.download.side_effect = ImagePersistError("403")
        task = ScrapeTask(
            _sessions(),
            fetcher=_FixtureFetcher(_fixture("amazon_product.html")),  # type: ignore[arg-type]
            image_store=MagicMock(),
            downloader=downloader,
        )

        result = await task.scrape_full(PRODUCT_URL)

        self.assertEqual(result.price, 1299.99)
        self.assertIsNone(result.image)

    async def test_invalid_url_skips_browser(self) -> None:
        """Invalid URLs never acquire a session."""
        sessions = _sessions()
        task = ScrapeTask(sessions, fetcher=_FixtureFetcher())  # type: ignore[arg-type]
        with self.assertRaises(InvalidUrlError):
            await task.scrape_price_only("https://www.flipkart.com/p/itm1")
        sessions.acquire_session.assert_not_awaited()

    async def test_launch_failure_propagates(self) -> None:
        """A session that cannot launch surfaces its own tag."""
        sessions = MagicMock()
        sessions.acquire_session = AsyncMock(
            side_effect=LaunchFailureError("no chromium")
        )
        task = ScrapeTask(sessions, fetcher=_FixtureFetcher())  # type: ignore[arg-type]
        with self.assertRaises(LaunchFailureError) as ctx:
            await task.scrape_price_only(PRODUCT_URL)
        self.assertEqual(ctx.exception.url, PRODUCT_URL)

    async def test_navigation_timeout_keeps_tag(self) -> None:
        """Fetcher errors pass through with their kind."""
        fetcher = _FixtureFetcher(error=NavigationTimeoutError("slow"))
        task = ScrapeTask(_sessions(), fetcher=fetcher)  # type: ignore[arg-type]
        with self.assertRaises(NavigationTimeoutError):
            await task.scrape_price_only(PRODUCT_URL)
        self.assertEqual(fetcher.released, 1)

    async def test_unavailable_listing(self) -> None:
        """Unavailable pages raise UnavailableError."""
        task = ScrapeTask(
            _sessions(),
            fetcher=_FixtureFetcher(_fixture("amazon_unavailable.html")),  # type: ignore[arg-type]
            extractor=ProductExtractor(),
        )
        with self.assertRaises(UnavailableError):
            await task.scrape_full(PRODUCT_URL)

    async def test_stray_playwright_error_is_navigation_error(self) -> None:
        """Untranslated browser errors become NavigationError."""
        fetcher = _FixtureFetcher(error=PlaywrightError("Target closed"))
        task = ScrapeTask(_sessions(), fetcher=fetcher)  # type: ignore[arg-type]
        with self.assertRaises(NavigationError):
            await task.scrape_price_only(PRODUCT_URL)

    async def test_unexpected_error_is_tagged_unknown(self) -> None:
        """Anything else is wrapped as an UNKNOWN ScrapeError."""
        fetcher = _FixtureFetcher(error=ValueError("weird"))
        task = ScrapeTask(_sessions(), fetcher=fetcher)  # type: ignore[arg-type]
        with self.assertRaises(ScrapeError) as ctx:
            await task.scrape_price_only(PRODUCT_URL)
        self.assertIs(ctx.exception.kind, ErrorKind.UNKNOWN)


if __name__ == "__main__":
    unittest.main()
