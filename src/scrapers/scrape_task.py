# src/scrapers/scrape_task.py

"""One atomic "fetch current listing" operation.

Composes the session manager, page fetcher and extractor, and is the
single place where lower-level failures are translated into tagged
:class:`~src.scrapers.errors.ScrapeError` subclasses.
"""

import asyncio
import logging
from pathlib import PurePosixPath
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError

from src.models.scrape_result import FetchMode, ScrapeResult
from src.scrapers.browser_session import BrowserSessionManager
from src.scrapers.errors import (
    ImagePersistError,
    InvalidUrlError,
    NavigationError,
    ScrapeError,
)
from src.scrapers.image_downloader import ImageDownloader
from src.scrapers.page_fetcher import PageFetcher
from src.scrapers.product_extractor import ExtractedProduct, ProductExtractor
from src.scrapers.url_parser import is_amazon_url
from src.storage.image_store import ImageStore

logger = logging.getLogger("pricepulse.scrape")


class ScrapeTask:
    """Scrapes a product page in full or price-only mode."""

    def __init__(
        self,
        sessions: BrowserSessionManager,
        fetcher: PageFetcher | None = None,
        extractor: ProductExtractor | None = None,
        image_store: ImageStore | None = None,
        downloader: ImageDownloader | None = None,
    ) -> None:
        self.sessions = sessions
        self.fetcher = fetcher or PageFetcher()
        self.extractor = extractor or ProductExtractor()
        self.image_store = image_store
        self.downloader = downloader

    async def scrape_full(self, url: str) -> ScrapeResult:
        """Scrape title, price and image; the image is stored locally."""
        extracted = await self._scrape(url, FetchMode.FULL)
        image: str | None = None
        if extracted.image_url:
            image = await self._persist_image(extracted.image_url, url)
        return ScrapeResult(
            price=extracted.price,
            title=extracted.title,
            image=image,
        )

    async def scrape_price_only(self, url: str) -> ScrapeResult:
        """Scrape just the current price."""
        extracted = await self._scrape(url, FetchMode.PRICE_ONLY)
        return ScrapeResult(price=extracted.price)

    # ── Internals ────────────────────────────────────────

    async def _scrape(self, url: str, mode: FetchMode) -> ExtractedProduct:
        if not is_amazon_url(url):
            raise InvalidUrlError("Invalid Amazon URL", url=url)
        try:
            session = await self.sessions.acquire_session()
            async with self.fetcher.fetch(session, url, mode) as handle:
                extracted = await self.extractor.extract(handle, mode)
        except ScrapeError as exc:
            if exc.url is None:
                exc.url = url
            logger.info(
                "Scrape (%s) failed for %s: %s", mode.value, url, exc,
            )
            raise
        except PlaywrightError as exc:
            raise NavigationError(
                f"Browser error: {exc}", url=url
            ) from exc
        except Exception as exc:
            logger.error(
                "Unexpected scrape failure for %s: %s",
                url,
                exc,
                exc_info=True,
            )
            raise ScrapeError(
                f"Unexpected failure: {exc}", url=url
            ) from exc

        logger.info(
            "Scraped (%s) %s: price=%.2f",
            mode.value,
            url,
            extracted.price,
        )
        return extracted

    async def _persist_image(
        self, image_url: str, page_url: str,
    ) -> str | None:
        """Download and store the image; any failure yields ``None``."""
        if self.image_store is None or self.downloader is None:
            return None
        suffix = PurePosixPath(urlparse(image_url).path).suffix or ".jpg"
        try:
            data = await asyncio.to_thread(
                self.downloader.download, image_url, page_url,
            )
            return await asyncio.to_thread(
                self.image_store.upload, data, suffix,
            )
        except ImagePersistError as exc:
            logger.warning("Image not stored for %s: %s", page_url, exc)
        except Exception as exc:
            logger.warning(
                "Image not stored for %s: %s",
                page_url,
                ImagePersistError(str(exc), url=image_url),
                exc_info=True,
            )
        return None
