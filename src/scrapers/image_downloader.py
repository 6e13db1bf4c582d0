# src/scrapers/image_downloader.py

"""Out-of-band download of the product image.

The browser blocks image requests to save bandwidth, so the one image
we keep is fetched separately with a browser-impersonating HTTP client.
"""

import logging
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.scrapers.errors import ImagePersistError

logger = logging.getLogger("pricepulse.images")


class ImageDownloader:
    """Fetches raw image bytes, falling back to cloudscraper on failure."""

    def __init__(self) -> None:
        self.settings = Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._timeout = self.settings.IMAGE_DOWNLOAD_TIMEOUT

    def download(self, url: str, referer: str | None = None) -> bytes:
        """Return the image body at *url*.

        Raises:
            ImagePersistError: both clients failed or returned no data.
        """
        headers: dict[str, str] = dict(self.settings.DEFAULT_HEADERS)
        if referer:
            headers["Referer"] = referer

        # Primary: curl_cffi (browser-impersonating TLS)
        try:
            resp = self.session.get(
                url, headers=headers, timeout=self._timeout,
            )
            if resp.status_code == 200 and resp.content:
                return bytes(resp.content)
            logger.warning(
                "Image HTTP %d from %s", resp.status_code, url,
            )
        except Exception as exc:
            logger.warning(
                "Image request error for %s: %s", url, exc, exc_info=True,
            )

        # Fallback: cloudscraper (JS challenge solver)
        logger.info(
            "curl_cffi image fetch failed, falling back to cloudscraper"
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback: Any = scraper.get(
                url, headers=headers, timeout=self._timeout,
            )
            if fallback.status_code == 200 and fallback.content:
                return bytes(fallback.content)
        except Exception as exc:
            logger.error(
                "cloudscraper image fallback also failed: %s",
                exc,
                exc_info=True,
            )
        raise ImagePersistError("Image download failed", url=url)
