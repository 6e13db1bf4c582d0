# src/scrapers/url_parser.py

"""Amazon product URL parsing and canonicalisation."""

import re
from dataclasses import dataclass
from urllib.parse import urlparse

from src.scrapers.errors import InvalidUrlError

# amazon.in, amazon.com, amazon.co.uk, amazon.com.au ...
_DOMAIN_RE = re.compile(r"(?:^|\.)amazon\.([a-z]{2,3}(?:\.[a-z]{2})?)$", re.I)
_ASIN_RE = re.compile(r"/(?:dp|gp/product|gp/aw/d)/([A-Z0-9]{10})(?:[/?]|$)", re.I)


@dataclass(frozen=True)
class ProductRef:
    """The stable identity of an Amazon listing."""

    asin: str
    domain: str

    @property
    def canonical_url(self) -> str:
        """Tracking-free product page URL for this listing."""
        return f"https://www.amazon.{self.domain}/dp/{self.asin}"


def is_amazon_url(url: str) -> bool:
    """Return True if *url* is http(s) on an ``amazon.<tld>`` host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    host = (parsed.hostname or "").lower()
    return bool(_DOMAIN_RE.search(host))


def parse_product_url(url: str) -> ProductRef:
    """Extract ``(asin, domain)`` from an Amazon product URL.

    Raises:
        InvalidUrlError: the URL is not an Amazon product page.
    """
    if not url or not is_amazon_url(url.strip()):
        raise InvalidUrlError("Invalid Amazon URL", url=url)

    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()
    domain_match = _DOMAIN_RE.search(host)
    asin_match = _ASIN_RE.search(parsed.path)
    if not domain_match or not asin_match:
        raise InvalidUrlError("Invalid Amazon product URL", url=url)

    return ProductRef(
        asin=asin_match.group(1).upper(),
        domain=domain_match.group(1).lower(),
    )
