# src/scrapers/errors.py

"""Tagged error taxonomy shared by the scrape layers and the scheduler.

Every failure raised below the scheduler carries an :class:`ErrorKind`
so callers can branch on the tag (retry on the next tick, surface to
the requester, page someone) instead of on exception message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Stable tags for every distinguishable scrape failure."""

    INVALID_URL = "invalid_url"
    LAUNCH_FAILURE = "launch_failure"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    NAVIGATION_ERROR = "navigation_error"
    PAGE_UNUSABLE = "page_unusable"
    UNAVAILABLE = "unavailable"
    PRICE_NOT_FOUND = "price_not_found"
    PRICE_PARSE_ERROR = "price_parse_error"
    PARSE_ERROR = "parse_error"
    IMAGE_PERSIST_FAILURE = "image_persist_failure"
    PERSISTENCE_FAILURE = "persistence_failure"
    UNKNOWN = "unknown"


# Failures caused by the network or the browser rather than the page layout
_TRANSIENT_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.LAUNCH_FAILURE,
    ErrorKind.NAVIGATION_TIMEOUT,
    ErrorKind.NAVIGATION_ERROR,
    ErrorKind.PAGE_UNUSABLE,
})


class ScrapeError(Exception):
    """Base class for all tagged scrape failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url

    @property
    def transient(self) -> bool:
        """True when a later attempt may succeed without code changes."""
        return self.kind in _TRANSIENT_KINDS

    def __str__(self) -> str:
        base = super().__str__()
        return f"[{self.kind.value}] {base}"


class InvalidUrlError(ScrapeError):
    """The URL is not an Amazon product page."""

    kind = ErrorKind.INVALID_URL


class LaunchFailureError(ScrapeError):
    """The browser could not be launched after all retries."""

    kind = ErrorKind.LAUNCH_FAILURE


class NavigationTimeoutError(ScrapeError):
    """The target did not answer within the navigation timeout."""

    kind = ErrorKind.NAVIGATION_TIMEOUT


class NavigationError(ScrapeError):
    """Network or browser-protocol failure while loading the page."""

    kind = ErrorKind.NAVIGATION_ERROR


class PageUnusableError(ScrapeError):
    """Navigation succeeded but the page is an error or robot check."""

    kind = ErrorKind.PAGE_UNUSABLE


class UnavailableError(ScrapeError):
    """The listing says the product is currently unavailable."""

    kind = ErrorKind.UNAVAILABLE


class PriceNotFoundError(ScrapeError):
    """No whole-price fragment on the page (layout mismatch)."""

    kind = ErrorKind.PRICE_NOT_FOUND


class PriceParseError(ScrapeError):
    """The price fragments did not form a number."""

    kind = ErrorKind.PRICE_PARSE_ERROR


class ParseError(ScrapeError):
    """A required element other than the price is missing."""

    kind = ErrorKind.PARSE_ERROR


class ImagePersistError(ScrapeError):
    """The product image could not be downloaded or stored."""

    kind = ErrorKind.IMAGE_PERSIST_FAILURE


class PersistenceError(ScrapeError):
    """The tracker database rejected a read or write."""

    kind = ErrorKind.PERSISTENCE_FAILURE
