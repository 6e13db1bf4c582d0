# src/scrapers/selectors.py

"""CSS selector registry loaded from ``selectors.json``."""

import json
from functools import lru_cache
from typing import Any

from src.config.settings import Settings


@lru_cache(maxsize=None)
def _load_all() -> dict[str, Any]:
    with open(Settings.SELECTORS_PATH, encoding="utf-8") as f:
        data: dict[str, Any] = json.load(f)
    return data


def load_selectors(source: str = "amazon") -> dict[str, str]:
    """Return a copy of the selectors configured for *source*."""
    result: dict[str, str] = dict(_load_all().get(source, {}))
    return result


def split_selector(selector: str) -> list[str]:
    """Split a comma-separated fallback list into individual selectors.

    Order matters: earlier selectors are more specific and win.
    """
    return [s.strip() for s in selector.split(",") if s.strip()]
