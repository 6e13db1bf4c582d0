# src/storage/tracker_db.py

"""SQLite-backed store for tracked products, alerts and recurring jobs."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from src.config.settings import Settings
from src.models.price_snapshot import PriceSnapshot
from src.models.product import TrackedProduct
from src.models.subscription import PriceAlertSubscription
from src.scrapers.errors import PersistenceError

logger = logging.getLogger("pricepulse.db")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS products (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    asin          TEXT    NOT NULL,
    domain        TEXT    NOT NULL,
    url           TEXT    NOT NULL,
    title         TEXT    NOT NULL,
    image         TEXT,
    current_price REAL    NOT NULL,
    created_at    TEXT    NOT NULL,
    updated_at    TEXT    NOT NULL,
    UNIQUE (asin, domain)
);

CREATE TABLE IF NOT EXISTS price_history (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL
               REFERENCES products(id) ON DELETE CASCADE,
    price      REAL    NOT NULL,
    scraped_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_product_date
    ON price_history(product_id, scraped_at);

CREATE TABLE IF NOT EXISTS subscriptions (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id   INTEGER NOT NULL
                 REFERENCES products(id) ON DELETE CASCADE,
    email        TEXT    NOT NULL,
    target_price REAL    NOT NULL,
    created_at   TEXT    NOT NULL,
    UNIQUE (product_id, email)
);

CREATE TABLE IF NOT EXISTS recurring_jobs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    task_name        TEXT    NOT NULL,
    product_id       INTEGER NOT NULL,
    interval_seconds REAL    NOT NULL,
    next_run_at      TEXT    NOT NULL,
    UNIQUE (task_name, product_id)
);
"""

_PRODUCT_COLUMNS = (
    "id, asin, domain, url, title, image, current_price, "
    "created_at, updated_at"
)


def _ts(value: datetime) -> str:
    """Serialise a timestamp as UTC ISO-8601."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_ts(raw: str) -> datetime:
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class TrackerDB:
    """Persistence used by the scheduler, the notifier and the CLI.

    All access goes through one connection guarded by a lock, so the
    store can be called from ``asyncio.to_thread`` workers. Every write
    runs in its own transaction: a failed ``save_product`` leaves the
    previous row and history untouched.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.TRACKER_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("TrackerDB opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Cursor]:
        """Serialise access and translate sqlite errors."""
        with self._lock:
            try:
                with self._conn:
                    yield self._conn.cursor()
            except sqlite3.Error as exc:
                logger.error(
                    "Database error during %s: %s", action, exc,
                    exc_info=True,
                )
                raise PersistenceError(f"{action} failed: {exc}") from exc

    # ── Products ─────────────────────────────────────────

    def _row_to_product(
        self, cur: sqlite3.Cursor, row: tuple[object, ...],
    ) -> TrackedProduct:
        product_id = int(str(row[0]))
        history = [
            PriceSnapshot(price=float(h[0]), scraped_at=_parse_ts(h[1]))
            for h in cur.execute(
                "SELECT price, scraped_at FROM price_history "
                "WHERE product_id = ? ORDER BY scraped_at ASC, id ASC",
                (product_id,),
            ).fetchall()
        ]
        return TrackedProduct(
            id=product_id,
            asin=str(row[1]),
            domain=str(row[2]),
            url=str(row[3]),
            title=str(row[4]),
            image=str(row[5]) if row[5] is not None else None,
            current_price=float(str(row[6])),
            created_at=_parse_ts(str(row[7])),
            updated_at=_parse_ts(str(row[8])),
            price_history=history,
        )

    def create_product(self, product: TrackedProduct) -> TrackedProduct:
        """Insert a new product with its initial history.

        If ``(asin, domain)`` is already tracked the existing record is
        returned unchanged, so concurrent first-time requests never
        produce two rows.
        """
        with self._transaction("create_product") as cur:
            cur.execute(
                "INSERT INTO products (asin, domain, url, title, image, "
                "current_price, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(asin, domain) DO NOTHING",
                (
                    product.asin,
                    product.domain,
                    product.url,
                    product.title,
                    product.image,
                    product.current_price,
                    _ts(product.created_at),
                    _ts(product.updated_at),
                ),
            )
            created = cur.rowcount == 1
            if created:
                product_id = cur.lastrowid
                cur.executemany(
                    "INSERT INTO price_history (product_id, price, scraped_at) "
                    "VALUES (?, ?, ?)",
                    [
                        (product_id, s.price, _ts(s.scraped_at))
                        for s in product.price_history
                    ],
                )
            row = cur.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products "
                "WHERE asin = ? AND domain = ?",
                (product.asin, product.domain),
            ).fetchone()
            stored = self._row_to_product(cur, row)
        if created:
            logger.info(
                "Created product %d (%s/%s)",
                stored.id,
                stored.domain,
                stored.asin,
            )
        return stored

    def save_product(self, product: TrackedProduct) -> None:
        """Persist price, metadata and history in one transaction."""
        if product.id is None:
            raise PersistenceError("Cannot save a product without an id")
        with self._transaction("save_product") as cur:
            cur.execute(
                "UPDATE products SET title = ?, image = ?, "
                "current_price = ?, updated_at = ? WHERE id = ?",
                (
                    product.title,
                    product.image,
                    product.current_price,
                    _ts(product.updated_at),
                    product.id,
                ),
            )
            if cur.rowcount == 0:
                raise sqlite3.IntegrityError(
                    f"product {product.id} does not exist"
                )
            cur.execute(
                "DELETE FROM price_history WHERE product_id = ?",
                (product.id,),
            )
            cur.executemany(
                "INSERT INTO price_history (product_id, price, scraped_at) "
                "VALUES (?, ?, ?)",
                [
                    (product.id, s.price, _ts(s.scraped_at))
                    for s in product.price_history
                ],
            )
        logger.debug(
            "Saved product %d: price=%.2f history=%d",
            product.id,
            product.current_price,
            len(product.price_history),
        )

    def find_product(self, product_id: int) -> TrackedProduct | None:
        """Return the product with *product_id*, or ``None``."""
        with self._transaction("find_product") as cur:
            row = cur.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?",
                (product_id,),
            ).fetchone()
            return self._row_to_product(cur, row) if row else None

    def find_product_by_site_id(
        self, asin: str, domain: str,
    ) -> TrackedProduct | None:
        """Look a product up by its ``(asin, domain)`` identity."""
        with self._transaction("find_product_by_site_id") as cur:
            row = cur.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products "
                "WHERE asin = ? AND domain = ?",
                (asin, domain),
            ).fetchone()
            return self._row_to_product(cur, row) if row else None

    def list_products(self) -> list[TrackedProduct]:
        """All tracked products, oldest first."""
        with self._transaction("list_products") as cur:
            rows = cur.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY id"
            ).fetchall()
            return [self._row_to_product(cur, r) for r in rows]

    # ── Subscriptions ────────────────────────────────────

    def add_subscription(
        self, product_id: int, email: str, target_price: float,
    ) -> PriceAlertSubscription:
        """Create or update the subscription for ``(product, email)``."""
        email = email.strip().lower()
        now = _ts(datetime.now(timezone.utc))
        with self._transaction("add_subscription") as cur:
            cur.execute(
                "INSERT INTO subscriptions "
                "(product_id, email, target_price, created_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(product_id, email) "
                "DO UPDATE SET target_price = excluded.target_price",
                (product_id, email, target_price, now),
            )
            row = cur.execute(
                "SELECT id, created_at FROM subscriptions "
                "WHERE product_id = ? AND email = ?",
                (product_id, email),
            ).fetchone()
        return PriceAlertSubscription(
            id=row[0],
            product_id=product_id,
            email=email,
            target_price=target_price,
            created_at=_parse_ts(row[1]),
        )

    def find_subscriptions_for_product(
        self, product_id: int, min_target_price: float,
    ) -> list[PriceAlertSubscription]:
        """Subscriptions whose target is at or above *min_target_price*."""
        return self._query_subscriptions(
            "WHERE product_id = ? AND target_price >= ?",
            (product_id, min_target_price),
        )

    def list_subscriptions(
        self, product_id: int,
    ) -> list[PriceAlertSubscription]:
        """Every subscription for a product, regardless of target."""
        return self._query_subscriptions(
            "WHERE product_id = ?", (product_id,),
        )

    def _query_subscriptions(
        self, where: str, params: tuple[object, ...],
    ) -> list[PriceAlertSubscription]:
        with self._transaction("query_subscriptions") as cur:
            rows = cur.execute(
                "SELECT id, product_id, email, target_price, created_at "
                f"FROM subscriptions {where} ORDER BY id",
                params,
            ).fetchall()
        return [
            PriceAlertSubscription(
                id=r[0],
                product_id=r[1],
                email=r[2],
                target_price=r[3],
                created_at=_parse_ts(r[4]),
            )
            for r in rows
        ]

    def delete_subscription(self, subscription_id: int) -> bool:
        """Delete a subscription. Returns False if it was already gone."""
        with self._transaction("delete_subscription") as cur:
            cur.execute(
                "DELETE FROM subscriptions WHERE id = ?",
                (subscription_id,),
            )
            return cur.rowcount > 0

    # ── Recurring jobs ───────────────────────────────────

    def upsert_recurring_job(
        self,
        task_name: str,
        product_id: int,
        interval_seconds: float,
        next_run_at: datetime,
    ) -> None:
        """Register (or replace) the single job for a product."""
        with self._transaction("upsert_recurring_job") as cur:
            cur.execute(
                "INSERT INTO recurring_jobs "
                "(task_name, product_id, interval_seconds, next_run_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(task_name, product_id) DO UPDATE SET "
                "interval_seconds = excluded.interval_seconds, "
                "next_run_at = excluded.next_run_at",
                (task_name, product_id, interval_seconds, _ts(next_run_at)),
            )

    def cancel_recurring_jobs(
        self, task_name: str, product_id: int | None = None,
    ) -> int:
        """Remove jobs for *task_name* (optionally one product's only)."""
        with self._transaction("cancel_recurring_jobs") as cur:
            if product_id is None:
                cur.execute(
                    "DELETE FROM recurring_jobs WHERE task_name = ?",
                    (task_name,),
                )
            else:
                cur.execute(
                    "DELETE FROM recurring_jobs "
                    "WHERE task_name = ? AND product_id = ?",
                    (task_name, product_id),
                )
            removed = cur.rowcount
        if removed:
            logger.info(
                "Cancelled %d recurring '%s' job(s)", removed, task_name,
            )
        return removed

    def list_recurring_jobs(
        self, task_name: str,
    ) -> list[dict[str, object]]:
        """Persisted job definitions for *task_name*."""
        with self._transaction("list_recurring_jobs") as cur:
            rows = cur.execute(
                "SELECT product_id, interval_seconds, next_run_at "
                "FROM recurring_jobs WHERE task_name = ? "
                "ORDER BY product_id",
                (task_name,),
            ).fetchall()
        return [
            {
                "product_id": r[0],
                "interval_seconds": r[1],
                "next_run_at": _parse_ts(r[2]),
            }
            for r in rows
        ]
