# tests/test_cli_runner.py

"""Tests for the headless CLI commands."""

import json
import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from src.cli import runner
from src.models.price_snapshot import PriceSnapshot
from src.models.product import TrackedProduct
from src.scrapers.errors import InvalidUrlError

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _product() -> TrackedProduct:
    return TrackedProduct(
        id=3,
        asin="B07PR1CL3S",
        domain="in",
        url="https://www.amazon.in/dp/B07PR1CL3S",
        title="boAt Rockerz 450",
        current_price=1299.99,
        price_history=[PriceSnapshot(1299.99, T0)],
        created_at=T0,
        updated_at=T0,
    )


def _tracker() -> MagicMock:
    tracker = MagicMock()
    tracker.shutdown = AsyncMock()
    return tracker


class TestFormatting(unittest.TestCase):
    """Display helpers."""

    def test_format_price_uses_domain_currency(self) -> None:
        """The currency symbol is inferred from the marketplace."""
        self.assertEqual(runner.format_price(1299.99, "in"), "₹1,299.99")
        self.assertEqual(runner.format_price(5.0, "co.uk"), "£5.00")
        self.assertEqual(runner.format_price(5.0, "xx"), "5.00")

    def test_product_to_dict(self) -> None:
        """History is serialised with ISO timestamps."""
        data = runner.product_to_dict(_product())
        self.assertEqual(data["asin"], "B07PR1CL3S")
        self.assertEqual(
            data["price_history"],
            [{"price": 1299.99, "timestamp": T0.isoformat()}],
        )


class TestCommands(unittest.IsolatedAsyncioTestCase):
    """Command exit codes and output."""

    @patch("src.cli.runner.PriceTracker")
    async def test_track_json_output(self, mock_cls: MagicMock) -> None:
        """A tracked product is printed as JSON and the exit code is 0."""
        tracker = _tracker()
        tracker.track_product = AsyncMock(return_value=_product())
        mock_cls.build.return_value = tracker

        with patch("builtins.print") as mock_print:
            code = await runner.cli_track(
                "https://www.amazon.in/dp/B07PR1CL3S", None, None, "json",
            )

        self.assertEqual(code, 0)
        printed = json.loads(mock_print.call_args.args[0])
        self.assertEqual(printed["id"], 3)
        tracker.shutdown.assert_awaited_once()

    @patch("src.cli.runner.PriceTracker")
    async def test_track_failure_exit_code(self, mock_cls: MagicMock) -> None:
        """A scrape error returns 1 and still shuts down."""
        tracker = _tracker()
        tracker.track_product = AsyncMock(
            side_effect=InvalidUrlError("Invalid Amazon URL")
        )
        mock_cls.build.return_value = tracker

        code = await runner.cli_track("nope", None, None, "table")

        self.assertEqual(code, 1)
        tracker.shutdown.assert_awaited_once()

    @patch("src.cli.runner.PriceTracker")
    async def test_track_rejects_negative_target(
        self, mock_cls: MagicMock,
    ) -> None:
        """A bad alert target is reported, not raised."""
        tracker = _tracker()
        tracker.track_product = AsyncMock(
            side_effect=ValueError("target_price must be non-negative")
        )
        mock_cls.build.return_value = tracker

        code = await runner.cli_track(
            "https://www.amazon.in/dp/B07PR1CL3S", "a@x.com", -5.0, "json",
        )

        self.assertEqual(code, 1)
        tracker.shutdown.assert_awaited_once()

    @patch("src.cli.runner.PriceTracker")
    async def test_show_missing_product(self, mock_cls: MagicMock) -> None:
        """Unknown ids exit with 1."""
        tracker = _tracker()
        tracker.get_product = AsyncMock(return_value=None)
        mock_cls.build.return_value = tracker

        self.assertEqual(await runner.cli_show(404, "table"), 1)

    @patch("src.cli.runner.PriceTracker")
    async def test_subscribe_unknown_product(self, mock_cls: MagicMock) -> None:
        """LookupError from the tracker maps to exit code 1."""
        tracker = _tracker()
        tracker.subscribe = AsyncMock(side_effect=LookupError("not tracked"))
        mock_cls.build.return_value = tracker

        self.assertEqual(
            await runner.cli_subscribe(404, "a@x.com", 10.0), 1,
        )


if __name__ == "__main__":
    unittest.main()
