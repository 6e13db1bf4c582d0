# main.py

"""Entry point for the pricepulse tracker (scheduler daemon and CLI)."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging

logger = logging.getLogger("pricepulse.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="pricepulse",
        description="Amazon price tracker with scheduled re-scrapes "
        "and price-drop e-mail alerts.",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="table",
        dest="output_format",
        help="Output format (default: table).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    track = sub.add_parser("track", help="Start tracking a product URL.")
    track.add_argument("url", help="Amazon product page URL.")
    track.add_argument(
        "-e", "--email", default=None, help="Alert recipient.",
    )
    track.add_argument(
        "-t",
        "--target",
        type=float,
        default=None,
        dest="target_price",
        help="Alert when the price falls to or below this value.",
    )

    show = sub.add_parser("show", help="Show a tracked product.")
    show.add_argument("product_id", type=int)

    sub.add_parser("list", help="List tracked products.")

    subscribe = sub.add_parser(
        "subscribe", help="Create or update a price-drop alert.",
    )
    subscribe.add_argument("product_id", type=int)
    subscribe.add_argument("email")
    subscribe.add_argument("target_price", type=float)

    sub.add_parser("run", help="Run the recurring scrape scheduler.")
    sub.add_parser("health", help="Check browser, database and target.")
    return parser


def main() -> None:
    """Route the parsed command to its runner."""
    parser = _build_parser()
    args = parser.parse_args()

    console_level = logging.INFO if args.command == "run" else logging.WARNING
    log_file = setup_logging(console_level)
    logger.info("pricepulse starting, log file: %s", log_file)

    from src.cli import runner

    if args.command == "track":
        coro = runner.cli_track(
            args.url, args.email, args.target_price, args.output_format,
        )
    elif args.command == "show":
        coro = runner.cli_show(args.product_id, args.output_format)
    elif args.command == "list":
        coro = runner.cli_list(args.output_format)
    elif args.command == "subscribe":
        coro = runner.cli_subscribe(
            args.product_id, args.email, args.target_price,
        )
    elif args.command == "run":
        coro = runner.run_scheduler()
    else:
        coro = runner.run_health_check()

    try:
        exit_code = asyncio.run(coro)
    except Exception:
        logger.critical("Fatal error during %s", args.command, exc_info=True)
        raise
    finally:
        logger.info("pricepulse %s finished", args.command)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
