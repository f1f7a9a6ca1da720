"""
Minimal CLI entrypoint to stream an order book and log its top of book.

Usage: bookfeed --symbol AVAX --duration 60

Options:
  --symbol TEXT         Coin to subscribe to (default from config, else AVAX)
  --config FILE         TOML config file (see bookfeed.config.config_loader)
  --duration FLOAT      Stop after this many seconds (default: run until Ctrl-C)
  --log-level TEXT      Logging level (default: INFO)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from bookfeed.feed.config import BookFeedConfig
from bookfeed.feed.errors import ConfigurationError
from bookfeed.feed.surface import FeedView, OrderBookFeed

logger = logging.getLogger("bookfeed.cli")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bookfeed", description="Stream an L2 order book")
    parser.add_argument(
        "--symbol",
        help="Coin to subscribe to, e.g. AVAX. Overrides the config file.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="TOML config file. Defaults are used if omitted.",
    )
    parser.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds. Runs until interrupted if omitted.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO).",
    )
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> BookFeedConfig:
    if args.config is not None:
        from bookfeed.config.config_loader import ConfigLoader

        loader = ConfigLoader(base_dir=str(Path.cwd()))
        return loader.load_feed_config(str(args.config), symbol=args.symbol)
    if args.symbol:
        return BookFeedConfig(symbol=args.symbol)
    return BookFeedConfig()


def format_view(view: FeedView) -> str:
    snap = view.snapshot
    source = "synthetic" if snap.synthetic else "live"
    if snap.is_empty:
        return f"{snap.symbol} [{view.status.state.value}] no book yet"
    spread = f"{snap.spread:.4f}" if snap.spread is not None else "-"
    return (
        f"{snap.symbol} [{view.status.state.value}/{source}] "
        f"bid={snap.best_bid} ask={snap.best_ask} spread={spread} "
        f"levels={len(snap.bids)}/{len(snap.asks)}"
    )


async def _run_feed(config: BookFeedConfig, duration: Optional[float]) -> None:
    def on_view(view: FeedView) -> None:
        logger.info(format_view(view))

    async with OrderBookFeed(config) as feed:
        feed.subscribe(on_view)
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
        stats = feed.stats
        logger.info(
            f"Stopping: frames={stats.frames_received} applied={stats.updates_applied} "
            f"throttled={stats.updates_throttled} rejected={stats.frames_rejected}"
        )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _load_config(args)
    except (FileNotFoundError, ConfigurationError) as exc:
        print(f"[!] {exc}")
        return 1

    try:
        asyncio.run(_run_feed(config, args.duration))
    except KeyboardInterrupt:
        print("Interrupted by user.")
        return 130
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
