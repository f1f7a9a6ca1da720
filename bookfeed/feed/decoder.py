"""
Wire decoder for l2Book messages.

Turns a raw feed frame into a LevelsUpdate, or None when the frame is not a
book message. Never raises: malformed frames are rejected whole, malformed
levels are dropped one by one.

Hyperliquid l2Book format:
{
    "channel": "l2Book",
    "data": {
        "coin": "AVAX",
        "time": 1700000000000,
        "levels": [
            [{"px": "29.50", "sz": "10.0", "n": 3}, ...],   // bids
            [{"px": "29.55", "sz": "5.0", "n": 1}, ...]     // asks
        ]
    }
}
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping, Optional, Union

import orjson

from bookfeed.feed.errors import MessageParseError
from bookfeed.types.types import BOOK_CHANNEL, LevelsUpdate, PriceLevel

logger = logging.getLogger(__name__)

RawFrame = Union[str, bytes, bytearray, Mapping[str, Any]]


def _safe_float(value: Any, field_name: str) -> float:
    """Convert a decimal string (or number) to a finite float."""
    if isinstance(value, bool):
        raise MessageParseError(
            f"Invalid float value for {field_name}: {value}",
            expected_type="float",
        )
    try:
        result = float(value)
    except (ValueError, TypeError) as e:
        raise MessageParseError(
            f"Invalid float value for {field_name}: {value}",
            expected_type="float",
        ) from e
    if not math.isfinite(result):
        raise MessageParseError(
            f"Non-finite value for {field_name}: {value}",
            expected_type="float",
        )
    return result


def _parse_level(raw: Any) -> PriceLevel:
    if not isinstance(raw, Mapping):
        raise MessageParseError(f"Level is not an object: {raw!r}", expected_type="level")
    price = _safe_float(raw.get("px"), "px")
    size = _safe_float(raw.get("sz"), "sz")
    return PriceLevel(price=price, size=size)


def _parse_side(raw_side: list[Any]) -> tuple[tuple[PriceLevel, ...], int]:
    """Parse one side, returning the kept levels and how many were dropped."""
    levels: list[PriceLevel] = []
    dropped = 0
    for raw in raw_side:
        try:
            level = _parse_level(raw)
        except MessageParseError as e:
            logger.debug(f"Dropping level: {e}")
            dropped += 1
            continue
        # size <= 0 marks a cancelled level
        if level.size <= 0:
            dropped += 1
            continue
        levels.append(level)
    return tuple(levels), dropped


def decode_message(message: Mapping[str, Any]) -> Optional[LevelsUpdate]:
    """Decode an already-parsed JSON object. Returns None if it is not a book message."""
    data = message.get("data")
    has_coin = isinstance(data, Mapping) and "coin" in data
    if message.get("channel") != BOOK_CHANNEL and not has_coin:
        return None

    book = data if isinstance(data, Mapping) else message
    levels = book.get("levels")
    if not isinstance(levels, list) or len(levels) != 2:
        return None
    raw_bids, raw_asks = levels
    if not isinstance(raw_bids, list) or not isinstance(raw_asks, list):
        return None

    bids, dropped_bids = _parse_side(raw_bids)
    asks, dropped_asks = _parse_side(raw_asks)

    coin = book.get("coin")
    return LevelsUpdate(
        coin=coin if isinstance(coin, str) else None,
        bids=bids,
        asks=asks,
        dropped_levels=dropped_bids + dropped_asks,
    )


def decode_frame(raw: RawFrame) -> Optional[LevelsUpdate]:
    """Decode a raw transport frame (text, bytes, or parsed object)."""
    if isinstance(raw, Mapping):
        return decode_message(raw)
    try:
        message = orjson.loads(raw)
    except (orjson.JSONDecodeError, TypeError) as e:
        logger.debug(f"Rejecting non-JSON frame: {e}")
        return None
    if not isinstance(message, dict):
        return None
    return decode_message(message)
