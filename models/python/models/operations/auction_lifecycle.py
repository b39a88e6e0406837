"""
Lifecycle evaluation for auctions.

The stored ``status`` is only a cache: the effective status is always
derived from ``start_time``/``end_time`` and the current time, so every read
and every bid goes through ``auction_effective_status`` first.
"""

from datetime import datetime, timezone
from typing import NamedTuple, Optional

from models.entities.couchbase.auctions import AuctionData

# Allowed forward moves of the stored status. "cancelled" and "ended" are terminal.
STATUS_TRANSITIONS = {
    "upcoming": ("live", "cancelled"),
    "live": ("ended", "cancelled"),
    "ended": (),
    "cancelled": (),
}


class AuctionLifecycle(NamedTuple):
    status: str
    time_remaining_ms: int
    bid_count: int


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def auction_effective_status(data: AuctionData, now: Optional[datetime] = None) -> str:
    """Derive the status an auction has at *now*.

    At most one step is taken per evaluation: an ``upcoming`` auction whose
    start has passed reads as ``live`` and a ``live`` auction whose end has
    passed reads as ``ended``.
    """
    now = now or utc_now()
    if data.status == "upcoming" and now >= as_utc(data.start_time):
        return "live"
    if data.status == "live" and now >= as_utc(data.end_time):
        return "ended"
    return data.status


def auction_time_remaining_ms(data: AuctionData, status: str, now: Optional[datetime] = None) -> int:
    if status != "live":
        return 0
    now = now or utc_now()
    remaining = as_utc(data.end_time) - now
    return max(0, int(remaining.total_seconds() * 1000))


def auction_evaluate(data: AuctionData, now: Optional[datetime] = None) -> AuctionLifecycle:
    now = now or utc_now()
    status = auction_effective_status(data, now)
    return AuctionLifecycle(
        status=status,
        time_remaining_ms=auction_time_remaining_ms(data, status, now),
        bid_count=len(data.bids),
    )


def can_transition(current: str, target: str) -> bool:
    return target in STATUS_TRANSITIONS.get(current, ())


def is_reserve_met(data: AuctionData) -> bool:
    if not data.reserve_price:
        return True
    return data.current_price >= data.reserve_price
