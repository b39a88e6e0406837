from datetime import datetime, timedelta, timezone

import pytest

from models.entities.couchbase.auctions import AuctionBid, AuctionData
from models.operations.auction_lifecycle import (
    as_utc,
    auction_effective_status,
    auction_evaluate,
    can_transition,
    is_reserve_met,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _data(status, start, end, **kwargs):
    defaults = dict(
        seller_id="seller-1",
        title="Lamp",
        description="Brass lamp",
        category="home",
        condition="used",
        start_price=10.0,
        current_price=10.0,
    )
    defaults.update(kwargs)
    return AuctionData(status=status, start_time=start, end_time=end, **defaults)


@pytest.mark.parametrize(
    "status,start,end,expected",
    [
        ("upcoming", NOW - timedelta(minutes=1), NOW + timedelta(hours=1), "live"),
        ("upcoming", NOW, NOW + timedelta(hours=1), "live"),
        ("upcoming", NOW + timedelta(minutes=1), NOW + timedelta(hours=1), "upcoming"),
        ("live", NOW - timedelta(hours=1), NOW, "ended"),
        ("live", NOW - timedelta(hours=1), NOW + timedelta(seconds=1), "live"),
        ("ended", NOW - timedelta(hours=2), NOW - timedelta(hours=1), "ended"),
        ("cancelled", NOW - timedelta(hours=1), NOW + timedelta(hours=1), "cancelled"),
        ("cancelled", NOW - timedelta(hours=2), NOW - timedelta(hours=1), "cancelled"),
    ],
)
def test_effective_status(status, start, end, expected):
    assert auction_effective_status(_data(status, start, end), NOW) == expected


def test_upcoming_past_its_end_moves_one_step_per_evaluation():
    data = _data("upcoming", NOW - timedelta(hours=2), NOW - timedelta(hours=1))
    assert auction_effective_status(data, NOW) == "live"


def test_stored_status_is_not_trusted():
    data = _data("live", NOW - timedelta(hours=2), NOW - timedelta(seconds=1))
    lifecycle = auction_evaluate(data, NOW)
    assert lifecycle.status == "ended"
    assert lifecycle.time_remaining_ms == 0


def test_time_remaining_only_while_live():
    live = _data("live", NOW - timedelta(hours=1), NOW + timedelta(minutes=5))
    assert auction_evaluate(live, NOW).time_remaining_ms == 5 * 60 * 1000

    upcoming = _data("upcoming", NOW + timedelta(hours=1), NOW + timedelta(hours=2))
    assert auction_evaluate(upcoming, NOW).time_remaining_ms == 0


def test_bid_count_is_length_of_bids():
    bids = [
        AuctionBid(bidder_id="b1", amount=11, timestamp=NOW),
        AuctionBid(bidder_id="b2", amount=12, timestamp=NOW),
    ]
    data = _data("live", NOW - timedelta(hours=1), NOW + timedelta(hours=1), bids=bids)
    assert auction_evaluate(data, NOW).bid_count == 2


def test_naive_datetimes_are_utc():
    naive = datetime(2026, 10, 19, 12, 0)
    assert as_utc(naive) == NOW


def test_transitions_only_move_forward():
    assert can_transition("upcoming", "live")
    assert can_transition("live", "ended")
    assert can_transition("upcoming", "cancelled")
    assert can_transition("live", "cancelled")
    assert not can_transition("live", "upcoming")
    assert not can_transition("ended", "live")
    assert not can_transition("ended", "cancelled")
    assert not can_transition("cancelled", "live")


def test_reserve_met():
    window = (NOW - timedelta(hours=1), NOW + timedelta(hours=1))
    assert is_reserve_met(_data("live", *window))
    assert not is_reserve_met(_data("live", *window, reserve_price=50.0))
    assert is_reserve_met(_data("live", *window, current_price=50.0, reserve_price=50.0))
