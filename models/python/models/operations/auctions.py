"""
Auction business logic with CAS-guarded atomic operations.

- _auction_cas_retry for atomic read-modify-write of one auction document
- Exponential backoff on CASMismatchException
- Lifecycle rules come from operations/auction_lifecycle.py and are
  re-applied to every snapshot that is about to be written
"""

import asyncio
import logging
import math
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from couchbase.exceptions import CASMismatchException

from clients.couchbase import ensure_indexes
from models.entities.couchbase.auctions import (
    Auction,
    AuctionBid,
    AuctionData,
    AuctionImage,
)
from models.exceptions import (
    AuctionConflictError,
    AuctionNotFoundError,
    AuctionStateError,
    AuctionValidationError,
    BidAmountError,
    InvalidAuctionIdError,
)
from models.operations.auction_lifecycle import (
    as_utc,
    auction_effective_status,
    can_transition,
    utc_now,
)

logger = logging.getLogger(__name__)

AUCTION_STATUSES = ("upcoming", "live", "ended", "cancelled")

AUCTION_INDEXES = {
    "idx_auctions_status_created": ["status", "created_at DESC"],
    "idx_auctions_seller_created": ["seller_id", "created_at DESC"],
    "idx_auctions_status_times": ["status", "start_time", "end_time"],
}


# ---------------------------------------------------------------------------
# CAS-retry helper
# ---------------------------------------------------------------------------

async def _auction_cas_retry(
    auction_id: str,
    mutator: Callable[[AuctionData], bool],
    max_retries: int = 5,
) -> Auction:
    """Read-modify-write an auction with CAS-guarded retry.

    *mutator* receives ``AuctionData`` and mutates it in place.  It returns
    ``True`` when the document must be written and ``False`` when there is
    nothing to change; it raises an ``AuctionError`` to abort.  On
    ``CASMismatchException`` the helper re-reads and re-runs the mutator
    with exponential backoff (10 ms, 20 ms, 40 ms, ...).
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        auction = await Auction.get(auction_id)
        if not auction:
            raise AuctionNotFoundError(auction_id)

        if not mutator(auction.data):
            return auction

        try:
            return await Auction.update(auction)
        except CASMismatchException:
            if attempt == max_retries:
                break
            logger.info(
                f"CAS conflict on auction {auction_id} (attempt {attempt + 1}), retrying"
            )
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2

    logger.warning(f"Giving up on auction {auction_id} after {max_retries} CAS retries")
    raise AuctionConflictError("Concurrent update conflict, please retry")


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def validate_auction_id(auction_id: str) -> str:
    try:
        return str(uuid.UUID(auction_id))
    except (ValueError, TypeError, AttributeError):
        raise InvalidAuctionIdError(auction_id)


def parse_bid_amount(raw: Any) -> Optional[float]:
    """Return the bid amount as a finite float, or ``None`` if it isn't one."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        amount = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    return amount


def _required(value: Optional[str]) -> str:
    if value is None or not str(value).strip():
        raise AuctionValidationError("All required fields must be provided")
    return str(value).strip()


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def auction_create(
    seller_id: str,
    title: str,
    description: str,
    category: str,
    condition: str,
    images: List[Dict[str, Any]],
    start_price: float,
    end_time: datetime,
    start_time: Optional[datetime] = None,
    reserve_price: Optional[float] = None,
    now: Optional[datetime] = None,
) -> Auction:
    """Create an auction. ``current_price`` starts at ``start_price``."""
    now = now or utc_now()
    title = _required(title)
    description = _required(description)
    category = _required(category)
    condition = _required(condition)

    if not images:
        raise AuctionValidationError("At least one image is required")

    if start_price is None or not math.isfinite(start_price) or start_price < 0:
        raise AuctionValidationError("Starting price must be a valid positive number")
    if reserve_price is not None and (not math.isfinite(reserve_price) or reserve_price < 0):
        raise AuctionValidationError("Reserve price must be a valid positive number")

    if end_time is None:
        raise AuctionValidationError("End time must be a valid date")
    start = as_utc(start_time) if start_time else now
    end = as_utc(end_time)
    if end <= start:
        raise AuctionValidationError("End time must be after start time")

    auction_images = []
    for index, img in enumerate(images):
        url = (img.get("url") or "").strip()
        storage_path = (img.get("storage_path") or "").strip()
        if not url or not storage_path:
            raise AuctionValidationError("Each image needs a url and a storage path")
        auction_images.append(
            AuctionImage(
                url=url,
                storage_path=storage_path,
                alt_text=img.get("alt_text") or title,
                is_primary=index == 0,
            )
        )

    data = AuctionData(
        seller_id=seller_id,
        title=title,
        description=description,
        category=category,
        condition=condition,
        images=auction_images,
        start_price=start_price,
        current_price=start_price,
        reserve_price=reserve_price,
        start_time=start,
        end_time=end,
        status="upcoming" if start > now else "live",
        bids=[],
    )
    auction = await Auction.create(data, user_id=seller_id)
    logger.info(
        f"Auction {auction.id} created by {seller_id}: start={start_price}, "
        f"window={start.isoformat()}..{end.isoformat()}, status={data.status}"
    )
    return auction


async def auction_get(auction_id: str) -> Optional[Auction]:
    return await Auction.get(validate_auction_id(auction_id))


def _auction_filters(
    status: Optional[str] = None,
    seller_id: Optional[str] = None,
) -> Tuple[str, Dict[str, Any]]:
    conditions = []
    params: Dict[str, Any] = {}

    if status:
        conditions.append("status = $status")
        params["status"] = status
    if seller_id:
        conditions.append("seller_id = $seller_id")
        params["seller_id"] = seller_id

    where = " AND ".join(conditions) if conditions else "1=1"
    return where, params


async def auction_search(
    status: Optional[str] = None,
    seller_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Auction]:
    """Search auctions by stored status and seller, newest first."""
    keyspace = Auction.get_keyspace()
    where, params = _auction_filters(status, seller_id)
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE {where} "
        f"ORDER BY created_at DESC "
        f"LIMIT {int(limit)} OFFSET {int(offset)}"
    )
    rows = await keyspace.query(query, **params)
    return Auction.from_rows(rows)


async def auction_count(
    status: Optional[str] = None,
    seller_id: Optional[str] = None,
) -> int:
    keyspace = Auction.get_keyspace()
    where, params = _auction_filters(status, seller_id)
    rows = await keyspace.query(
        f"SELECT COUNT(*) AS total FROM {keyspace} WHERE {where}", **params
    )
    return int(rows[0]["total"]) if rows else 0


async def auction_get_by_seller(seller_id: str) -> List[Auction]:
    keyspace = Auction.get_keyspace()
    query = (
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE seller_id = $seller_id ORDER BY created_at DESC"
    )
    rows = await keyspace.query(query, seller_id=seller_id)
    return Auction.from_rows(rows)


def page_count(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


# ---------------------------------------------------------------------------
# Bid placement (CAS-critical)
# ---------------------------------------------------------------------------

async def auction_place_bid(
    auction_id: str,
    bidder_id: str,
    amount: Any,
    now: Optional[datetime] = None,
    max_retries: int = 5,
) -> Auction:
    """
    Atomically place a bid on an auction.

    CAS flow:
    1. Read auction with CAS
    2. Validate on that snapshot, in order: effective status is live,
       start reached, end not passed, amount above current price,
       bidder is not the seller
    3. Append the bid, move current_price, persist a pending live status
    4. Replace with the snapshot's CAS; on mismatch re-read and go to 2

    Bids are never accepted before ``start_time``; an upcoming auction is
    only flipped to live here once its start has passed.

    Raises AuctionNotFoundError, AuctionStateError, BidAmountError or
    AuctionConflictError. Returns the updated auction.
    """
    auction_id = validate_auction_id(auction_id)
    now = now or utc_now()
    parsed_amount = parse_bid_amount(amount)

    def _mutate(d: AuctionData) -> bool:
        status = auction_effective_status(d, now)
        if status != "live":
            raise AuctionStateError("Cannot bid on a non-live auction", status)
        if now < as_utc(d.start_time):
            raise AuctionStateError("Auction has not started yet", status)
        if now > as_utc(d.end_time):
            raise AuctionStateError("Auction has already ended", status)
        if parsed_amount is None or parsed_amount <= d.current_price:
            raise BidAmountError(d.current_price)
        if d.seller_id == bidder_id:
            raise AuctionStateError("Sellers cannot bid on their own auction", status)

        d.bids.append(AuctionBid(bidder_id=bidder_id, amount=parsed_amount, timestamp=now))
        d.current_price = parsed_amount
        if d.status == "upcoming":
            d.status = "live"
        return True

    auction = await _auction_cas_retry(auction_id, _mutate, max_retries=max_retries)
    logger.info(
        f"Bid accepted on auction {auction_id}: bidder={bidder_id}, "
        f"amount={parsed_amount}, bids={len(auction.data.bids)}"
    )
    return auction


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

async def auction_advance_status(
    auction_id: str,
    target: str,
    max_retries: int = 5,
) -> Auction:
    """Persist a forward status transition. No-op if already at *target*."""

    def _mutate(d: AuctionData) -> bool:
        if d.status == target:
            return False
        if not can_transition(d.status, target):
            raise AuctionStateError(
                f"Cannot move auction from {d.status} to {target}", d.status
            )
        d.status = target
        return True

    auction = await _auction_cas_retry(auction_id, _mutate, max_retries=max_retries)
    logger.info(f"Auction {auction_id} status persisted as {auction.data.status}")
    return auction


async def auction_refresh_status(auction_id: str, status: str) -> None:
    """Best-effort write-back of a status derived on a read path."""
    try:
        await auction_advance_status(auction_id, status)
    except Exception as e:
        logger.warning(f"Failed to persist status {status} for auction {auction_id}: {e}")


async def auction_cancel(auction_id: str, now: Optional[datetime] = None) -> Auction:
    """Cancel an auction. Only allowed while upcoming or live and without bids."""
    auction_id = validate_auction_id(auction_id)
    now = now or utc_now()

    def _mutate(d: AuctionData) -> bool:
        status = auction_effective_status(d, now)
        # The one-step evaluator can report live for an upcoming auction whose
        # window has already closed
        if status in ("upcoming", "live") and now >= as_utc(d.end_time):
            status = "ended"
        if status not in ("upcoming", "live"):
            raise AuctionStateError(f"Cannot cancel auction with status: {status}", status)
        if d.bids:
            raise AuctionStateError("Cannot cancel auction with existing bids", status)
        d.status = "cancelled"
        return True

    auction = await _auction_cas_retry(auction_id, _mutate)
    logger.info(f"Auction {auction_id} cancelled")
    return auction


async def auction_sweep_statuses(
    now: Optional[datetime] = None,
    limit: int = 500,
) -> int:
    """
    Advance stored statuses that have fallen behind the clock.

    Called periodically by the scheduler so that listing filters on stored
    status see ended auctions that nobody has read since they closed.
    Returns the number of auctions whose status was advanced.
    """
    now = now or utc_now()
    keyspace = Auction.get_keyspace()
    query = (
        f"SELECT RAW META().id FROM {keyspace} "
        f"WHERE (status = 'upcoming' AND STR_TO_MILLIS(start_time) <= $now_ms) "
        f"OR (status = 'live' AND STR_TO_MILLIS(end_time) <= $now_ms) "
        f"LIMIT {int(limit)}"
    )
    now_ms = int(now.timestamp() * 1000)
    auction_ids = await keyspace.query(query, now_ms=now_ms)

    advanced = 0
    for auction_id in auction_ids:
        try:
            auction = await Auction.get(auction_id)
            if not auction:
                continue
            status = auction_effective_status(auction.data, now)
            if status != auction.data.status:
                await auction_advance_status(auction_id, status)
                advanced += 1
        except Exception as e:
            logger.error(f"Status sweep failed for auction {auction_id}: {e}")

    return advanced


async def auction_ensure_indexes() -> List[str]:
    return await ensure_indexes(Auction.get_keyspace(), AUCTION_INDEXES)

