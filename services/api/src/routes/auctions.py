"""
API endpoints for auctions and bidding.

POST   /auctions              — create auction (seller or admin)
GET    /auctions              — paginated listing (public)
GET    /auctions/me           — caller's own auctions
GET    /auctions/{id}         — auction detail with seller and bidder names
POST   /auctions/{id}/bid     — place a bid
POST   /auctions/{id}/cancel  — cancel an auction without bids (owner or admin)

Every auction leaving this module has been passed through the lifecycle
evaluator; a derived status that differs from the stored one is written
back in the background after the response.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

import conf
from models.entities.couchbase.auctions import Auction
from models.entities.couchbase.users import User
from models.exceptions import (
    AuctionConflictError,
    AuctionError,
    AuctionNotFoundError,
    AuctionStateError,
    AuctionValidationError,
    BidAmountError,
)
from models.operations.auction_lifecycle import (
    AuctionLifecycle,
    auction_evaluate,
    is_reserve_met,
    utc_now,
)
from models.operations.auctions import (
    AUCTION_STATUSES,
    auction_cancel,
    auction_count,
    auction_create,
    auction_get,
    auction_get_by_seller,
    auction_place_bid,
    auction_refresh_status,
    auction_search,
    page_count,
)
from models.operations.users import user_get_many
from utils import log

from .dependencies import is_admin, require_authenticated, require_seller

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auctions", tags=["auctions"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuctionImageRequest(CamelModel):
    url: str
    storage_path: str
    alt_text: Optional[str] = None


class CreateAuctionRequest(CamelModel):
    title: str
    description: str
    start_price: float
    reserve_price: Optional[float] = None
    start_time: Optional[datetime] = None
    end_time: datetime
    category: str
    condition: str
    images: List[AuctionImageRequest] = []


class UserSummaryResponse(CamelModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    images: Optional[List[str]] = None
    rating: Optional[float] = None
    location: Optional[str] = None
    created_at: Optional[datetime] = None


class AuctionImageResponse(CamelModel):
    url: str
    storage_path: str
    alt_text: Optional[str] = None
    is_primary: bool


class BidResponse(CamelModel):
    bidder: UserSummaryResponse
    amount: float
    timestamp: datetime


class AuctionResponse(CamelModel):
    id: str
    title: str
    description: str
    category: str
    condition: str
    images: List[AuctionImageResponse]
    start_price: float
    current_price: float
    reserve_price: Optional[float] = None
    start_time: datetime
    end_time: datetime
    status: str
    seller: UserSummaryResponse
    bids: List[BidResponse]
    # Derived at response time, never stored
    time_remaining: int
    bid_count: int
    highest_bid: float
    is_reserve_met: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuctionListResponse(CamelModel):
    auctions: List[AuctionResponse]
    page: int
    pages: int
    total: int


class MyAuctionsResponse(CamelModel):
    auctions: List[AuctionResponse]
    total: int


class BidPlacedResponse(CamelModel):
    message: str
    auction: AuctionResponse


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_ERROR_STATUS = {
    AuctionValidationError: 400,
    AuctionNotFoundError: 404,
    AuctionStateError: 400,
    BidAmountError: 400,
    AuctionConflictError: 409,
}


def _http_error(e: AuctionError) -> HTTPException:
    status_code = next(
        (code for cls, code in _ERROR_STATUS.items() if isinstance(e, cls)), 400
    )
    if isinstance(e, BidAmountError):
        return HTTPException(
            status_code=status_code,
            detail={"message": e.message, "currentPrice": e.current_price},
        )
    return HTTPException(status_code=status_code, detail=e.message)


def _user_summary(user_id: str, users: Dict[str, User], full: bool) -> UserSummaryResponse:
    user = users.get(user_id)
    if not user:
        return UserSummaryResponse(id=user_id)
    if not full:
        return UserSummaryResponse(id=user_id, name=user.data.name)
    return UserSummaryResponse(
        id=user_id,
        name=user.data.name,
        email=user.data.email,
        images=user.data.images,
        rating=user.data.rating,
        location=user.data.location,
        created_at=user.data.created_at,
    )


def _auction_to_response(
    auction: Auction,
    lifecycle: AuctionLifecycle,
    users: Dict[str, User],
    full_seller: bool = True,
) -> AuctionResponse:
    d = auction.data
    return AuctionResponse(
        id=auction.id,
        title=d.title,
        description=d.description,
        category=d.category,
        condition=d.condition,
        images=[AuctionImageResponse(**img.model_dump()) for img in d.images],
        start_price=d.start_price,
        current_price=d.current_price,
        reserve_price=d.reserve_price,
        start_time=d.start_time,
        end_time=d.end_time,
        status=lifecycle.status,
        seller=_user_summary(d.seller_id, users, full=full_seller),
        bids=[
            BidResponse(
                bidder=_user_summary(b.bidder_id, users, full=False),
                amount=b.amount,
                timestamp=b.timestamp,
            )
            for b in d.bids
        ],
        time_remaining=lifecycle.time_remaining_ms,
        bid_count=lifecycle.bid_count,
        highest_bid=d.current_price,
        is_reserve_met=is_reserve_met(d),
        created_at=d.created_at,
        updated_at=d.updated_at,
    )


def _refresh_if_stale(
    background_tasks: BackgroundTasks,
    auction: Auction,
    lifecycle: AuctionLifecycle,
) -> None:
    if lifecycle.status != auction.data.status:
        background_tasks.add_task(auction_refresh_status, auction.id, lifecycle.status)


async def _present(
    auctions: Iterable[Auction],
    background_tasks: Optional[BackgroundTasks],
    with_bidders: bool,
    full_seller: bool,
) -> List[AuctionResponse]:
    auctions = list(auctions)
    user_ids = [a.data.seller_id for a in auctions]
    if with_bidders:
        user_ids += [b.bidder_id for a in auctions for b in a.data.bids]
    users = await user_get_many(user_ids)

    now = utc_now()
    responses = []
    for auction in auctions:
        lifecycle = auction_evaluate(auction.data, now)
        if background_tasks is not None:
            _refresh_if_stale(background_tasks, auction, lifecycle)
        responses.append(_auction_to_response(auction, lifecycle, users, full_seller))
    return responses


# ---------------------------------------------------------------------------
# POST /auctions — create auction
# ---------------------------------------------------------------------------

@router.post("", response_model=AuctionResponse, status_code=201)
async def route_auction_create(
    body: CreateAuctionRequest,
    user: dict = Depends(require_seller),
):
    """Create an auction. Starts live unless startTime is in the future."""
    try:
        auction = await auction_create(
            seller_id=user["sub"],
            title=body.title,
            description=body.description,
            category=body.category,
            condition=body.condition,
            images=[img.model_dump() for img in body.images],
            start_price=body.start_price,
            reserve_price=body.reserve_price,
            start_time=body.start_time,
            end_time=body.end_time,
        )
    except AuctionError as e:
        raise _http_error(e)

    [response] = await _present([auction], None, with_bidders=False, full_seller=True)
    return response


# ---------------------------------------------------------------------------
# GET /auctions — paginated listing
# ---------------------------------------------------------------------------

@router.get("", response_model=AuctionListResponse)
async def route_auctions_list(
    background_tasks: BackgroundTasks,
    status: Optional[str] = None,
    seller: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
):
    """List auctions newest first, filtered by stored status and seller."""
    auction_conf = conf.get_auction_conf()
    page_size = min(limit or auction_conf.page_size_default, auction_conf.page_size_max)
    if status not in AUCTION_STATUSES:
        status = None

    total = await auction_count(status=status, seller_id=seller)
    auctions = await auction_search(
        status=status,
        seller_id=seller,
        limit=page_size,
        offset=page_size * (page - 1),
    )
    return AuctionListResponse(
        auctions=await _present(auctions, background_tasks, with_bidders=False, full_seller=False),
        page=page,
        pages=page_count(total, page_size),
        total=total,
    )


# ---------------------------------------------------------------------------
# GET /auctions/me — caller's own auctions
# ---------------------------------------------------------------------------

@router.get("/me", response_model=MyAuctionsResponse)
async def route_auctions_mine(
    background_tasks: BackgroundTasks,
    user: dict = Depends(require_authenticated),
):
    """List the caller's auctions with highest bid and reserve state."""
    auctions = await auction_get_by_seller(user["sub"])
    responses = await _present(auctions, background_tasks, with_bidders=False, full_seller=True)
    return MyAuctionsResponse(auctions=responses, total=len(responses))


# ---------------------------------------------------------------------------
# GET /auctions/{id} — auction detail
# ---------------------------------------------------------------------------

@router.get("/{auction_id}", response_model=AuctionResponse)
async def route_auction_detail(auction_id: str, background_tasks: BackgroundTasks):
    """Get a single auction with seller summary and bidder names."""
    try:
        auction = await auction_get(auction_id)
    except AuctionError as e:
        raise _http_error(e)
    if not auction:
        raise HTTPException(status_code=404, detail="Auction not found")

    [response] = await _present([auction], background_tasks, with_bidders=True, full_seller=True)
    return response


# ---------------------------------------------------------------------------
# POST /auctions/{id}/bid — place a bid
# ---------------------------------------------------------------------------

@router.post("/{auction_id}/bid", response_model=BidPlacedResponse, status_code=201)
async def route_place_bid(
    auction_id: str,
    body: Any = Body(default=None, examples=[{"amount": 150}]),
    user: dict = Depends(require_authenticated),
):
    """Place a bid on a live auction. Body: {"amount": number}."""
    # The body is read leniently so that a missing or malformed amount is
    # rejected by the bid acceptor after the existence and lifecycle checks
    amount = body.get("amount") if isinstance(body, dict) else None
    try:
        auction = await auction_place_bid(
            auction_id=auction_id,
            bidder_id=user["sub"],
            amount=amount,
            max_retries=conf.get_auction_conf().bid_max_retries,
        )
    except AuctionError as e:
        logger.info(f"Bid rejected on auction {auction_id} for {user['sub']}: {e.message}")
        raise _http_error(e)

    [response] = await _present([auction], None, with_bidders=True, full_seller=True)
    return BidPlacedResponse(message="Bid placed successfully", auction=response)


# ---------------------------------------------------------------------------
# POST /auctions/{id}/cancel — cancel auction
# ---------------------------------------------------------------------------

@router.post("/{auction_id}/cancel", response_model=AuctionResponse)
async def route_auction_cancel(
    auction_id: str,
    user: dict = Depends(require_authenticated),
):
    """Cancel an upcoming or live auction. Only allowed if no bids have been placed."""
    try:
        auction = await auction_get(auction_id)
        if not auction:
            raise AuctionNotFoundError(auction_id)
        if auction.data.seller_id != user["sub"] and not is_admin(user):
            raise HTTPException(status_code=403, detail="Not your auction")
        auction = await auction_cancel(auction_id)
    except AuctionError as e:
        raise _http_error(e)

    [response] = await _present([auction], None, with_bidders=True, full_seller=True)
    return response
