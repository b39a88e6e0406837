from typing import List, Optional, Literal
from datetime import datetime
from pydantic import BaseModel
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData

AuctionStatus = Literal["upcoming", "live", "ended", "cancelled"]


class AuctionImage(BaseModel):
    url: str
    storage_path: str
    alt_text: Optional[str] = None
    is_primary: bool = False


class AuctionBid(BaseModel):
    """One accepted bid. Bids are appended in acceptance order and never edited."""
    bidder_id: str
    amount: float
    timestamp: datetime


class AuctionData(BaseCouchbaseEntityData):
    # Ownership (immutable after creation)
    seller_id: str

    # Descriptive
    title: str
    description: str
    category: str
    condition: str
    images: List[AuctionImage] = []

    # Pricing
    start_price: float
    current_price: float
    reserve_price: Optional[float] = None

    # Schedule
    start_time: datetime
    end_time: datetime

    # Cached lifecycle status; the timestamps are the source of truth
    status: AuctionStatus = "upcoming"

    bids: List[AuctionBid] = []


class Auction(BaseModelCouchbase[AuctionData]):
    _collection_name = "auctions"
