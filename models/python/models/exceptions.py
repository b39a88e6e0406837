from typing import Optional


class AuctionError(Exception):
    """Base exception for auction business-rule violations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuctionValidationError(AuctionError):
    """Raised when auction fields are missing or inconsistent."""
    pass


class InvalidAuctionIdError(AuctionValidationError):
    """Raised when an auction identifier is not a well-formed key."""

    def __init__(self, auction_id: str):
        super().__init__("Invalid auction ID")
        self.auction_id = auction_id


class AuctionNotFoundError(AuctionError):
    """Raised when no auction document exists for the identifier."""

    def __init__(self, auction_id: str):
        super().__init__("Auction not found")
        self.auction_id = auction_id


class AuctionStateError(AuctionError):
    """Raised when the auction's lifecycle state forbids the operation."""

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class BidAmountError(AuctionError):
    """Raised when a bid does not exceed the current price."""

    def __init__(self, current_price: float):
        super().__init__(f"Bid must exceed current price ({format_price(current_price)})")
        self.current_price = current_price


class AuctionConflictError(AuctionError):
    """Raised when CAS retries are exhausted on a contended auction."""
    pass


def format_price(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"
