"""Domain errors raised by the auction services.

Each error carries the HTTP status it maps to and an optional payload that the
API layer merges into the JSON body next to ``message``.
"""

from decimal import Decimal
from typing import Any

from artbid.core.config import settings


def format_amount(amount: Decimal) -> str:
    """Render an amount the way clients display it (``500`` or ``500.5``)."""
    normalized = amount.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


class AuctionError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    code: str = "AUCTION_ERROR"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, **self.extra}


class BidValidationError(AuctionError):
    """Raised when a request is missing fields or carries malformed values."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuctionNotFoundError(AuctionError):
    """Raised when the referenced auction does not exist."""

    status_code = 404
    code = "AUCTION_NOT_FOUND"

    def __init__(self, auction_id: str | None = None):
        super().__init__("Auction not found")
        self.auction_id = auction_id


class BidTooLowError(AuctionError):
    """Raised when a bid does not beat the current highest bid."""

    status_code = 400
    code = "BID_TOO_LOW"

    def __init__(self, current_bid: Decimal, minimum_bid: Decimal):
        super().__init__(
            f"Bid must be higher than current bid of "
            f"{settings.CURRENCY_SYMBOL}{format_amount(current_bid)}",
            currentBid=float(current_bid),
            minimumBid=float(minimum_bid),
        )
        self.current_bid = current_bid
        self.minimum_bid = minimum_bid


class AuctionNotOpenError(AuctionError):
    """Raised when bidding on an auction that is not active."""

    status_code = 409
    code = "AUCTION_NOT_OPEN"

    def __init__(self, status: str):
        super().__init__(f"Auction is not accepting bids (status: {status})", status=status)
        self.status = status


class AuctionStateError(AuctionError):
    """Raised when a catalogue operation is not allowed in the auction's state."""

    status_code = 409
    code = "INVALID_STATE"


class ConcurrencyConflictError(AuctionError):
    """Raised when optimistic bid updates keep losing races with other bids."""

    status_code = 409
    code = "CONCURRENT_BID"

    def __init__(self, auction_id: str, attempts: int):
        super().__init__("Bid could not be placed due to concurrent bids, please retry")
        self.auction_id = auction_id
        self.attempts = attempts


class StoreUnavailableError(AuctionError):
    """Raised when the database or Redis fails for infrastructure reasons."""

    status_code = 500
    code = "STORE_UNAVAILABLE"

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(message)


class DeliveryError(Exception):
    """A push to one connection failed; the connection may still be alive."""

    def __init__(self, handle: str, reason: str):
        super().__init__(f"Delivery to {handle} failed: {reason}")
        self.handle = handle
        self.reason = reason


class ConnectionGoneError(DeliveryError):
    """The transport reports the connection no longer exists."""

    def __init__(self, handle: str):
        super().__init__(handle, "connection gone")
