"""Bid schemas for request/response validation."""

from decimal import Decimal
from typing import Any

from pydantic import Field, ValidationError

from artbid.schemas.auction import AuctionResponse
from artbid.schemas.base import CamelModel, Money, UtcDatetime
from artbid.services.exceptions import BidValidationError

REQUIRED_BID_FIELDS = ("auctionId", "bidAmount", "bidderId")
MISSING_FIELDS_MESSAGE = "Missing required fields: auctionId, bidAmount, bidderId"
INVALID_AMOUNT_MESSAGE = "Bid amount must be a finite positive number"


class BidCreate(CamelModel):
    """Schema for bid placement request."""

    auction_id: str = Field(..., min_length=1, max_length=64)
    bid_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, allow_inf_nan=False)
    bidder_id: str = Field(..., min_length=1, max_length=128)


class BidResponse(CamelModel):
    """Schema for a persisted bid."""

    bid_id: str
    auction_id: str
    bid_amount: Money
    bidder_id: str
    bid_time: UtcDatetime


class PlaceBidResponse(CamelModel):
    """Schema for a successful bid placement."""

    message: str = "Bid placed successfully"
    bid: BidResponse
    auction: AuctionResponse


class BidListResponse(CamelModel):
    """Schema for bid history response."""

    bids: list[BidResponse]
    total: int


def parse_bid_request(payload: Any) -> BidCreate:
    """Validate a raw bid request body.

    ``userId`` is accepted in place of ``bidderId``. Missing or empty
    required fields are reported together; malformed values after that.

    Raises:
        BidValidationError: If the payload cannot be turned into a BidCreate
    """
    if not isinstance(payload, dict):
        raise BidValidationError(MISSING_FIELDS_MESSAGE)

    data = dict(payload)
    if data.get("bidderId") in (None, "") and data.get("userId") not in (None, ""):
        data["bidderId"] = data["userId"]

    missing = [name for name in REQUIRED_BID_FIELDS if data.get(name) in (None, "")]
    if missing:
        raise BidValidationError(MISSING_FIELDS_MESSAGE, missingFields=missing)

    if isinstance(data["bidAmount"], bool):
        raise BidValidationError(INVALID_AMOUNT_MESSAGE)

    try:
        return BidCreate.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        field = error["loc"][0] if error["loc"] else None
        if field == "bidAmount":
            raise BidValidationError(INVALID_AMOUNT_MESSAGE) from e
        raise BidValidationError(f"Invalid field {field}: {error['msg']}") from e
