"""Bidding API endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from artbid.api.deps import BidServiceDep
from artbid.schemas.auction import AuctionResponse
from artbid.schemas.bid import BidListResponse, BidResponse, PlaceBidResponse, parse_bid_request
from artbid.services.bid_service import BidService
from artbid.services.exceptions import BidValidationError, StoreUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_json_body(request: Request) -> Any:
    """Request body as JSON; bid routes validate it themselves."""
    try:
        return await request.json()
    except ValueError:
        raise BidValidationError("Invalid JSON in request body")


async def accept_bid(bid_service: BidService, payload: Any) -> PlaceBidResponse | JSONResponse:
    """Shared by the flat and the auction-scoped bid routes."""
    bid_data = parse_bid_request(payload)
    try:
        result = await bid_service.place_bid(
            auction_id=bid_data.auction_id,
            bid_amount=bid_data.bid_amount,
            bidder_id=bid_data.bidder_id,
        )
    except StoreUnavailableError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={"message": "Failed to place bid", "error": e.message},
        )

    return PlaceBidResponse(
        bid=BidResponse.model_validate(result.bid),
        auction=AuctionResponse.from_model(result.auction),
    )


@router.post("", response_model=PlaceBidResponse)
async def place_bid(request: Request, bid_service: BidServiceDep):
    """Place a bid on an auction.

    Body: ``{auctionId, bidAmount, bidderId}`` (``userId`` is accepted for
    ``bidderId``). Subscribers are notified in the background once the bid
    is committed.
    """
    payload = await read_json_body(request)
    return await accept_bid(bid_service, payload)


@router.get("", response_model=BidListResponse)
async def list_bidder_bids(
    bid_service: BidServiceDep,
    user_id: str | None = Query(None, alias="userId"),
    bidder_id: str | None = Query(None, alias="bidderId"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
):
    """Get bids placed by one bidder, newest first."""
    bidder = bidder_id or user_id
    if not bidder:
        raise BidValidationError("Missing required query parameter: userId")

    bids, total = await bid_service.get_bids_by_bidder(bidder, skip=skip, limit=limit)
    return BidListResponse(
        bids=[BidResponse.model_validate(bid) for bid in bids],
        total=total,
    )
