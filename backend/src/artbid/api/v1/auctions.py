"""Auction catalogue API endpoints."""

from fastapi import APIRouter, Query, Request, Response, status

from artbid.api.deps import AuctionServiceDep, BidServiceDep
from artbid.api.v1.bids import accept_bid, read_json_body
from artbid.models.auction import STATUS_DRAFT
from artbid.schemas.auction import (
    AuctionCreate,
    AuctionCreatedResponse,
    AuctionListResponse,
    AuctionResponse,
    AuctionUpdate,
)
from artbid.schemas.bid import BidListResponse, BidResponse, PlaceBidResponse

router = APIRouter()


@router.get("", response_model=AuctionListResponse)
async def list_auctions(
    auction_service: AuctionServiceDep,
    published_only: bool = Query(False, alias="publishedOnly"),
    status_: str | None = Query(None, alias="status"),
    location: str | None = Query(None),
    seller_id: str | None = Query(None, alias="sellerId"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
):
    """Get auctions with filters and pagination."""
    auctions, total = await auction_service.get_all(
        skip=skip,
        limit=limit,
        published_only=published_only,
        status=status_,
        location=location,
        seller_id=seller_id,
    )
    return AuctionListResponse(
        auctions=[AuctionResponse.from_model(auction) for auction in auctions],
        total=total,
    )


@router.post("", response_model=AuctionCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_auction(
    auction_data: AuctionCreate,
    auction_service: AuctionServiceDep,
):
    """Create an auction as a draft or published listing."""
    auction = await auction_service.create(auction_data)
    message = (
        "Draft saved successfully"
        if auction.status == STATUS_DRAFT
        else "Auction published successfully"
    )
    snapshot = AuctionResponse.from_model(auction)
    return AuctionCreatedResponse(
        message=message,
        auction_id=auction.auction_id,
        status=snapshot.status,
        auction=snapshot,
    )


@router.get("/{auction_id}", response_model=AuctionResponse)
async def get_auction(auction_id: str, auction_service: AuctionServiceDep):
    """Get the current state of one auction.

    Clients without a live connection poll this endpoint.
    """
    auction = await auction_service.require(auction_id)
    return AuctionResponse.from_model(auction)


@router.patch("/{auction_id}", response_model=AuctionResponse)
async def update_auction(
    auction_id: str,
    auction_data: AuctionUpdate,
    auction_service: AuctionServiceDep,
):
    """Update auction metadata. Bid fields are rejected by the schema."""
    auction = await auction_service.update(auction_id, auction_data)
    return AuctionResponse.from_model(auction)


@router.post("/{auction_id}/publish", response_model=AuctionResponse)
async def publish_auction(auction_id: str, auction_service: AuctionServiceDep):
    auction = await auction_service.publish(auction_id)
    return AuctionResponse.from_model(auction)


@router.delete("/{auction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_auction(auction_id: str, auction_service: AuctionServiceDep):
    """Delete a draft that has no bids."""
    await auction_service.delete(auction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{auction_id}/bids", response_model=BidListResponse)
async def get_auction_bids(
    auction_id: str,
    auction_service: AuctionServiceDep,
    bid_service: BidServiceDep,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
):
    """Get bid history of an auction, newest first."""
    await auction_service.require(auction_id)
    bids, total = await bid_service.get_bid_history(auction_id, skip=skip, limit=limit)
    return BidListResponse(
        bids=[BidResponse.model_validate(bid) for bid in bids],
        total=total,
    )


@router.post("/{auction_id}/bids", response_model=PlaceBidResponse)
async def place_auction_bid(auction_id: str, request: Request, bid_service: BidServiceDep):
    """Place a bid; the auction id comes from the path."""
    payload = await read_json_body(request)
    if isinstance(payload, dict):
        payload = {**payload, "auctionId": auction_id}
    return await accept_bid(bid_service, payload)
