"""Auction schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from artbid.models.auction import Auction
from artbid.schemas.base import CamelModel, Money, UtcDatetime


class AuctionCreate(CamelModel):
    """Schema for auction creation (draft or published)."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    artist_name: str | None = Field(default=None, max_length=255)
    medium: str | None = Field(default=None, max_length=120)
    dimensions: str | None = Field(default=None, max_length=120)
    year: str | None = Field(default=None, max_length=16)
    condition: str | None = Field(default=None, max_length=120)
    images: list[str] = Field(default_factory=list)
    location: str | None = Field(default=None, max_length=255)
    starting_bid: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    bid_increment: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    start_time: UtcDatetime | None = None
    end_time: UtcDatetime | None = None
    status: str | None = None
    seller_id: str | None = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("sellerId", "creatorId", "seller_id"),
    )

    @model_validator(mode="after")
    def check_window(self) -> "AuctionCreate":
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("endTime must be after startTime")
        return self


class AuctionUpdate(CamelModel):
    """Schema for seller/admin metadata updates.

    Bid state (currentBid, highestBidder, bidCount) is not accepted here.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    artist_name: str | None = Field(default=None, max_length=255)
    medium: str | None = Field(default=None, max_length=120)
    dimensions: str | None = Field(default=None, max_length=120)
    year: str | None = Field(default=None, max_length=16)
    condition: str | None = Field(default=None, max_length=120)
    images: list[str] | None = None
    location: str | None = Field(default=None, max_length=255)
    start_time: UtcDatetime | None = None
    end_time: UtcDatetime | None = None
    status: str | None = None


class AuctionResponse(CamelModel):
    """Schema for an auction snapshot."""

    auction_id: str
    seller_id: str | None
    title: str
    description: str | None
    artist_name: str | None
    medium: str | None
    dimensions: str | None
    year: str | None
    condition: str | None
    images: list[str]
    location: str | None
    starting_bid: Money
    bid_increment: Money
    current_bid: Money
    minimum_bid: Money
    highest_bidder: str | None
    bid_count: int
    status: str
    start_time: UtcDatetime | None
    end_time: UtcDatetime | None
    payment_status: str | None = None
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @classmethod
    def from_model(cls, auction: Auction, now: datetime | None = None) -> "AuctionResponse":
        """Build a snapshot with the clock-derived status."""
        return cls(
            auction_id=auction.auction_id,
            seller_id=auction.seller_id,
            title=auction.title,
            description=auction.description,
            artist_name=auction.artist_name,
            medium=auction.medium,
            dimensions=auction.dimensions,
            year=auction.year,
            condition=auction.condition,
            images=list(auction.images or []),
            location=auction.location,
            starting_bid=auction.starting_bid,
            bid_increment=auction.bid_increment,
            current_bid=auction.current_bid,
            minimum_bid=auction.minimum_next_bid(),
            highest_bidder=auction.highest_bidder,
            bid_count=auction.bid_count,
            status=auction.effective_status(now),
            start_time=auction.start_time,
            end_time=auction.end_time,
            payment_status=auction.payment_status,
            created_at=auction.created_at,
            updated_at=auction.updated_at,
        )


class AuctionCreatedResponse(CamelModel):
    """Schema for the auction creation response."""

    message: str
    auction_id: str
    status: str
    auction: AuctionResponse


class AuctionListResponse(CamelModel):
    """Schema for auction list response."""

    auctions: list[AuctionResponse]
    total: int
