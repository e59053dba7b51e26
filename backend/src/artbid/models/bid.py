"""Bid model: append-only log of accepted bids."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from artbid.core.database import Base
from artbid.models.base import as_utc, new_id, utcnow

if TYPE_CHECKING:
    from artbid.models.auction import Auction


class Bid(Base):
    """Bid model representing one accepted offer against an auction.

    Rows are inserted once by BidService and never updated.
    """

    __tablename__ = "bids"

    bid_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
    )
    auction_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("auctions.auction_id"),
        nullable=False,
    )
    bidder_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
    )
    bid_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    bid_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # Relationships
    auction: Mapped["Auction"] = relationship("Auction", back_populates="bids")

    __table_args__ = (
        CheckConstraint("bid_amount > 0", name="chk_bid_amount_positive"),
        Index("idx_bids_auction_time", "auction_id", "bid_time"),
        Index("idx_bids_bidder_time", "bidder_id", "bid_time"),
    )

    def to_payload(self) -> dict:
        """Bid fields as pushed to subscribers and returned to clients."""
        return {
            "bidId": self.bid_id,
            "auctionId": self.auction_id,
            "bidAmount": float(self.bid_amount),
            "bidderId": self.bidder_id,
            "bidTime": as_utc(self.bid_time).isoformat(),
        }
