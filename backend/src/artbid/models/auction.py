"""Auction model: one artwork up for sale and its live bidding state."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from artbid.core.database import Base
from artbid.models.base import TimestampMixin, as_utc, new_id, utcnow

if TYPE_CHECKING:
    from artbid.models.bid import Bid

STATUS_DRAFT = "draft"
STATUS_UPCOMING = "upcoming"
STATUS_ACTIVE = "active"
STATUS_ENDED = "ended"
STATUS_CLOSED = "closed"

AUCTION_STATUSES = (STATUS_DRAFT, STATUS_UPCOMING, STATUS_ACTIVE, STATUS_ENDED, STATUS_CLOSED)

# Accepted on input, stored under the canonical name
STATUS_ALIASES = {"live": STATUS_ACTIVE}


def normalize_status(value: str | None, default: str = STATUS_DRAFT) -> str:
    """Map a client-supplied status onto a stored one, falling back to ``default``."""
    if not value:
        return default
    status = value.strip().lower()
    status = STATUS_ALIASES.get(status, status)
    if status not in AUCTION_STATUSES:
        return default
    return status


class Auction(Base, TimestampMixin):
    """Auction model representing one artwork listed for bidding."""

    __tablename__ = "auctions"

    auction_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
    )
    seller_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    artist_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    medium: Mapped[str | None] = mapped_column(String(120), nullable=True)
    dimensions: Mapped[str | None] = mapped_column(String(120), nullable=True)
    year: Mapped[str | None] = mapped_column(String(16), nullable=True)
    condition: Mapped[str | None] = mapped_column(String(120), nullable=True)
    images: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    location: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    starting_bid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    bid_increment: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("1.00"),
    )
    start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Written only by BidService through a conditional update
    current_bid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )
    highest_bidder: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
    )
    bid_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=STATUS_DRAFT,
    )

    # Payment callback fields
    payment_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    bids: Mapped[List["Bid"]] = relationship(
        "Bid",
        back_populates="auction",
        order_by="Bid.bid_time",
    )

    __table_args__ = (
        CheckConstraint("starting_bid > 0", name="chk_auction_starting_bid_positive"),
        CheckConstraint("bid_increment > 0", name="chk_auction_increment_positive"),
        CheckConstraint("current_bid >= starting_bid", name="chk_auction_current_bid"),
        CheckConstraint("bid_count >= 0", name="chk_auction_bid_count"),
        Index("idx_auctions_status", "status"),
        Index("idx_auctions_seller", "seller_id"),
        Index("idx_auctions_location", "location"),
        Index("idx_auctions_time", "start_time", "end_time"),
    )

    def effective_status(self, now: datetime | None = None) -> str:
        """Status as seen by clients.

        ``draft`` and ``closed`` are explicit; everything else follows the
        start/end timestamps.
        """
        if self.status in (STATUS_DRAFT, STATUS_CLOSED):
            return self.status
        now = now or utcnow()
        start = as_utc(self.start_time)
        end = as_utc(self.end_time)
        if start is not None and now < start:
            return STATUS_UPCOMING
        if end is not None and now >= end:
            return STATUS_ENDED
        if self.status == STATUS_ENDED and end is None:
            return STATUS_ENDED
        return STATUS_ACTIVE

    @property
    def highest_amount(self) -> Decimal:
        return max(self.current_bid, self.starting_bid)

    def minimum_next_bid(self) -> Decimal:
        return self.highest_amount + self.bid_increment
