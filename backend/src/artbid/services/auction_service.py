"""Auction service for catalogue operations and payment callbacks."""

import logging
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from artbid.core.config import settings
from artbid.models.auction import (
    STATUS_ACTIVE,
    STATUS_CLOSED,
    STATUS_DRAFT,
    STATUS_ENDED,
    STATUS_UPCOMING,
    Auction,
    normalize_status,
)
from artbid.models.base import as_utc, utcnow
from artbid.schemas.auction import AuctionCreate, AuctionUpdate
from artbid.schemas.payment import PaymentWebhook
from artbid.services.exceptions import (
    AuctionNotFoundError,
    AuctionStateError,
    BidValidationError,
)

logger = logging.getLogger(__name__)

# Statuses a seller may pick when creating or editing an auction
SELLER_STATUSES = (STATUS_DRAFT, STATUS_UPCOMING, STATUS_ACTIVE)

PAYMENT_STATUSES = {
    "COMPLETE": "paid",
    "FAILED": "payment_failed",
    "CANCELLED": "payment_cancelled",
    "PENDING": "payment_pending",
}


def status_filter(status: str, now: datetime):
    """SQL criteria matching auctions whose effective status is ``status``."""
    if status in (STATUS_DRAFT, STATUS_CLOSED):
        return Auction.status == status

    scheduled = Auction.status.notin_((STATUS_DRAFT, STATUS_CLOSED))
    ended = or_(
        and_(Auction.end_time.is_not(None), Auction.end_time <= now),
        and_(Auction.status == STATUS_ENDED, Auction.end_time.is_(None)),
    )
    if status == STATUS_UPCOMING:
        return and_(scheduled, Auction.start_time.is_not(None), Auction.start_time > now)
    if status == STATUS_ENDED:
        return and_(scheduled, ended)
    return and_(
        scheduled,
        or_(Auction.start_time.is_(None), Auction.start_time <= now),
        ~ended,
    )


class AuctionService:
    """Service class for auction CRUD.

    Bid state is never written here; see BidService.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, auction_id: str) -> Auction | None:
        result = await self.db.execute(
            select(Auction).where(Auction.auction_id == auction_id)
        )
        return result.scalar_one_or_none()

    async def require(self, auction_id: str) -> Auction:
        """Get an auction or raise AuctionNotFoundError."""
        auction = await self.get_by_id(auction_id)
        if auction is None:
            raise AuctionNotFoundError(auction_id)
        return auction

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        published_only: bool = False,
        status: str | None = None,
        location: str | None = None,
        seller_id: str | None = None,
    ) -> tuple[list[Auction], int]:
        """Get auctions with optional filters and pagination.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return
            published_only: Exclude drafts
            status: Effective status to match (``live`` is accepted for ``active``)
            location: Case-insensitive substring of the location
            seller_id: Only auctions created by this seller

        Returns:
            Tuple of (auctions list, total count)
        """
        criteria = []
        if published_only:
            criteria.append(Auction.status != STATUS_DRAFT)
        if status:
            wanted = normalize_status(status, default="")
            if not wanted:
                raise BidValidationError(f"Invalid status: {status}")
            criteria.append(status_filter(wanted, utcnow()))
        if location:
            criteria.append(Auction.location.ilike(f"%{location}%"))
        if seller_id:
            criteria.append(Auction.seller_id == seller_id)

        count_result = await self.db.execute(
            select(func.count(Auction.auction_id)).where(*criteria)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(Auction)
            .where(*criteria)
            .order_by(Auction.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def create(self, data: AuctionCreate) -> Auction:
        """Create a draft or published auction.

        Unknown or seller-forbidden statuses fall back to ``draft``.
        """
        status = normalize_status(data.status)
        if status not in SELLER_STATUSES:
            status = STATUS_DRAFT

        auction = Auction(
            seller_id=data.seller_id,
            title=data.title,
            description=data.description,
            artist_name=data.artist_name,
            medium=data.medium,
            dimensions=data.dimensions,
            year=data.year,
            condition=data.condition,
            images=list(data.images),
            location=data.location,
            starting_bid=data.starting_bid,
            bid_increment=data.bid_increment or settings.DEFAULT_BID_INCREMENT,
            start_time=data.start_time,
            end_time=data.end_time,
            current_bid=data.starting_bid,
            bid_count=0,
            status=status,
        )
        self.db.add(auction)
        await self.db.commit()
        await self.db.refresh(auction)

        logger.info(
            f"Auction created: id={auction.auction_id}, seller={auction.seller_id}, "
            f"status={auction.status}"
        )
        return auction

    async def update(self, auction_id: str, data: AuctionUpdate) -> Auction:
        """Apply a metadata update from the seller or an admin.

        Raises:
            AuctionNotFoundError: Unknown auction
            AuctionStateError: Auction is already closed
            BidValidationError: Resulting time window is invalid
        """
        auction = await self.require(auction_id)
        if auction.status == STATUS_CLOSED:
            raise AuctionStateError("Closed auctions cannot be modified")

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "status" in changes:
            status = normalize_status(changes["status"], default=auction.status)
            if status not in SELLER_STATUSES + (STATUS_ENDED,):
                raise AuctionStateError(f"Status cannot be set to {status}")
            if status == STATUS_DRAFT and auction.bid_count > 0:
                raise AuctionStateError("Auctions with bids cannot return to draft")
            changes["status"] = status

        start = as_utc(changes.get("start_time", auction.start_time))
        end = as_utc(changes.get("end_time", auction.end_time))
        if start and end and end <= start:
            raise BidValidationError("endTime must be after startTime")

        for field, value in changes.items():
            setattr(auction, field, value)
        await self.db.commit()
        await self.db.refresh(auction)

        logger.info(f"Auction updated: id={auction_id}, fields={sorted(changes)}")
        return auction

    async def publish(self, auction_id: str) -> Auction:
        """Move a draft into the bidding schedule."""
        auction = await self.require(auction_id)
        if auction.status != STATUS_DRAFT:
            raise AuctionStateError(f"Only drafts can be published (status: {auction.status})")

        auction.status = STATUS_ACTIVE
        await self.db.commit()
        await self.db.refresh(auction)

        logger.info(f"Auction published: id={auction_id}")
        return auction

    async def delete(self, auction_id: str) -> None:
        """Delete a draft that has never received a bid."""
        auction = await self.require(auction_id)
        if auction.status != STATUS_DRAFT or auction.bid_count > 0:
            raise AuctionStateError("Only draft auctions without bids can be deleted")

        await self.db.delete(auction)
        await self.db.commit()
        logger.info(f"Auction deleted: id={auction_id}")

    async def apply_payment(self, event: PaymentWebhook) -> Auction:
        """Record a payment provider notification against an auction.

        ``COMPLETE`` closes the auction; other statuses only update
        ``payment_status``.
        """
        auction = await self.require(event.auction_id)

        auction.payment_status = PAYMENT_STATUSES[event.payment_status]
        if event.payment_id:
            auction.payment_id = event.payment_id

        if event.payment_status == "COMPLETE":
            if auction.effective_status() == STATUS_ACTIVE:
                logger.warning(f"Payment completed for auction {auction.auction_id} before it ended")
            auction.status = STATUS_CLOSED
            auction.paid_amount = event.amount if event.amount is not None else auction.current_bid
            auction.paid_at = utcnow()

        await self.db.commit()
        await self.db.refresh(auction)

        logger.info(
            f"Payment {event.payment_status} recorded: auction={auction.auction_id}, "
            f"payment_id={event.payment_id}"
        )
        return auction
