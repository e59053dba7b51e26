"""Bid service: validates and commits bids with optimistic concurrency."""

import logging
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from artbid.core.config import settings
from artbid.middleware.metrics import record_bid, record_bid_retry
from artbid.models.auction import STATUS_ACTIVE, Auction
from artbid.models.base import utcnow
from artbid.models.bid import Bid
from artbid.schemas.bid import INVALID_AMOUNT_MESSAGE, MISSING_FIELDS_MESSAGE
from artbid.services.exceptions import (
    AuctionError,
    AuctionNotFoundError,
    AuctionNotOpenError,
    BidTooLowError,
    BidValidationError,
    ConcurrencyConflictError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

_OUTCOMES = {
    BidValidationError: "invalid",
    AuctionNotFoundError: "not_found",
    AuctionNotOpenError: "not_open",
    BidTooLowError: "too_low",
    ConcurrencyConflictError: "conflict",
    StoreUnavailableError: "error",
}


@dataclass
class BidResult:
    """Persisted bid plus the auction snapshot after the update."""

    bid: Bid
    auction: Auction


def to_amount(value: Any) -> Decimal:
    """Coerce a client amount to Decimal, rejecting non-finite or non-positive values."""
    if isinstance(value, bool):
        raise BidValidationError(INVALID_AMOUNT_MESSAGE)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise BidValidationError(INVALID_AMOUNT_MESSAGE) from e
    if not amount.is_finite() or amount <= 0:
        raise BidValidationError(INVALID_AMOUNT_MESSAGE)
    # Stored as Numeric(12, 2); more precision would be silently rounded
    if amount.normalize().as_tuple().exponent < -2:
        raise BidValidationError(INVALID_AMOUNT_MESSAGE)
    return amount


class BidService:
    """Service class for bid placement and bid log queries.

    ``current_bid``, ``highest_bidder`` and ``bid_count`` are only ever written
    here, through a conditional UPDATE keyed on the values read just before.
    """

    def __init__(
        self,
        db: AsyncSession,
        notifier: Callable[[Bid], Any] | None = None,
        max_attempts: int | None = None,
    ):
        self.db = db
        self.notifier = notifier
        self.max_attempts = max_attempts or settings.BID_MAX_ATTEMPTS

    async def place_bid(self, auction_id: str, bid_amount: Any, bidder_id: str) -> BidResult:
        """Validate and accept a bid, or reject it without touching any state.

        Args:
            auction_id: Auction being bid on
            bid_amount: Offered amount, finite and positive
            bidder_id: Opaque id of the bidder

        Returns:
            BidResult with the new Bid and the updated Auction

        Raises:
            BidValidationError: Missing or malformed input
            AuctionNotFoundError: Unknown auction
            AuctionNotOpenError: Auction is not active
            BidTooLowError: Amount does not beat the current bid
            ConcurrencyConflictError: Lost the race on every attempt
            StoreUnavailableError: Database failure
        """
        start = time.perf_counter()
        try:
            result = await self._place_bid(auction_id, bid_amount, bidder_id)
        except AuctionError as e:
            record_bid(_OUTCOMES.get(type(e), "error"), time.perf_counter() - start)
            raise

        record_bid("accepted", time.perf_counter() - start)
        self._notify(result.bid)
        return result

    async def _place_bid(self, auction_id: str, bid_amount: Any, bidder_id: str) -> BidResult:
        if not auction_id or not bidder_id or bid_amount in (None, ""):
            raise BidValidationError(MISSING_FIELDS_MESSAGE)
        amount = to_amount(bid_amount)

        for attempt in range(1, self.max_attempts + 1):
            try:
                auction = await self._load_auction(auction_id)
                if auction is None:
                    raise AuctionNotFoundError(auction_id)

                now = utcnow()
                status = auction.effective_status(now)
                if status != STATUS_ACTIVE:
                    raise AuctionNotOpenError(status)

                minimum = auction.minimum_next_bid()
                if amount <= auction.highest_amount or amount < minimum:
                    logger.info(
                        f"Bid rejected: auction={auction_id}, bidder={bidder_id}, "
                        f"amount={amount}, current={auction.highest_amount}"
                    )
                    raise BidTooLowError(auction.highest_amount, minimum)

                if not await self._compare_and_set(auction, amount, bidder_id, now):
                    await self.db.rollback()
                    record_bid_retry()
                    logger.info(
                        f"Concurrent bid on auction {auction_id}, retrying "
                        f"(attempt {attempt}/{self.max_attempts})"
                    )
                    continue

                await self.db.refresh(auction)
                bid = Bid(
                    auction_id=auction_id,
                    bidder_id=bidder_id,
                    bid_amount=amount,
                    bid_time=now,
                )
                self.db.add(bid)
                await self.db.commit()

            except AuctionError:
                await self.db.rollback()
                raise
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.exception(f"Database error placing bid on auction {auction_id}")
                raise StoreUnavailableError() from e

            logger.info(
                f"Bid accepted: auction={auction_id}, bidder={bidder_id}, amount={amount}, "
                f"bid_count={auction.bid_count}"
            )
            return BidResult(bid=bid, auction=auction)

        logger.warning(f"Giving up on auction {auction_id} after {self.max_attempts} conflicts")
        raise ConcurrencyConflictError(auction_id, self.max_attempts)

    async def _load_auction(self, auction_id: str) -> Auction | None:
        result = await self.db.execute(
            select(Auction)
            .where(Auction.auction_id == auction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _compare_and_set(
        self,
        auction: Auction,
        amount: Decimal,
        bidder_id: str,
        now,
    ) -> bool:
        """Conditional UPDATE; False when another bid changed the row first."""
        result = await self.db.execute(
            update(Auction)
            .where(Auction.auction_id == auction.auction_id)
            .where(Auction.current_bid == auction.current_bid)
            .where(Auction.bid_count == auction.bid_count)
            .values(
                current_bid=amount,
                highest_bidder=bidder_id,
                bid_count=Auction.bid_count + 1,
                updated_at=now,
            )
            .returning(Auction.bid_count)
            .execution_options(synchronize_session=False)
        )
        return result.first() is not None

    def _notify(self, bid: Bid) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(bid)
        except Exception:
            # The bid is committed; a missed broadcast is only logged
            logger.exception(f"Could not schedule broadcast for bid {bid.bid_id}")

    # ==================== Bid Log Queries ====================

    async def get_bid_history(
        self, auction_id: str, skip: int = 0, limit: int = 50
    ) -> tuple[list[Bid], int]:
        """Bids on an auction, newest first.

        Args:
            auction_id: Auction id
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            Tuple of (bids, total count)
        """
        count_result = await self.db.execute(
            select(func.count(Bid.bid_id)).where(Bid.auction_id == auction_id)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(Bid)
            .where(Bid.auction_id == auction_id)
            .order_by(Bid.bid_time.desc(), Bid.bid_amount.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_bids_by_bidder(
        self, bidder_id: str, skip: int = 0, limit: int = 50
    ) -> tuple[list[Bid], int]:
        """Bids placed by one bidder across all auctions, newest first."""
        count_result = await self.db.execute(
            select(func.count(Bid.bid_id)).where(Bid.bidder_id == bidder_id)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            select(Bid)
            .where(Bid.bidder_id == bidder_id)
            .order_by(Bid.bid_time.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total
