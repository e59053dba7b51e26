"""Seed data script for development and testing.

Creates:
- 1 draft auction
- AUCTION_COUNT live auctions, ending AUCTION_DURATION_MINUTES from now
- 1 upcoming auction starting in an hour

Environment Variables:
    AUCTION_DURATION_MINUTES: Live auction duration in minutes (default: 20)
    AUCTION_COUNT: Number of live auctions (default: 3)
    RESET_DATA: Set to "true" to clear bids/auctions before seeding (default: false)

Usage:
    # First time setup
    python -m scripts.seed_data

    # Reset and create fresh live auctions
    RESET_DATA=true AUCTION_DURATION_MINUTES=30 python -m scripts.seed_data
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

# Configuration from environment variables
AUCTION_DURATION_MINUTES = int(os.getenv("AUCTION_DURATION_MINUTES", "20"))
AUCTION_COUNT = int(os.getenv("AUCTION_COUNT", "3"))
RESET_DATA = os.getenv("RESET_DATA", "false").lower() == "true"

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from artbid.core.database import async_session_maker, engine
from artbid.models import Auction
from artbid.models.auction import STATUS_ACTIVE, STATUS_DRAFT

ARTWORKS = [
    ("Harbour at Dusk", "Thandi Mokoena", "Oil on canvas", "90 x 120 cm", "Cape Town"),
    ("Karoo Study No. 4", "Pieter van Wyk", "Watercolour", "40 x 55 cm", "Johannesburg"),
    ("Red Earth", "Lindiwe Dube", "Acrylic on board", "60 x 60 cm", "Durban"),
    ("Quiet Orchard", "Anna Botha", "Charcoal on paper", "50 x 70 cm", "Stellenbosch"),
    ("Tidal Forms", "Sipho Ndlovu", "Bronze", "35 x 20 x 20 cm", "Pretoria"),
]


async def reset_auction_data(session: AsyncSession) -> None:
    """Clear bids and auctions for a fresh run."""
    print("Resetting auction data...")
    await session.execute(text("DELETE FROM bids"))
    await session.execute(text("DELETE FROM auctions"))
    await session.commit()
    print("  Cleared bids, auctions")


def build_auction(index: int, status: str, start: datetime, end: datetime) -> Auction:
    title, artist, medium, dimensions, location = ARTWORKS[index % len(ARTWORKS)]
    starting_bid = Decimal(500 + 250 * index)
    return Auction(
        seller_id=f"seller-{index % 2 + 1}",
        title=title,
        description=f"{medium} by {artist}.",
        artist_name=artist,
        medium=medium,
        dimensions=dimensions,
        year=str(2015 + index),
        condition="Excellent",
        images=[],
        location=location,
        starting_bid=starting_bid,
        bid_increment=Decimal("50.00"),
        start_time=start,
        end_time=end,
        current_bid=starting_bid,
        bid_count=0,
        status=status,
    )


async def seed_auctions(session: AsyncSession) -> list[Auction]:
    """Create one draft, the live auctions, and one upcoming auction."""
    print("Seeding auctions...")

    # Check if auctions already exist (skip check if RESET_DATA is true)
    if not RESET_DATA:
        result = await session.execute(select(Auction).limit(1))
        if result.scalar_one_or_none():
            print("  Auctions already exist, skipping...")
            result = await session.execute(select(Auction))
            return list(result.scalars().all())

    now = datetime.now(timezone.utc)
    live_end = now + timedelta(minutes=AUCTION_DURATION_MINUTES)

    auctions = [build_auction(0, STATUS_DRAFT, now, live_end)]
    for i in range(AUCTION_COUNT):
        auctions.append(build_auction(i + 1, STATUS_ACTIVE, now, live_end))
    auctions.append(
        build_auction(
            AUCTION_COUNT + 1,
            STATUS_ACTIVE,
            now + timedelta(hours=1),
            now + timedelta(hours=1, minutes=AUCTION_DURATION_MINUTES),
        )
    )

    session.add_all(auctions)
    await session.commit()

    for auction in auctions:
        await session.refresh(auction)
        print(
            f"  {auction.auction_id}  {auction.effective_status():<9} "
            f"{auction.title} (starting_bid={auction.starting_bid})"
        )

    return auctions


async def main():
    """Main seed function."""
    print("=" * 60)
    print("Art Auction Bidding - Seed Data Script")
    print("=" * 60)
    print(f"  RESET_DATA: {RESET_DATA}")
    print(f"  AUCTION_DURATION_MINUTES: {AUCTION_DURATION_MINUTES}")
    print(f"  AUCTION_COUNT: {AUCTION_COUNT}")
    print("=" * 60)

    async with async_session_maker() as session:
        if RESET_DATA:
            await reset_auction_data(session)
        auctions = await seed_auctions(session)

    live = [a for a in auctions if a.effective_status() == STATUS_ACTIVE]

    print("=" * 60)
    print("Seed data complete!")
    print(f"  Auctions: {len(auctions)} ({len(live)} live)")
    print("=" * 60)
    if live:
        print("")
        print("Try a bid:")
        print("  curl -X POST http://localhost:8000/api/v1/bids \\")
        print("    -H 'Content-Type: application/json' \\")
        print(
            f"    -d '{{\"auctionId\": \"{live[0].auction_id}\", "
            f"\"bidAmount\": {live[0].minimum_next_bid()}, \"bidderId\": \"user-1\"}}'"
        )
        print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
