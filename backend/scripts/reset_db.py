"""Reset database to empty state.

Clears all data from:
- bids
- auctions

Also clears the Redis connection registry.

Usage:
    python -m scripts.reset_db  (from backend/)
"""

import asyncio

from redis.exceptions import RedisError
from sqlalchemy import text

from artbid.core.database import async_session_maker, engine
from artbid.core.redis import close_redis, get_redis
from artbid.services.connection_registry import CONNECTION_PREFIX, INDEX_PREFIX


async def reset_database():
    """Clear all data from the database."""
    print("=" * 60)
    print("Resetting database to empty state...")
    print("=" * 60)

    async with async_session_maker() as session:
        # Delete in correct order due to foreign key constraints
        tables = ["bids", "auctions"]

        for table in tables:
            result = await session.execute(text(f"DELETE FROM {table}"))
            print(f"  Deleted {result.rowcount} rows from {table}")

        await session.commit()
        print("\nDatabase cleared successfully!")


async def reset_redis():
    """Drop every connection registry key."""
    print("\nResetting connection registry...")

    try:
        redis = await get_redis()
        deleted = 0
        for prefix in (CONNECTION_PREFIX, INDEX_PREFIX):
            async for key in redis.scan_iter(match=f"{prefix}*"):
                deleted += await redis.delete(key)
        print(f"  Deleted {deleted} registry keys")
    except RedisError as e:
        print(f"  Warning: Could not clear Redis: {e}")
        print("  (This is OK if Redis is not running locally)")
    finally:
        await close_redis()


async def main():
    await reset_database()
    await reset_redis()

    print("\n" + "=" * 60)
    print("Reset complete!")
    print("=" * 60)
    print("\nTo re-seed the database, run:")
    print("  cd backend && python -m scripts.seed_data")
    print("=" * 60)

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
