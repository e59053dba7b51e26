"""API dependencies for database, Redis, and service access."""

from typing import Annotated

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from artbid.core.database import get_db
from artbid.core.redis import get_redis
from artbid.services.auction_service import AuctionService
from artbid.services.bid_service import BidService
from artbid.services.broadcast_service import BroadcastNotifier, BroadcastService
from artbid.services.connection_registry import ConnectionRegistry
from artbid.services.relay import BroadcastRelay
from artbid.services.transport import ConnectionTransport, get_transport

DbSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[Redis, Depends(get_redis)]


# =============================================================================
# Service dependency injection
# Services are cheap wrappers around the session / Redis client and are built
# per request; only the engine, the Redis pool and the socket table are shared.
# =============================================================================

async def get_registry(redis: RedisClient) -> ConnectionRegistry:
    return ConnectionRegistry(redis)


async def get_connection_transport() -> ConnectionTransport:
    return get_transport()


async def get_broadcast_relay(redis: RedisClient) -> BroadcastRelay:
    return BroadcastRelay(redis)


async def get_broadcast_service(
    registry: Annotated[ConnectionRegistry, Depends(get_registry)],
    transport: Annotated[ConnectionTransport, Depends(get_connection_transport)],
    relay: Annotated[BroadcastRelay, Depends(get_broadcast_relay)],
) -> BroadcastService:
    """Get BroadcastService bound to the shared registry and configured transport."""
    return BroadcastService(registry, transport, relay=relay)


async def get_bid_service(
    db: DbSession,
    broadcast_service: Annotated[BroadcastService, Depends(get_broadcast_service)],
) -> BidService:
    """Get BidService that schedules a broadcast after each accepted bid."""
    return BidService(db, notifier=BroadcastNotifier(broadcast_service))


async def get_auction_service(db: DbSession) -> AuctionService:
    return AuctionService(db)


# Type aliases for cleaner dependency injection
RegistryDep = Annotated[ConnectionRegistry, Depends(get_registry)]
BroadcastServiceDep = Annotated[BroadcastService, Depends(get_broadcast_service)]
BidServiceDep = Annotated[BidService, Depends(get_bid_service)]
AuctionServiceDep = Annotated[AuctionService, Depends(get_auction_service)]
