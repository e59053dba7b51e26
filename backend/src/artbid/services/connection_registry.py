"""Connection registry: which live connection follows which auction.

Key layout in Redis:
- ``conn:{handle}``  hash with auction_id, user_id, owner, connected_at, updated_at
- ``subs:{target}``  set of handles whose subscription target is an auction id,
  or the wildcard ``*`` for connections following every auction

The per-target sets are the lookup index used by the broadcast fan-out, so no
query ever scans the whole registry.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from redis.asyncio import Redis
from redis.exceptions import RedisError

from artbid.schemas.ws import WILDCARD
from artbid.services.exceptions import BidValidationError, StoreUnavailableError

logger = logging.getLogger(__name__)

CONNECTION_PREFIX = "conn:"
INDEX_PREFIX = "subs:"


def connection_key(handle: str) -> str:
    return f"{CONNECTION_PREFIX}{handle}"


def index_key(target: str) -> str:
    return f"{INDEX_PREFIX}{target}"


@dataclass
class ConnectionRecord:
    """One registry entry."""

    handle: str
    auction_id: str | None = None
    user_id: str | None = None
    owner: str | None = None
    connected_at: str | None = None
    updated_at: str | None = None

    @property
    def is_wildcard(self) -> bool:
        return self.auction_id == WILDCARD


class ConnectionRegistry:
    """Redis-backed registry of subscriptions, shared by every API process."""

    # Move a handle to a new target: drop it from the previous index set,
    # record the new target, add it to the new index set. Returns the previous
    # target (nil when the handle had none).
    SUBSCRIBE_SCRIPT = """
    local previous = redis.call("HGET", KEYS[1], "auction_id")
    if previous and previous ~= ARGV[1] then
        redis.call("SREM", ARGV[4] .. previous, ARGV[2])
    end
    redis.call("HSET", KEYS[1], "auction_id", ARGV[1], "updated_at", ARGV[3])
    if redis.call("HEXISTS", KEYS[1], "connected_at") == 0 then
        redis.call("HSET", KEYS[1], "connected_at", ARGV[3])
    end
    if ARGV[5] ~= "" then
        redis.call("HSET", KEYS[1], "user_id", ARGV[5])
    end
    redis.call("SADD", KEYS[2], ARGV[2])
    return previous
    """

    # Delete the hash and its index membership. Returns 1 if the hash existed.
    REMOVE_SCRIPT = """
    local target = redis.call("HGET", KEYS[1], "auction_id")
    if target then
        redis.call("SREM", ARGV[2] .. target, ARGV[1])
    end
    return redis.call("DEL", KEYS[1])
    """

    def __init__(self, redis: Redis):
        """Initialize the registry with a Redis client.

        Args:
            redis: Async Redis client instance
        """
        self.redis = redis
        self._subscribe_script = None
        self._remove_script = None

    def _get_subscribe_script(self):
        if self._subscribe_script is None:
            self._subscribe_script = self.redis.register_script(self.SUBSCRIBE_SCRIPT)
        return self._subscribe_script

    def _get_remove_script(self):
        if self._remove_script is None:
            self._remove_script = self.redis.register_script(self.REMOVE_SCRIPT)
        return self._remove_script

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ==================== Write Operations ====================

    async def register(
        self,
        handle: str,
        user_id: str | None = None,
        owner: str | None = None,
    ) -> None:
        """Record a newly opened connection that has no subscription yet.

        Args:
            handle: Opaque connection handle from the transport
            user_id: Identity of the subscriber, if known
            owner: Node id of the process holding the socket
        """
        now = self._now()
        mapping = {"connected_at": now, "updated_at": now}
        if user_id:
            mapping["user_id"] = user_id
        if owner:
            mapping["owner"] = owner
        try:
            await self.redis.hset(connection_key(handle), mapping=mapping)
        except RedisError as e:
            raise StoreUnavailableError("Connection registry unavailable") from e

    async def subscribe(
        self,
        handle: str,
        auction_id: str,
        user_id: str | None = None,
    ) -> str | None:
        """Point a connection at an auction (or ``*``); last write wins.

        Calling this again with the same target leaves a single entry.

        Args:
            handle: Opaque connection handle
            auction_id: Auction id, or the wildcard sentinel
            user_id: Identity of the subscriber, if known

        Returns:
            The previous subscription target, or None
        """
        if not handle or not auction_id:
            raise BidValidationError("Missing auctionId")

        script = self._get_subscribe_script()
        try:
            previous = await script(
                keys=[connection_key(handle), index_key(auction_id)],
                args=[auction_id, handle, self._now(), INDEX_PREFIX, user_id or ""],
            )
        except RedisError as e:
            raise StoreUnavailableError("Connection registry unavailable") from e

        logger.info(
            f"Subscription updated: connection={handle}, auction={auction_id}, "
            f"previous={previous}"
        )
        return previous

    async def disconnect(self, handle: str) -> bool:
        """Remove a connection entirely. Absent handles are a no-op.

        Args:
            handle: Opaque connection handle

        Returns:
            True if an entry was removed
        """
        script = self._get_remove_script()
        try:
            removed = await script(
                keys=[connection_key(handle)],
                args=[handle, INDEX_PREFIX],
            )
        except RedisError as e:
            raise StoreUnavailableError("Connection registry unavailable") from e
        return bool(removed)

    async def unsubscribe(self, handle: str) -> bool:
        """Same as :meth:`disconnect`; the entry is dropped, not just its target."""
        return await self.disconnect(handle)

    # ==================== Lookups ====================

    async def find_by_auction(self, auction_id: str) -> list[str]:
        """Handles subscribed to exactly this auction id.

        Args:
            auction_id: Auction id (the wildcard set is looked up separately)

        Returns:
            Sorted list of connection handles
        """
        try:
            handles = await self.redis.smembers(index_key(auction_id))
        except RedisError as e:
            raise StoreUnavailableError("Connection registry unavailable") from e
        return sorted(handles or ())

    async def find_wildcard(self) -> list[str]:
        """Handles subscribed to every auction."""
        return await self.find_by_auction(WILDCARD)

    async def count(self, target: str) -> int:
        """Number of connections subscribed to ``target``."""
        try:
            return int(await self.redis.scard(index_key(target)))
        except RedisError as e:
            raise StoreUnavailableError("Connection registry unavailable") from e

    async def owners(self, handles: list[str]) -> dict[str, str | None]:
        """Owning node of each handle, None when unknown or no longer registered.

        Args:
            handles: Connection handles to look up

        Returns:
            Dict mapping handle to owner node id
        """
        if not handles:
            return {}

        # Use pipeline for a single round trip
        pipe = self.redis.pipeline()
        for handle in handles:
            pipe.hget(connection_key(handle), "owner")
        try:
            results = await pipe.execute()
        except RedisError as e:
            raise StoreUnavailableError("Connection registry unavailable") from e
        return {handle: owner or None for handle, owner in zip(handles, results)}

    async def get(self, handle: str) -> ConnectionRecord | None:
        """Fetch one registry entry.

        Args:
            handle: Opaque connection handle

        Returns:
            ConnectionRecord or None if the handle is not registered
        """
        try:
            data = await self.redis.hgetall(connection_key(handle))
        except RedisError as e:
            raise StoreUnavailableError("Connection registry unavailable") from e
        if not data:
            return None
        return ConnectionRecord(
            handle=handle,
            auction_id=data.get("auction_id"),
            user_id=data.get("user_id"),
            owner=data.get("owner"),
            connected_at=data.get("connected_at"),
            updated_at=data.get("updated_at"),
        )
