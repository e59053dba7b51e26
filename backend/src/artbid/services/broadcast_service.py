"""Fan-out of bid updates to every interested connection."""

import asyncio
import json
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from artbid.core.config import settings
from artbid.middleware.metrics import record_broadcast
from artbid.models.bid import Bid
from artbid.schemas.ws import WILDCARD, BidUpdateEvent
from artbid.services.connection_registry import ConnectionRegistry
from artbid.services.exceptions import ConnectionGoneError, DeliveryError, StoreUnavailableError
from artbid.services.relay import BroadcastRelay, relay_channel
from artbid.services.transport import ConnectionTransport, LocalWebSocketTransport

logger = logging.getLogger(__name__)

DELIVERED = "delivered"
PRUNED = "pruned"
FAILED = "failed"

# Strong references to in-flight background broadcasts
_background_tasks: set[asyncio.Task] = set()


@dataclass
class BroadcastResult:
    """Counts for one fan-out pass."""

    attempted: int = 0
    delivered: int = 0
    pruned: int = 0
    failed: int = 0
    relayed: int = 0


class BroadcastService:
    """Resolves subscribers from the registry and pushes one update to each.

    Connections the transport reports as gone are removed from the registry;
    other delivery errors are logged and the entry is kept. With a transport
    bound to one node, only connections that node owns are sent to (and
    pruned) here; the rest go through the relay to their owner.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: ConnectionTransport,
        max_concurrency: int | None = None,
        relay: BroadcastRelay | None = None,
    ):
        self.registry = registry
        self.transport = transport
        self.max_concurrency = max_concurrency or settings.BROADCAST_MAX_CONCURRENCY
        self.relay = relay

    async def resolve_targets(self, auction_id: str) -> list[str]:
        """Union of the auction's subscribers and wildcard subscribers, de-duplicated."""
        specific = await self.registry.find_by_auction(auction_id)
        wildcard = [] if auction_id == WILDCARD else await self.registry.find_wildcard()
        return list(dict.fromkeys([*specific, *wildcard]))

    async def partition(self, handles: list[str]) -> tuple[list[str], dict[str, list[str]]]:
        """Split handles into ones this transport owns and ones owned elsewhere.

        Handles without an owner entry were removed after the index lookup and
        are dropped.
        """
        node_id = getattr(self.transport, "node_id", None)
        if node_id is None:
            return handles, {}

        owners = await self.registry.owners(handles)
        local: list[str] = []
        remote: dict[str, list[str]] = defaultdict(list)
        for handle in handles:
            owner = owners.get(handle)
            if owner == node_id:
                local.append(handle)
            elif owner:
                remote[owner].append(handle)
        return local, dict(remote)

    async def broadcast(
        self,
        auction_id: str,
        bid_payload: dict[str, Any],
        action: str = "bidUpdate",
    ) -> BroadcastResult:
        """Deliver one update to every connection interested in ``auction_id``.

        Args:
            auction_id: Auction the update is about
            bid_payload: bidId, bidAmount, bidderId, bidTime
            action: Action tag of the push message

        Returns:
            BroadcastResult with attempted/delivered/pruned/failed/relayed counts

        Raises:
            StoreUnavailableError: If the registry lookup fails
        """
        start = time.perf_counter()
        handles = await self.resolve_targets(auction_id)
        result = BroadcastResult(attempted=len(handles))
        if not handles:
            logger.info(f"No subscribers for auction {auction_id}")
            return result

        message = BidUpdateEvent(
            action=action,
            auction_id=auction_id,
            bid=bid_payload,
            timestamp=datetime.now(timezone.utc),
        ).model_dump(mode="json", by_alias=True)

        local, remote = await self.partition(handles)

        local_result = await self.deliver(local, message)
        result.delivered = local_result.delivered
        result.pruned = local_result.pruned
        result.failed = local_result.failed

        for node_id, node_handles in remote.items():
            if await self._relay(node_id, node_handles, message):
                result.relayed += len(node_handles)
            else:
                result.failed += len(node_handles)

        duration = time.perf_counter() - start
        record_broadcast(result.delivered, result.pruned, result.failed, duration)
        logger.info(
            f"Broadcast {action} for auction {auction_id}: attempted={result.attempted}, "
            f"delivered={result.delivered}, pruned={result.pruned}, failed={result.failed}, "
            f"relayed={result.relayed}"
        )
        return result

    async def deliver(self, handles: list[str], message: dict[str, Any]) -> BroadcastResult:
        """Push a prepared message to handles this transport can reach."""
        result = BroadcastResult(attempted=len(handles))
        if not handles:
            return result

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def deliver_one(handle: str) -> str:
            async with semaphore:
                try:
                    await self.transport.send(handle, message)
                    return DELIVERED
                except ConnectionGoneError:
                    return await self._prune(handle)
                except DeliveryError as e:
                    logger.warning(f"Delivery failed, keeping connection {handle}: {e.reason}")
                    return FAILED
                except Exception as e:
                    logger.warning(f"Unexpected delivery error for connection {handle}: {e}")
                    return FAILED

        outcomes = await asyncio.gather(*[deliver_one(h) for h in handles])

        result.delivered = outcomes.count(DELIVERED)
        result.pruned = outcomes.count(PRUNED)
        result.failed = outcomes.count(FAILED)
        return result

    async def _relay(self, node_id: str, handles: list[str], message: dict[str, Any]) -> bool:
        if self.relay is None:
            logger.warning(f"No relay configured, skipping {len(handles)} connections on node {node_id}")
            return False
        try:
            receivers = await self.relay.publish(node_id, handles, message)
        except StoreUnavailableError as e:
            logger.warning(f"Relay to node {node_id} failed: {e.message}")
            return False
        if receivers == 0:
            logger.warning(f"Node {node_id} is not listening, {len(handles)} connections not reached")
            return False
        return True

    async def _prune(self, handle: str) -> str:
        try:
            await self.registry.disconnect(handle)
        except Exception as e:
            logger.warning(f"Could not remove stale connection {handle}: {e}")
            return FAILED
        logger.info(f"Removed stale connection {handle}")
        return PRUNED


class BroadcastNotifier:
    """Schedules a broadcast for an accepted bid without waiting on it."""

    def __init__(self, broadcast_service: BroadcastService):
        self.broadcast_service = broadcast_service

    def __call__(self, bid: Bid) -> asyncio.Task:
        return self.schedule(bid.auction_id, bid.to_payload())

    def schedule(
        self,
        auction_id: str,
        bid_payload: dict[str, Any],
        action: str = "bidUpdate",
    ) -> asyncio.Task:
        task = asyncio.create_task(self._run(auction_id, bid_payload, action))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task

    async def _run(self, auction_id: str, bid_payload: dict[str, Any], action: str) -> None:
        try:
            await self.broadcast_service.broadcast(auction_id, bid_payload, action)
        except Exception:
            logger.exception(f"Background broadcast failed for auction {auction_id}")


async def drain_background_broadcasts(timeout: float = 5.0) -> None:
    """Wait for in-flight broadcasts, e.g. on shutdown."""
    if _background_tasks:
        await asyncio.wait(list(_background_tasks), timeout=timeout)


class RelayListener:
    """Delivers broadcasts relayed by other nodes to this node's sockets.

    Subscribes to ``relay:{node_id}`` for the local transport and runs one
    background task for the life of the process.
    """

    def __init__(self, redis: Redis, transport: LocalWebSocketTransport, retry_delay: float = 1.0):
        self.redis = redis
        self.transport = transport
        self.retry_delay = retry_delay
        self._pubsub = None
        self._task: asyncio.Task | None = None

    @property
    def channel(self) -> str:
        return relay_channel(self.transport.node_id)

    async def start(self) -> None:
        self._pubsub = self.redis.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._task = asyncio.create_task(self._listen())
        logger.info(f"Relay listener started on {self.channel}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None

    async def handle(self, handles: list[str], message: dict[str, Any]) -> BroadcastResult:
        """Deliver one relayed message; gone sockets are ours, so they are pruned."""
        service = BroadcastService(ConnectionRegistry(self.redis), self.transport)
        result = await service.deliver(handles, message)
        logger.info(
            f"Relayed {message.get('action')} for auction {message.get('auctionId')}: "
            f"delivered={result.delivered}, pruned={result.pruned}, failed={result.failed}"
        )
        return result

    async def _listen(self) -> None:
        while True:
            try:
                async for item in self._pubsub.listen():
                    if item["type"] != "message":
                        continue
                    await self._dispatch(item["data"])
                return
            except RedisError as e:
                logger.warning(f"Relay subscription interrupted, retrying: {e}")
                await asyncio.sleep(self.retry_delay)

    async def _dispatch(self, data: str | bytes) -> None:
        try:
            payload = json.loads(data)
            await self.handle(payload["handles"], payload["message"])
        except Exception:
            logger.exception(f"Could not deliver relayed broadcast on {self.channel}")
