"""Redis pub/sub relay between API processes.

Each process holding WebSocket connections listens on ``relay:{node_id}``. A
broadcast started in one process publishes the push message there for the
connections another process owns; that process delivers to its own sockets.
"""

import json
import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from artbid.services.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

RELAY_PREFIX = "relay:"


def relay_channel(node_id: str) -> str:
    return f"{RELAY_PREFIX}{node_id}"


class BroadcastRelay:
    """Publishes push messages for connections owned by other nodes."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def publish(self, node_id: str, handles: list[str], message: dict[str, Any]) -> int:
        """Hand ``message`` to the node owning ``handles``.

        Returns:
            Number of listeners that received it (0 when the node is not running)

        Raises:
            StoreUnavailableError: If Redis rejects the publish
        """
        payload = json.dumps({"handles": handles, "message": message})
        try:
            receivers = await self.redis.publish(relay_channel(node_id), payload)
        except RedisError as e:
            raise StoreUnavailableError("Broadcast relay unavailable") from e
        logger.debug(f"Relayed {len(handles)} connections to node {node_id} ({receivers} listeners)")
        return int(receivers)
