"""Delivery transports for pushing messages to live connections.

Two backends share one interface:

- ``LocalWebSocketTransport`` owns the sockets accepted by this process's
  ``/ws`` endpoint and hands out their connection handles. Connections owned
  by other processes are reached through the broadcast relay.
- ``GatewayTransport`` posts to a managed WebSocket gateway's connection
  callback API (``POST {endpoint}/@connections/{handle}``), where HTTP 410
  means the connection is gone.
"""

import asyncio
import logging
import uuid
from typing import Any, Protocol

import httpx
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from artbid.core.config import settings
from artbid.services.exceptions import ConnectionGoneError, DeliveryError

logger = logging.getLogger(__name__)


class ConnectionTransport(Protocol):
    """Anything that can push one JSON message to one connection handle.

    ``node_id`` is set when the transport only reaches connections owned by
    this process, and None when it reaches every connection (gateway).
    """

    node_id: str | None

    async def send(self, handle: str, message: dict[str, Any]) -> None:
        """Deliver ``message``.

        Raises:
            ConnectionGoneError: The connection no longer exists
            DeliveryError: Any other failure; the connection may still be alive
        """
        ...


class LocalWebSocketTransport:
    """Sockets held by this process, keyed by the handle assigned at connect.

    Other API processes hold their own tables; ``node_id`` is recorded as the
    owner of every connection registered from here.
    """

    def __init__(self, node_id: str | None = None):
        self.node_id = node_id or uuid.uuid4().hex
        self._sockets: dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def attach(self, websocket: WebSocket) -> str:
        """Accept a socket and return its new connection handle."""
        await websocket.accept()
        handle = uuid.uuid4().hex
        async with self._lock:
            self._sockets[handle] = websocket
        logger.info(f"WebSocket attached: connection={handle}, local_size={len(self._sockets)}")
        return handle

    async def detach(self, handle: str) -> None:
        async with self._lock:
            self._sockets.pop(handle, None)

    def is_attached(self, handle: str) -> bool:
        return handle in self._sockets

    def __len__(self) -> int:
        return len(self._sockets)

    async def send(self, handle: str, message: dict[str, Any]) -> None:
        websocket = self._sockets.get(handle)
        if websocket is None:
            raise ConnectionGoneError(handle)
        if (
            websocket.client_state != WebSocketState.CONNECTED
            or websocket.application_state != WebSocketState.CONNECTED
        ):
            await self.detach(handle)
            raise ConnectionGoneError(handle)

        try:
            await websocket.send_json(message)
        except WebSocketDisconnect as e:
            await self.detach(handle)
            raise ConnectionGoneError(handle) from e
        except RuntimeError as e:
            # Starlette raises RuntimeError once the socket has been closed
            await self.detach(handle)
            raise ConnectionGoneError(handle) from e
        except Exception as e:
            raise DeliveryError(handle, str(e)) from e


class GatewayTransport:
    """Pushes through a managed gateway's HTTP connection callback API."""

    # The gateway reaches every connection, whichever process registered it
    node_id = None

    def __init__(
        self,
        endpoint: str,
        client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
        timeout: float = 5.0,
    ):
        self.endpoint = endpoint.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=headers,
        )

    async def send(self, handle: str, message: dict[str, Any]) -> None:
        url = f"{self.endpoint}/@connections/{handle}"
        try:
            response = await self.client.post(url, json=message)
        except httpx.HTTPError as e:
            raise DeliveryError(handle, f"{type(e).__name__}: {e}") from e

        if response.status_code == 410:
            raise ConnectionGoneError(handle)
        if response.status_code >= 400:
            raise DeliveryError(handle, f"gateway returned HTTP {response.status_code}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


# Process-level socket table for the /ws endpoint
local_transport = LocalWebSocketTransport()

_gateway_transport: GatewayTransport | None = None


def get_transport() -> ConnectionTransport:
    """Transport selected by ``TRANSPORT_BACKEND``."""
    global _gateway_transport
    if settings.TRANSPORT_BACKEND == "gateway":
        if _gateway_transport is None:
            _gateway_transport = GatewayTransport(
                settings.GATEWAY_ENDPOINT,
                api_key=settings.GATEWAY_API_KEY,
                timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            )
        return _gateway_transport
    return local_transport


async def close_transport() -> None:
    global _gateway_transport
    if _gateway_transport is not None:
        await _gateway_transport.aclose()
        _gateway_transport = None
