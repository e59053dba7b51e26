"""Tests for bid update fan-out.

Verifies target resolution (auction subscribers plus wildcard), pruning of
gone connections, and that one bad connection never blocks the others.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

from artbid.services.broadcast_service import (
    BroadcastNotifier,
    BroadcastService,
    RelayListener,
    drain_background_broadcasts,
)
from artbid.services.connection_registry import ConnectionRegistry
from artbid.services.exceptions import (
    ConnectionGoneError,
    DeliveryError,
    StoreUnavailableError,
)
from artbid.services.relay import BroadcastRelay
from artbid.services.transport import LocalWebSocketTransport

BID = {
    "bidId": "bid-1",
    "bidAmount": 600.0,
    "bidderId": "user-1",
    "bidTime": "2026-01-01T12:00:00+00:00",
}


class RecordingTransport:
    """Transport double that records sends and raises per handle."""

    node_id = None

    def __init__(self, failures: dict[str, Exception] | None = None):
        self.failures = failures or {}
        self.sent: dict[str, dict] = {}

    async def send(self, handle: str, message: dict) -> None:
        if handle in self.failures:
            raise self.failures[handle]
        self.sent[handle] = message


def subscriptions(mock_registry: MagicMock, by_auction: dict[str, list[str]]) -> MagicMock:
    """Point the registry mock at a fixed subscription table."""

    async def find_by_auction(auction_id):
        return by_auction.get(auction_id, [])

    mock_registry.find_by_auction = AsyncMock(side_effect=find_by_auction)
    mock_registry.find_wildcard = AsyncMock(return_value=by_auction.get("*", []))
    return mock_registry


class TestBroadcast:
    """Fan-out behaviour of BroadcastService.broadcast."""

    @pytest.mark.asyncio
    async def test_fan_out_reaches_auction_and_wildcard_subscribers(self, mock_registry):
        """c1, c2 follow A1 and c3 follows everything; c4 on A2 is left out."""
        registry = subscriptions(
            mock_registry, {"A1": ["c1", "c2"], "A2": ["c4"], "*": ["c3"]}
        )
        transport = RecordingTransport()

        result = await BroadcastService(registry, transport).broadcast("A1", BID)

        assert set(transport.sent) == {"c1", "c2", "c3"}
        assert result.attempted == 3
        assert result.delivered == 3
        assert result.pruned == 0
        assert result.failed == 0

        message = transport.sent["c1"]
        assert message["action"] == "bidUpdate"
        assert message["auctionId"] == "A1"
        assert message["bid"] == BID
        assert message["timestamp"]

    @pytest.mark.asyncio
    async def test_handle_in_both_sets_is_sent_once(self, mock_registry):
        registry = subscriptions(mock_registry, {"A1": ["c1", "c2"], "*": ["c2", "c3"]})
        transport = MagicMock()
        transport.node_id = None
        transport.send = AsyncMock(return_value=None)

        result = await BroadcastService(registry, transport).broadcast("A1", BID)

        assert result.attempted == 3
        sent_to = [call.args[0] for call in transport.send.await_args_list]
        assert sorted(sent_to) == ["c1", "c2", "c3"]

    @pytest.mark.asyncio
    async def test_gone_connection_is_pruned(self, mock_registry):
        """A gone connection is removed; the others still get the update."""
        registry = subscriptions(mock_registry, {"A1": ["c1", "c2", "c3"]})
        transport = RecordingTransport(failures={"c2": ConnectionGoneError("c2")})

        result = await BroadcastService(registry, transport).broadcast("A1", BID)

        assert set(transport.sent) == {"c1", "c3"}
        assert result.delivered == 2
        assert result.pruned == 1
        registry.disconnect.assert_awaited_once_with("c2")

    @pytest.mark.asyncio
    async def test_transient_failure_keeps_connection(self, mock_registry):
        registry = subscriptions(mock_registry, {"A1": ["c1", "c2"]})
        transport = RecordingTransport(failures={"c1": DeliveryError("c1", "HTTP 500")})

        result = await BroadcastService(registry, transport).broadcast("A1", BID)

        assert result.delivered == 1
        assert result.failed == 1
        assert result.pruned == 0
        registry.disconnect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, mock_registry):
        registry = subscriptions(mock_registry, {"A1": ["c1", "c2"]})
        transport = RecordingTransport(failures={"c2": ValueError("bad frame")})

        result = await BroadcastService(registry, transport).broadcast("A1", BID)

        assert set(transport.sent) == {"c1"}
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_prune_failure_counts_as_failed(self, mock_registry):
        registry = subscriptions(mock_registry, {"A1": ["c1", "c2"]})
        registry.disconnect = AsyncMock(side_effect=StoreUnavailableError())
        transport = RecordingTransport(failures={"c1": ConnectionGoneError("c1")})

        result = await BroadcastService(registry, transport).broadcast("A1", BID)

        assert result.delivered == 1
        assert result.pruned == 0
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_no_subscribers(self, mock_registry):
        transport = MagicMock()
        transport.send = AsyncMock()

        result = await BroadcastService(mock_registry, transport).broadcast("A1", BID)

        assert result.attempted == 0
        transport.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_registry_failure_raises(self, mock_registry):
        mock_registry.find_by_auction = AsyncMock(side_effect=StoreUnavailableError())

        with pytest.raises(StoreUnavailableError):
            await BroadcastService(mock_registry, RecordingTransport()).broadcast("A1", BID)

    @pytest.mark.asyncio
    async def test_wildcard_target_is_looked_up_once(self, mock_registry):
        registry = subscriptions(mock_registry, {"*": ["c3"]})
        transport = RecordingTransport()

        result = await BroadcastService(registry, transport).broadcast("*", BID)

        assert result.delivered == 1
        registry.find_wildcard.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, mock_registry):
        """Deliveries overlap, but never more than max_concurrency at once."""
        handles = [f"c{i}" for i in range(10)]
        registry = subscriptions(mock_registry, {"A1": handles})
        in_flight = 0
        peak = 0

        class SlowTransport:
            async def send(self, handle, message):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1

        result = await BroadcastService(registry, SlowTransport(), max_concurrency=3).broadcast(
            "A1", BID
        )

        assert result.delivered == 10
        assert 1 < peak <= 3


class TestBroadcastNotifier:
    """Background scheduling after a committed bid."""

    @pytest.mark.asyncio
    async def test_schedule_runs_broadcast(self):
        service = MagicMock()
        service.broadcast = AsyncMock()

        task = BroadcastNotifier(service).schedule("A1", BID)
        await task

        service.broadcast.assert_awaited_once_with("A1", BID, "bidUpdate")

    @pytest.mark.asyncio
    async def test_call_uses_bid_payload(self):
        service = MagicMock()
        service.broadcast = AsyncMock()
        bid = MagicMock()
        bid.auction_id = "A1"
        bid.to_payload.return_value = BID

        await BroadcastNotifier(service)(bid)

        service.broadcast.assert_awaited_once_with("A1", BID, "bidUpdate")

    @pytest.mark.asyncio
    async def test_background_failure_is_swallowed(self):
        """Broadcast errors end in the log, not in the caller."""
        service = MagicMock()
        service.broadcast = AsyncMock(side_effect=StoreUnavailableError())

        task = BroadcastNotifier(service).schedule("A1", BID)
        await drain_background_broadcasts(timeout=1.0)

        assert task.done()
        assert task.exception() is None


def live_socket() -> MagicMock:
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.client_state = WebSocketState.CONNECTED
    websocket.application_state = WebSocketState.CONNECTED
    return websocket


async def connect(
    registry: ConnectionRegistry,
    transport: LocalWebSocketTransport,
    auction_id: str,
    user_id: str,
) -> tuple[str, MagicMock]:
    """Open a socket on one node and subscribe it, the way /ws does."""
    websocket = live_socket()
    handle = await transport.attach(websocket)
    await registry.register(handle, user_id, owner=transport.node_id)
    await registry.subscribe(handle, auction_id, user_id)
    return handle, websocket


async def wait_until(condition, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestMultiNode:
    """Two API processes sharing one registry, each with its own sockets."""

    @pytest.mark.asyncio
    async def test_other_node_connection_is_kept(self, fake_redis):
        registry = ConnectionRegistry(fake_redis)
        node_a = LocalWebSocketTransport("node-a")
        node_b = LocalWebSocketTransport("node-b")
        handle_a, socket_a = await connect(registry, node_a, "A1", "user-1")
        handle_b, socket_b = await connect(registry, node_b, "A1", "user-2")

        result = await BroadcastService(registry, node_a).broadcast("A1", BID)

        socket_a.send_json.assert_awaited_once()
        socket_b.send_json.assert_not_awaited()
        assert result.delivered == 1
        assert result.pruned == 0
        assert await registry.get(handle_b) is not None
        assert await registry.find_by_auction("A1") == sorted([handle_a, handle_b])

    @pytest.mark.asyncio
    async def test_relay_reaches_other_node(self, fake_redis):
        registry = ConnectionRegistry(fake_redis)
        node_a = LocalWebSocketTransport("node-a")
        node_b = LocalWebSocketTransport("node-b")
        handle_b, socket_b = await connect(registry, node_b, "A1", "user-2")
        listener = RelayListener(fake_redis, node_b)
        await listener.start()

        try:
            result = await BroadcastService(
                registry, node_a, relay=BroadcastRelay(fake_redis)
            ).broadcast("A1", BID)
            await wait_until(lambda: socket_b.send_json.await_count == 1)
        finally:
            await listener.stop()

        assert result.relayed == 1
        assert result.pruned == 0
        message = socket_b.send_json.await_args.args[0]
        assert message["action"] == "bidUpdate"
        assert message["auctionId"] == "A1"
        assert message["bid"] == BID
        assert await registry.get(handle_b) is not None

    @pytest.mark.asyncio
    async def test_relay_without_listener_counts_failed(self, fake_redis):
        registry = ConnectionRegistry(fake_redis)
        node_a = LocalWebSocketTransport("node-a")
        handle_b, _ = await connect(registry, LocalWebSocketTransport("node-b"), "A1", "user-2")

        result = await BroadcastService(
            registry, node_a, relay=BroadcastRelay(fake_redis)
        ).broadcast("A1", BID)

        assert result.relayed == 0
        assert result.failed == 1
        assert await registry.get(handle_b) is not None

    @pytest.mark.asyncio
    async def test_own_lost_connection_is_pruned(self, fake_redis):
        """A handle this node registered but no longer holds is stale."""
        registry = ConnectionRegistry(fake_redis)
        node_a = LocalWebSocketTransport("node-a")
        handle, _ = await connect(registry, node_a, "A1", "user-1")
        await node_a.detach(handle)

        result = await BroadcastService(registry, node_a).broadcast("A1", BID)

        assert result.pruned == 1
        assert await registry.get(handle) is None
        assert await registry.find_by_auction("A1") == []

    @pytest.mark.asyncio
    async def test_listener_prunes_only_its_own_lost_sockets(self, fake_redis):
        registry = ConnectionRegistry(fake_redis)
        node_b = LocalWebSocketTransport("node-b")
        live, socket_b = await connect(registry, node_b, "A1", "user-2")
        lost, _ = await connect(registry, node_b, "A1", "user-3")
        await node_b.detach(lost)

        result = await RelayListener(fake_redis, node_b).handle(
            [live, lost], {"action": "bidUpdate", "auctionId": "A1", "bid": BID}
        )

        assert result.delivered == 1
        assert result.pruned == 1
        socket_b.send_json.assert_awaited_once()
        assert await registry.find_by_auction("A1") == [live]
