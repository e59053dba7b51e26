"""WebSocket endpoint for live bid updates and message-driven bidding."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from artbid.api.deps import BidServiceDep, RegistryDep
from artbid.schemas.auction import AuctionResponse
from artbid.schemas.bid import BidResponse, parse_bid_request
from artbid.schemas.ws import (
    BidAcceptedAck,
    ErrorMessage,
    SubscribedAck,
    SubscribeMessage,
    UnsubscribedAck,
)
from artbid.services.bid_service import BidService
from artbid.services.connection_registry import ConnectionRegistry
from artbid.services.exceptions import AuctionError, StoreUnavailableError
from artbid.services.transport import local_transport

logger = logging.getLogger(__name__)

router = APIRouter()


async def send_model(websocket: WebSocket, model) -> None:
    await websocket.send_json(model.model_dump(mode="json", by_alias=True))


async def send_error(websocket: WebSocket, code: str, message: str) -> None:
    await send_model(websocket, ErrorMessage(code=code, message=message))


async def handle_message(
    websocket: WebSocket,
    handle: str,
    user_id: str | None,
    message: dict[str, Any],
    registry: ConnectionRegistry,
    bid_service: BidService,
) -> None:
    """Dispatch one client command by its ``action``."""
    action = message.get("action")

    if action == "subscribe":
        try:
            command = SubscribeMessage.model_validate(message)
        except ValidationError:
            await send_error(websocket, "VALIDATION_ERROR", "Missing auctionId")
            return
        await registry.subscribe(handle, command.auction_id, user_id)
        await send_model(websocket, SubscribedAck(auction_id=command.auction_id))

    elif action == "unsubscribe":
        await registry.unsubscribe(handle)
        await send_model(websocket, UnsubscribedAck())

    elif action == "placeBid":
        payload = dict(message)
        if user_id and not payload.get("bidderId") and not payload.get("userId"):
            payload["bidderId"] = user_id
        bid_data = parse_bid_request(payload)
        result = await bid_service.place_bid(
            auction_id=bid_data.auction_id,
            bid_amount=bid_data.bid_amount,
            bidder_id=bid_data.bidder_id,
        )
        await send_model(
            websocket,
            BidAcceptedAck(
                bid=BidResponse.model_validate(result.bid),
                auction=AuctionResponse.from_model(result.auction),
            ),
        )

    else:
        await send_error(websocket, "UNKNOWN_ACTION", f"Unknown action: {action}")


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    registry: RegistryDep,
    bid_service: BidServiceDep,
    user_id: str | None = Query(None, alias="userId"),
):
    """WebSocket endpoint for real-time auction updates.

    Connection URL: ws://host/ws?userId={user_id}

    Client can send:
    - {"action": "subscribe", "auctionId": "<id>" | "*"}
    - {"action": "unsubscribe"}
    - {"action": "placeBid", "auctionId", "bidAmount", "bidderId"?}
    - ping: Server responds with pong (heartbeat)

    Events pushed to client:
    - bidUpdate: Every accepted bid on the followed auction
    - subscribed / unsubscribed / bidAccepted / error: Replies to commands
    """
    handle = await local_transport.attach(websocket)

    try:
        await registry.register(handle, user_id, owner=local_transport.node_id)

        while True:
            data = await websocket.receive_text()

            # Handle ping/pong heartbeat
            if data == "ping":
                await websocket.send_text("pong")
                continue

            try:
                message = json.loads(data)
            except ValueError:
                await send_error(websocket, "INVALID_JSON", "Invalid JSON message")
                continue
            if not isinstance(message, dict):
                await send_error(websocket, "INVALID_MESSAGE", "Message must be a JSON object")
                continue

            try:
                await handle_message(websocket, handle, user_id, message, registry, bid_service)
            except AuctionError as e:
                await send_error(websocket, e.code, e.message)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: connection={handle}, user={user_id}")
    except Exception as e:
        logger.error(f"WebSocket error: connection={handle}, user={user_id}, error={e}")
    finally:
        await local_transport.detach(handle)
        try:
            await registry.disconnect(handle)
        except StoreUnavailableError as e:
            logger.warning(f"Could not remove connection {handle} from registry: {e.message}")
