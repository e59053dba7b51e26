"""Real-time message schemas: pushes, client commands, and broadcast trigger."""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from artbid.schemas.auction import AuctionResponse
from artbid.schemas.base import CamelModel
from artbid.schemas.bid import BidResponse

WILDCARD = "*"


class BidUpdateEvent(CamelModel):
    """Push message delivered to every subscribed connection."""

    action: str = "bidUpdate"
    auction_id: str
    bid: dict[str, Any]
    timestamp: datetime


class SubscribeMessage(CamelModel):
    """Client command selecting which auction (or ``*``) to follow."""

    action: Literal["subscribe"]
    auction_id: str = Field(..., min_length=1, max_length=64)


class SubscribedAck(CamelModel):
    action: Literal["subscribed"] = "subscribed"
    auction_id: str


class UnsubscribedAck(CamelModel):
    action: Literal["unsubscribed"] = "unsubscribed"


class BidAcceptedAck(CamelModel):
    """Reply to a placeBid command sent over the socket."""

    action: Literal["bidAccepted"] = "bidAccepted"
    bid: BidResponse
    auction: AuctionResponse


class ErrorMessage(CamelModel):
    """Error reply sent back over the socket."""

    action: Literal["error"] = "error"
    code: str
    message: str


class BroadcastRequest(CamelModel):
    """Internal trigger asking for one fan-out pass."""

    auction_id: str = Field(..., min_length=1, max_length=64)
    bid_data: dict[str, Any]
    action: str = "bidUpdate"


class BroadcastResponse(CamelModel):
    """Summary of a fan-out pass."""

    message: str = "Broadcast successful"
    subscribers: int
    delivered: int
    stale_connections_removed: int
