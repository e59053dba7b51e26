"""Pydantic schemas for request/response validation."""

from artbid.schemas.auction import (
    AuctionCreate,
    AuctionCreatedResponse,
    AuctionListResponse,
    AuctionResponse,
    AuctionUpdate,
)
from artbid.schemas.bid import (
    BidCreate,
    BidListResponse,
    BidResponse,
    PlaceBidResponse,
    parse_bid_request,
)
from artbid.schemas.payment import PaymentWebhook, PaymentWebhookResponse
from artbid.schemas.ws import (
    WILDCARD,
    BidAcceptedAck,
    BidUpdateEvent,
    BroadcastRequest,
    BroadcastResponse,
    ErrorMessage,
    SubscribeMessage,
    SubscribedAck,
    UnsubscribedAck,
)

__all__ = [
    "AuctionCreate",
    "AuctionUpdate",
    "AuctionResponse",
    "AuctionCreatedResponse",
    "AuctionListResponse",
    "BidCreate",
    "BidResponse",
    "BidListResponse",
    "PlaceBidResponse",
    "parse_bid_request",
    "PaymentWebhook",
    "PaymentWebhookResponse",
    "WILDCARD",
    "BidUpdateEvent",
    "SubscribeMessage",
    "SubscribedAck",
    "UnsubscribedAck",
    "BidAcceptedAck",
    "ErrorMessage",
    "BroadcastRequest",
    "BroadcastResponse",
]
