"""API v1 routers."""

from artbid.api.v1 import auctions, bids, broadcast, payments, ws

__all__ = ["auctions", "bids", "broadcast", "payments", "ws"]
