"""SQLAlchemy ORM models."""

from artbid.models.auction import Auction
from artbid.models.base import TimestampMixin
from artbid.models.bid import Bid

__all__ = [
    "TimestampMixin",
    "Auction",
    "Bid",
]
