"""Payment provider callback schema."""

from decimal import Decimal
from typing import Literal

from pydantic import Field

from artbid.schemas.base import CamelModel

PaymentStatus = Literal["COMPLETE", "FAILED", "CANCELLED", "PENDING"]


class PaymentWebhook(CamelModel):
    """Asynchronous payment notification, keyed by the auction reference."""

    payment_status: PaymentStatus
    auction_id: str = Field(..., min_length=1, max_length=64)
    payment_id: str | None = Field(default=None, max_length=128)
    amount: Decimal | None = Field(default=None, ge=0)


class PaymentWebhookResponse(CamelModel):
    message: str = "OK"
    auction_id: str
    status: str
    payment_status: str | None
