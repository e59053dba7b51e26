"""Payment provider webhook."""

from fastapi import APIRouter

from artbid.api.deps import AuctionServiceDep
from artbid.schemas.payment import PaymentWebhook, PaymentWebhookResponse

router = APIRouter()


@router.post("/webhook", response_model=PaymentWebhookResponse)
async def payment_webhook(event: PaymentWebhook, auction_service: AuctionServiceDep):
    """Record a payment notification for the auction it references."""
    auction = await auction_service.apply_payment(event)
    return PaymentWebhookResponse(
        auction_id=auction.auction_id,
        status=auction.effective_status(),
        payment_status=auction.payment_status,
    )
