"""Internal broadcast trigger.

Used by bid producers that do not share this process's event loop (for
example a gateway integration) to fan a bid update out to subscribers.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from artbid.api.deps import BroadcastServiceDep
from artbid.schemas.ws import BroadcastRequest, BroadcastResponse
from artbid.services.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/broadcast", response_model=BroadcastResponse)
async def trigger_broadcast(
    broadcast_request: BroadcastRequest,
    broadcast_service: BroadcastServiceDep,
):
    """Push ``bidData`` to every connection following ``auctionId``."""
    try:
        result = await broadcast_service.broadcast(
            broadcast_request.auction_id,
            broadcast_request.bid_data,
            action=broadcast_request.action,
        )
    except StoreUnavailableError as e:
        logger.error(f"Broadcast failed for auction {broadcast_request.auction_id}: {e.message}")
        return JSONResponse(
            status_code=e.status_code,
            content={"message": "Broadcast failed", "error": e.message},
        )

    return BroadcastResponse(
        subscribers=result.attempted,
        delivered=result.delivered,
        stale_connections_removed=result.pruned,
    )
