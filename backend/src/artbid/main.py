import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from artbid.api.v1 import auctions, bids, broadcast, payments, ws
from artbid.core.config import settings
from artbid.core.database import engine
from artbid.core.logging import setup_logging
from artbid.core.redis import close_redis, get_redis, ping_redis
from artbid.middleware.metrics import PrometheusMiddleware, metrics_endpoint
from artbid.services.broadcast_service import RelayListener, drain_background_broadcasts
from artbid.services.exceptions import AuctionError
from artbid.services.transport import close_transport, local_transport

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    setup_logging()
    logger.info(f"Starting application (transport={settings.TRANSPORT_BACKEND})...")

    # Broadcasts started on other nodes reach this node's sockets through the relay
    relay_listener = RelayListener(await get_redis(), local_transport)
    try:
        await relay_listener.start()
    except RedisError as e:
        logger.warning(f"Relay listener not started, Redis unavailable: {e}")

    yield

    # Shutdown
    logger.info("Waiting for in-flight broadcasts")
    await drain_background_broadcasts()
    await relay_listener.stop()
    await close_transport()
    await close_redis()
    await engine.dispose()
    logger.info("Application stopped")


app = FastAPI(
    title="Art Auction Bidding",
    version="1.0.0",
    description="Live bidding and real-time bid updates for art auctions",
    lifespan=lifespan,
)

# Prometheus Metrics Middleware (must be first to capture all requests)
app.add_middleware(PrometheusMiddleware)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuctionError)
async def auction_error_handler(request: Request, exc: AuctionError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"message": "Storage temporarily unavailable"},
    )


# Include API routers
app.include_router(auctions.router, prefix="/api/v1/auctions", tags=["auctions"])
app.include_router(bids.router, prefix="/api/v1/bids", tags=["bids"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["payments"])
app.include_router(broadcast.router, prefix="/api/v1/internal", tags=["internal"])

# WebSocket router (no prefix, endpoint is /ws)
app.include_router(ws.router, tags=["websocket"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    redis_ok = await ping_redis()
    return {"status": "healthy" if redis_ok else "degraded", "redis": redis_ok}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
