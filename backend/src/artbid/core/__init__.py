from artbid.core.config import settings
from artbid.core.database import Base, async_session_maker, engine, get_db
from artbid.core.logging import setup_logging
from artbid.core.redis import close_redis, get_redis, ping_redis

__all__ = [
    "settings",
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "get_redis",
    "ping_redis",
    "close_redis",
    "setup_logging",
]
