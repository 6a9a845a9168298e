"""ARQ (Async Redis Queue) configuration for the payments worker."""

from urllib.parse import urlparse

from arq.connections import RedisSettings
from libs.common.config import Settings, get_settings


def get_redis_settings(settings: Settings | None = None) -> RedisSettings:
    """Build ARQ RedisSettings from REDIS_URL (``redis://`` or ``rediss://``)."""
    settings = settings or get_settings()
    parsed = urlparse(settings.REDIS_URL)

    return RedisSettings(
        host=parsed.hostname or "localhost",
        port=parsed.port or 6379,
        database=int(parsed.path.lstrip("/") or "0"),
        username=parsed.username or None,
        password=parsed.password,
        ssl=parsed.scheme == "rediss",
    )
