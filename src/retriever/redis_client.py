"""Shared Redis connection for rate limiting and email throttling.

Redis is optional: without it the API still registers and activates
accounts, only the request and email rate limits are off.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> None:
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis_or_none() -> redis.Redis | None:
    return _client


async def ping_redis() -> str:
    """'ok', 'disabled' when never initialised, or the connection error."""
    if _client is None:
        return "disabled"
    try:
        await _client.ping()
    except redis.RedisError as exc:
        return f"error: {exc}"
    return "ok"
