"""
Hybrid in-memory + Redis rate limiting.

Counters live in process memory and are synced to Redis every few seconds so
that several API instances converge on a shared fixed window without paying
one Redis round-trip per request.
"""

import logging
import os
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

SYNC_INTERVAL_SECONDS = 10
CLEANUP_INTERVAL_SECONDS = 60

redis_client: Optional[redis.Redis] = None

# {key: {"count": int, "reset_time": int, "last_sync": int}}
windows: dict[str, dict] = {}
windows_lock = Lock()
_last_cleanup = 0


def _mask_url(url: str) -> str:
    if "@" not in url:
        return "****"
    scheme = url.split(":", 1)[0]
    return f"{scheme}://****@{url.split('@', 1)[1]}"


def get_redis_client() -> redis.Redis:
    """Shared Redis client, from REDIS_URL or REDIS_HOST/PORT/PASSWORD"""
    global redis_client

    if redis_client is not None:
        return redis_client

    options = {
        "decode_responses": True,
        "socket_connect_timeout": 15,
        "socket_timeout": 30,
        "retry_on_timeout": True,
        "health_check_interval": 30,
        "max_connections": 20,
    }

    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        logger.info(f"📡 Connecting to Redis: {_mask_url(redis_url)}")
        client = redis.from_url(redis_url, **options)
    else:
        host = os.getenv("REDIS_HOST", "localhost")
        port = int(os.getenv("REDIS_PORT", "6379"))
        logger.info(f"📡 Connecting to Redis at {host}:{port}")
        client = redis.Redis(
            host=host,
            port=port,
            password=os.getenv("REDIS_PASSWORD"),
            db=int(os.getenv("REDIS_DB", "0")),
            ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
            **options,
        )

    try:
        client.ping()
    except Exception as e:
        logger.error(f"❌ Failed to connect to Redis: {e}")
        raise

    logger.info("✅ Redis connected")
    redis_client = client
    return redis_client


def _cleanup_expired(now: int) -> None:
    global _last_cleanup
    if now - _last_cleanup < CLEANUP_INTERVAL_SECONDS:
        return

    expired = [k for k, w in windows.items() if now >= w["reset_time"]]
    for key in expired:
        del windows[key]
    if expired:
        logger.debug(f"🧹 Dropped {len(expired)} expired rate limit windows")
    _last_cleanup = now


def _load_window(key: str, window_seconds: int, client: redis.Redis, now: int) -> dict:
    try:
        count = client.get(key)
        ttl = client.ttl(key)
        if count and ttl > 0:
            return {"count": int(count), "reset_time": now + ttl, "last_sync": now}
    except Exception as e:
        logger.warning(f"⚠️ Could not read rate limit window from Redis, using memory only: {e}")
    return {"count": 0, "reset_time": now + window_seconds, "last_sync": now}


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: redis.Redis
) -> tuple[bool, int, int]:
    """Count one hit against a fixed window.

    Returns (is_allowed, current_count, seconds_until_reset). Any unexpected
    failure denies the request.
    """
    try:
        now = int(time.time())

        with windows_lock:
            _cleanup_expired(now)

            window = windows.get(key)
            if window is None:
                window = windows[key] = _load_window(key, window_seconds, client, now)

            if now >= window["reset_time"]:
                window.update(count=0, reset_time=now + window_seconds, last_sync=0)

            allowed = window["count"] < limit
            if allowed:
                window["count"] += 1

            if now - window["last_sync"] >= SYNC_INTERVAL_SECONDS:
                try:
                    client.set(key, window["count"], ex=window_seconds)
                    window["last_sync"] = now
                except Exception as e:
                    logger.warning(f"⚠️ Failed to sync rate limit window to Redis: {e}")

            return allowed, window["count"], max(0, window["reset_time"] - now)

    except Exception as e:
        logger.error(f"❌ Rate limit check failed, denying request: {e}")
        return False, limit, 0


def _client_key(request: Request, key_prefix: str, use_ip: bool) -> str:
    if not use_ip:
        return f"{key_prefix}:global"

    client_ip = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    return f"{key_prefix}:{client_ip}"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
    use_ip: bool = True,
):
    if not RATE_LIMIT_ENABLED:
        return

    key = _client_key(request, key_prefix, use_ip)
    try:
        client = get_redis_client()
        allowed, count, ttl = check_rate_limit(key, limit, window_seconds, client)
    except Exception as e:
        logger.error(f"❌ Rate limiting unavailable for {key}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Rate limiting service temporarily unavailable",
        ) from e

    if not allowed:
        logger.warning(f"🚫 Rate limit exceeded for {key} ({count}/{limit})")
        raise HTTPException(
            status_code=429,
            detail={
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after": ttl,
                "limit": limit,
                "window_seconds": window_seconds,
            },
            headers={"Retry-After": str(ttl)},
        )

    request.state.rate_limit_remaining = limit - count
    request.state.rate_limit_limit = limit
    request.state.rate_limit_reset = int(time.time()) + ttl


def create_rate_limiter(
    limit: int, window_seconds: int, key_prefix: str = "rate_limit", use_ip: bool = True
):
    """
    Build a rate limiting dependency.

    Example:
        limit_quotes = create_rate_limiter(limit=30, window_seconds=60, key_prefix="price_quote")

        @router.post("/price-quote", dependencies=[Depends(limit_quotes)])
        async def price_quote(...):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix, use_ip)

    return rate_limiter
