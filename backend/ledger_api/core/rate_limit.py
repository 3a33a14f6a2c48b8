import logging
import secrets
import threading
import time
from collections import deque

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."


class RateLimiter:
    """Sliding-window request counter keyed by caller.

    Uses a Redis sorted set when a reachable ``redis_url`` is given so the
    window is shared between workers; otherwise keeps a per-process window.
    """

    _REDIS_WINDOW_SCRIPT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]
local ttl = tonumber(ARGV[5])

redis.call("ZREMRANGEBYSCORE", key, 0, now_ms - window_ms)
if redis.call("ZCARD", key) >= limit then
  redis.call("EXPIRE", key, ttl)
  return 1
end

redis.call("ZADD", key, now_ms, member)
redis.call("EXPIRE", key, ttl)
return 0
"""

    def __init__(self, redis_url: str | None = None, key_prefix: str = "pocketledger") -> None:
        self._events: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._next_sweep = 0.0
        self._key_prefix = key_prefix
        self._redis: Redis | None = None
        if redis_url:
            try:
                client = Redis.from_url(redis_url, decode_responses=False)
                client.ping()
                self._redis = client
            except RedisError:
                logger.warning("Redis unavailable at startup, rate limiting falls back to in-process window")
                self._redis = None

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:ratelimit:{key}"

    def _exceeded_redis(self, key: str, limit: int, window_seconds: int) -> bool | None:
        if self._redis is None:
            return None
        now_ms = int(time.time() * 1000)
        try:
            result = self._redis.eval(
                self._REDIS_WINDOW_SCRIPT,
                1,
                self._redis_key(key),
                now_ms,
                window_seconds * 1000,
                limit,
                f"{now_ms}-{secrets.token_hex(6)}",
                window_seconds + 1,
            )
            return int(result or 0) == 1
        except RedisError:
            logger.warning("Redis rate limit check failed for %s, using in-process window", key)
            return None

    def exceeded(self, key: str, limit: int, window_seconds: int) -> bool:
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))

        redis_result = self._exceeded_redis(key, limit, window_seconds)
        if redis_result is not None:
            return redis_result
        return self._exceeded_local(key, limit, window_seconds)

    def _exceeded_local(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.time()
        cutoff = now - window_seconds
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + window_seconds
            events = self._events.setdefault(key, deque())
            while events and events[0] < cutoff:
                events.popleft()
            if len(events) >= limit:
                return True
            events.append(now)
            return False

    def _sweep(self, cutoff: float) -> None:
        # Callers that went quiet for a whole window hold no live events.
        idle = [key for key, events in self._events.items() if not events or events[-1] < cutoff]
        for key in idle:
            del self._events[key]

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._events)


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    if req.client:
        return req.client.host
    return "anonymous"


def install_rate_limit(app: FastAPI, limiter: RateLimiter, limit: int, window_seconds: int) -> None:
    @app.middleware("http")
    async def rate_limit_middleware(request: Request, call_next):
        exceeded = await run_in_threadpool(limiter.exceeded, f"ip:{get_client_ip(request)}", limit, window_seconds)
        if exceeded:
            return JSONResponse(status_code=429, content={"message": RATE_LIMIT_MESSAGE})
        return await call_next(request)
