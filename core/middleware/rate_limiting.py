"""
Redis-backed request rate limiting.

Sliding-window limits over Redis sorted sets for general API traffic and the
public application form. Fails open when Redis is unavailable. The relay's
per-event-type email limit is counted from the email log instead (see
api.services.webhooks).
"""

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

import redis.asyncio as redis
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.middleware.error_handling import error_envelope

logger = logging.getLogger(__name__)

UNLIMITED_PATHS = frozenset({"/health", "/ready"})


class RateLimitStrategy(str, Enum):
    """What a limit is keyed on."""
    IP_ADDRESS = "ip"
    USER_ID = "user"
    ENDPOINT = "endpoint"


class RateLimitWindow(int, Enum):
    """Window length in seconds."""
    SECOND = 1
    MINUTE = 60
    HOUR = 3600


@dataclass(frozen=True)
class RateLimitRule:
    strategy: RateLimitStrategy
    window: RateLimitWindow
    max_requests: int
    paths: tuple[str, ...] = ()
    methods: tuple[str, ...] = ()
    exempt_user_ids: frozenset[str] = frozenset()

    def applies_to(self, method: str, path: str, user_id: Optional[str] = None) -> bool:
        if self.paths and not path.startswith(self.paths):
            return False
        if self.methods and method not in self.methods:
            return False
        return user_id is None or user_id not in self.exempt_user_ids


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset: int
    retry_after: int = 0
    degraded: bool = False


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def caller_id(request: Request) -> Optional[str]:
    """User id set on the scope by AuthenticationMiddleware."""
    return getattr(request.scope.get("user"), "user_id", None)


class SlidingWindowRateLimiter:
    """
    Sliding window over one Redis sorted set per key.

    Every request is a member scored by its arrival time. Members older than
    the window are trimmed before counting, and a refused request is removed
    again so it does not count against the caller.
    """

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def hit(self, key: str, max_requests: int, window_seconds: int) -> RateLimitDecision:
        arrived = time.time()
        reset = int(arrived + window_seconds)
        member = f"{arrived}:{uuid.uuid4().hex[:8]}"

        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, arrived - window_seconds)
            pipe.zcard(key)
            pipe.zadd(key, {member: arrived})
            pipe.expire(key, window_seconds + 60)
            _, seen, _, _ = await pipe.execute()

            if seen < max_requests:
                return RateLimitDecision(
                    allowed=True,
                    limit=max_requests,
                    remaining=max_requests - seen - 1,
                    reset=reset,
                )

            await self.redis.zrem(key, member)
            oldest = await self.redis.zrange(key, 0, 0, withscores=True)
            retry_after = int(oldest[0][1] + window_seconds - arrived) if oldest else window_seconds
            return RateLimitDecision(
                allowed=False,
                limit=max_requests,
                remaining=0,
                reset=reset,
                retry_after=max(0, retry_after),
            )
        except RedisError as e:
            logger.error(f"Redis error in rate limiter: {e}")
            return RateLimitDecision(
                allowed=True,
                limit=max_requests,
                remaining=max_requests,
                reset=reset,
                degraded=True,
            )

    async def reset(self, key: str) -> bool:
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.error(f"Failed to reset rate limit for {key}: {e}")
            return False
        return True


def default_rules(
    per_minute: int = 100,
    per_hour: int = 1000,
    per_second: Optional[int] = None,
    api_prefix: str = "/api/v1",
) -> List[RateLimitRule]:
    """Limits applied when the middleware is not given explicit rules."""
    rules = [
        # Applicants are anonymous, so the form is keyed by IP
        RateLimitRule(
            RateLimitStrategy.IP_ADDRESS,
            RateLimitWindow.MINUTE,
            5,
            paths=(f"{api_prefix}/applications",),
            methods=("POST",),
        ),
    ]
    if per_second:
        rules.append(RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.SECOND, per_second))
    rules.append(RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.MINUTE, per_minute))
    rules.append(RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.HOUR, per_hour))
    return rules


def combine(decisions: Iterable[RateLimitDecision]) -> Optional[RateLimitDecision]:
    """
    One decision for all matching rules: refused if any rule refuses, with
    the longest wait, and reporting the rule with the fewest requests left.
    """
    decisions = list(decisions)
    if not decisions:
        return None
    tightest = min(decisions, key=lambda d: d.remaining)
    refused = [d for d in decisions if not d.allowed]
    return RateLimitDecision(
        allowed=not refused,
        limit=tightest.limit,
        remaining=tightest.remaining,
        reset=tightest.reset,
        retry_after=max((d.retry_after for d in refused), default=0),
        degraded=any(d.degraded for d in decisions),
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies every matching rule and refuses the request with a 429 envelope
    when any is exhausted. ``X-RateLimit-*`` headers describe the tightest rule.
    """

    def __init__(
        self,
        app: ASGIApp,
        redis_url: str,
        rules: Optional[List[RateLimitRule]] = None,
        key_prefix: str = "talent_ats:ratelimit",
        enable_headers: bool = True,
    ):
        super().__init__(app)
        self.redis_url = redis_url
        self.rules = rules if rules is not None else default_rules()
        self.key_prefix = key_prefix
        self.enable_headers = enable_headers
        self.redis_client: Optional[Redis] = None
        self.limiter: Optional[SlidingWindowRateLimiter] = None
        self._connected = False

    def _connect(self) -> None:
        """Create the Redis client on the first request."""
        self._connected = True
        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
            )
        except (RedisError, ValueError) as e:
            logger.error(f"Failed to initialize rate limiter: {e}")
            return
        self.limiter = SlidingWindowRateLimiter(self.redis_client)
        logger.info("Rate limiter initialized")

    def key_for(self, request: Request, rule: RateLimitRule) -> str:
        if rule.strategy == RateLimitStrategy.USER_ID:
            subject = caller_id(request) or f"ip:{client_ip(request)}"
        elif rule.strategy == RateLimitStrategy.ENDPOINT:
            subject = request.url.path
        else:
            subject = client_ip(request)
        return f"{self.key_prefix}:{rule.strategy.value}:{rule.window.name.lower()}:{subject}"

    async def evaluate(self, request: Request) -> Optional[RateLimitDecision]:
        """Hit every rule matching the request; None when no rule matches."""
        user_id = caller_id(request)
        decisions = []
        for rule in self.rules:
            if rule.applies_to(request.method, request.url.path, user_id):
                decisions.append(await self.limiter.hit(
                    self.key_for(request, rule), rule.max_requests, rule.window.value
                ))
        return combine(decisions)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._connected:
            self._connect()

        if self.limiter is None or request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        decision = await self.evaluate(request)
        if decision is None:
            return await call_next(request)

        if decision.allowed:
            response = await call_next(request)
        else:
            logger.warning(
                f"Rate limit exceeded: {request.method} {request.url.path} "
                f"by {caller_id(request) or client_ip(request)}"
            )
            response = JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error_envelope(
                    "RATE_LIMIT_EXCEEDED",
                    "Too many requests. Please try again later.",
                    request.url.path,
                    request.method,
                    details={"retry_after": decision.retry_after},
                ),
            )
            response.headers["Retry-After"] = str(decision.retry_after)

        if self.enable_headers:
            response.headers["X-RateLimit-Limit"] = str(decision.limit)
            response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
            response.headers["X-RateLimit-Reset"] = str(decision.reset)
        return response

    async def close(self):
        if self.redis_client:
            await self.redis_client.aclose()
            logger.info("Rate limiter closed")
