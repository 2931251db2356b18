"""
Tests for rate limiting middleware.
Covers rule matching, the sliding window, Redis failures and key generation.
"""

import asyncio
import time

import pytest
from unittest.mock import AsyncMock, Mock, patch
from fastapi import FastAPI
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError, RedisError

from core.middleware.rate_limiting import (
    RateLimitDecision,
    RateLimitMiddleware,
    RateLimitRule,
    RateLimitStrategy,
    RateLimitWindow,
    SlidingWindowRateLimiter,
    caller_id,
    client_ip,
    combine,
    default_rules,
)
from core.security import AuthenticatedUser

REDIS_URL = "redis://localhost:6379/0"
FORM_PATH = "/api/v1/applications"


def make_redis_client(count=0):
    """Mock Redis client whose pipeline reports ``count`` requests in the window."""
    client = AsyncMock()
    client.pipeline = Mock(return_value=client)
    # Pipeline commands queue synchronously; only execute() is awaited
    client.zremrangebyscore = Mock()
    client.zcard = Mock()
    client.zadd = Mock()
    client.expire = Mock()
    client.execute = AsyncMock(return_value=[0, count, 1, True])
    client.zrange = AsyncMock(return_value=[])
    client.zrem = AsyncMock()
    return client


def make_request(path="/api/v1/candidates", method="GET", host="192.168.1.100", user=None, headers=None):
    request = Mock()
    request.client = Mock(host=host) if host else None
    request.headers = headers or {}
    request.url = Mock(path=path)
    request.method = method
    request.scope = {"user": user} if user else {}
    return request


def decision(allowed=True, limit=10, remaining=5, retry_after=0):
    return RateLimitDecision(
        allowed=allowed, limit=limit, remaining=remaining, reset=1, retry_after=retry_after
    )


class TestRateLimitRules:

    def test_rule_without_filters_applies_everywhere(self):
        rule = RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.HOUR, 1000)

        assert rule.applies_to("GET", "/api/v1/candidates")
        assert rule.applies_to("POST", "/functions/v1/send-email-notification")

    def test_path_and_method_filter(self):
        rule = RateLimitRule(
            RateLimitStrategy.IP_ADDRESS,
            RateLimitWindow.MINUTE,
            5,
            paths=(FORM_PATH,),
            methods=("POST",),
        )

        assert rule.applies_to("POST", FORM_PATH)
        assert not rule.applies_to("GET", FORM_PATH)
        assert not rule.applies_to("POST", "/api/v1/candidates")

    def test_exempt_user(self):
        rule = RateLimitRule(
            RateLimitStrategy.USER_ID,
            RateLimitWindow.MINUTE,
            1,
            exempt_user_ids=frozenset({"email-worker"}),
        )

        assert not rule.applies_to("POST", "/functions/v1/send-email-notification", "email-worker")
        assert rule.applies_to("POST", "/functions/v1/send-email-notification", "user-1")

    def test_window_lengths(self):
        assert [w.value for w in RateLimitWindow] == [1, 60, 3600]

    def test_default_rules(self):
        form_rule, *user_rules = default_rules(per_minute=60, per_hour=600)

        assert form_rule.strategy == RateLimitStrategy.IP_ADDRESS
        assert form_rule.paths == (FORM_PATH,)
        assert form_rule.methods == ("POST",)
        assert [r.max_requests for r in user_rules] == [60, 600]
        assert all(r.strategy == RateLimitStrategy.USER_ID for r in user_rules)

    def test_default_rules_with_burst_limit(self):
        rules = default_rules(per_minute=60, per_hour=600, per_second=10)

        assert [(r.window, r.max_requests) for r in rules[1:]] == [
            (RateLimitWindow.SECOND, 10),
            (RateLimitWindow.MINUTE, 60),
            (RateLimitWindow.HOUR, 600),
        ]


class TestSlidingWindow:

    @pytest.mark.asyncio
    async def test_first_request_allowed(self):
        limiter = SlidingWindowRateLimiter(make_redis_client())

        result = await limiter.hit("test:user:123", 10, 60)

        assert result.allowed is True
        assert result.limit == 10
        assert result.remaining == 9
        assert result.reset >= int(time.time())

    @pytest.mark.asyncio
    async def test_last_request_in_window_allowed(self):
        limiter = SlidingWindowRateLimiter(make_redis_client(count=9))

        result = await limiter.hit("test:user:123", 10, 60)

        assert result.allowed is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_request_over_the_limit(self):
        client = make_redis_client(count=10)
        client.zrange = AsyncMock(return_value=[("oldest", time.time() - 30)])
        limiter = SlidingWindowRateLimiter(client)

        result = await limiter.hit("test:user:123", 10, 60)

        assert result.allowed is False
        assert 0 < result.retry_after <= 30
        # The refused request is not counted
        client.zrem.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_window_is_trimmed_and_expires(self):
        client = make_redis_client()
        limiter = SlidingWindowRateLimiter(client)

        await limiter.hit("test:user:123", 10, 60)

        assert client.zremrangebyscore.called
        client.expire.assert_called_once_with("test:user:123", 120)

    @pytest.mark.asyncio
    async def test_reset(self):
        client = make_redis_client()
        client.delete = AsyncMock(return_value=1)

        assert await SlidingWindowRateLimiter(client).reset("test:user:123") is True
        client.delete.assert_awaited_once_with("test:user:123")

    @pytest.mark.asyncio
    async def test_concurrent_hits(self):
        limiter = SlidingWindowRateLimiter(make_redis_client())

        results = await asyncio.gather(*[limiter.hit("test:concurrent", 10, 60) for _ in range(50)])

        assert all(r.allowed for r in results)


class TestRedisFailures:
    """Redis outages must not take the API down."""

    @pytest.mark.parametrize("error", [
        RedisConnectionError("Connection failed"),
        RedisError("Redis error"),
    ])
    @pytest.mark.asyncio
    async def test_fail_open(self, error):
        client = make_redis_client()
        client.execute = AsyncMock(side_effect=error)

        result = await SlidingWindowRateLimiter(client).hit("test:user:123", 10, 60)

        assert result.allowed is True
        assert result.degraded is True

    @pytest.mark.asyncio
    async def test_reset_failure_reported(self):
        client = make_redis_client()
        client.delete = AsyncMock(side_effect=RedisError("Redis error"))

        assert await SlidingWindowRateLimiter(client).reset("test:user:123") is False


class TestKeys:

    @pytest.fixture
    def middleware(self):
        return RateLimitMiddleware(app=None, redis_url=REDIS_URL, rules=[])

    def test_ip_address_strategy(self, middleware):
        rule = RateLimitRule(RateLimitStrategy.IP_ADDRESS, RateLimitWindow.MINUTE, 100)

        key = middleware.key_for(make_request(), rule)

        assert key == "talent_ats:ratelimit:ip:minute:192.168.1.100"

    def test_forwarded_for_header_wins(self):
        request = make_request(headers={"x-forwarded-for": "203.0.113.7, 10.0.0.1"})
        assert client_ip(request) == "203.0.113.7"

    def test_user_id_strategy(self, middleware):
        rule = RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.HOUR, 100)
        user = AuthenticatedUser(user_id="user-123", email="someone@example.com")

        key = middleware.key_for(make_request(user=user), rule)

        assert key == "talent_ats:ratelimit:user:hour:user-123"

    def test_anonymous_user_keyed_by_ip(self, middleware):
        rule = RateLimitRule(RateLimitStrategy.USER_ID, RateLimitWindow.MINUTE, 100)

        key = middleware.key_for(make_request(), rule)

        assert key == "talent_ats:ratelimit:user:minute:ip:192.168.1.100"

    def test_endpoint_strategy(self, middleware):
        rule = RateLimitRule(RateLimitStrategy.ENDPOINT, RateLimitWindow.SECOND, 100)

        key = middleware.key_for(make_request(path=FORM_PATH), rule)

        assert key == f"talent_ats:ratelimit:endpoint:second:{FORM_PATH}"

    def test_missing_client_and_user(self):
        request = make_request(host=None)

        assert client_ip(request) == "unknown"
        assert caller_id(request) is None


class TestCombine:

    def test_no_decisions(self):
        assert combine([]) is None

    def test_any_refusal_refuses(self):
        result = combine([
            decision(limit=100, remaining=50),
            decision(allowed=False, limit=5, remaining=0, retry_after=42),
        ])

        assert result.allowed is False
        assert result.retry_after == 42
        assert result.limit == 5
        assert result.remaining == 0

    def test_reports_tightest_rule(self):
        result = combine([decision(limit=100, remaining=80), decision(limit=1000, remaining=20)])

        assert result.allowed is True
        assert (result.limit, result.remaining) == (1000, 20)

    @pytest.mark.asyncio
    async def test_exempt_user_skips_rule(self):
        rule = RateLimitRule(
            RateLimitStrategy.USER_ID,
            RateLimitWindow.MINUTE,
            1,
            exempt_user_ids=frozenset({"email-worker"}),
        )
        middleware = RateLimitMiddleware(app=None, redis_url=REDIS_URL, rules=[rule])
        middleware.limiter = Mock(hit=AsyncMock())
        worker = AuthenticatedUser(user_id="email-worker", email="email-worker@localhost")

        assert await middleware.evaluate(make_request(user=worker)) is None
        middleware.limiter.hit.assert_not_called()


class TestMiddlewareIntegration:

    def _build_app(self):
        app = FastAPI()
        app.add_middleware(
            RateLimitMiddleware,
            redis_url=REDIS_URL,
            rules=[
                RateLimitRule(
                    RateLimitStrategy.IP_ADDRESS,
                    RateLimitWindow.MINUTE,
                    5,
                    paths=(FORM_PATH,),
                ),
            ],
        )

        @app.get("/api/v1/candidates")
        async def unlimited():
            return {"message": "ok"}

        @app.get(FORM_PATH)
        async def limited():
            return {"message": "ok"}

        @app.get("/health")
        async def health():
            return {"status": "healthy"}

        return app

    def _client(self, redis_client):
        with patch("core.middleware.rate_limiting.redis.from_url", return_value=redis_client):
            client = TestClient(self._build_app())
            client.get("/api/v1/candidates")
        return client

    def test_limited_endpoint_gets_headers(self):
        response = self._client(make_redis_client()).get(FORM_PATH)

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_unmatched_endpoint_has_no_headers(self):
        response = self._client(make_redis_client()).get("/api/v1/candidates")

        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_exhausted_limit_returns_429(self):
        response = self._client(make_redis_client(count=5)).get(FORM_PATH)

        assert response.status_code == 429
        error = response.json()["error"]
        assert error["code"] == "RATE_LIMIT_EXCEEDED"
        assert error["path"] == FORM_PATH
        assert "retry_after" in error["details"]
        assert "Retry-After" in response.headers

    def test_health_check_not_rate_limited(self):
        client = self._client(make_redis_client(count=100))

        for _ in range(10):
            assert client.get("/health").status_code == 200

    def test_default_configuration(self):
        middleware = RateLimitMiddleware(app=None, redis_url=REDIS_URL, key_prefix="app:ratelimit")

        assert middleware.key_prefix == "app:ratelimit"
        assert len(middleware.rules) == 3
