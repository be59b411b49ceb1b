import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from quiz_assessment.backend.app import create_app
from quiz_assessment.backend.dependencies import RateLimiter


class BrokenRedis:
    async def get(self, key):
        raise RedisConnectionError("redis is down")

    async def delete(self, key):
        raise RedisConnectionError("redis is down")


class TestRateLimiter:
    async def test_blocks_after_max_attempts(self, fake_redis):
        limiter = RateLimiter(fake_redis, max_attempts=5, window=300)

        allowed = [await limiter.is_allowed("login:10.0.0.1") for _ in range(6)]

        assert allowed == [True, True, True, True, True, False]

    async def test_keys_are_independent(self, fake_redis):
        limiter = RateLimiter(fake_redis, max_attempts=1, window=300)

        assert await limiter.is_allowed("a") is True
        assert await limiter.is_allowed("a") is False
        assert await limiter.is_allowed("b") is True

    async def test_window_set_on_first_attempt(self, fake_redis):
        limiter = RateLimiter(fake_redis, max_attempts=3, window=120)

        await limiter.is_allowed("login")

        assert fake_redis.expiry == {"rate_limit:login": 120}

    async def test_reset_clears_counter(self, fake_redis):
        limiter = RateLimiter(fake_redis, max_attempts=1, window=300)
        await limiter.is_allowed("login")

        await limiter.reset("login")

        assert await limiter.is_allowed("login") is True

    async def test_disabled_limiter_always_allows(self, fake_redis):
        limiter = RateLimiter(fake_redis, max_attempts=1, window=300, enabled=False)
        assert all([await limiter.is_allowed("login") for _ in range(3)])

    async def test_missing_redis_allows(self):
        limiter = RateLimiter(None, max_attempts=1, window=300)
        assert await limiter.is_allowed("login") is True
        assert await limiter.is_allowed("login") is True
        await limiter.reset("login")

    async def test_redis_failure_allows(self):
        limiter = RateLimiter(BrokenRedis(), max_attempts=1, window=300)
        assert await limiter.is_allowed("login") is True
        await limiter.reset("login")


@pytest.fixture
async def limited_client(settings, database, fake_redis):
    app = create_app(settings, database, rate_limiter=RateLimiter(fake_redis, max_attempts=2, window=300))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def test_login_endpoint_rate_limited(limited_client):
    credentials = {"username": "admin", "password": "wrong-password"}

    statuses = [(await limited_client.post("/login", json=credentials)).status_code for _ in range(3)]

    assert statuses == [401, 401, 429]


async def test_rate_limit_response_body(limited_client):
    credentials = {"email": "aya@example.com", "password": "wrong-password"}
    for _ in range(2):
        await limited_client.post("/student_login", json=credentials)

    response = await limited_client.post("/student_login", json=credentials)

    assert response.status_code == 429
    body = response.json()
    assert body["error"] == "RATE_LIMIT_EXCEEDED"
    assert body["details"] == {"retry_after_seconds": 300}
