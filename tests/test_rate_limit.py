"""
Tests for request rate limiting.
"""
import pytest
from grappa import should

from patchwork.errors import RateLimitExceeded
from patchwork.rate_limit import RateLimiter
from .conftest import MOCK_COMPLETION_RESPONSE, MockResponse, install_backend


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.mark.asyncio
async def test_disabled_limiter_accepts_everything():
    limiter = RateLimiter(seconds=None)

    for _ in range(3):
        await limiter.check()

    limiter.last_request | should.equal(None)


@pytest.mark.asyncio
async def test_request_inside_interval_is_rejected():
    clock = FakeClock()
    limiter = RateLimiter(seconds=10, wait=False, clock=clock)

    await limiter.check()
    clock.now += 3

    with pytest.raises(RateLimitExceeded):
        await limiter.check()


@pytest.mark.asyncio
async def test_request_after_interval_is_accepted():
    clock = FakeClock()
    limiter = RateLimiter(seconds=10, wait=False, clock=clock)

    await limiter.check()
    clock.now += 10
    await limiter.check()

    limiter.last_request | should.equal(110.0)


@pytest.mark.asyncio
async def test_waiting_limiter_sleeps_for_the_remainder(monkeypatch):
    clock = FakeClock()
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)
        clock.now += seconds

    monkeypatch.setattr("patchwork.rate_limit.asyncio.sleep", fake_sleep)
    limiter = RateLimiter(seconds=10, wait=True, clock=clock)

    await limiter.check()
    clock.now += 4
    await limiter.check()

    slept | should.equal([6.0])
    limiter.last_request | should.equal(110.0)


def test_rate_limited_request_gets_429(test_client, monkeypatch):
    import patchwork.api

    monkeypatch.setattr(patchwork.api, "rate_limiter", RateLimiter(seconds=60, wait=False))
    install_backend(monkeypatch, MockResponse(200, MOCK_COMPLETION_RESPONSE))

    body = {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "Hi"}]}
    headers = {"Authorization": "Bearer test-key"}

    first = test_client.post("/chat/completions", json=body, headers=headers)
    second = test_client.post("/chat/completions", json=body, headers=headers)

    first.status_code | should.equal(200)
    second.status_code | should.equal(429)
    second.json() | should.equal(
        {"error": {"message": "Rate limit exceeded", "type": "rate_limit_error"}}
    )
