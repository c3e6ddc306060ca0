import asyncio

import pytest

from snipvault.core.exceptions import RateLimited
from snipvault.core.rate_limiter import RateLimiter

pytestmark = pytest.mark.unit


@pytest.fixture
def limiter(settings_store, clock):
    settings_store.set_string("security.rate_limit.window_ms", "1000")
    settings_store.set_string("security.rate_limit.auth_max", "3")
    settings_store.set_string("security.rate_limit.general_max", "5")
    return RateLimiter(settings_store, clock=clock)


def test_fixed_window_allows_limit_then_rejects(limiter, clock):
    decisions = [limiter.hit("auth", "10.0.0.1") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions[:3]] == [2, 1, 0]
    assert decisions[3].retry_after == 1
    assert decisions[3].headers()["Retry-After"] == "1"


def test_window_resets_after_elapsed(limiter, clock):
    for _ in range(4):
        limiter.hit("auth", "10.0.0.1")

    clock.advance(1.0)
    decision = limiter.hit("auth", "10.0.0.1")
    assert decision.allowed
    assert decision.remaining == 2


def test_retry_after_rounds_up_to_whole_seconds(settings_store, clock):
    settings_store.set_string("security.rate_limit.window_ms", "10000")
    settings_store.set_string("security.rate_limit.auth_max", "1")
    limiter = RateLimiter(settings_store, clock=clock)

    limiter.hit("auth", "k")
    clock.advance(2.5)
    decision = limiter.hit("auth", "k")
    assert not decision.allowed
    assert decision.retry_after == 8


def test_scopes_and_clients_are_counted_separately(limiter):
    for _ in range(3):
        limiter.hit("auth", "a")
    assert not limiter.hit("auth", "a").allowed
    assert limiter.hit("auth", "b").allowed
    assert limiter.hit("general", "a").allowed


def test_rejection_maps_to_rate_limited(limiter):
    for _ in range(3):
        limiter.hit("auth", "a")
    exc = limiter.hit("auth", "a").to_exception()
    assert isinstance(exc, RateLimited)
    assert exc.status_code == 429
    assert exc.body() == {"error": "Too many requests", "scope": "auth"}
    assert exc.headers()["X-RateLimit-Remaining"] == "0"


def test_sweep_evicts_only_idle_buckets(limiter, clock):
    limiter.hit("auth", "old")
    clock.advance(1.5)
    limiter.hit("auth", "fresh")
    clock.advance(0.6)

    assert limiter.sweep() == 1
    assert len(limiter) == 1


def test_sweeper_task_starts_and_stops(limiter):
    async def scenario():
        limiter.start_sweeper(0.01)
        await asyncio.sleep(0.03)
        await limiter.stop_sweeper()

    asyncio.run(scenario())
    assert limiter._sweeper is None
