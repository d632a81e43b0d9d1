import asyncio

import pytest

from services.session.single_flight import SingleFlight, digest_key


class ManualClock:
    def __init__(self):
        self.value = 100.0

    def __call__(self):
        return self.value


def test_digest_key_hides_secret():
    key = digest_key("refresh-token-value")
    assert key == digest_key("refresh-token-value")
    assert "refresh-token-value" not in key
    assert key != digest_key("other")


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_call():
    flight = SingleFlight()
    release = asyncio.Event()
    calls = 0

    async def work():
        nonlocal calls
        calls += 1
        await release.wait()
        return "rotated"

    waiters = [asyncio.create_task(flight.run("k", work)) for _ in range(10)]
    await asyncio.sleep(0)
    assert flight.in_flight("k")
    release.set()

    assert await asyncio.gather(*waiters) == ["rotated"] * 10
    assert calls == 1
    assert not flight.in_flight("k")


@pytest.mark.asyncio
async def test_failures_are_shared_but_not_cached():
    flight = SingleFlight(reuse_window=10)
    calls = 0

    async def failing():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        raise RuntimeError("refused")

    results = await asyncio.gather(
        flight.run("k", failing), flight.run("k", failing), return_exceptions=True
    )
    assert all(isinstance(r, RuntimeError) for r in results)
    assert calls == 1

    with pytest.raises(RuntimeError):
        await flight.run("k", failing)
    assert calls == 2


@pytest.mark.asyncio
async def test_recent_result_reused_within_window():
    clock = ManualClock()
    flight = SingleFlight(reuse_window=10, clock=clock)
    calls = 0

    async def work():
        nonlocal calls
        calls += 1
        return calls

    assert await flight.run("k", work) == 1
    clock.value += 5
    assert await flight.run("k", work) == 1
    assert await flight.run("other", work) == 2

    clock.value += 6
    assert await flight.run("k", work) == 3

    flight.forget("k")
    assert await flight.run("k", work) == 4


@pytest.mark.asyncio
async def test_zero_window_never_reuses():
    flight = SingleFlight(reuse_window=0)
    calls = 0

    async def work():
        nonlocal calls
        calls += 1
        return calls

    assert await flight.run("k", work) == 1
    assert await flight.run("k", work) == 2


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_call():
    flight = SingleFlight()
    release = asyncio.Event()

    async def work():
        await release.wait()
        return "done"

    first = asyncio.create_task(flight.run("k", work))
    second = asyncio.create_task(flight.run("k", work))
    await asyncio.sleep(0)

    first.cancel()
    release.set()

    assert await second == "done"
    with pytest.raises(asyncio.CancelledError):
        await first
