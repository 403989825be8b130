import pytest

from inv_backend.features.previews import Cooldown


class FakeClock:
    def __init__(self):
        self.value = 0.0
        self.sleeps = []

    def __call__(self):
        return self.value

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.value += seconds


@pytest.mark.asyncio
async def test_pauses_after_each_interval():
    clock = FakeClock()
    cd = Cooldown(enabled=True, interval_minutes=1, duration_seconds=5, clock=clock, sleep=clock.sleep)

    clock.value = 59
    assert await cd.wait() is False
    clock.value = 60
    assert await cd.wait() is True
    assert clock.sleeps == [5]

    # the interval restarts after the pause
    clock.value += 30
    assert await cd.wait() is False
    clock.value += 30
    assert await cd.wait() is True
    assert clock.sleeps == [5, 5]


@pytest.mark.asyncio
async def test_disabled_or_zero_duration_never_pauses():
    clock = FakeClock()
    clock.value = 10_000
    assert await Cooldown(enabled=False, clock=clock, sleep=clock.sleep).wait() is False
    assert await Cooldown(enabled=True, interval_minutes=0, duration_seconds=0, clock=clock, sleep=clock.sleep).wait() is False
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_reset_restarts_the_interval():
    clock = FakeClock()
    cd = Cooldown(enabled=True, interval_minutes=1, duration_seconds=2, clock=clock, sleep=clock.sleep)
    clock.value = 100
    cd.reset()
    assert await cd.wait() is False
    clock.value = 160
    assert await cd.wait() is True
