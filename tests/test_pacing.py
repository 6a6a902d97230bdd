import asyncio

import pytest

from app.utils.pacing import Pacer


class TestPacer:
    """Test start-to-start spacing."""

    @pytest.mark.asyncio
    async def test_first_start_is_immediate(self, make_pacer, fake_clock):
        pacer = make_pacer(3000)

        await pacer.wait()

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_back_to_back_starts_are_spaced(self, make_pacer, fake_clock):
        pacer = make_pacer(3000)

        starts = [await pacer.wait() for _ in range(4)]

        assert [b - a for a, b in zip(starts, starts[1:])] == [3.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_slow_operation_eats_into_the_delay(self, make_pacer, fake_clock):
        """Spacing is measured from the previous start, not its end."""
        pacer = make_pacer(3000)

        await pacer.wait()
        fake_clock.advance(1.0)
        await pacer.wait()

        assert fake_clock.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_operation_longer_than_interval_needs_no_wait(
        self, make_pacer, fake_clock
    ):
        pacer = make_pacer(3000)

        await pacer.wait()
        fake_clock.advance(5.0)
        await pacer.wait()

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_concurrent_waiters_are_serialized(self, make_pacer, fake_clock):
        pacer = make_pacer(100)

        starts = await asyncio.gather(*(pacer.wait() for _ in range(5)))

        ordered = sorted(starts)
        assert all(
            round(b - a, 6) >= 0.1 for a, b in zip(ordered, ordered[1:])
        )

    def test_negative_interval_is_clamped(self):
        assert Pacer(-1).remaining_delay() == 0.0
        assert Pacer(-1).interval_seconds == 0.0
