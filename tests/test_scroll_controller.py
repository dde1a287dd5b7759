"""Tests for the scroll progression state machine."""

import pytest

from harvester.ingest.base import ClickResult, ScrollDriver
from harvester.ingest.scroll_controller import (
    ScrollController,
    ScrollState,
    StopReason,
)


class FakeClock:
    """Monotonic clock advanced only by the controller's sleeps."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakeDriver(ScrollDriver):
    """Scripted page: heights per cycle, optional retry control."""

    def __init__(
        self,
        heights,
        affordance=None,
        clicks=None,
        extents=None,
        item_count=0,
        closed=False,
    ):
        self.heights = list(heights)
        self.affordance = list(affordance or [])
        self.clicks = list(clicks or [])
        self.extents = list(extents or [])
        self.item_count = item_count
        self.closed = closed
        self.scroll_calls = 0
        self.click_calls = 0
        self.wiggles = 0
        self.errors = {}

    @staticmethod
    def _next(values, default):
        if len(values) > 1:
            return values.pop(0)
        return values[0] if values else default

    def is_closed(self) -> bool:
        return self.closed

    async def count_items(self) -> int:
        return self.item_count

    async def scroll_step(self, distance: int, min_region: int) -> float:
        self.scroll_calls += 1
        error = self.errors.pop(self.scroll_calls, None)
        if error is not None:
            raise error
        return self._next(self.heights, 0.0)

    async def measure_extent(self) -> float:
        return self._next(self.extents, 0.0)

    async def retry_affordance_visible(self) -> bool:
        return self._next(self.affordance, False)

    async def click_retry_affordance(self) -> ClickResult:
        self.click_calls += 1
        return self._next(self.clicks, ClickResult.FAILED)

    async def wiggle(self) -> None:
        self.wiggles += 1


def _controller(driver, clock, **kwargs):
    return ScrollController(driver, clock=clock, sleep=clock.sleep, **kwargs)


@pytest.mark.asyncio
async def test_stops_after_twenty_cycles_without_progress():
    clock = FakeClock()
    driver = FakeDriver(heights=[0.0])

    outcome = await _controller(driver, clock).run()

    assert outcome.reason is StopReason.STUCK
    assert outcome.cycles == 20
    assert driver.wiggles == 19
    assert outcome.elapsed < 300
    assert outcome.history[-1] is ScrollState.DONE


@pytest.mark.asyncio
async def test_progress_resets_stall_counter():
    clock = FakeClock()
    driver = FakeDriver(heights=[1000.0, 2000.0, 3000.0, 3005.0])

    outcome = await _controller(driver, clock).run()

    # 3 growing cycles, then 3005 is within the small-delta threshold
    assert outcome.reason is StopReason.STUCK
    assert outcome.cycles == 23
    assert outcome.last_height == 3000.0
    assert ScrollState.STALLED in outcome.history


@pytest.mark.asyncio
async def test_ghost_affordance_ends_scrolling():
    clock = FakeClock()
    driver = FakeDriver(
        heights=[0.0],
        affordance=[True],
        clicks=[ClickResult.OFF_SCREEN],
    )

    outcome = await _controller(driver, clock).run()

    assert outcome.reason is StopReason.GHOST_AFFORDANCE
    assert driver.click_calls == 41
    assert outcome.ghost_count == 41
    assert outcome.stuck_count < 20
    assert ScrollState.RECOVERING in outcome.history


@pytest.mark.asyncio
async def test_successful_recovery_returns_to_progressing():
    clock = FakeClock()
    driver = FakeDriver(
        heights=[500.0, 500.0, 900.0],
        affordance=[True, False],
        clicks=[ClickResult.CLICKED],
        extents=[900.0],
    )

    outcome = await _controller(driver, clock).run()

    assert driver.click_calls == 1
    recovering = outcome.history.index(ScrollState.RECOVERING)
    assert outcome.history[recovering + 1] is ScrollState.PROGRESSING
    assert outcome.last_height == 900.0
    assert outcome.reason is StopReason.STUCK
    # two cycles before the stall, then twenty stalled cycles at 900
    assert outcome.cycles == 22


@pytest.mark.asyncio
async def test_failed_recovery_counts_as_stall():
    clock = FakeClock()
    driver = FakeDriver(
        heights=[0.0],
        affordance=[True],
        clicks=[ClickResult.CLICKED],
        extents=[0.0],
    )

    outcome = await _controller(driver, clock, stuck_threshold=2).run()

    assert outcome.reason is StopReason.STUCK
    assert driver.click_calls == 6  # 3 attempts per stalled cycle


@pytest.mark.asyncio
async def test_target_count_stops_before_scrolling():
    clock = FakeClock()
    driver = FakeDriver(heights=[1000.0], item_count=50)

    outcome = await _controller(driver, clock, target_count=40).run()

    assert outcome.reason is StopReason.TARGET_REACHED
    assert driver.scroll_calls == 0


@pytest.mark.asyncio
async def test_time_ceiling_forces_done():
    clock = FakeClock()
    driver = FakeDriver(heights=[float(h) for h in range(1000, 100000, 1000)])

    outcome = await _controller(driver, clock, max_seconds=1.0, poll_interval=0.4).run()

    assert outcome.reason is StopReason.TIMEOUT
    assert outcome.cycles == 3


@pytest.mark.asyncio
async def test_closed_page_aborts():
    clock = FakeClock()
    driver = FakeDriver(heights=[1000.0], closed=True)

    outcome = await _controller(driver, clock).run()

    assert outcome.reason is StopReason.SESSION_LOST
    assert outcome.session_lost


@pytest.mark.asyncio
async def test_transient_fault_is_no_progress():
    clock = FakeClock()
    driver = FakeDriver(heights=[1000.0, 2000.0])
    driver.errors[2] = RuntimeError("Execution context was destroyed")

    outcome = await _controller(driver, clock).run()

    assert outcome.reason is StopReason.STUCK
    assert outcome.last_height == 2000.0


@pytest.mark.asyncio
async def test_closed_target_error_ends_session():
    clock = FakeClock()
    driver = FakeDriver(heights=[1000.0])
    driver.errors[1] = RuntimeError("Target page, context or browser has been closed")

    outcome = await _controller(driver, clock).run()

    assert outcome.reason is StopReason.SESSION_LOST
    assert outcome.cycles == 1
