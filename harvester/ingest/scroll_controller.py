"""Scroll progression state machine for infinite-scroll listing pages.

Each cycle scrolls the largest scrollable region one step and measures the
resulting content extent. Cycles that do not grow the page count as stalls;
a visible "Try Again" control triggers a bounded recovery sub-protocol.
The loop ends when enough cards are rendered, the page stays stuck, the
retry control turns out to be unreachable, the page goes away, or the time
ceiling is hit.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from harvester.config import settings
from harvester.ingest.base import ClickResult, ScrollDriver
from harvester import metrics

logger = logging.getLogger(__name__)

# Error text Playwright raises once the page/context/browser is gone
SESSION_GONE_MARKERS = ("Target closed", "has been closed", "Target page, context or browser")


class ScrollState(Enum):
    PROGRESSING = "progressing"
    STALLED = "stalled"
    RECOVERING = "recovering"
    DONE = "done"


class ScrollEvent(Enum):
    PROGRESS = "progress"
    NO_PROGRESS = "no_progress"
    AFFORDANCE_FOUND = "affordance_found"
    RECOVERED = "recovered"
    RECOVERY_FAILED = "recovery_failed"
    FINISH = "finish"


class StopReason(Enum):
    """Why the controller reached DONE."""

    TARGET_REACHED = "target_reached"
    STUCK = "stuck"
    GHOST_AFFORDANCE = "ghost_affordance"
    TIMEOUT = "timeout"
    SESSION_LOST = "session_lost"


class RecoveryResult(Enum):
    RECOVERED = "recovered"
    FAILED = "failed"
    GHOST = "ghost"


TRANSITIONS: Dict[Tuple[ScrollState, ScrollEvent], ScrollState] = {
    (ScrollState.PROGRESSING, ScrollEvent.PROGRESS): ScrollState.PROGRESSING,
    (ScrollState.PROGRESSING, ScrollEvent.NO_PROGRESS): ScrollState.STALLED,
    (ScrollState.STALLED, ScrollEvent.PROGRESS): ScrollState.PROGRESSING,
    (ScrollState.STALLED, ScrollEvent.NO_PROGRESS): ScrollState.STALLED,
    (ScrollState.STALLED, ScrollEvent.AFFORDANCE_FOUND): ScrollState.RECOVERING,
    (ScrollState.RECOVERING, ScrollEvent.RECOVERED): ScrollState.PROGRESSING,
    (ScrollState.RECOVERING, ScrollEvent.RECOVERY_FAILED): ScrollState.STALLED,
    (ScrollState.PROGRESSING, ScrollEvent.FINISH): ScrollState.DONE,
    (ScrollState.STALLED, ScrollEvent.FINISH): ScrollState.DONE,
    (ScrollState.RECOVERING, ScrollEvent.FINISH): ScrollState.DONE,
}


@dataclass
class ScrollProgress:
    """Per-session counters; never shared between sessions."""

    started_at: float
    last_height: float = 0.0
    stuck_count: int = 0
    ghost_count: int = 0
    cycles: int = 0

    def mark_progress(self, height: float) -> None:
        self.stuck_count = 0
        self.ghost_count = 0
        self.last_height = height


@dataclass
class ScrollOutcome:
    """Summary returned once the controller is DONE."""

    reason: StopReason
    cycles: int
    elapsed: float
    last_height: float
    stuck_count: int
    ghost_count: int
    history: List[ScrollState] = field(default_factory=list)

    @property
    def session_lost(self) -> bool:
        return self.reason is StopReason.SESSION_LOST


class ScrollController:
    """Drive a page through scroll/observe/recover cycles until DONE."""

    def __init__(
        self,
        driver: ScrollDriver,
        target_count: Optional[int] = None,
        *,
        max_seconds: Optional[float] = None,
        step_px: Optional[int] = None,
        min_region_px: Optional[int] = None,
        small_delta_px: Optional[int] = None,
        stuck_threshold: Optional[int] = None,
        ghost_limit: Optional[int] = None,
        click_retries: Optional[int] = None,
        poll_interval: Optional[float] = None,
        settle_delay: Optional[float] = None,
        error_backoff: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.driver = driver
        self.target_count = target_count
        self.max_seconds = max_seconds if max_seconds is not None else settings.scroll_max_seconds
        self.step_px = step_px or settings.scroll_step_px
        self.min_region_px = min_region_px or settings.scroll_min_region_px
        self.small_delta_px = small_delta_px if small_delta_px is not None else settings.scroll_small_delta_px
        self.stuck_threshold = stuck_threshold or settings.scroll_stuck_threshold
        self.ghost_limit = ghost_limit if ghost_limit is not None else settings.scroll_ghost_limit
        self.click_retries = click_retries or settings.scroll_click_retries
        self.poll_interval = poll_interval if poll_interval is not None else settings.scroll_poll_interval
        self.settle_delay = settle_delay if settle_delay is not None else settings.scroll_settle_delay
        self.error_backoff = error_backoff if error_backoff is not None else settings.scroll_error_backoff
        self._clock = clock
        self._sleep = sleep

        self.state = ScrollState.PROGRESSING
        self.history: List[ScrollState] = [self.state]

    def _fire(self, event: ScrollEvent) -> ScrollState:
        next_state = TRANSITIONS.get((self.state, event))
        if next_state is None:
            raise RuntimeError(f"No transition from {self.state.value} on {event.value}")
        if next_state is not self.state:
            logger.debug(f"Scroll state {self.state.value} -> {next_state.value} ({event.value})")
            self.history.append(next_state)
        self.state = next_state
        return next_state

    async def run(self) -> ScrollOutcome:
        """Run cycles until a stop condition is met."""
        target = f"{self.target_count} items" if self.target_count else "Unlimited"
        logger.info(f"Starting auto-scroll sequence... Target: {target}")

        self.state = ScrollState.PROGRESSING
        self.history = [self.state]
        progress = ScrollProgress(started_at=self._clock())
        deadline = progress.started_at + self.max_seconds

        reason: Optional[StopReason] = None
        while reason is None:
            if self._clock() >= deadline:
                logger.info(f"Scroll time ceiling of {self.max_seconds:.0f}s reached")
                reason = StopReason.TIMEOUT
                break

            reason = await self._cycle(progress)
            if reason is None:
                await self._sleep(self.poll_interval)

        self._fire(ScrollEvent.FINISH)
        elapsed = self._clock() - progress.started_at
        logger.info(
            f"Auto-scroll finished: {reason.value} after {progress.cycles} cycles "
            f"({elapsed:.1f}s, height {progress.last_height:.0f})"
        )
        metrics.record_scroll_termination(reason.value, progress.cycles)

        return ScrollOutcome(
            reason=reason,
            cycles=progress.cycles,
            elapsed=elapsed,
            last_height=progress.last_height,
            stuck_count=progress.stuck_count,
            ghost_count=progress.ghost_count,
            history=list(self.history),
        )

    async def _cycle(self, progress: ScrollProgress) -> Optional[StopReason]:
        """One scroll/observe step. Returns a stop reason or None to continue."""
        progress.cycles += 1
        try:
            if self.driver.is_closed():
                logger.warning("Page closed during scrolling")
                return StopReason.SESSION_LOST

            if self.target_count:
                current_count = await self.driver.count_items()
                if current_count >= self.target_count:
                    logger.info(
                        f"Reached target item count ({current_count} >= {self.target_count}). "
                        "Stopping scroll."
                    )
                    return StopReason.TARGET_REACHED

            new_height = await self.driver.scroll_step(self.step_px, self.min_region_px)

            if abs(new_height - progress.last_height) >= self.small_delta_px:
                progress.mark_progress(new_height)
                self._fire(ScrollEvent.PROGRESS)
                return None

            self._fire(ScrollEvent.NO_PROGRESS)

            if await self.driver.retry_affordance_visible():
                self._fire(ScrollEvent.AFFORDANCE_FOUND)
                result = await self.recover(progress, new_height)
                if result is RecoveryResult.GHOST:
                    return StopReason.GHOST_AFFORDANCE
                if result is RecoveryResult.RECOVERED:
                    self._fire(ScrollEvent.RECOVERED)
                    return None
                self._fire(ScrollEvent.RECOVERY_FAILED)

            return await self._register_stall(progress)

        except Exception as e:
            if self._session_gone(e):
                logger.warning(f"Session lost while scrolling: {e}")
                return StopReason.SESSION_LOST

            logger.debug(f"Transient scroll fault, counting as no progress: {type(e).__name__}: {e}")
            if self.state is ScrollState.RECOVERING:
                self._fire(ScrollEvent.RECOVERY_FAILED)
            elif self.state is ScrollState.PROGRESSING:
                self._fire(ScrollEvent.NO_PROGRESS)
            progress.stuck_count += 1
            if progress.stuck_count >= self.stuck_threshold:
                return StopReason.STUCK
            await self._sleep(self.error_backoff)
            return None

    async def _register_stall(self, progress: ScrollProgress) -> Optional[StopReason]:
        progress.stuck_count += 1
        if progress.stuck_count % 5 == 0:
            logger.info(f"Stuck: {progress.stuck_count}/{self.stuck_threshold}")

        if progress.stuck_count >= self.stuck_threshold:
            logger.info("Stuck limit reached. Finishing.")
            return StopReason.STUCK

        await self.driver.wiggle()
        return None

    async def recover(self, progress: ScrollProgress, baseline: float) -> RecoveryResult:
        """
        Click the "Try Again" control up to ``click_retries`` times.

        Every attempt that finds the control outside the viewport counts
        toward the ghost limit; exceeding it means the control can never be
        reached and scrolling should stop.

        Args:
            progress: Session counters, updated in place
            baseline: Extent measured before recovery

        Returns:
            RecoveryResult for the attempt sequence
        """
        logger.info('"Try Again" button found. Clicking...')

        for attempt in range(1, self.click_retries + 1):
            try:
                result = await self.driver.click_retry_affordance()
            except Exception as e:
                if self._session_gone(e):
                    raise
                logger.debug(f"Retry click attempt {attempt} failed: {e}")
                continue

            # Off-screen does not end the attempt loop; every attempt counts toward the ghost limit
            if result is ClickResult.OFF_SCREEN:
                progress.ghost_count += 1
                logger.info(
                    f'Ghost "Try Again" detected ({progress.ghost_count}/{self.ghost_limit}). Ignoring.'
                )
                if progress.ghost_count > self.ghost_limit:
                    return RecoveryResult.GHOST
                continue

            if result is ClickResult.FAILED:
                continue

            await self._sleep(self.settle_delay)
            check_height = await self.driver.measure_extent()
            if check_height > baseline:
                logger.info(f"Recovered after retry click ({baseline:.0f} -> {check_height:.0f})")
                progress.mark_progress(check_height)
                return RecoveryResult.RECOVERED

        return RecoveryResult.FAILED

    def _session_gone(self, error: Exception) -> bool:
        try:
            if self.driver.is_closed():
                return True
        except Exception:
            return True
        message = str(error)
        return any(marker in message for marker in SESSION_GONE_MARKERS)
