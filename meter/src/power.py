"""
Periodic power sampler producing min/avg/max per measurement window.

One asyncio task per device reads the power register every poll interval
and folds each successful sample into the current window aggregate.  When
the measurement interval has elapsed the aggregate is published as an
immutable :class:`PowerSnapshot` and a fresh window starts.

The window aggregate and the published snapshot are immutable values that
are replaced, never mutated, so getters called from other tasks always see
a complete snapshot.  The poll loop awaits each tick before scheduling the
next one, so two ticks never overlap.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-107)
- 2026-10-18: aclose() waits for a cancelled tick to unwind (STORY-114)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from meter.src.clock import Clock, utcnow
from meter.src.exceptions import DecodeError, TransactionError

logger = logging.getLogger(__name__)

ReadPower = Callable[[], Awaitable[float]]
"""Reads one instantaneous power value in watts; raises on failure."""

SampleListener = Callable[[float | None, datetime], Awaitable[None]]
"""Called once per tick with the power sample (``None`` if the read failed)."""


# ---------------------------------------------------------------------------
# Window values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PowerWindowAggregate:
    """Running min/avg/max of the samples folded into one window.

    Attributes:
        window_start: Time the window was opened.
        sample_count: Number of successfully folded samples.
        sum_for_avg: Sum of the folded sample values.
        min: Smallest folded value (0 while empty).
        max: Largest folded value (0 while empty).
    """

    window_start: datetime
    sample_count: int = 0
    sum_for_avg: float = 0.0
    min: float = 0.0
    max: float = 0.0

    @property
    def avg(self) -> float:
        """Arithmetic mean of the folded samples, 0 for an empty window."""
        if self.sample_count == 0:
            return 0.0
        mean = self.sum_for_avg / self.sample_count
        # Rounding in the sum must not push the mean outside [min, max].
        return min(max(mean, self.min), self.max)

    def fold(self, value: float) -> PowerWindowAggregate:
        """Return a new aggregate including *value*."""
        if self.sample_count == 0:
            return replace(self, sample_count=1, sum_for_avg=value, min=value, max=value)
        return replace(
            self,
            sample_count=self.sample_count + 1,
            sum_for_avg=self.sum_for_avg + value,
            min=min(self.min, value),
            max=max(self.max, value),
        )


@dataclass(frozen=True, slots=True)
class PowerSnapshot:
    """Published statistics of a completed measurement window."""

    min: float = 0.0
    avg: float = 0.0
    max: float = 0.0
    sample_count: int = 0
    window_start: datetime | None = None
    window_end: datetime | None = None

    @classmethod
    def from_aggregate(
        cls, aggregate: PowerWindowAggregate, window_end: datetime
    ) -> PowerSnapshot:
        return cls(
            min=aggregate.min,
            avg=aggregate.avg,
            max=aggregate.max,
            sample_count=aggregate.sample_count,
            window_start=aggregate.window_start,
            window_end=window_end,
        )


EMPTY_SNAPSHOT = PowerSnapshot()
"""Reported until the first window has been published."""


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------


class SamplerState(str, Enum):
    """Whether the sampler has an open window and a scheduled tick."""

    IDLE = "idle"
    RUNNING = "running"


class PowerSampler:
    """Polls instantaneous power and publishes windowed statistics.

    Args:
        read_power: Coroutine function returning one power value in watts.
            Raising :class:`TransactionError` or :class:`DecodeError` means
            "no sample this cycle".
        device_id: Device identifier used in log messages.
        clock: Returns the current time; injectable for tests.
        on_sample: Optional listener invoked at the end of every tick in the
            same execution context.
    """

    def __init__(
        self,
        read_power: ReadPower,
        *,
        device_id: str = "",
        clock: Clock = utcnow,
        on_sample: SampleListener | None = None,
    ) -> None:
        self._read_power = read_power
        self._device_id = device_id
        self._clock = clock
        self._on_sample = on_sample
        self._task: asyncio.Task[None] | None = None
        self._window: PowerWindowAggregate | None = None
        self._snapshot: PowerSnapshot = EMPTY_SNAPSHOT
        self._poll_interval_s: float = 0.0
        self._measurement_interval_s: float = 0.0

    # -- lifecycle -------------------------------------------------------

    @property
    def state(self) -> SamplerState:
        return SamplerState.RUNNING if self._window is not None else SamplerState.IDLE

    def start(self, poll_interval_s: float, measurement_interval_s: float) -> None:
        """Open an empty window and schedule a tick every *poll_interval_s*.

        Starting a running sampler is a no-op.  Must be called from within
        a running event loop.

        Raises:
            ValueError: If an interval is not positive or the poll interval
                exceeds the measurement interval.
        """
        if self.state is SamplerState.RUNNING:
            return
        if poll_interval_s <= 0 or measurement_interval_s <= 0:
            raise ValueError("poll and measurement intervals must be positive")
        if poll_interval_s > measurement_interval_s:
            raise ValueError(
                f"poll interval {poll_interval_s}s exceeds measurement interval "
                f"{measurement_interval_s}s"
            )

        self._poll_interval_s = poll_interval_s
        self._measurement_interval_s = measurement_interval_s
        self._window = PowerWindowAggregate(window_start=self._clock())
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"power-sampler-{self._device_id}"
        )
        logger.info(
            "%s: power sampler started (poll=%ss, measurement=%ss)",
            self._device_id,
            poll_interval_s,
            measurement_interval_s,
        )

    def stop(self) -> None:
        """Cancel the schedule and discard the in-progress window.

        The last published snapshot is kept.  Stopping an idle sampler is a
        no-op.
        """
        if self.state is SamplerState.IDLE:
            return
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._window = None
        logger.info("%s: power sampler stopped", self._device_id)

    async def aclose(self) -> None:
        """Stop and wait until a tick cancelled mid-read has unwound."""
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # -- reported values -------------------------------------------------

    @property
    def snapshot(self) -> PowerSnapshot:
        """Most recently published window statistics."""
        return self._snapshot

    @property
    def min_power(self) -> float:
        return self._snapshot.min

    @property
    def average_power(self) -> float:
        return self._snapshot.avg

    @property
    def max_power(self) -> float:
        return self._snapshot.max

    @property
    def window(self) -> PowerWindowAggregate | None:
        """The window currently being accumulated, ``None`` while idle."""
        return self._window

    # -- tick ------------------------------------------------------------

    async def tick(self) -> float | None:
        """Run one poll cycle: read, fold, roll the window, notify.

        Never raises for read failures; they are logged and the window is
        not penalized.  The tick still counts toward rollover timing.

        Returns:
            The power sample, or ``None`` if no sample was obtained.
        """
        value: float | None = None
        try:
            value = await self._read_power()
        except (TransactionError, DecodeError) as err:
            logger.warning("%s: no power sample this cycle: %s", self._device_id, err)
        except Exception:
            logger.error("%s: power read error", self._device_id, exc_info=True)

        now = self._clock()
        window = self._window
        if window is None:
            return value

        if value is not None:
            window = window.fold(value)

        elapsed = (now - window.window_start).total_seconds()
        if elapsed >= self._measurement_interval_s:
            self._snapshot = PowerSnapshot.from_aggregate(window, now)
            logger.debug(
                "%s: window closed: samples=%d min=%.1fW avg=%.1fW max=%.1fW",
                self._device_id,
                window.sample_count,
                window.min,
                window.avg,
                window.max,
            )
            window = PowerWindowAggregate(window_start=now)
        self._window = window

        if self._on_sample is not None:
            try:
                await self._on_sample(value, now)
            except Exception:
                logger.error("%s: sample listener error", self._device_id, exc_info=True)

        return value

    async def _run(self) -> None:
        """Tick every poll interval, starting one interval after start."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._poll_interval_s
        while True:
            await asyncio.sleep(max(next_tick - loop.time(), 0.0))
            await self.tick()
            # A slow tick delays the next one instead of overlapping it.
            next_tick = max(next_tick + self._poll_interval_s, loop.time())
