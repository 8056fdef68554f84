"""
Cumulative energy counter with start/stop/reset semantics.

The accumulator is fed from the power sampler's tick.  Its data source is
chosen once, from the quantity wired to it:

- ``Power``: each power sample in watts is integrated over the time since
  the previous observation (``delta_wh = power_w * dt_hours``).
- ``Energy``: each reading of a meter's energy register (Wh after the scale
  factor) contributes its increase over the previous reading.

The running total never decreases while the counter runs and is frozen
while it is stopped; only :meth:`EnergyAccumulator.reset_energy_counter`
sets it back to zero.  The whole state is an immutable
:class:`EnergyState` swapped on every change, so readers in other tasks
always see a consistent total.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-108)
- 2026-10-18: Start and reset accept the register baseline (STORY-114)

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from meter.src.clock import Clock, utcnow

logger = logging.getLogger(__name__)

_SECONDS_PER_HOUR = 3600.0


class EnergySource(str, Enum):
    """Quantity the accumulator derives energy from."""

    POWER = "Power"
    ENERGY = "Energy"


@dataclass(frozen=True, slots=True)
class EnergyState:
    """Snapshot of the energy counter.

    Attributes:
        cumulative_energy_wh: Energy accumulated since the last reset.
        last_observed_at: Time integration continues from.
        running: Whether observations are currently counted.
        last_reading: Previous energy register reading (Energy source only);
            ``None`` until a baseline is known.
    """

    cumulative_energy_wh: float = 0.0
    last_observed_at: datetime | None = None
    running: bool = False
    last_reading: float | None = None


class EnergyAccumulator:
    """Integrates power samples or energy readings into a running total.

    Args:
        source: Whether observations are power (W) or energy (Wh) values.
        device_id: Device identifier used in log messages.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        source: EnergySource,
        *,
        device_id: str = "",
        clock: Clock = utcnow,
    ) -> None:
        self._source = source
        self._device_id = device_id
        self._clock = clock
        self._state = EnergyState()

    @property
    def source(self) -> EnergySource:
        return self._source

    @property
    def state(self) -> EnergyState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state.running

    def get_energy(self) -> float:
        """Return the accumulated energy in Wh."""
        return self._state.cumulative_energy_wh

    def start_energy_counter(self, baseline: float | None = None) -> None:
        """Start counting; the next observation integrates from now.

        Starting a running counter is a no-op.

        Args:
            baseline: Energy register reading taken at start (Energy source).
                When ``None`` the next reading becomes the baseline.
        """
        if self._state.running:
            return
        self._state = replace(
            self._state,
            running=True,
            last_observed_at=self._clock(),
            last_reading=baseline,
        )
        logger.debug("%s: energy counter started", self._device_id)

    def stop_energy_counter(self) -> None:
        """Stop counting without clearing the total.

        Stopping a stopped counter is a no-op.
        """
        if not self._state.running:
            return
        self._state = replace(self._state, running=False)
        logger.debug(
            "%s: energy counter stopped at %.3fWh",
            self._device_id,
            self._state.cumulative_energy_wh,
        )

    def reset_energy_counter(self, baseline: float | None = None) -> None:
        """Set the total to zero, whether or not the counter is running.

        Args:
            baseline: Energy register reading taken at reset (Energy source).
                When ``None`` the next reading becomes the baseline.
        """
        self._state = replace(
            self._state,
            cumulative_energy_wh=0.0,
            last_observed_at=self._clock(),
            last_reading=baseline,
        )
        logger.debug("%s: energy counter reset", self._device_id)

    def observe(self, value: float, timestamp: datetime | None = None) -> float:
        """Fold one power sample or energy reading into the total.

        Args:
            value: Power in W (Power source) or meter energy in Wh
                (Energy source).
            timestamp: Time of the observation; defaults to now.

        Returns:
            The energy in Wh added by this observation (0 while stopped).
        """
        state = self._state
        if not state.running:
            return 0.0
        if timestamp is None:
            timestamp = self._clock()

        if self._source is EnergySource.POWER:
            delta, state = self._integrate_power(state, value, timestamp)
        else:
            delta, state = self._advance_reading(state, value, timestamp)

        self._state = replace(
            state,
            cumulative_energy_wh=state.cumulative_energy_wh + delta,
        )
        return delta

    # -- internal --------------------------------------------------------

    def _integrate_power(
        self, state: EnergyState, power_w: float, timestamp: datetime
    ) -> tuple[float, EnergyState]:
        if state.last_observed_at is None:
            return 0.0, replace(state, last_observed_at=timestamp)

        dt_s = (timestamp - state.last_observed_at).total_seconds()
        if dt_s < 0:
            logger.warning(
                "%s: observation at %s precedes %s, ignored",
                self._device_id,
                timestamp.isoformat(),
                state.last_observed_at.isoformat(),
            )
            return 0.0, state

        # Negative power (feed-in) does not count as consumption.
        delta = max(power_w, 0.0) * dt_s / _SECONDS_PER_HOUR
        return delta, replace(state, last_observed_at=timestamp)

    def _advance_reading(
        self, state: EnergyState, reading_wh: float, timestamp: datetime
    ) -> tuple[float, EnergyState]:
        updated = replace(state, last_observed_at=timestamp, last_reading=reading_wh)
        if state.last_reading is None:
            return 0.0, updated

        delta = reading_wh - state.last_reading
        if delta < 0:
            logger.warning(
                "%s: energy reading dropped from %.3fWh to %.3fWh, re-baselining",
                self._device_id,
                state.last_reading,
                reading_wh,
            )
            return 0.0, updated
        return delta, updated
