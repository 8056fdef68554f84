"""
Modbus electricity meter device.

Represents an electricity meter accessible by Modbus TCP.  The device is
polled every poll interval in order to provide min/avg/max power of the
measurement interval, and an energy counter that can be started, stopped
and reset by the owning appliance.  The TCP connection to the device
remains established across polls.

Energy is read directly from an ``Energy`` register when one is declared;
otherwise it is integrated from the power samples.  In register mode the
baseline is read when the counter is started or reset, so energy used
before the next poll is counted.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-110)
- 2026-10-18: Energy baseline read when the counter is started or reset (STORY-114)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING

from meter.src.clock import Clock, utcnow
from meter.src.energy import EnergyAccumulator, EnergySource
from meter.src.exceptions import DecodeError, TransactionError
from meter.src.executor import get_read_executor
from meter.src.models import MeterStatus
from meter.src.power import PowerSampler, SamplerState
from meter.src.registers import MeterValueName, RegisterReadSpec, get_first_register_read
from meter.src.validator import validate

if TYPE_CHECKING:
    from meter.src.session import Session

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_POLL_INTERVAL_S: int = 10
"""Seconds between power reads when not configured."""

DEFAULT_MEASUREMENT_INTERVAL_S: int = 60
"""Seconds per min/avg/max window when not configured."""

REQUIRED_VALUES: tuple[MeterValueName, ...] = (MeterValueName.POWER,)
"""Quantities that must be declared before polling can start."""


class ModbusElectricityMeter:
    """Electricity meter polled over a persistent Modbus session.

    Args:
        device_id: Identifier of the appliance/device used in logs.
        session: Connected transport session for this device.
        register_reads: Register reads in declaration order.
        poll_interval_s: Seconds between power reads.
        measurement_interval_s: Seconds per min/avg/max window.
        clock: Returns the current time; injectable for tests.

    Raises:
        ValueError: If the poll interval exceeds the measurement interval.
    """

    def __init__(
        self,
        *,
        device_id: str,
        session: Session,
        register_reads: Sequence[RegisterReadSpec],
        poll_interval_s: int | None = None,
        measurement_interval_s: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.device_id = device_id
        self._session = session
        self._reads = tuple(register_reads)
        self.poll_interval_s = (
            poll_interval_s if poll_interval_s is not None else DEFAULT_POLL_INTERVAL_S
        )
        self.measurement_interval_s = (
            measurement_interval_s
            if measurement_interval_s is not None
            else DEFAULT_MEASUREMENT_INTERVAL_S
        )
        if self.poll_interval_s > self.measurement_interval_s:
            raise ValueError(
                f"{device_id}: poll interval {self.poll_interval_s}s exceeds "
                f"measurement interval {self.measurement_interval_s}s"
            )

        self._clock = clock
        energy_read = get_first_register_read(MeterValueName.ENERGY, self._reads)
        self._energy_meter = EnergyAccumulator(
            EnergySource.ENERGY if energy_read is not None else EnergySource.POWER,
            device_id=device_id,
            clock=clock,
        )
        self._power_meter = PowerSampler(
            self._read_power,
            device_id=device_id,
            clock=clock,
            on_sample=self._on_power_sample,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._power_meter.state is SamplerState.RUNNING

    @property
    def energy_source(self) -> EnergySource:
        return self._energy_meter.source

    def validate(self) -> None:
        """Check the register reads before the device is armed.

        Raises:
            ConfigurationError: If a required quantity has no register read.
        """
        logger.debug("%s: Validating configuration", self.device_id)
        logger.debug(
            "%s: configured: poll interval=%ss / measurement interval=%ss",
            self.device_id,
            self.poll_interval_s,
            self.measurement_interval_s,
        )
        result = validate(REQUIRED_VALUES, self._reads, device_id=self.device_id)
        if not result.valid:
            logger.error(
                "%s: Not starting because of incorrect configuration", self.device_id
            )
        result.raise_for_errors()

    def start(self) -> None:
        """Validate the configuration and start polling.

        Starting a running meter is a no-op.

        Raises:
            ConfigurationError: If validation fails; polling does not start.
        """
        if self.running:
            return
        self.validate()
        logger.debug("%s: Starting ...", self.device_id)
        self._power_meter.start(self.poll_interval_s, self.measurement_interval_s)

    def stop(self) -> None:
        """Stop polling.  Stopping a stopped meter is a no-op."""
        if not self.running:
            return
        logger.debug("%s: Stopping ...", self.device_id)
        self._power_meter.stop()

    async def aclose(self) -> None:
        """Stop polling and wait for an in-flight tick to finish unwinding."""
        if self.running:
            logger.debug("%s: Stopping ...", self.device_id)
        await self._power_meter.aclose()

    # ------------------------------------------------------------------
    # Power
    # ------------------------------------------------------------------

    def get_average_power(self) -> int:
        power = round(self._power_meter.average_power)
        logger.debug("%s: average power = %dW", self.device_id, power)
        return power

    def get_min_power(self) -> int:
        power = round(self._power_meter.min_power)
        logger.debug("%s: min power = %dW", self.device_id, power)
        return power

    def get_max_power(self) -> int:
        power = round(self._power_meter.max_power)
        logger.debug("%s: max power = %dW", self.device_id, power)
        return power

    async def is_on(self) -> bool:
        """Whether an instantaneous power read succeeds and is above 0."""
        power = await self.poll_power()
        return power is not None and power > 0

    async def poll_power(self) -> float | None:
        """Read instantaneous power, or ``None`` if the read failed."""
        return await self._poll(MeterValueName.POWER)

    # ------------------------------------------------------------------
    # Energy
    # ------------------------------------------------------------------

    def get_energy(self) -> float:
        return self._energy_meter.get_energy()

    async def start_energy_meter(self) -> None:
        """Start the energy counter.  Starting a running counter is a no-op."""
        if self._energy_meter.running:
            return
        logger.debug("%s: Start energy meter ...", self.device_id)
        baseline = await self._read_energy_baseline()
        self._energy_meter.start_energy_counter(baseline)

    def stop_energy_meter(self) -> None:
        logger.debug("%s: Stop energy meter ...", self.device_id)
        self._energy_meter.stop_energy_counter()

    async def reset_energy_meter(self) -> None:
        logger.debug("%s: Reset energy meter ...", self.device_id)
        baseline = await self._read_energy_baseline()
        self._energy_meter.reset_energy_counter(baseline)

    async def poll_energy(self) -> float | None:
        """Read the energy register, or ``None`` if absent or the read failed."""
        return await self._poll(MeterValueName.ENERGY)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> MeterStatus:
        """Return the currently reported measurements."""
        snapshot = self._power_meter.snapshot
        return MeterStatus(
            device_id=self.device_id,
            ts=self._clock(),
            min_power_w=round(snapshot.min),
            average_power_w=round(snapshot.avg),
            max_power_w=round(snapshot.max),
            window_sample_count=snapshot.sample_count,
            energy_wh=self._energy_meter.get_energy(),
            energy_counter_running=self._energy_meter.running,
        )

    # ------------------------------------------------------------------
    # Register reads
    # ------------------------------------------------------------------

    async def _read(self, name: MeterValueName) -> float:
        """Read the first register declared for *name*.

        Raises:
            TransactionError: If nothing is declared or the transport fails.
            DecodeError: If the payload does not match the declaration.
        """
        read = get_first_register_read(name, self._reads)
        if read is None:
            raise TransactionError(f"no register read configured for {name.value}")
        value = await get_read_executor(read).execute(self._session, read)
        logger.debug("%s: %s value=%s", self.device_id, name.value, value)
        return value

    async def _read_power(self) -> float:
        return await self._read(MeterValueName.POWER)

    async def _poll(self, name: MeterValueName) -> float | None:
        try:
            return await self._read(name)
        except (TransactionError, DecodeError):
            logger.error(
                "%s: Error reading %s register", self.device_id, name.value, exc_info=True
            )
            return None

    async def _read_energy_baseline(self) -> float | None:
        """Read the energy register for a new baseline.

        Returns ``None`` in power mode, or when the read fails, in which
        case the next tick's reading becomes the baseline.
        """
        if self._energy_meter.source is not EnergySource.ENERGY:
            return None
        try:
            return await self._read(MeterValueName.ENERGY)
        except (TransactionError, DecodeError) as err:
            logger.warning(
                "%s: no energy baseline, using next reading: %s", self.device_id, err
            )
            return None

    async def _on_power_sample(self, power: float | None, ts: datetime) -> None:
        """Feed the energy counter from within the sampler's tick."""
        if not self._energy_meter.running:
            return
        if self._energy_meter.source is EnergySource.POWER:
            if power is not None:
                self._energy_meter.observe(power, ts)
            return

        try:
            energy = await self._read(MeterValueName.ENERGY)
        except (TransactionError, DecodeError) as err:
            logger.warning("%s: no energy reading this cycle: %s", self.device_id, err)
            return
        self._energy_meter.observe(energy, ts)
