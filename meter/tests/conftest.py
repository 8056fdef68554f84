"""
Shared test fixtures for meter tests.

Provides a scripted fake transport session, a controllable clock, and
environment variable fixtures for MeterSettings configuration tests.  All
meter env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-101)

TODO:
- None
"""

from __future__ import annotations

import json
from collections import deque
from datetime import UTC, datetime, timedelta

import pytest
from meter.src.decoder import encode
from meter.src.exceptions import TransactionError
from meter.src.registers import (
    ByteOrder,
    Decoding,
    RegisterReadSpec,
    RegisterType,
)

# All MeterSettings environment variable names, used for cleanup.
_ALL_METER_ENV_VARS = (
    "METER_HOST",
    "METER_PORT",
    "METER_UNIT_ID",
    "DEVICE_ID",
    "POLL_INTERVAL_S",
    "MEASUREMENT_INTERVAL_S",
    "MODBUS_TIMEOUT_S",
    "REGISTER_READS",
    "HEALTH_PATH",
    "STATUS_INTERVAL_S",
)

POWER_READ = RegisterReadSpec(
    name="Power",
    address=0x0C,
    register_type=RegisterType.INPUT,
    byte_length=4,
    byte_order=ByteOrder.BIG_ENDIAN,
    decoding=Decoding.FLOAT,
)
"""Float power register as exposed by common DIN-rail meters."""

ENERGY_READ = RegisterReadSpec(
    name="Energy",
    address=0x156,
    register_type=RegisterType.INPUT,
    byte_length=4,
    byte_order=ByteOrder.BIG_ENDIAN,
    decoding=Decoding.DECIMAL,
    factor_to_value=10.0,
)
"""Scaled integer energy register in units of 10 Wh."""


# ---------------------------------------------------------------------------
# Fake transport and clock
# ---------------------------------------------------------------------------


class FakeSession:
    """Scripted session returning encoded values per register address.

    ``values[address]`` is a deque of floats or exceptions consumed one per
    read; the last entry is repeated once the deque is down to one item.
    """

    def __init__(self, reads: list[RegisterReadSpec]) -> None:
        self._reads = {r.address: r for r in reads}
        self.values: dict[int, deque[float | Exception]] = {}
        self.calls: list[tuple[RegisterType, int, int]] = []

    def script(self, address: int, *values: float | Exception) -> None:
        self.values[address] = deque(values)

    async def read_registers(
        self, register_type: RegisterType, address: int, byte_length: int
    ) -> bytes:
        self.calls.append((register_type, address, byte_length))
        queue = self.values.get(address)
        if not queue:
            raise TransactionError(f"no response scripted for {address}")
        value = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(value, Exception):
            raise value
        read = self._reads[address]
        return encode(
            value,
            read.decoding,
            read.byte_order,
            byte_length,
            read.factor_to_value,
        )


class FakeClock:
    """Manually advanced clock returning timezone-aware datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 18, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def power_session() -> FakeSession:
    return FakeSession([POWER_READ])


@pytest.fixture()
def energy_session() -> FakeSession:
    return FakeSession([POWER_READ, ENERGY_READ])


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_meter_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all meter env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_METER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for MeterSettings."""
    env = {
        "METER_HOST": "192.168.1.120",
        "METER_PORT": "5020",
        "METER_UNIT_ID": "3",
        "DEVICE_ID": "F-00000001-000000000001-00",
        "POLL_INTERVAL_S": "5",
        "MEASUREMENT_INTERVAL_S": "30",
        "MODBUS_TIMEOUT_S": "2.5",
        "REGISTER_READS": json.dumps(
            [
                POWER_READ.model_dump(mode="json"),
                ENERGY_READ.model_dump(mode="json"),
            ]
        ),
        "HEALTH_PATH": "/tmp/meter-health.json",
        "STATUS_INTERVAL_S": "15",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {
        "METER_HOST": "10.0.0.50",
        "REGISTER_READS": json.dumps([POWER_READ.model_dump(mode="json")]),
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
