"""
Meter daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs or register maps.  ``REGISTER_READS`` is a JSON list of
register read declarations, in the order they should be matched.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-111)

TODO:
- None
"""

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from meter.src.meter import DEFAULT_MEASUREMENT_INTERVAL_S, DEFAULT_POLL_INTERVAL_S
from meter.src.registers import RegisterReadSpec
from meter.src.session import MODBUS_TIMEOUT_S


class MeterSettings(BaseSettings):
    """Meter daemon configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        meter_host: Meter IP address / hostname on local LAN.
        meter_port: Modbus TCP port (default 502).
        meter_unit_id: Modbus slave / unit ID (default 1).
        device_id: Device identifier used in logs and status. Defaults to
            meter_host if not set.
        poll_interval_s: Seconds between power reads.
        measurement_interval_s: Seconds per min/avg/max window. Must not be
            shorter than poll_interval_s.
        modbus_timeout_s: Timeout per Modbus request in seconds.
        register_reads: Ordered register read declarations (JSON).
        health_path: Path of the JSON health file.
        status_interval_s: Seconds between health file updates.
    """

    meter_host: str
    meter_port: int = 502
    meter_unit_id: int = 1
    device_id: str = ""
    poll_interval_s: int = DEFAULT_POLL_INTERVAL_S
    measurement_interval_s: int = DEFAULT_MEASUREMENT_INTERVAL_S
    modbus_timeout_s: float = MODBUS_TIMEOUT_S
    register_reads: list[RegisterReadSpec]
    health_path: str = "/data/health.json"
    status_interval_s: int = 60

    @model_validator(mode="after")
    def _default_device_id(self) -> "MeterSettings":
        """Default device_id to meter_host when not explicitly set."""
        if not self.device_id:
            self.device_id = self.meter_host
        return self

    @model_validator(mode="after")
    def _poll_within_measurement_interval(self) -> "MeterSettings":
        """Reject a poll interval longer than the measurement interval."""
        if self.poll_interval_s > self.measurement_interval_s:
            raise ValueError(
                "POLL_INTERVAL_S must be <= MEASUREMENT_INTERVAL_S "
                f"(got {self.poll_interval_s} > {self.measurement_interval_s})"
            )
        return self

    @field_validator("poll_interval_s", "measurement_interval_s", "status_interval_s")
    @classmethod
    def interval_must_be_positive(cls, v: int) -> int:
        """Validate that intervals are at least one second."""
        if v < 1:
            raise ValueError("intervals must be >= 1 second")
        return v

    @field_validator("meter_port")
    @classmethod
    def meter_port_must_be_valid(cls, v: int) -> int:
        """Validate Modbus TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("METER_PORT must be between 1 and 65535")
        return v

    @field_validator("meter_unit_id")
    @classmethod
    def meter_unit_id_must_be_valid(cls, v: int) -> int:
        """Validate Modbus slave ID is in valid range (1-247)."""
        if v < 1 or v > 247:
            raise ValueError("METER_UNIT_ID must be between 1 and 247")
        return v

    @field_validator("modbus_timeout_s")
    @classmethod
    def modbus_timeout_must_be_positive(cls, v: float) -> float:
        """Validate the Modbus request timeout is positive."""
        if v <= 0:
            raise ValueError("MODBUS_TIMEOUT_S must be > 0")
        return v

    @field_validator("register_reads")
    @classmethod
    def register_reads_must_not_be_empty(
        cls, v: list[RegisterReadSpec]
    ) -> list[RegisterReadSpec]:
        """Validate at least one register read is declared."""
        if not v:
            raise ValueError("REGISTER_READS must declare at least one register read")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
