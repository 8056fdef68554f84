"""
Unit tests for meter daemon configuration (MeterSettings).

Tests verify:
- Config loads from environment variables with correct defaults.
- Config validation rejects missing required variables.
- REGISTER_READS is parsed from JSON in declaration order.
- Numeric constraints are enforced (intervals, port, unit id, timeout).
- DEVICE_ID defaults to METER_HOST when not set.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-111)

TODO:
- None
"""

import pytest
from meter.src.config import MeterSettings
from meter.src.registers import ByteOrder, Decoding, RegisterType
from pydantic import ValidationError


class TestMeterSettingsLoadsFromEnv:
    """Config loads all values from environment variables."""

    def test_loads_all_env_vars(self, env_vars_full: dict[str, str]) -> None:
        """All env vars are read and assigned correctly."""
        settings = MeterSettings()

        assert settings.meter_host == env_vars_full["METER_HOST"]
        assert settings.meter_port == int(env_vars_full["METER_PORT"])
        assert settings.meter_unit_id == int(env_vars_full["METER_UNIT_ID"])
        assert settings.device_id == env_vars_full["DEVICE_ID"]
        assert settings.poll_interval_s == int(env_vars_full["POLL_INTERVAL_S"])
        assert settings.measurement_interval_s == int(
            env_vars_full["MEASUREMENT_INTERVAL_S"]
        )
        assert settings.modbus_timeout_s == float(env_vars_full["MODBUS_TIMEOUT_S"])
        assert settings.health_path == env_vars_full["HEALTH_PATH"]
        assert settings.status_interval_s == int(env_vars_full["STATUS_INTERVAL_S"])

    def test_register_reads_parsed_in_order(
        self, env_vars_full: dict[str, str]
    ) -> None:
        settings = MeterSettings()

        assert [r.name for r in settings.register_reads] == ["Power", "Energy"]
        energy = settings.register_reads[1]
        assert energy.register_type is RegisterType.INPUT
        assert energy.byte_order is ByteOrder.BIG_ENDIAN
        assert energy.decoding is Decoding.DECIMAL
        assert energy.factor_to_value == 10.0

    def test_defaults_applied_when_optional_vars_missing(
        self, env_vars_required_only: dict[str, str]
    ) -> None:
        """Optional variables use default values when not set."""
        settings = MeterSettings()

        assert settings.meter_port == 502
        assert settings.meter_unit_id == 1
        assert settings.poll_interval_s == 10
        assert settings.measurement_interval_s == 60
        assert settings.modbus_timeout_s == 10.0
        assert settings.health_path == "/data/health.json"
        assert settings.status_interval_s == 60

    def test_device_id_defaults_to_host(
        self, env_vars_required_only: dict[str, str]
    ) -> None:
        settings = MeterSettings()
        assert settings.device_id == env_vars_required_only["METER_HOST"]


class TestMeterSettingsRequired:
    """Missing required variables are rejected."""

    def test_missing_host(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REGISTER_READS", '[{"name": "Power", "address": 12}]')
        with pytest.raises(ValidationError):
            MeterSettings()

    def test_missing_register_reads(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METER_HOST", "10.0.0.50")
        with pytest.raises(ValidationError):
            MeterSettings()

    def test_empty_register_reads(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METER_HOST", "10.0.0.50")
        monkeypatch.setenv("REGISTER_READS", "[]")
        with pytest.raises(ValidationError, match="REGISTER_READS"):
            MeterSettings()

    def test_invalid_register_read(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METER_HOST", "10.0.0.50")
        monkeypatch.setenv(
            "REGISTER_READS", '[{"name": "Power", "address": 12, "decoding": "Hex"}]'
        )
        with pytest.raises(ValidationError):
            MeterSettings()

    def test_misspelled_register_read_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A lower-case quantity name fails at load, not later at start."""
        monkeypatch.setenv("METER_HOST", "10.0.0.50")
        monkeypatch.setenv("REGISTER_READS", '[{"name": "power", "address": 12}]')
        with pytest.raises(ValidationError):
            MeterSettings()


class TestMeterSettingsConstraints:
    """Numeric constraints are enforced."""

    def test_poll_interval_longer_than_measurement_interval(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("POLL_INTERVAL_S", "120")
        with pytest.raises(ValidationError, match="POLL_INTERVAL_S"):
            MeterSettings()

    def test_poll_interval_equal_to_measurement_interval_allowed(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("POLL_INTERVAL_S", "60")
        assert MeterSettings().poll_interval_s == 60

    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_interval_must_be_positive(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        value: str,
    ) -> None:
        monkeypatch.setenv("POLL_INTERVAL_S", value)
        with pytest.raises(ValidationError):
            MeterSettings()

    @pytest.mark.parametrize("value", ["0", "65536"])
    def test_port_range(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        value: str,
    ) -> None:
        monkeypatch.setenv("METER_PORT", value)
        with pytest.raises(ValidationError, match="METER_PORT"):
            MeterSettings()

    @pytest.mark.parametrize("value", ["0", "248"])
    def test_unit_id_range(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        value: str,
    ) -> None:
        monkeypatch.setenv("METER_UNIT_ID", value)
        with pytest.raises(ValidationError, match="METER_UNIT_ID"):
            MeterSettings()

    def test_timeout_must_be_positive(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("MODBUS_TIMEOUT_S", "0")
        with pytest.raises(ValidationError, match="MODBUS_TIMEOUT_S"):
            MeterSettings()
