"""
Meter daemon main loop.

Builds a persistent Modbus session and a :class:`ModbusElectricityMeter`
from the environment, validates the register reads, starts power sampling
and runs a status loop that writes the derived measurements to a JSON
health file.

The status loop is resilient: an exception in one iteration is logged and
does not crash the loop.  Graceful shutdown on SIGTERM/SIGINT sets a shared
asyncio.Event; the meter is stopped and the session closed before exiting.
A configuration error is a startup failure: it is logged and the daemon
exits with status 1.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-113)
- 2026-10-18: Await sampler shutdown before the session is closed (STORY-114)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from meter.src.exceptions import ConfigurationError, TransactionError

if TYPE_CHECKING:
    from meter.src.health import HealthWriter
    from meter.src.meter import ModbusElectricityMeter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the meter daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup.

    Args:
        settings: A MeterSettings instance (or any object with the same attrs).
    """
    reads = ", ".join(
        f"{r.name.value}@{r.address}/{r.decoding.value}"
        for r in settings.register_reads  # type: ignore[attr-defined]
    )
    logger.info(
        "Meter daemon starting with config: "
        "meter_host=%s, meter_port=%s, meter_unit_id=%s, device_id=%s, "
        "poll_interval_s=%s, measurement_interval_s=%s, modbus_timeout_s=%s, "
        "status_interval_s=%s, health_path=%s, register_reads=[%s]",
        settings.meter_host,  # type: ignore[attr-defined]
        settings.meter_port,  # type: ignore[attr-defined]
        settings.meter_unit_id,  # type: ignore[attr-defined]
        settings.device_id,  # type: ignore[attr-defined]
        settings.poll_interval_s,  # type: ignore[attr-defined]
        settings.measurement_interval_s,  # type: ignore[attr-defined]
        settings.modbus_timeout_s,  # type: ignore[attr-defined]
        settings.status_interval_s,  # type: ignore[attr-defined]
        settings.health_path,  # type: ignore[attr-defined]
        reads,
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


def _status_once(
    *,
    meter: ModbusElectricityMeter,
    health: HealthWriter | None,
) -> None:
    """Log the meter's current measurements and update the health file.

    Catches all exceptions so that the caller's loop is never broken.
    """
    try:
        status = meter.status()
        logger.info(
            "%s: power min=%dW avg=%dW max=%dW (samples=%d), energy=%.3fWh",
            status.device_id,
            status.min_power_w,
            status.average_power_w,
            status.max_power_w,
            status.window_sample_count,
            status.energy_wh,
        )
        if health is not None:
            health.record_status(status)
    except Exception:
        logger.error("Status cycle error", exc_info=True)


# ---------------------------------------------------------------------------
# Runner with graceful shutdown
# ---------------------------------------------------------------------------


async def run_meter(
    *,
    meter: ModbusElectricityMeter,
    status_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Start the meter and report its status until shutdown.

    Args:
        meter: The meter to run.
        status_interval_s: Seconds between status reports.
        shutdown_event: Event to signal graceful shutdown.
        health: HealthWriter instance, or None to skip health writes.

    Raises:
        ConfigurationError: If the meter's register reads are invalid; the
            meter is not started.
    """
    meter.start()
    try:
        await meter.start_energy_meter()
        logger.info("Status loop started (interval=%ss)", status_interval_s)
        while not shutdown_event.is_set():
            # Use wait with timeout so we can check shutdown between sleeps
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=status_interval_s,
                )
            _status_once(meter=meter, health=health)
    finally:
        await meter.aclose()
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> int:
    """Async entrypoint: load config, build components, run until shutdown.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.

    Returns:
        Process exit status (0 on clean shutdown, 1 on configuration error).
    """
    configure_logging()

    from meter.src.config import MeterSettings
    from meter.src.health import HealthWriter
    from meter.src.meter import ModbusElectricityMeter
    from meter.src.session import ModbusSession

    settings = MeterSettings()
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    session = ModbusSession(
        host=settings.meter_host,
        port=settings.meter_port,
        unit_id=settings.meter_unit_id,
        timeout=settings.modbus_timeout_s,
    )
    meter = ModbusElectricityMeter(
        device_id=settings.device_id,
        session=session,
        register_reads=settings.register_reads,
        poll_interval_s=settings.poll_interval_s,
        measurement_interval_s=settings.measurement_interval_s,
    )
    health = HealthWriter(settings.health_path)

    try:
        try:
            await session.connect()
        except TransactionError:
            # Reads reconnect lazily; the first ticks just report no sample.
            logger.warning("Initial connection failed, continuing", exc_info=True)

        await run_meter(
            meter=meter,
            status_interval_s=settings.status_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        )
    except ConfigurationError as err:
        logger.error("Startup failed: %s", err)
        return 1
    finally:
        session.close()
    return 0


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the meter daemon."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
