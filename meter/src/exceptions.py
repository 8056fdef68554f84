"""Meter exceptions.

All errors raised by the meter package inherit from :class:`MeterError` so
callers can use a single ``except MeterError`` for read, decode and
configuration failures.
"""

from __future__ import annotations

from collections.abc import Iterable


class MeterError(Exception):
    """Base exception for all meter errors."""

    pass


class TransactionError(MeterError):
    """A single register read transaction failed.

    Covers timeouts, Modbus exception responses, connection loss and
    malformed responses.
    """

    pass


class DecodeError(MeterError):
    """Raw register bytes do not match the declared encoding or width."""

    pass


class ConfigurationError(MeterError):
    """A required quantity has no matching register read declaration."""

    def __init__(self, device_id: str, missing: Iterable[str]) -> None:
        """Initialize with the device and every missing quantity.

        Args:
            device_id: Identifier of the misconfigured device
            missing: Names of the quantities without a register read
        """
        self.device_id = device_id
        self.missing = tuple(missing)
        super().__init__(
            f"{device_id}: no register read configured for "
            f"{', '.join(self.missing)}"
        )
