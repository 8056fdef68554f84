"""
Persistent Modbus TCP session for a single meter device.

Wraps one pymodbus ``AsyncModbusTcpClient`` whose TCP connection stays
established across polls.  Every register read is a single request/response
transaction issued under an ``asyncio.Lock`` so two reads are never in
flight on the same connection.  Designed to be robust:

- Lazy reconnect when the connection was dropped between polls.
- Exponential backoff between failed connection attempts (capped at
  MAX_BACKOFF_S) so an unreachable device is not hammered every tick.
- Every protocol-level fault is reported as :class:`TransactionError`.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-104)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from meter.src.decoder import words_to_bytes
from meter.src.exceptions import TransactionError
from meter.src.registers import RegisterType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BASE_BACKOFF_S: float = 1.0
"""Initial backoff delay in seconds after the first connection failure."""

MAX_BACKOFF_S: float = 60.0
"""Maximum backoff delay in seconds (cap for exponential growth)."""

MODBUS_TIMEOUT_S: float = 10.0
"""Default timeout per Modbus TCP request in seconds."""


# ---------------------------------------------------------------------------
# Core-facing interface
# ---------------------------------------------------------------------------


class Session(Protocol):
    """Request/response transport used by the register read executors."""

    async def read_registers(
        self,
        register_type: RegisterType,
        address: int,
        byte_length: int,
    ) -> bytes:
        """Read *byte_length* bytes starting at *address*.

        Raises:
            TransactionError: On any transport or protocol fault.
        """
        ...


# ---------------------------------------------------------------------------
# pymodbus implementation
# ---------------------------------------------------------------------------


class ModbusSession:
    """Persistent Modbus TCP session with serialized transactions.

    Args:
        host: Meter IP address or hostname.
        port: Modbus TCP port (default 502).
        unit_id: Modbus slave / unit ID (default 1).
        timeout: Timeout per request in seconds.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        timeout: float = MODBUS_TIMEOUT_S,
    ) -> None:
        self._host = host
        self._port = port
        self._unit_id = unit_id
        self._timeout = timeout
        self._client: AsyncModbusTcpClient | None = None
        self._lock = asyncio.Lock()
        self._consecutive_failures: int = 0
        self._next_attempt_at: float = 0.0

    @property
    def connected(self) -> bool:
        """Whether the underlying TCP connection is currently established."""
        return self._client is not None and bool(self._client.connected)

    async def connect(self) -> None:
        """Open the TCP connection.

        Raises:
            TransactionError: If the device cannot be reached.
        """
        async with self._lock:
            await self._ensure_connected()

    def close(self) -> None:
        """Close the TCP connection."""
        if self._client is not None:
            self._client.close()
            self._client = None

    async def __aenter__(self) -> ModbusSession:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    async def read_registers(
        self,
        register_type: RegisterType,
        address: int,
        byte_length: int,
    ) -> bytes:
        """Issue one read transaction and return the payload bytes.

        The registers returned by pymodbus are packed big-endian word by
        word; byte order interpretation is left to the decoder.  An odd
        *byte_length* reads the covering whole word and keeps the leading
        bytes.

        Raises:
            TransactionError: On connection failure, Modbus exception
                response, I/O error, timeout or short response.
        """
        count = (byte_length + 1) // 2
        async with self._lock:
            await self._ensure_connected()
            assert self._client is not None
            read_fn = (
                self._client.read_input_registers
                if register_type is RegisterType.INPUT
                else self._client.read_holding_registers
            )
            try:
                response = await read_fn(address, count=count, device_id=self._unit_id)
            except (ModbusException, TimeoutError, OSError) as err:
                # The connection state is unknown after an I/O fault.
                self.close()
                raise TransactionError(
                    f"Failed to read {register_type.value} at {address} "
                    f"from {self._host}:{self._port}: {err}"
                ) from err

        if response.isError():
            raise TransactionError(
                f"Modbus error reading {register_type.value} at {address}: {response}"
            )
        registers = getattr(response, "registers", None)
        if registers is None or len(registers) < count:
            raise TransactionError(
                f"Malformed response reading {register_type.value} at {address}: "
                f"expected {count} registers, got {registers!r}"
            )

        payload = words_to_bytes(registers[:count])
        return payload[:byte_length]

    # -- internal --------------------------------------------------------

    async def _ensure_connected(self) -> None:
        """Connect when needed, honouring the backoff window."""
        if self.connected:
            return

        now = time.monotonic()
        if now < self._next_attempt_at:
            raise TransactionError(
                f"Connection to {self._host}:{self._port} backing off for "
                f"{self._next_attempt_at - now:.1f}s"
            )

        if self._client is None:
            self._client = AsyncModbusTcpClient(
                self._host,
                port=self._port,
                timeout=self._timeout,
            )

        try:
            ok = await self._client.connect()
        except Exception as err:
            self._record_connect_failure()
            raise TransactionError(
                f"Failed to connect to {self._host}:{self._port}: {err}"
            ) from err

        if not ok:
            self._record_connect_failure()
            raise TransactionError(
                f"Failed to connect to {self._host}:{self._port} "
                "(connect returned False)"
            )

        if self._consecutive_failures:
            logger.info(
                "Reconnected to %s:%d after %d failed attempts",
                self._host,
                self._port,
                self._consecutive_failures,
            )
        self._consecutive_failures = 0
        self._next_attempt_at = 0.0

    def _record_connect_failure(self) -> None:
        self._consecutive_failures += 1
        delay = min(
            BASE_BACKOFF_S * (2 ** (self._consecutive_failures - 1)),
            MAX_BACKOFF_S,
        )
        self._next_attempt_at = time.monotonic() + delay
        logger.warning(
            "Connection to %s:%d failed, next attempt in %.1fs "
            "(consecutive failures: %d)",
            self._host,
            self._port,
            delay,
            self._consecutive_failures,
        )
