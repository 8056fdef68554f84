"""
Register read executors.

An executor issues a single read transaction for a :class:`RegisterReadSpec`
and turns the response into a physical value.  There is one executor
variant per :class:`~meter.src.registers.Decoding`; :func:`get_read_executor`
selects the variant once, when the register read is configured.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-105)

TODO:
- None
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from meter.src.decoder import decode
from meter.src.registers import Decoding, RegisterReadSpec

if TYPE_CHECKING:
    from meter.src.session import Session

logger = logging.getLogger(__name__)


class RegisterReadExecutor(ABC):
    """Reads one register declaration and decodes its value."""

    decoding: Decoding

    async def execute(self, session: Session, spec: RegisterReadSpec) -> float:
        """Read *spec* from *session* and return the decoded value.

        Raises:
            TransactionError: If the transport reports a fault.
            DecodeError: If the payload does not match the declared width.
        """
        raw = await session.read_registers(
            spec.register_type,
            spec.address,
            spec.byte_length,
        )
        value = self.decode(raw, spec)
        logger.debug(
            "Register %s@%d (%s): raw=%s value=%s",
            spec.name.value,
            spec.address,
            self.decoding.value,
            raw.hex(),
            value,
        )
        return value

    @abstractmethod
    def decode(self, raw: bytes, spec: RegisterReadSpec) -> float:
        """Convert the raw payload of *spec* into a physical value."""


class ReadFloatRegisterExecutor(RegisterReadExecutor):
    """Reads IEEE-754 float registers (32 or 64 bit)."""

    decoding = Decoding.FLOAT

    def decode(self, raw: bytes, spec: RegisterReadSpec) -> float:
        return decode(raw, Decoding.FLOAT, spec.byte_order, spec.factor_to_value)


class ReadDecimalRegisterExecutor(RegisterReadExecutor):
    """Reads signed integer registers and applies the scale factor."""

    decoding = Decoding.DECIMAL

    def decode(self, raw: bytes, spec: RegisterReadSpec) -> float:
        return decode(raw, Decoding.DECIMAL, spec.byte_order, spec.factor_to_value)


_EXECUTORS: dict[Decoding, RegisterReadExecutor] = {
    Decoding.FLOAT: ReadFloatRegisterExecutor(),
    Decoding.DECIMAL: ReadDecimalRegisterExecutor(),
}


def get_read_executor(spec: RegisterReadSpec) -> RegisterReadExecutor:
    """Return the executor variant matching ``spec.decoding``."""
    return _EXECUTORS[spec.decoding]
