"""
Register read declarations for Modbus electricity meters.

A meter is described by an ordered list of :class:`RegisterReadSpec`
entries, each mapping one logical quantity (``Power``, ``Energy``) to a
register address, register type, byte length, byte order, decoding and
scale factor.  The list is immutable once loaded.  When several entries
declare the same quantity the first one in declaration order wins, see
:func:`get_first_register_read`.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-102)
- 2026-10-18: Type read names as MeterValueName so unknown names fail at load (STORY-114)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MeterValueName(str, Enum):
    """Logical quantities a meter can provide."""

    POWER = "Power"
    ENERGY = "Energy"


class RegisterType(str, Enum):
    """Modbus register table a read is issued against."""

    INPUT = "InputRegister"
    HOLDING = "HoldingRegister"


class ByteOrder(str, Enum):
    """Byte order of a multi-byte register value.

    ``BigEndianWordSwap`` keeps big-endian bytes inside each 16-bit word but
    transmits the low word first; ``LittleEndianWordSwap`` keeps the word
    order big-endian but swaps the bytes inside each word.
    """

    BIG_ENDIAN = "BigEndian"
    LITTLE_ENDIAN = "LittleEndian"
    BIG_ENDIAN_WORD_SWAP = "BigEndianWordSwap"
    LITTLE_ENDIAN_WORD_SWAP = "LittleEndianWordSwap"


class Decoding(str, Enum):
    """Numeric encoding of the register payload."""

    FLOAT = "Float"
    DECIMAL = "Decimal"


# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


class RegisterReadSpec(BaseModel):
    """Definition of a single register read.

    Attributes:
        name: Logical quantity delivered by this read.  Unknown names are
            rejected when the declaration is loaded.
        address: Modbus start address.
        register_type: Register table to read from.
        byte_length: Number of payload bytes (2 bytes per 16-bit word).
        byte_order: Byte order of the payload.
        decoding: IEEE-754 float or scaled signed integer.
        factor_to_value: Multiplicative factor applied to the decoded number
            to obtain the physical value.  For example 0.1 means the raw
            value is in tenths of a watt.
    """

    model_config = ConfigDict(frozen=True)

    name: MeterValueName
    address: int = Field(ge=0, le=0xFFFF)
    register_type: RegisterType = RegisterType.INPUT
    byte_length: int = Field(default=4, gt=0)
    byte_order: ByteOrder = ByteOrder.BIG_ENDIAN
    decoding: Decoding = Decoding.FLOAT
    factor_to_value: float = 1.0

    @property
    def word_count(self) -> int:
        """Number of 16-bit registers covering :attr:`byte_length`."""
        return (self.byte_length + 1) // 2


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_first_register_read(
    name: MeterValueName,
    reads: Iterable[RegisterReadSpec],
) -> RegisterReadSpec | None:
    """Return the first read declared for *name*, in declaration order.

    Args:
        name: Logical quantity to look up.
        reads: Register reads in the order they were declared.

    Returns:
        The first matching :class:`RegisterReadSpec`, or ``None`` when no
        read declares the quantity.
    """
    for read in reads:
        if read.name == name:
            return read
    return None
