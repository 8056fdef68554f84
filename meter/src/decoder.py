"""
Pure decoder that converts raw register bytes into a physical value.

The byte order permutation is applied first so the payload is big-endian,
then the bytes are interpreted either as an IEEE-754 float or as a signed
two's complement integer, and finally multiplied by the scale factor.

This module has no side effects, no I/O and no clock.  Decoding is
deterministic, so there is nothing to retry: a width that does not fit the
declared encoding is a configuration defect and raises :class:`DecodeError`.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-103)

TODO:
- None
"""

from __future__ import annotations

import struct
from collections.abc import Sequence

from meter.src.exceptions import DecodeError
from meter.src.registers import ByteOrder, Decoding

# ---------------------------------------------------------------------------
# Supported widths
# ---------------------------------------------------------------------------

_FLOAT_FORMATS: dict[int, str] = {
    4: ">f",
    8: ">d",
}
"""Maps payload byte length -> struct format for IEEE-754 decoding."""

_DECIMAL_FORMATS: dict[int, str] = {
    2: ">h",
    4: ">i",
    8: ">q",
}
"""Maps payload byte length -> struct format for signed integer decoding."""


# ---------------------------------------------------------------------------
# Byte order helpers
# ---------------------------------------------------------------------------


def words_to_bytes(words: Sequence[int]) -> bytes:
    """Pack 16-bit register words (as returned by pymodbus) big-endian."""
    return b"".join((w & 0xFFFF).to_bytes(2, "big") for w in words)


def _swap_words(raw: bytes) -> bytes:
    """Reverse the order of the 16-bit words, keeping bytes inside each word."""
    words = [raw[i : i + 2] for i in range(0, len(raw), 2)]
    return b"".join(reversed(words))


def _swap_bytes_in_words(raw: bytes) -> bytes:
    """Swap the two bytes inside every 16-bit word."""
    return b"".join(raw[i : i + 2][::-1] for i in range(0, len(raw), 2))


def to_big_endian(raw: bytes, byte_order: ByteOrder) -> bytes:
    """Permute *raw* from *byte_order* into plain big-endian.

    Every permutation here is an involution, so the same call also converts
    big-endian bytes back into *byte_order*.

    Raises:
        DecodeError: If a word based order is requested on an odd length.
    """
    if byte_order is ByteOrder.BIG_ENDIAN:
        return bytes(raw)
    if byte_order is ByteOrder.LITTLE_ENDIAN:
        return bytes(raw[::-1])
    if len(raw) % 2:
        raise DecodeError(
            f"{byte_order.value} needs whole 16-bit words, got {len(raw)} bytes"
        )
    if byte_order is ByteOrder.BIG_ENDIAN_WORD_SWAP:
        return _swap_words(raw)
    return _swap_bytes_in_words(raw)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode(
    raw: bytes,
    decoding: Decoding,
    byte_order: ByteOrder,
    factor_to_value: float = 1.0,
) -> float:
    """Decode a register payload into a scaled physical value.

    Args:
        raw: Payload bytes as transmitted by the device.
        decoding: IEEE-754 float or scaled signed integer.
        byte_order: Byte order of *raw*.
        factor_to_value: Scale factor applied to the decoded number.

    Returns:
        The decoded value multiplied by *factor_to_value*.

    Raises:
        DecodeError: If the payload length is not a supported width for
            *decoding*.
    """
    formats = _FLOAT_FORMATS if decoding is Decoding.FLOAT else _DECIMAL_FORMATS
    fmt = formats.get(len(raw))
    if fmt is None:
        raise DecodeError(
            f"Unsupported width for {decoding.value}: {len(raw)} bytes "
            f"(expected one of {sorted(formats)})"
        )

    (number,) = struct.unpack(fmt, to_big_endian(raw, byte_order))
    return float(number) * factor_to_value


def encode(
    value: float,
    decoding: Decoding,
    byte_order: ByteOrder,
    byte_length: int,
    factor_to_value: float = 1.0,
) -> bytes:
    """Encode a physical value the way a device would transmit it.

    Inverse of :func:`decode`; used by diagnostics and test fixtures.

    Raises:
        DecodeError: If *byte_length* is not a supported width.
    """
    formats = _FLOAT_FORMATS if decoding is Decoding.FLOAT else _DECIMAL_FORMATS
    fmt = formats.get(byte_length)
    if fmt is None:
        raise DecodeError(
            f"Unsupported width for {decoding.value}: {byte_length} bytes "
            f"(expected one of {sorted(formats)})"
        )

    number: float | int = value / factor_to_value
    if decoding is Decoding.DECIMAL:
        number = round(number)
    return to_big_endian(struct.pack(fmt, number), byte_order)
