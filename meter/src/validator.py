"""
Startup validation of register read declarations.

Before a device is armed for polling every required quantity must have at
least one register read.  All problems are collected in one pass so an
operator sees the complete misconfiguration at once.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-106)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from meter.src.exceptions import ConfigurationError
from meter.src.registers import MeterValueName, RegisterReadSpec, get_first_register_read

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of :func:`validate`.

    Attributes:
        device_id: Device the declarations belong to.
        selected: Quantity name -> the first read declared for it.
        missing: Quantities without any read, in the order they were required.
    """

    device_id: str
    selected: dict[str, RegisterReadSpec] = field(default_factory=dict)
    missing: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.missing

    def raise_for_errors(self) -> None:
        """Raise :class:`ConfigurationError` naming every missing quantity."""
        if self.missing:
            raise ConfigurationError(self.device_id, self.missing)


def validate(
    required: Iterable[MeterValueName | str],
    reads: Sequence[RegisterReadSpec],
    *,
    device_id: str = "",
) -> ValidationResult:
    """Check that each required quantity has a register read.

    Args:
        required: Quantities the device needs.
        reads: Register reads in declaration order.
        device_id: Device identifier used in log messages and errors.

    Returns:
        A :class:`ValidationResult` listing the selected read per quantity
        and every quantity that has none.

    Raises:
        ValueError: If a required name is not a known quantity.
    """
    selected: dict[str, RegisterReadSpec] = {}
    missing: list[str] = []

    for quantity in required:
        name = MeterValueName(quantity).value
        read = get_first_register_read(name, reads)
        if read is None:
            logger.error("%s: missing register read for %s", device_id, name)
            missing.append(name)
            continue
        logger.debug(
            "%s: %s -> %s@%d bytes=%d byteOrder=%s decoding=%s factorToValue=%s",
            device_id,
            name,
            read.register_type.value,
            read.address,
            read.byte_length,
            read.byte_order.value,
            read.decoding.value,
            read.factor_to_value,
        )
        selected[name] = read

    return ValidationResult(
        device_id=device_id,
        selected=selected,
        missing=tuple(missing),
    )
