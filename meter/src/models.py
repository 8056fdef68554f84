"""
Pydantic models for reported meter status.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-109)

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class MeterStatus(BaseModel):
    """Point-in-time view of a meter's derived measurements.

    Attributes:
        device_id: Unique identifier for the meter device.
        ts: Time the status was taken.
        min_power_w: Minimum power of the last published window in watts.
        average_power_w: Average power of the last published window in watts.
        max_power_w: Maximum power of the last published window in watts.
        window_sample_count: Samples folded into the last published window.
        energy_wh: Energy accumulated since the last reset in watt-hours.
        energy_counter_running: Whether the energy counter is counting.
    """

    device_id: str
    ts: datetime
    min_power_w: int
    average_power_w: int
    max_power_w: int
    window_sample_count: int
    energy_wh: float
    energy_counter_running: bool
