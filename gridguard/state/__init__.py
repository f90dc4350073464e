"""Cycle snapshots, position models and the ring buffer."""

from .models import (
    Direction,
    PositionKind,
    Quote,
    Bar,
    PositionInfo,
    PendingOrderInfo,
    ExposureSnapshot,
    CycleSnapshot,
)
from .ring_buffer import RingBuffer

__all__ = [
    "Direction",
    "PositionKind",
    "Quote",
    "Bar",
    "PositionInfo",
    "PendingOrderInfo",
    "ExposureSnapshot",
    "CycleSnapshot",
    "RingBuffer",
]
