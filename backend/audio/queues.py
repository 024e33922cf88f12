# backend/audio/queues.py
"""
Bounded uplink frame queue with depth measured in seconds.

Requirements:
- Depth measured in seconds of audio (not frame count)
- Explicit drop behavior: overflow drops the NEW frame
- FIFO order is never changed and frames are never coalesced
- Deterministic, synchronous behavior
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from audio.frames import UplinkFrame


@dataclass
class DropCounters:
    """
    Drop counters for observability.
    """
    overflow: int = 0


class UplinkFrameQueue:
    """
    Bounded FIFO queue for UplinkFrame objects.

    Sits between the synchronous transport send() and the task that
    writes frames to the live session.
    """

    def __init__(self, *, max_depth_s: float) -> None:
        if max_depth_s <= 0:
            raise ValueError("max_depth_s must be > 0")

        self._max_depth_s: float = max_depth_s
        self._frames: Deque[UplinkFrame] = deque()
        self._depth_s: float = 0.0
        self.drops: DropCounters = DropCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, frame: UplinkFrame) -> bool:
        """
        Enqueue an UplinkFrame.

        Returns:
            True if enqueued
            False if dropped (queue would exceed max_depth_s)
        """
        if self._frames and self._depth_s + frame.duration_s > self._max_depth_s:
            self.drops.overflow += 1
            return False

        self._frames.append(frame)
        self._depth_s += frame.duration_s
        return True

    def dequeue(self) -> Optional[UplinkFrame]:
        """
        Dequeue the oldest UplinkFrame.

        Returns None if queue is empty.
        """
        if not self._frames:
            return None
        frame = self._frames.popleft()
        self._depth_s = max(0.0, self._depth_s - frame.duration_s) if self._frames else 0.0
        return frame

    def clear(self) -> None:
        """
        Drop all queued frames without counting them as drops.

        Used on transport close.
        """
        self._frames.clear()
        self._depth_s = 0.0

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._frames)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._frames

    def depth_seconds(self) -> float:
        """Queued audio in seconds."""
        return self._depth_s

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging.
        """
        return {
            "frames": len(self._frames),
            "depth_s": self._depth_s,
            "dropped_overflow": self.drops.overflow,
        }
