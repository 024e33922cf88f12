"""
Gapless playback scheduler.

Decoded buffers are pinned back-to-back on the output timeline:

    start = max(cursor, output.current_time)
    cursor = start + buffer.duration

so consecutive network chunks play as one continuous stream, in arrival
order, with no client-side resequencing. If the scheduler falls behind
(stall, first chunk) playback restarts at "now".

Invariant (outside of interrupt()):
    sum(duration of pending handles) == cursor - current_time

Ownership:
- Only the session runtime's downlink path calls into this object.
- The output context is owned by the scheduler for the session lifetime.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import count
from typing import Iterator, Protocol

import numpy as np

from audio.frames import AudioBuffer


class OutputContext(Protocol):
    """Clocked output the scheduler pins buffers onto."""

    @property
    def sample_rate(self) -> int: ...

    @property
    def current_time(self) -> float: ...

    def play(self, handle_id: int, samples: np.ndarray, start_time: float) -> None: ...

    def stop(self, handle_id: int) -> None: ...


@dataclass(frozen=True)
class PlaybackHandle:
    """One scheduled output buffer."""
    handle_id: int
    buffer: AudioBuffer
    start_time: float
    duration: float

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


class PlaybackScheduler:
    """
    Owns the play-head cursor and the registry of active handles.
    """

    def __init__(self, output: OutputContext) -> None:
        self._output = output
        self._cursor: float = 0.0
        self._active: dict[int, PlaybackHandle] = {}
        self._ids: Iterator[int] = count(1)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def cursor(self) -> float:
        """Next free slot on the output timeline (seconds)."""
        return self._cursor

    @property
    def active(self) -> dict[int, PlaybackHandle]:
        """Read-only view of scheduled/playing handles, keyed by id."""
        return dict(self._active)

    def __len__(self) -> int:
        return len(self._active)

    def schedule(self, buffer: AudioBuffer) -> PlaybackHandle:
        """
        Append `buffer` to the output timeline.

        Returns the handle registered in the active set.
        """
        start_time = max(self._cursor, self._output.current_time)
        handle = PlaybackHandle(
            handle_id=next(self._ids),
            buffer=buffer,
            start_time=start_time,
            duration=buffer.duration,
        )

        self._output.play(handle.handle_id, buffer.samples, start_time)
        self._cursor = handle.end_time
        self._active[handle.handle_id] = handle
        return handle

    def release(self, handle_id: int) -> bool:
        """
        Natural end-of-playback for one handle.

        Returns False if the handle was already gone (e.g. interrupted).
        """
        return self._remove_and_stop(handle_id)

    def interrupt(self) -> int:
        """
        Stop every active handle immediately and rewind the cursor to 0.

        Returns the number of handles stopped.
        """
        stopped = 0
        for handle_id in list(self._active):
            if self._remove_and_stop(handle_id):
                stopped += 1
        self._cursor = 0.0
        return stopped

    def pending_duration(self) -> float:
        """Seconds of audio scheduled but not yet played."""
        now = self._output.current_time
        return sum(
            h.end_time - max(h.start_time, now)
            for h in self._active.values()
            if h.end_time > now
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _remove_and_stop(self, handle_id: int) -> bool:
        # Shared by natural completion and interruption; stop() on a
        # finished voice is a no-op in the output context.
        handle = self._active.pop(handle_id, None)
        if handle is None:
            return False
        self._output.stop(handle_id)
        return True
