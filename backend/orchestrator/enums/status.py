"""
User-facing call status.

Separate from SessionState: this is what the presentation layer shows.
"""

from __future__ import annotations

from enum import Enum


class CallStatus(str, Enum):
    """Status published to the UI alongside the live transcript."""

    CONNECTING = "connecting"
    LISTENING = "listening"
    ERROR = "error"
    ENDED = "ended"
