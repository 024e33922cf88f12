"""
Duplex transport contract.

This module defines the *interface only*: no SDK calls, no retries, no
state machine decisions.

Key invariants:
- send() never blocks and never reorders frames.
- Downlink events are delivered to on_event strictly in arrival order.
- close() is idempotent and valid before, during or after open().
- Open failures raise TransportOpenFailed; they are never retried here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from audio.frames import UplinkFrame
from orchestrator.events import Event
from spec import LIVE_RESPONSE_MODALITY, LIVE_VOICE


EventSink = Callable[[Event], None]


@dataclass(frozen=True)
class LiveSessionConfig:
    """
    Live session open configuration.

    response_modality:
        Requested output modality (audio).
    voice_name:
        Prebuilt voice identity.
    output_transcription:
        Ask the service to transcribe its own audio output.
    """
    voice_name: str = LIVE_VOICE
    response_modality: str = LIVE_RESPONSE_MODALITY
    output_transcription: bool = True
    system_instruction: str | None = None


class DuplexTransport(ABC):
    """
    Abstract duplex channel to a remote realtime model.

    Implementations emit, via the sink passed to open():
    - TransportOpened once the handshake completes
    - TranscriptDelta / AudioDelta / Interrupted as they arrive
    - TransportClosed or TransportFailed exactly once at the end
    """

    @abstractmethod
    async def open(self, *, model: str, config: LiveSessionConfig, on_event: EventSink) -> None:
        """
        Establish the channel.

        Raises:
            TransportOpenFailed if the handshake fails or close() won the race.
        """
        raise NotImplementedError

    @abstractmethod
    def send(self, frame: UplinkFrame) -> None:
        """
        Enqueue one uplink frame (fire-and-forget).

        Frames sent before open() completes or after close() are dropped.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Release all transport resources.

        Contract:
        - Idempotent: repeated calls are no-ops.
        - No events are emitted after close() returns.
        """
        raise NotImplementedError
