"""
Error taxonomy for the live voice core and the chat services.

Setup errors (SessionStartError subclasses) propagate to the caller of
LiveVoiceSession.start(). Steady-state errors (DecodeMalformed,
PlaybackError) are contained per event by the runtime.
"""

from __future__ import annotations


class SessionStartError(Exception):
    """Base class for failures that abort LiveVoiceSession.start()."""


class DeviceUnavailable(SessionStartError):
    """The capture or output device could not be opened."""


class PermissionDenied(DeviceUnavailable):
    """Access to the microphone was refused by the host."""


class TransportOpenFailed(SessionStartError):
    """The live model handshake failed (or the transport was closed first)."""


class TransportError(Exception):
    """Mid-session transport failure; terminates the session."""


class DecodeMalformed(ValueError):
    """A downlink audio payload cannot be interpreted as PCM16 frames."""


class PlaybackError(RuntimeError):
    """The output context refused a play/stop request."""


class SessionStateError(RuntimeError):
    """Operation not allowed in the current session state."""


class MediaGenerationError(RuntimeError):
    """Image or video generation returned no usable result."""


_PERMISSION_MARKERS = ("permission", "denied", "not authorized", "not permitted")


def classify_device_error(exc: BaseException) -> DeviceUnavailable:
    """
    Map a host audio error onto the start-failure taxonomy.

    PortAudio reports refused microphone access as a generic error, so
    the message text is the only signal.
    """
    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    if any(marker in lowered for marker in _PERMISSION_MARKERS):
        return PermissionDenied(message)
    return DeviceUnavailable(message)
