"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Uplink audio (microphone -> live model)
# =============================================================================

INPUT_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# 4096 samples @ 16kHz ~= 256ms per capture block
CAPTURE_BLOCK_SAMPLES: Final[int] = 4096

UPLINK_MIME_TYPE: Final[str] = f"audio/pcm;rate={INPUT_SAMPLE_RATE_HZ}"

# Float <-> int16 scale factor (both directions)
PCM16_SCALE: Final[float] = 32768.0
PCM16_MIN: Final[int] = -32768
PCM16_MAX: Final[int] = 32767

# Clip out-of-range capture samples instead of wrapping them
CLAMP_UPLINK_SAMPLES_DEFAULT: Final[bool] = True

# Outbox between the synchronous send() and the SDK writer task.
# Frames beyond this depth are dropped (never reordered).
UPLINK_OUTBOX_MAX_S: Final[float] = 4.0

# =============================================================================
# Downlink audio (live model -> speakers)
# =============================================================================

OUTPUT_SAMPLE_RATE_HZ: Final[int] = 24_000
DOWNLINK_MIME_TYPE: Final[str] = f"audio/pcm;rate={OUTPUT_SAMPLE_RATE_HZ}"
PCM_MIME_PREFIX: Final[str] = "audio/pcm"

# Output stream callback size (frames); 20ms @ 24kHz
OUTPUT_BLOCK_FRAMES: Final[int] = 480

# =============================================================================
# Live session
# =============================================================================

LIVE_MODEL: Final[str] = "gemini-2.5-flash-native-audio-preview-12-2025"
LIVE_VOICE: Final[str] = "Zephyr"
LIVE_RESPONSE_MODALITY: Final[str] = "AUDIO"

# Separator placed between consecutive output transcription deltas
TRANSCRIPT_SEPARATOR: Final[str] = " "

# =============================================================================
# Text / media chat
# =============================================================================

CHAT_MODEL: Final[str] = "gemini-3-flash-preview"
FAST_CHAT_MODEL: Final[str] = "gemini-flash-lite-latest"
IMAGE_MODEL: Final[str] = "gemini-2.5-flash-image"
VIDEO_MODEL: Final[str] = "veo-3.1-fast-generate-preview"

CHAT_TEMPERATURE: Final[float] = 0.7
DEFAULT_SYSTEM_INSTRUCTION: Final[str] = (
    "You are a helpful, professional AI. Use Google Search for current info."
)
# Models whose name contains this marker run without search grounding
LITE_MODEL_MARKER: Final[str] = "lite"

VIDEO_POLL_INTERVAL_S: Final[float] = 5.0
VIDEO_RESOLUTION: Final[str] = "720p"
VIDEO_DEFAULT_ASPECT_RATIO: Final[str] = "16:9"
VIDEO_DEFAULT_PROMPT: Final[str] = "Animate this scene beautifully"

# Trigger word routing an image + prompt to video generation
ANIMATE_KEYWORD: Final[str] = "animate"

# =============================================================================
# Chat session store
# =============================================================================

STORAGE_KEY: Final[str] = "gemini_chat_sessions_v2"
NEW_SESSION_TITLE: Final[str] = "New Conversation"
UNTITLED_SESSION_TITLE: Final[str] = "Untitled Chat"
SESSION_TITLE_MAX_CHARS: Final[int] = 25
SESSION_TITLE_ELLIPSIS: Final[str] = "..."

CHAT_ERROR_TEXT: Final[str] = "Error: Failed to process request."
IMAGE_READY_TEXT: Final[str] = "Here is your edited image."
VIDEO_READY_TEXT: Final[str] = "Your video is ready!"

STATUS_TEXT_VIDEO: Final[str] = "Directing scene with Veo..."
STATUS_TEXT_IMAGE: Final[str] = "Editing image with Nano Banana..."
STATUS_TEXT_FAST: Final[str] = "Thinking fast..."
STATUS_TEXT_SEARCH: Final[str] = "Searching Google..."
