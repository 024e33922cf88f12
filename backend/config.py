"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants (see spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from spec import (
    CHAT_MODEL,
    CLAMP_UPLINK_SAMPLES_DEFAULT,
    FAST_CHAT_MODEL,
    IMAGE_MODEL,
    LIVE_MODEL,
    LIVE_VOICE,
    VIDEO_MODEL,
)


def _optional_int(value: str | None) -> int | None:
    if value is None or value.strip() == "":
        return None
    return int(value)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed downward to the
    live voice session, the chat service and the HTTP app.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Gemini
    # ------------------------------------------------------------------

    gemini_api_key: str | None

    live_model: str
    live_voice: str
    chat_model: str
    fast_chat_model: str
    image_model: str
    video_model: str

    # ------------------------------------------------------------------
    # Audio devices
    # ------------------------------------------------------------------

    input_device: int | None
    output_device: int | None
    clamp_uplink_samples: bool

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    data_dir: Path

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    @property
    def media_dir(self) -> Path:
        """Directory holding generated media (videos)."""
        return self.data_dir / "media"

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a device index is not an integer.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            gemini_api_key=os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY"),
            live_model=os.environ.get("LIVE_MODEL", LIVE_MODEL),
            live_voice=os.environ.get("LIVE_VOICE", LIVE_VOICE),
            chat_model=os.environ.get("CHAT_MODEL", CHAT_MODEL),
            fast_chat_model=os.environ.get("FAST_CHAT_MODEL", FAST_CHAT_MODEL),
            image_model=os.environ.get("IMAGE_MODEL", IMAGE_MODEL),
            video_model=os.environ.get("VIDEO_MODEL", VIDEO_MODEL),

            input_device=_optional_int(os.environ.get("INPUT_DEVICE")),
            output_device=_optional_int(os.environ.get("OUTPUT_DEVICE")),
            clamp_uplink_samples=os.environ.get(
                "CLAMP_UPLINK_SAMPLES", "1" if CLAMP_UPLINK_SAMPLES_DEFAULT else "0"
            ) == "1",

            data_dir=Path(os.environ.get("DATA_DIR", ".data")),
            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
