"""
Live voice call from the terminal.

Opens a LiveVoiceSession on the default (or chosen) microphone and
speakers, prints call status and the model's transcript as they arrive,
and hangs up on Ctrl+C or when the remote side ends the call.

    python backend/live_voice.py --voice Zephyr
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace
from typing import Any, Iterable

from dotenv import load_dotenv

from config import AppConfig
from errors import SessionStartError
from observability.logger import configure as configure_logging
from orchestrator.enums.state import SessionState
from orchestrator.enums.status import CallStatus
from session.live_session import LiveVoiceSession


POLL_INTERVAL_S = 0.1


def _print_updates(messages: Iterable[dict[str, Any]]) -> None:
    for msg in messages:
        if msg.get("type") == "STATUS":
            line = f"[{msg['status']}]"
            if msg.get("error"):
                line += f" {msg['error']}"
            print(f"\n{line}", flush=True)
        elif msg.get("type") == "TRANSCRIPT":
            print(msg["delta"], end=" ", flush=True)


def _list_devices() -> int:
    try:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel
    except OSError as exc:
        print(f"audio backend unavailable: {exc}", file=sys.stderr)
        return 1
    print(sd.query_devices())
    return 0


async def run(config: AppConfig, *, system_instruction: str | None = None) -> int:
    session = LiveVoiceSession.from_config(config, system_instruction=system_instruction)

    try:
        try:
            await session.start()
        except SessionStartError as exc:
            _print_updates(session.drain_control())
            print(f"Could not start the call: {exc}", file=sys.stderr)
            return 1

        while session.state is not SessionState.CLOSED:
            _print_updates(session.drain_control())
            await asyncio.sleep(POLL_INTERVAL_S)
    finally:
        # Also reached when Ctrl+C cancels a call still connecting
        await session.close()
        _print_updates(session.drain_control())

    return 1 if session.status is CallStatus.ERROR else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Talk to Gemini over the live audio API.")
    parser.add_argument("--voice", default=None, help="Prebuilt voice name (default: LIVE_VOICE or Zephyr)")
    parser.add_argument("--model", default=None, help="Live model id (default: LIVE_MODEL)")
    parser.add_argument("--input-device", type=int, default=None, help="sounddevice input index")
    parser.add_argument("--output-device", type=int, default=None, help="sounddevice output index")
    parser.add_argument("--system", default=None, help="System instruction for the call")
    parser.add_argument(
        "--no-clamp",
        action="store_true",
        help="Wrap out-of-range samples instead of saturating them",
    )
    parser.add_argument("--json-logs", action="store_true", help="Interleave JSONL logs with the transcript")
    parser.add_argument("--list-devices", action="store_true", help="Print audio devices and exit")
    args = parser.parse_args(argv)

    if args.list_devices:
        return _list_devices()

    load_dotenv()
    config = AppConfig.load_from_env()
    overrides: dict[str, Any] = {}
    if args.voice:
        overrides["live_voice"] = args.voice
    if args.model:
        overrides["live_model"] = args.model
    if args.input_device is not None:
        overrides["input_device"] = args.input_device
    if args.output_device is not None:
        overrides["output_device"] = args.output_device
    if args.no_clamp:
        overrides["clamp_uplink_samples"] = False
    config = replace(config, **overrides)

    configure_logging(level=config.log_level, enabled=args.json_logs)

    if not config.gemini_api_key:
        print("GEMINI_API_KEY environment variable not set", file=sys.stderr)
        return 2

    try:
        return asyncio.run(run(config, system_instruction=args.system))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
