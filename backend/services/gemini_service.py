"""
Gemini text / image / video service (google-genai async client).

Responsibilities:
- Keep one chat per conversation and stream its answers with grounding
- Edit an image from a prompt (single request)
- Generate a short video from an image, polling the long-running
  operation until it completes

Non-responsibilities:
- No history storage (see chat.sessions)
- No routing between text / image / video (see chat.dispatcher)
- No retries
"""

from __future__ import annotations

import asyncio
import base64
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable

from google import genai
from google.genai import types

from chat.models import GroundingSource
from errors import MediaGenerationError
from observability.logger import log_event
from observability.metrics import timed
from spec import (
    CHAT_MODEL,
    CHAT_TEMPERATURE,
    DEFAULT_SYSTEM_INSTRUCTION,
    IMAGE_MODEL,
    LITE_MODEL_MARKER,
    VIDEO_DEFAULT_ASPECT_RATIO,
    VIDEO_DEFAULT_PROMPT,
    VIDEO_MODEL,
    VIDEO_POLL_INTERVAL_S,
    VIDEO_RESOLUTION,
)


Sleep = Callable[[float], Awaitable[Any]]

_FALLBACK_SOURCE_TITLE = "Source"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class StreamChunk:
    """
    One streamed piece of a model answer.

    sources carries the latest grounding list seen so far in the stream,
    not a delta.
    """
    text: str
    sources: tuple[GroundingSource, ...] = ()


# ---------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------

def build_chat_config(model: str, system_instruction: str | None = None) -> types.GenerateContentConfig:
    """Lite models run without tools; all others get Google Search grounding."""
    tools: list[types.Tool] = []
    if LITE_MODEL_MARKER not in model:
        tools.append(types.Tool(google_search=types.GoogleSearch()))
    return types.GenerateContentConfig(
        system_instruction=system_instruction or DEFAULT_SYSTEM_INSTRUCTION,
        tools=tools,
        temperature=CHAT_TEMPERATURE,
    )


def grounding_sources(response: Any) -> tuple[GroundingSource, ...] | None:
    """
    Web sources cited by one streamed response.

    Returns None when the response carries no grounding metadata, so the
    caller can keep the previous list. Chunks without a URI are dropped.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) if metadata is not None else None
    if not chunks:
        return None

    sources: list[GroundingSource] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        uri = getattr(web, "uri", None) if web is not None else None
        if not uri:
            continue
        title = getattr(web, "title", None) or _FALLBACK_SOURCE_TITLE
        sources.append(GroundingSource(title=title, url=uri))
    return tuple(sources)


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------

class GeminiService:
    """
    Stateful wrapper around `genai.Client.aio`.

    The only state is the current chat and the model it was created for;
    reset_chat() drops it (new or switched conversation).
    """

    def __init__(
        self,
        *,
        client: genai.Client,
        video_model: str = VIDEO_MODEL,
        image_model: str = IMAGE_MODEL,
        poll_interval_s: float = VIDEO_POLL_INTERVAL_S,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._video_model = video_model
        self._image_model = image_model
        self._poll_interval_s = poll_interval_s
        self._sleep = sleep

        self._chat: Any = None
        self._chat_model: str | None = None

    @property
    def chat_model(self) -> str | None:
        """Model of the live chat, or None after reset_chat()."""
        return self._chat_model

    def reset_chat(self) -> None:
        self._chat = None
        self._chat_model = None

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    async def stream_message(
        self,
        message: str,
        model_name: str = CHAT_MODEL,
        system_instruction: str | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Send one user message and stream the answer.

        The chat is re-created whenever the model changes. Chunks without
        text are not yielded, but their grounding still updates sources.
        """
        if self._chat is None or self._chat_model != model_name:
            self._chat = self._client.aio.chats.create(
                model=model_name,
                config=build_chat_config(model_name, system_instruction),
            )
            self._chat_model = model_name
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CHAT_CREATED",
                "model": model_name,
            })

        sources: tuple[GroundingSource, ...] = ()
        stream = await self._chat.send_message_stream(message)
        async for response in stream:
            latest = grounding_sources(response)
            if latest is not None:
                sources = latest
            text = response.text
            if text:
                yield StreamChunk(text=text, sources=sources)

    # ------------------------------------------------------------------
    # Image
    # ------------------------------------------------------------------

    async def edit_image(self, prompt: str, image_b64: str, mime_type: str) -> str | None:
        """
        Apply `prompt` to an image.

        Returns the first image of the answer as a data URL, or None if
        the model answered without one.
        """
        image = types.Part.from_bytes(data=base64.b64decode(image_b64), mime_type=mime_type)
        with timed("image_edit", details={"model": self._image_model}):
            response = await self._client.aio.models.generate_content(
                model=self._image_model,
                contents=[image, prompt],
            )

        candidates = response.candidates or []
        content = candidates[0].content if candidates else None
        for part in (content.parts or []) if content is not None else []:
            inline = part.inline_data
            if inline is not None and inline.data:
                return to_data_url(inline.data, inline.mime_type or mime_type)
        return None

    # ------------------------------------------------------------------
    # Video
    # ------------------------------------------------------------------

    async def generate_video(
        self,
        prompt: str,
        image_b64: str,
        mime_type: str,
        aspect_ratio: str = VIDEO_DEFAULT_ASPECT_RATIO,
    ) -> bytes:
        """
        Animate an image into one short video and return its bytes.

        Raises:
            MediaGenerationError if the operation fails or yields no video.
        """
        with timed("video_generation", details={"model": self._video_model}):
            operation = await self._client.aio.models.generate_videos(
                model=self._video_model,
                prompt=prompt or VIDEO_DEFAULT_PROMPT,
                image=types.Image(image_bytes=base64.b64decode(image_b64), mime_type=mime_type),
                config=types.GenerateVideosConfig(
                    number_of_videos=1,
                    resolution=VIDEO_RESOLUTION,
                    aspect_ratio=aspect_ratio,
                ),
            )

            polls = 0
            while not operation.done:
                await self._sleep(self._poll_interval_s)
                operation = await self._client.aio.operations.get(operation)
                polls += 1

            log_event({
                "ts_ms": _now_ms(),
                "event_type": "VIDEO_OPERATION_DONE",
                "model": self._video_model,
                "polls": polls,
            })

            if operation.error:
                raise MediaGenerationError(f"video generation failed: {operation.error}")

            generated = operation.response.generated_videos if operation.response else None
            if not generated or generated[0].video is None:
                raise MediaGenerationError("video generation returned no video")

            video = generated[0].video
            if video.video_bytes:
                return video.video_bytes
            return await self._client.aio.files.download(file=video)
