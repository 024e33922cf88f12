"""
Chat send pipeline.

Routes one user send to the right Gemini capability and records the
exchange in the ChatStore:

    media + "animate" in text -> video generation
    media                     -> image edit
    otherwise                 -> streamed text (lite model in fast mode)

Each step is reported as a UI update dict so the HTTP layer can stream
progress. A failure never propagates to the caller; it turns the model
placeholder into an error message.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

from chat.models import ChatSession, GroundingSource, MediaType, Message, Role
from chat.serialization import message_to_json
from chat.sessions import ChatStore
from observability.logger import log_event
from services.gemini_service import GeminiService
from spec import (
    ANIMATE_KEYWORD,
    CHAT_ERROR_TEXT,
    CHAT_MODEL,
    FAST_CHAT_MODEL,
    IMAGE_READY_TEXT,
    STATUS_TEXT_FAST,
    STATUS_TEXT_IMAGE,
    STATUS_TEXT_SEARCH,
    STATUS_TEXT_VIDEO,
    VIDEO_READY_TEXT,
)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MediaAttachment:
    """User-attached file, base64 encoded."""
    data: str
    mime_type: str
    media_type: MediaType = "image"

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def status_update(text: str) -> dict[str, Any]:
    return {"type": "STATUS", "text": text}


def message_update(session_id: str, message: Message) -> dict[str, Any]:
    return {"type": "MESSAGE", "sessionId": session_id, "message": message_to_json(message)}


class ChatDispatcher:
    """
    Glue between ChatStore and GeminiService.

    Owns the rule that switching conversations resets the model chat.
    """

    def __init__(
        self,
        *,
        store: ChatStore,
        service: GeminiService,
        media_dir: Path,
        media_url_prefix: str = "/media",
        chat_model: str = CHAT_MODEL,
        fast_chat_model: str = FAST_CHAT_MODEL,
    ) -> None:
        self.store = store
        self.service = service
        self._media_dir = Path(media_dir)
        self._media_url_prefix = media_url_prefix.rstrip("/")
        self._chat_model = chat_model
        self._fast_chat_model = fast_chat_model

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def new_session(self) -> ChatSession:
        session = self.store.create_session()
        self.service.reset_chat()
        return session

    def select_session(self, session_id: str) -> ChatSession:
        session = self.store.select(session_id)
        self.service.reset_chat()
        return session

    def delete_session(self, session_id: str) -> bool:
        was_current = self.store.current_id == session_id
        deleted = self.store.delete_session(session_id)
        if deleted and was_current:
            self.service.reset_chat()
        return deleted

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    async def send_message(
        self,
        text: str,
        media: MediaAttachment | None = None,
        *,
        fast_mode: bool = False,
        session_id: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Record a user message and stream the model's answer.

        Yields, in order: the user message, the streaming placeholder,
        status text, content updates, the final message and an empty
        status.
        """
        if session_id is None:
            session_id = self.store.ensure_session().id
        elif self.store.current_id != session_id:
            self.select_session(session_id)

        user_message = self.store.add_message(
            session_id,
            Message(
                id=self.store.new_id(),
                role=Role.USER,
                content=text,
                timestamp=_utcnow(),
                media_url=media.data_url if media is not None else None,
                media_type=media.media_type if media is not None else None,
            ),
        )
        yield message_update(session_id, user_message)

        bot_id = self.store.new_id()
        placeholder = self.store.add_message(
            session_id,
            Message(
                id=bot_id,
                role=Role.MODEL,
                content="",
                timestamp=_utcnow(),
                is_streaming=True,
            ),
        )
        yield message_update(session_id, placeholder)

        route = self._route(text, media)
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CHAT_SEND",
            "chat_session_id": session_id,
            "route": route,
            "fast_mode": fast_mode,
            "has_media": media is not None,
        })

        try:
            if route == "video":
                assert media is not None
                yield status_update(STATUS_TEXT_VIDEO)
                final = await self._generate_video(session_id, bot_id, text, media)
                yield message_update(session_id, final)

            elif route == "image":
                assert media is not None
                yield status_update(STATUS_TEXT_IMAGE)
                edited = await self.service.edit_image(text, media.data, media.mime_type)
                final = self.store.update_message(
                    session_id,
                    bot_id,
                    content=IMAGE_READY_TEXT,
                    media_url=edited,
                    media_type="image",
                    is_streaming=False,
                )
                yield message_update(session_id, final)

            else:
                yield status_update(STATUS_TEXT_FAST if fast_mode else STATUS_TEXT_SEARCH)
                model = self._fast_chat_model if fast_mode else self._chat_model
                full_text = ""
                sources: tuple[GroundingSource, ...] = ()
                async for chunk in self.service.stream_message(text, model):
                    full_text += chunk.text
                    sources = chunk.sources
                    partial = self.store.update_message(
                        session_id,
                        bot_id,
                        content=full_text,
                        grounding_sources=sources,
                    )
                    yield message_update(session_id, partial)
                final = self.store.update_message(session_id, bot_id, is_streaming=False)
                yield message_update(session_id, final)

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "level": "ERROR",
                "event_type": "CHAT_SEND_FAILED",
                "chat_session_id": session_id,
                "route": route,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            failed = self.store.update_message(
                session_id,
                bot_id,
                content=CHAT_ERROR_TEXT,
                is_streaming=False,
            )
            yield message_update(session_id, failed)

        yield status_update("")

    def delete_message(self, session_id: str, message_id: str) -> bool:
        return self.store.delete_message(session_id, message_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _route(text: str, media: MediaAttachment | None) -> str:
        if media is not None and ANIMATE_KEYWORD in text.lower():
            return "video"
        if media is not None:
            return "image"
        return "text"

    async def _generate_video(
        self,
        session_id: str,
        bot_id: str,
        prompt: str,
        media: MediaAttachment,
    ) -> Message:
        video = await self.service.generate_video(prompt, media.data, media.mime_type)

        self._media_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{bot_id}.mp4"
        (self._media_dir / filename).write_bytes(video)

        return self.store.update_message(
            session_id,
            bot_id,
            content=VIDEO_READY_TEXT,
            media_url=f"{self._media_url_prefix}/{filename}",
            media_type="video",
            is_streaming=False,
        )
