"""
Route registration for the chat API.

Responsibilities:
- Define HTTP endpoints for sessions and messages
- Stream send progress as NDJSON (one update object per line)
- Pull dependencies from app.state
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Literal

from fastapi import FastAPI, HTTPException, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from chat.dispatcher import ChatDispatcher, MediaAttachment
from chat.serialization import session_to_json, sessions_to_json
from observability.logger import log_event


NDJSON_MEDIA_TYPE = "application/x-ndjson"


class MediaPayload(BaseModel):
    data: str
    mime_type: str = Field(alias="mimeType")
    type: Literal["image", "video"] = "image"


class SendMessageRequest(BaseModel):
    text: str = ""
    media: MediaPayload | None = None
    fast_mode: bool = Field(default=False, alias="fastMode")


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def dispatcher() -> ChatDispatcher:
        return app.state.dispatcher

    def listing() -> dict[str, Any]:
        store = dispatcher().store
        return {
            "currentId": store.current_id,
            "sessions": sessions_to_json(store.sessions),
        }

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/sessions")
    async def list_sessions(sort: Literal["date", "name"] | None = None) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        store = dispatcher().store
        if not store.sessions:
            dispatcher().new_session()
        if sort is not None:
            store.sort(sort)
        return listing()

    @app.post("/sessions", status_code=201)
    async def create_session() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return session_to_json(dispatcher().new_session())

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        session = dispatcher().store.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="session not found")
        return session_to_json(session)

    @app.post("/sessions/{session_id}/select")
    async def select_session(session_id: str) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        try:
            dispatcher().select_session(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="session not found") from exc
        return listing()

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str) -> Response: # pyright: ignore[reportUnusedFunction]
        if not dispatcher().delete_session(session_id):
            raise HTTPException(status_code=404, detail="session not found")
        return Response(status_code=204)

    @app.delete("/sessions/{session_id}/messages/{message_id}")
    async def delete_message(session_id: str, message_id: str) -> Response: # pyright: ignore[reportUnusedFunction]
        try:
            deleted = dispatcher().delete_message(session_id, message_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="session not found") from exc
        if not deleted:
            raise HTTPException(status_code=404, detail="message not found")
        return Response(status_code=204)

    @app.post("/sessions/{session_id}/messages")
    async def send_message(session_id: str, request: SendMessageRequest) -> StreamingResponse: # pyright: ignore[reportUnusedFunction]
        if dispatcher().store.get(session_id) is None:
            raise HTTPException(status_code=404, detail="session not found")

        media = None
        if request.media is not None:
            media = MediaAttachment(
                data=request.media.data,
                mime_type=request.media.mime_type,
                media_type=request.media.type,
            )

        updates = dispatcher().send_message(
            request.text,
            media,
            fast_mode=request.fast_mode,
            session_id=session_id,
        )
        return StreamingResponse(_ndjson(updates), media_type=NDJSON_MEDIA_TYPE)


async def _ndjson(updates: AsyncIterator[dict[str, Any]]) -> AsyncIterator[str]:
    count = 0
    async for update in updates:
        count += 1
        yield json.dumps(update, ensure_ascii=False) + "\n"
    log_event({
        "event_type": "CHAT_STREAM_FLUSHED",
        "updates": count,
    })
