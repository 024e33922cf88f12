# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from pathlib import Path

import pytest

import chat.dispatcher as dispatcher_mod
from chat.dispatcher import ChatDispatcher, MediaAttachment
from chat.models import GroundingSource
from chat.sessions import ChatStore
from errors import MediaGenerationError
from services.gemini_service import StreamChunk


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    monkeypatch.setattr(dispatcher_mod, "log_event", lambda _e: None)


class FakeService:
    def __init__(self):
        self.chunks = [StreamChunk("Hel"), StreamChunk("lo", (GroundingSource("A", "https://a"),))]
        self.edited = "data:image/png;base64,AAAA"
        self.video = b"mp4"
        self.fail_with = None
        self.calls = []
        self.resets = 0

    def reset_chat(self):
        self.resets += 1

    async def stream_message(self, message, model_name):
        self.calls.append(("text", message, model_name))
        for chunk in self.chunks:
            if self.fail_with is not None:
                raise self.fail_with
            yield chunk

    async def edit_image(self, prompt, image_b64, mime_type):
        self.calls.append(("image", prompt, image_b64, mime_type))
        if self.fail_with is not None:
            raise self.fail_with
        return self.edited

    async def generate_video(self, prompt, image_b64, mime_type):
        self.calls.append(("video", prompt, image_b64, mime_type))
        if self.fail_with is not None:
            raise self.fail_with
        return self.video


@pytest.fixture
def setup(tmp_path: Path):
    store = ChatStore(tmp_path / "chats.json")
    service = FakeService()
    dispatcher = ChatDispatcher(
        store=store,
        service=service,
        media_dir=tmp_path / "media",
        chat_model="full-model",
        fast_chat_model="lite-model",
    )
    return dispatcher, store, service, tmp_path


def send(dispatcher, *args, **kwargs):
    async def run():
        return [u async for u in dispatcher.send_message(*args, **kwargs)]
    return asyncio.run(run())


def messages(updates):
    return [u["message"] for u in updates if u["type"] == "MESSAGE"]


def statuses(updates):
    return [u["text"] for u in updates if u["type"] == "STATUS"]


# ---------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------

def test_text_send_streams_into_placeholder(setup):
    dispatcher, store, service, _ = setup

    updates = send(dispatcher, "What's new?")

    msgs = messages(updates)
    assert msgs[0]["role"] == "user"
    assert msgs[0]["content"] == "What's new?"
    assert msgs[1]["role"] == "model" and msgs[1]["isStreaming"] is True
    assert [m["content"] for m in msgs[2:]] == ["Hel", "Hello", "Hello"]
    assert msgs[-1]["isStreaming"] is False
    assert msgs[-1]["groundingSources"] == [{"title": "A", "url": "https://a"}]
    assert statuses(updates) == ["Searching Google...", ""]
    assert service.calls == [("text", "What's new?", "full-model")]

    session = store.current
    assert session.title == "What's new?"
    assert [m.content for m in session.messages] == ["What's new?", "Hello"]


def test_fast_mode_uses_lite_model(setup):
    dispatcher, _, service, _ = setup

    updates = send(dispatcher, "quick", fast_mode=True)

    assert statuses(updates)[0] == "Thinking fast..."
    assert service.calls[0][2] == "lite-model"


def test_send_to_other_session_selects_and_resets(setup):
    dispatcher, store, service, _ = setup
    older = dispatcher.new_session()
    dispatcher.new_session()
    resets = service.resets

    send(dispatcher, "hi", session_id=older.id)

    assert store.current_id == older.id
    assert service.resets == resets + 1
    assert len(store.require(older.id).messages) == 2


# ---------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------

def test_media_without_animate_edits_image(setup):
    dispatcher, _, service, _ = setup
    media = MediaAttachment(data="QUJD", mime_type="image/jpeg")

    updates = send(dispatcher, "make it sepia", media)

    msgs = messages(updates)
    assert msgs[0]["mediaUrl"] == "data:image/jpeg;base64,QUJD"
    assert msgs[0]["mediaType"] == "image"
    assert msgs[-1]["content"] == "Here is your edited image."
    assert msgs[-1]["mediaUrl"] == service.edited
    assert statuses(updates) == ["Editing image with Nano Banana...", ""]
    assert service.calls == [("image", "make it sepia", "QUJD", "image/jpeg")]


def test_animate_keyword_generates_video_file(setup):
    dispatcher, _, service, tmp_path = setup
    media = MediaAttachment(data="QUJD", mime_type="image/png")

    updates = send(dispatcher, "Please ANIMATE this", media)

    final = messages(updates)[-1]
    assert final["content"] == "Your video is ready!"
    assert final["mediaType"] == "video"
    assert final["mediaUrl"] == f"/media/{final['id']}.mp4"
    assert (tmp_path / "media" / f"{final['id']}.mp4").read_bytes() == b"mp4"
    assert statuses(updates)[0] == "Directing scene with Veo..."
    assert service.calls[0][0] == "video"


# ---------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    ("text", "media"),
    [
        ("hi", None),
        ("edit", MediaAttachment(data="QUJD", mime_type="image/png")),
        ("animate", MediaAttachment(data="QUJD", mime_type="image/png")),
    ],
)
def test_failure_becomes_error_message(setup, text, media):
    dispatcher, store, service, _ = setup
    service.fail_with = MediaGenerationError("boom")

    updates = send(dispatcher, text, media)

    final = messages(updates)[-1]
    assert final["content"] == "Error: Failed to process request."
    assert final["isStreaming"] is False
    assert statuses(updates)[-1] == ""
    assert store.current.messages[-1].content == "Error: Failed to process request."


# ---------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------

def test_delete_resets_chat_only_for_current_session(setup):
    dispatcher, _, service, _ = setup
    older = dispatcher.new_session()
    newer = dispatcher.new_session()
    resets = service.resets

    assert dispatcher.delete_session(older.id) is True
    assert service.resets == resets

    assert dispatcher.delete_session(newer.id) is True
    assert service.resets == resets + 1

    assert dispatcher.delete_session("missing") is False


def test_delete_message(setup):
    dispatcher, store, _, _ = setup
    send(dispatcher, "hi")
    session = store.current
    user_id = session.messages[0].id

    assert dispatcher.delete_message(session.id, user_id) is True
    assert [m.role.value for m in store.current.messages] == ["model"]
