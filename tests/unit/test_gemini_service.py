# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import base64
from types import SimpleNamespace

import pytest

import services.gemini_service as service_mod
from errors import MediaGenerationError
from services.gemini_service import (
    GeminiService,
    build_chat_config,
    grounding_sources,
    to_data_url,
)


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    monkeypatch.setattr(service_mod, "log_event", lambda _e: None)


IMAGE_B64 = base64.b64encode(b"\x89PNG fake").decode("ascii")


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

def web_chunk(uri, title=None):
    return SimpleNamespace(web=SimpleNamespace(uri=uri, title=title))


def response(text, chunks=None):
    candidates = []
    if chunks is not None:
        candidates = [SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=chunks))]
    return SimpleNamespace(text=text, candidates=candidates)


class FakeChat:
    def __init__(self, model, responses):
        self.model = model
        self.sent = []
        self._responses = responses

    async def send_message_stream(self, message):
        self.sent.append(message)

        async def gen():
            for item in self._responses:
                yield item

        return gen()


class FakeChats:
    def __init__(self, responses):
        self.responses = responses
        self.created = []

    def create(self, *, model, config):
        chat = FakeChat(model, self.responses)
        self.created.append((model, config, chat))
        return chat


class FakeModels:
    def __init__(self):
        self.content_response = None
        self.content_calls = []
        self.video_operation = None
        self.video_calls = []

    async def generate_content(self, *, model, contents):
        self.content_calls.append((model, contents))
        return self.content_response

    async def generate_videos(self, **kwargs):
        self.video_calls.append(kwargs)
        return self.video_operation


class FakeOperations:
    def __init__(self, sequence):
        self.sequence = list(sequence)
        self.calls = 0

    async def get(self, _operation):
        self.calls += 1
        return self.sequence.pop(0)


class FakeFiles:
    def __init__(self, data=b""):
        self.data = data
        self.downloaded = []

    async def download(self, *, file):
        self.downloaded.append(file)
        return self.data


def make_client(*, responses=(), operations=(), download=b""):
    aio = SimpleNamespace(
        chats=FakeChats(list(responses)),
        models=FakeModels(),
        operations=FakeOperations(operations),
        files=FakeFiles(download),
    )
    return SimpleNamespace(aio=aio)


def make_service(client):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    service = GeminiService(client=client, poll_interval_s=5.0, sleep=fake_sleep)
    return service, sleeps


def collect(agen):
    async def run():
        return [item async for item in agen]
    return asyncio.run(run())


def operation(done, *, videos=None, error=None):
    resp = None if videos is None else SimpleNamespace(generated_videos=videos)
    return SimpleNamespace(done=done, error=error, response=resp)


# ---------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------

def test_full_models_get_search_grounding():
    config = build_chat_config("gemini-3-flash-preview")

    assert config.temperature == pytest.approx(0.7)
    assert len(config.tools) == 1
    assert config.tools[0].google_search is not None
    assert "helpful" in config.system_instruction


def test_lite_models_run_without_tools():
    config = build_chat_config("gemini-flash-lite-latest", "Be brief.")

    assert not config.tools
    assert config.system_instruction == "Be brief."


def test_grounding_sources_drop_chunks_without_uri():
    sources = grounding_sources(response("x", [
        web_chunk("https://a.example", "A"),
        web_chunk(None, "no uri"),
        SimpleNamespace(web=None),
        web_chunk("https://b.example"),
    ]))

    assert [(s.title, s.url) for s in sources] == [
        ("A", "https://a.example"),
        ("Source", "https://b.example"),
    ]


def test_grounding_sources_none_without_metadata():
    assert grounding_sources(response("x")) is None
    assert grounding_sources(response("x", [])) is None


def test_to_data_url():
    assert to_data_url(b"hi", "image/png") == "data:image/png;base64,aGk="


# ---------------------------------------------------------------------
# Text streaming
# ---------------------------------------------------------------------

def test_stream_yields_text_and_keeps_latest_sources():
    client = make_client(responses=[
        response("Hello", []),
        response("", [web_chunk("https://a.example", "A")]),
        response(" world"),
    ])
    service, _ = make_service(client)

    chunks = collect(service.stream_message("hi", "gemini-3-flash-preview"))

    assert [c.text for c in chunks] == ["Hello", " world"]
    assert chunks[0].sources == ()
    assert chunks[1].sources[0].url == "https://a.example"


def test_chat_is_reused_for_same_model_and_recreated_on_change():
    client = make_client(responses=[response("ok")])
    service, _ = make_service(client)

    collect(service.stream_message("one", "gemini-3-flash-preview"))
    collect(service.stream_message("two", "gemini-3-flash-preview"))
    assert len(client.aio.chats.created) == 1
    assert client.aio.chats.created[0][2].sent == ["one", "two"]

    collect(service.stream_message("three", "gemini-flash-lite-latest"))
    assert [c[0] for c in client.aio.chats.created] == [
        "gemini-3-flash-preview",
        "gemini-flash-lite-latest",
    ]
    assert service.chat_model == "gemini-flash-lite-latest"


def test_reset_chat_forces_a_new_chat():
    client = make_client(responses=[response("ok")])
    service, _ = make_service(client)

    collect(service.stream_message("one"))
    service.reset_chat()
    assert service.chat_model is None
    collect(service.stream_message("two"))

    assert len(client.aio.chats.created) == 2


# ---------------------------------------------------------------------
# Image edit
# ---------------------------------------------------------------------

def test_edit_image_returns_first_inline_image():
    client = make_client()
    parts = [
        SimpleNamespace(inline_data=None),
        SimpleNamespace(inline_data=SimpleNamespace(data=b"out", mime_type="image/png")),
    ]
    client.aio.models.content_response = SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))]
    )
    service, _ = make_service(client)

    result = asyncio.run(service.edit_image("make it blue", IMAGE_B64, "image/jpeg"))

    assert result == to_data_url(b"out", "image/png")
    model, contents = client.aio.models.content_calls[0]
    assert model == "gemini-2.5-flash-image"
    assert contents[1] == "make it blue"


def test_edit_image_without_image_returns_none():
    client = make_client()
    client.aio.models.content_response = SimpleNamespace(candidates=[])
    service, _ = make_service(client)

    assert asyncio.run(service.edit_image("x", IMAGE_B64, "image/png")) is None


# ---------------------------------------------------------------------
# Video generation
# ---------------------------------------------------------------------

def test_generate_video_polls_until_done():
    video = SimpleNamespace(video_bytes=b"mp4-bytes")
    client = make_client(operations=[
        operation(False),
        operation(True, videos=[SimpleNamespace(video=video)]),
    ])
    client.aio.models.video_operation = operation(False)
    service, sleeps = make_service(client)

    data = asyncio.run(service.generate_video("", IMAGE_B64, "image/png"))

    assert data == b"mp4-bytes"
    assert sleeps == [5.0, 5.0]
    call = client.aio.models.video_calls[0]
    assert call["prompt"] == "Animate this scene beautifully"
    assert call["config"].resolution == "720p"
    assert call["config"].aspect_ratio == "16:9"


def test_generate_video_downloads_when_bytes_missing():
    video = SimpleNamespace(video_bytes=None, uri="files/abc")
    client = make_client(download=b"downloaded")
    client.aio.models.video_operation = operation(True, videos=[SimpleNamespace(video=video)])
    service, sleeps = make_service(client)

    data = asyncio.run(service.generate_video("animate", IMAGE_B64, "image/png"))

    assert data == b"downloaded"
    assert client.aio.files.downloaded == [video]
    assert sleeps == []


@pytest.mark.parametrize(
    "final",
    [
        operation(True, error={"message": "quota"}),
        operation(True, videos=[]),
        operation(True),
    ],
)
def test_generate_video_failures_raise(final):
    client = make_client()
    client.aio.models.video_operation = final
    service, _ = make_service(client)

    with pytest.raises(MediaGenerationError):
        asyncio.run(service.generate_video("animate", IMAGE_B64, "image/png"))
