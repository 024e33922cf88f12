"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (Gemini client, chat store, dispatcher)
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from google import genai

from chat.dispatcher import ChatDispatcher
from chat.sessions import ChatStore
from config import AppConfig
from observability.logger import configure as configure_logging
from server.routes import register_routes
from services.gemini_service import GeminiService
from spec import STORAGE_KEY


def create_app(
    config: AppConfig | None = None,
    *,
    dispatcher: ChatDispatcher | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with an injected dispatcher (no network)
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()
    configure_logging(level=config.log_level, enabled=config.enable_json_logs)

    app = FastAPI(title="Gemini Chat API")

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Create the Gemini client ONCE per process
    if dispatcher is None:
        dispatcher = build_dispatcher(config)
    app.state.dispatcher = dispatcher

    # Generated videos
    config.media_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/media", StaticFiles(directory=config.media_dir), name="media")

    # Routes
    register_routes(app)

    return app


def build_dispatcher(config: AppConfig) -> ChatDispatcher:
    """Wire store, Gemini service and media directory from config."""
    if not config.gemini_api_key:
        raise RuntimeError("GEMINI_API_KEY environment variable not set")

    client = genai.Client(api_key=config.gemini_api_key)
    service = GeminiService(
        client=client,
        video_model=config.video_model,
        image_model=config.image_model,
    )
    store = ChatStore(config.data_dir / f"{STORAGE_KEY}.json")
    return ChatDispatcher(
        store=store,
        service=service,
        media_dir=config.media_dir,
        chat_model=config.chat_model,
        fast_chat_model=config.fast_chat_model,
    )
