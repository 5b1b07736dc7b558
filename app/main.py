from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from agent.agent import ConversationEngine, build_engine
from agent.core.errors import AssistantRunTimeoutError, SessionNotFoundError
from agent.core.memory import InMemorySessionStore, Session, SessionStore
from agent.core.prompt import ASSISTANT_APOLOGY, RUN_TIMEOUT, WELCOME_MESSAGE
from config.settings import Settings, get_settings


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("handyman")

MISSING_SESSION_ID = "Brak identyfikatora sesji"
MISSING_MESSAGE = "Brak wiadomości"
SESSION_NOT_FOUND = "Sesja nie istnieje"
INVALID_REQUEST = "Nieprawidłowe żądanie"


class MessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId", description="Session identifier")
    message: Optional[str] = Field(None, description="User's latest message")


async def sweep_sessions(store: SessionStore, interval: float, max_age: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            store.sweep(time.time(), max_age)
        except Exception:
            logger.exception("Session sweep failed")


def get_store(request: Request) -> SessionStore:
    return request.app.state.store


def get_engine(request: Request) -> ConversationEngine:
    return request.app.state.engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    engine: Optional[ConversationEngine] = None,
) -> FastAPI:
    settings = settings if settings is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.engine is None:
            # Fail at startup rather than on the first request.
            settings.validate()
            app.state.engine = build_engine(settings)
        logger.info(
            "Startup: env=%s strategy=%s auto_create_sessions=%s",
            settings.app_env,
            settings.chat_strategy,
            settings.auto_create_sessions,
        )
        sweeper = asyncio.create_task(
            sweep_sessions(app.state.store, settings.sweep_interval, settings.session_max_age)
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(title="Handyman Search Assistant", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store if store is not None else InMemorySessionStore()
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return JSONResponse({"error": INVALID_REQUEST}, status_code=400)

    @app.post("/api/chat/session")
    async def create_session(store: SessionStore = Depends(get_store)) -> Dict[str, Any]:
        session = store.create()
        return {"sessionId": session.id, "message": WELCOME_MESSAGE}

    @app.post("/api/chat/message")
    async def send_message(
        req: MessageRequest,
        store: SessionStore = Depends(get_store),
        engine: ConversationEngine = Depends(get_engine),
        settings: Settings = Depends(get_app_settings),
    ) -> Dict[str, Any]:
        if not req.session_id:
            raise HTTPException(status_code=400, detail=MISSING_SESSION_ID)
        if not req.message or not req.message.strip():
            raise HTTPException(status_code=400, detail=MISSING_MESSAGE)

        session = _lookup_session(store, req.session_id, settings.auto_create_sessions)
        logger.info(
            "Incoming message: session=%s message_len=%s history=%s",
            session.id,
            len(req.message),
            len(session.history),
        )

        try:
            reply = await engine.reply(session, req.message)
        except AssistantRunTimeoutError:
            raise HTTPException(status_code=504, detail=RUN_TIMEOUT)
        except Exception as e:
            logger.exception("Message processing failed: session=%s: %s", session.id, e)
            raise HTTPException(status_code=500, detail=ASSISTANT_APOLOGY)

        return reply.model_dump(by_alias=True)

    @app.get("/api/chat/history/{session_id}")
    async def history(session_id: str, store: SessionStore = Depends(get_store)) -> Dict[str, Any]:
        try:
            session = store.get(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail=SESSION_NOT_FOUND)
        return {
            "history": [
                message.model_dump(by_alias=True, exclude_none=True) for message in session.history
            ]
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def _lookup_session(store: SessionStore, session_id: str, auto_create: bool) -> Session:
    if auto_create:
        return store.get_or_create(session_id)
    try:
        return store.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=SESSION_NOT_FOUND)


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
