"""
FastAPI app: WebSocket endpoint for live two-party call transcription;
HTTP API: stored transcripts, conversation summaries, and conversation key derivation.

WebSocket /ws/conversation: JSON events audio-chunk / start-conversation / end-conversation
(see callscribe.websocket_manager). Run with: uvicorn callscribe.main:app
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from callscribe.asr import create_transcription_client, load_whisper_model
from callscribe.config import get_settings
from callscribe.engine import ConversationEngine
from callscribe.identity import IdentityResolver, InvalidIdentifier
from callscribe.logging_utils import setup_logging
from callscribe.schemas.transcript import (
    ConversationSummaryListing,
    RoomKeyResponse,
    TranscriptEntry,
)
from callscribe.session_store import SessionRegistry
from callscribe.transcript import BroadcastDispatcher, PersistenceFailure, create_transcript_store
from callscribe.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


def build_engine(whisper_model=None) -> ConversationEngine:
    """Wire registry, transcription client, store and dispatcher from settings."""
    settings = get_settings()
    transcriber = create_transcription_client(
        settings.ASR_BACKEND,
        whisper_model=whisper_model,
        mock_delay_sec=settings.MOCK_TRANSCRIBE_DELAY_SEC,
    )
    store = create_transcript_store(settings.TRANSCRIPT_SAVE_ENABLED, settings.TRANSCRIPT_DIR)
    return ConversationEngine(
        registry=SessionRegistry(),
        transcriber=transcriber,
        store=store,
        dispatcher=BroadcastDispatcher(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    # Load Whisper model once at startup when using local backend (singleton)
    whisper_model = load_whisper_model() if settings.ASR_BACKEND == "local" else None
    engine = build_engine(whisper_model)
    app.state.engine = engine
    app.state.identity = IdentityResolver(settings.DEFAULT_COUNTRY_PREFIX)
    sweeper = None
    if settings.SESSION_IDLE_TIMEOUT_SEC > 0:
        sweeper = asyncio.create_task(engine.run_idle_sweeper(settings.SESSION_SWEEP_INTERVAL_SEC))
    logger.info("Transcription engine ready (asr=%s, store=%s)", settings.ASR_BACKEND, settings.TRANSCRIPT_DIR)
    yield
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await engine.shutdown()
    app.state.engine = None


app = FastAPI(
    title="Call transcription",
    description="Speaker-attributed live transcription for two-party calls",
    lifespan=lifespan,
)


@app.websocket("/ws/conversation")
async def websocket_conversation(websocket: WebSocket) -> None:
    await websocket.accept()
    manager = WebSocketManager(websocket, websocket.app.state.engine)
    try:
        await manager.run()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket handler failed")
        with suppress(Exception):
            await websocket.close()


@app.get("/health")
async def health(request: Request) -> dict:
    engine: ConversationEngine | None = getattr(request.app.state, "engine", None)
    return {"status": "ok", "active_sessions": len(engine.registry) if engine else 0}


@app.get("/api/rooms/key", response_model=RoomKeyResponse)
async def room_key(
    request: Request,
    a: str = Query(..., description="Identifier of one participant (phone-like)"),
    b: str = Query(..., description="Identifier of the other participant"),
) -> RoomKeyResponse:
    """Conversation/room key both call legs must use (symmetric in a and b)."""
    resolver: IdentityResolver = request.app.state.identity
    try:
        key = resolver.derive_key(a, b)
        participants = sorted([resolver.canonicalize(a), resolver.canonicalize(b)])
    except InvalidIdentifier as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RoomKeyResponse(conversation_id=key, participants=participants)


@app.get("/api/transcripts/{conversation_id}", response_model=list[TranscriptEntry], response_model_by_alias=True)
async def get_transcripts(conversation_id: str, request: Request) -> list[TranscriptEntry]:
    engine: ConversationEngine = request.app.state.engine
    try:
        return await engine.store.read_transcripts(conversation_id)
    except PersistenceFailure as e:
        logger.warning("Fetching transcripts failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch transcripts")


@app.get("/api/transcripts", response_model=list[ConversationSummaryListing], response_model_by_alias=True)
async def list_transcripts(request: Request) -> list[ConversationSummaryListing]:
    engine: ConversationEngine = request.app.state.engine
    return await engine.store.list_summaries()
