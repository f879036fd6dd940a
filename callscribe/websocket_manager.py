"""
WebSocketManager: one transport connection feeding the conversation engine.

Client sends JSON text frames (see schemas/events.py):
  audio-chunk         -> buffered; may start a processing pass for that conversation
  start-conversation  -> session created, this socket subscribed to its transcripts
  end-conversation    -> socket unsubscribed and session removed at once; the record is
                         written in a background task so other frames keep flowing
Server sends JSON:
  {"type": "transcription", "conversationId", "result": {...}}   to all subscribers
  {"type": "transcription-error", "message"}                      to this socket only
A socket may carry events for several conversations; on disconnect it is
unsubscribed everywhere (sessions stay alive until end-conversation or idle expiry).
"""
from __future__ import annotations

import asyncio
import json
import logging

from fastapi import WebSocket
from pydantic import ValidationError

from callscribe.audio import AudioChunk
from callscribe.engine import ConversationEngine
from callscribe.schemas.events import (
    AudioChunkEvent,
    EndConversationEvent,
    InboundEvent,
    StartConversationEvent,
    inbound_event_adapter,
)
from callscribe.session_store import ConversationSession

logger = logging.getLogger(__name__)


def _validation_summary(err: ValidationError) -> str:
    first = err.errors()[0] if err.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()))
    msg = first.get("msg", "invalid event")
    return f"{loc}: {msg}" if loc else msg


class WebSocketManager:
    def __init__(self, websocket: WebSocket, engine: ConversationEngine) -> None:
        self._ws = websocket
        self._engine = engine
        self._closed = False
        self._finalizing: set[asyncio.Task[None]] = set()

    async def _send_error(self, message: str) -> None:
        if self._closed:
            return
        if not await self._engine.dispatcher.send_error(self._ws, message):
            self._closed = True

    def _parse(self, text: str) -> InboundEvent:
        return inbound_event_adapter.validate_python(json.loads(text))

    async def handle_text(self, text: str) -> None:
        try:
            event = self._parse(text)
        except json.JSONDecodeError:
            await self._send_error("Invalid message: expected a JSON object")
            return
        except ValidationError as e:
            await self._send_error(f"Invalid event ({_validation_summary(e)})")
            return
        await self.dispatch(event)

    async def dispatch(self, event: InboundEvent) -> None:
        if isinstance(event, AudioChunkEvent):
            chunk = AudioChunk(
                participant_id=event.participant_id,
                timestamp=event.timestamp,
                payload=event.audio_data,
                audio_level=event.audio_level,
            )
            self._engine.ingest_chunk(event.conversation_id, chunk, origin=self._ws)
        elif isinstance(event, StartConversationEvent):
            self._engine.start_conversation(event.conversation_id, subscriber=self._ws)
        elif isinstance(event, EndConversationEvent):
            session = self._engine.detach_conversation(event.conversation_id, subscriber=self._ws)
            if session is not None:
                task = asyncio.create_task(self._finalize(session))
                self._finalizing.add(task)
                task.add_done_callback(self._finalizing.discard)

    async def _finalize(self, session: ConversationSession) -> None:
        try:
            await self._engine.finalize_conversation(session)
        except Exception:
            logger.exception("[%s] finalizing conversation failed", session.id)

    async def run(self) -> None:
        """Main loop: receive text frames until disconnect."""
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except Exception:
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                text = msg.get("text")
                if text is None:
                    await self._send_error("Invalid message: expected JSON text frames, got binary")
                    continue
                await self.handle_text(text)
        finally:
            self._closed = True
            self._engine.dispatcher.unsubscribe_all(self._ws)
            if self._finalizing:
                await asyncio.gather(*self._finalizing, return_exceptions=True)
