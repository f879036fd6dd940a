"""
BroadcastDispatcher: fan-out of finalized transcript entries to conversation subscribers.

A subscriber is anything with `async send_text(str)` (a FastAPI WebSocket in production).
Delivery is at-most-once with no acknowledgement and no replay for late subscribers.
A subscriber whose send fails is dropped from every conversation.
"""
from __future__ import annotations

import json
import logging
from threading import RLock
from typing import Any, Protocol

from callscribe.schemas.transcript import TranscriptEntry

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    async def send_text(self, data: str) -> None:
        ...


def transcription_message(conversation_id: str, entry: TranscriptEntry) -> str:
    payload: dict[str, Any] = {
        "type": "transcription",
        "conversationId": conversation_id,
        "result": entry.model_dump(mode="json", by_alias=True),
    }
    return json.dumps(payload)


def error_message(message: str) -> str:
    return json.dumps({"type": "transcription-error", "message": message})


class BroadcastDispatcher:
    def __init__(self) -> None:
        self._lock = RLock()
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, conversation_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            subs = self._subscribers.setdefault(conversation_id, [])
            if subscriber not in subs:
                subs.append(subscriber)

    def unsubscribe(self, conversation_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            subs = self._subscribers.get(conversation_id)
            if not subs:
                return
            if subscriber in subs:
                subs.remove(subscriber)
            if not subs:
                del self._subscribers[conversation_id]

    def unsubscribe_all(self, subscriber: Subscriber) -> None:
        """Remove subscriber from every conversation (connection closed)."""
        with self._lock:
            for conversation_id in list(self._subscribers):
                self.unsubscribe(conversation_id, subscriber)

    def subscribers(self, conversation_id: str) -> list[Subscriber]:
        with self._lock:
            return list(self._subscribers.get(conversation_id, ()))

    async def publish(self, conversation_id: str, entry: TranscriptEntry) -> int:
        """Send entry to all current subscribers. Returns number of successful deliveries."""
        text = transcription_message(conversation_id, entry)
        delivered = 0
        for subscriber in self.subscribers(conversation_id):
            try:
                await subscriber.send_text(text)
                delivered += 1
            except Exception as e:
                logger.warning("[%s] dropping subscriber after failed send: %s", conversation_id, e)
                self.unsubscribe_all(subscriber)
        return delivered

    async def send_error(self, subscriber: Subscriber | None, message: str) -> bool:
        """transcription-error to one subscriber (the originator). False when it could not be sent."""
        if subscriber is None:
            return False
        try:
            await subscriber.send_text(error_message(message))
            return True
        except Exception as e:
            logger.warning("Failed to send transcription-error: %s", e)
            self.unsubscribe_all(subscriber)
            return False
