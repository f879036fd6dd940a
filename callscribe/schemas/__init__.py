"""Pydantic schemas for WebSocket events, transcripts and API responses."""
from callscribe.schemas.events import (
    AudioChunkEvent,
    EndConversationEvent,
    InboundEvent,
    StartConversationEvent,
    inbound_event_adapter,
)
from callscribe.schemas.transcript import (
    ConversationRecord,
    ConversationSummary,
    ConversationSummaryListing,
    RoomKeyResponse,
    TranscriptEntry,
)

__all__ = [
    "AudioChunkEvent",
    "EndConversationEvent",
    "InboundEvent",
    "StartConversationEvent",
    "inbound_event_adapter",
    "ConversationRecord",
    "ConversationSummary",
    "ConversationSummaryListing",
    "RoomKeyResponse",
    "TranscriptEntry",
]
