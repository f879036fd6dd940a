"""
Inbound WebSocket events from the transport/session layer.

Each client frame is a JSON object with a "type" discriminator:
  {"type": "audio-chunk", "conversationId", "participantId", "timestamp", "audioData", "audioLevel"}
  {"type": "start-conversation", "conversationId"}
  {"type": "end-conversation", "conversationId"}
audioData is base64-encoded raw PCM 16-bit mono.
"""
from __future__ import annotations

import base64
import binascii
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class _EventModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AudioChunkEvent(_EventModel):
    type: Literal["audio-chunk"]
    conversation_id: str = Field(..., min_length=1)
    participant_id: str = Field(..., min_length=1)
    timestamp: int = Field(..., description="Producer-supplied unix ms")
    audio_data: bytes = Field(..., description="Decoded PCM payload (base64 on the wire)")
    audio_level: float = Field(0.0, ge=0.0, description="Upstream activity heuristic")

    @field_validator("audio_data", mode="before")
    @classmethod
    def _decode_base64(cls, value: object) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if not isinstance(value, str):
            raise ValueError("audioData must be a base64 string")
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as err:
            raise ValueError("audioData is not valid base64") from err


class StartConversationEvent(_EventModel):
    type: Literal["start-conversation"]
    conversation_id: str = Field(..., min_length=1)


class EndConversationEvent(_EventModel):
    type: Literal["end-conversation"]
    conversation_id: str = Field(..., min_length=1)


InboundEvent = Annotated[
    Union[AudioChunkEvent, StartConversationEvent, EndConversationEvent],
    Field(discriminator="type"),
]

inbound_event_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)
