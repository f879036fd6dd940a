"""
Schemas for transcript entries and finalized conversation records.

Python attributes are snake_case; wire messages and stored JSON use camelCase
(dump with by_alias=True). Both spellings are accepted on input.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TranscriptEntry(_CamelModel):
    """One finalized, speaker-attributed line of the conversation."""

    id: str = Field(..., description="Unique entry id")
    text: str = Field(..., min_length=1, description="Trimmed, non-empty transcript text")
    speaker_label: str = Field(..., description="Two-valued speaker label: A or B")
    participant_id: str = Field(..., description="Transport-level participant identity")
    timestamp: int = Field(..., description="Unix ms when the entry was produced")
    confidence: float = Field(..., ge=0.0, le=1.0)
    is_final: bool = Field(True, description="Always true; interim results are not modelled")


class ConversationSummary(_CamelModel):
    """Aggregate statistics written when a conversation ends."""

    total_entries: int = 0
    speaker_counts: dict[str, int] = Field(default_factory=dict)
    duration_ms: int = Field(0, description="Last entry timestamp minus first")
    average_confidence: float = 0.0


class ConversationRecord(_CamelModel):
    """Final record for one ended conversation (<key>-complete.json)."""

    id: str
    start_time: int
    end_time: int
    participants: list[str] = Field(default_factory=list)
    transcripts: list[TranscriptEntry] = Field(default_factory=list)
    summary: ConversationSummary = Field(default_factory=ConversationSummary)


class ConversationSummaryListing(_CamelModel):
    """Record without its transcript list, for GET /api/transcripts."""

    id: str
    start_time: int
    end_time: int
    participants: list[str] = Field(default_factory=list)
    summary: ConversationSummary


class RoomKeyResponse(_CamelModel):
    """Response body for GET /api/rooms/key."""

    conversation_id: str
    participants: list[str]
