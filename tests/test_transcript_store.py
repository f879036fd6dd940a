import asyncio
import gc
import json
import os

import pytest
from conftest import ROOM, T0

from callscribe.schemas.transcript import TranscriptEntry
from callscribe.session_store import ConversationSession
from callscribe.transcript import (
    JsonTranscriptStore,
    NoOpTranscriptStore,
    PersistenceFailure,
    build_summary,
    create_transcript_store,
)


def _entry(i: int, speaker: str = "A", confidence: float = 0.9, timestamp: int | None = None) -> TranscriptEntry:
    return TranscriptEntry(
        id=f"transcript-{i}",
        text=f"line {i}",
        speaker_label=speaker,
        participant_id="6590339936" if speaker == "A" else "6590339937",
        timestamp=T0 + i * 1000 if timestamp is None else timestamp,
        confidence=confidence,
    )


def _session_with(entries: list[TranscriptEntry]) -> ConversationSession:
    session = ConversationSession(id=ROOM, start_time=T0, last_activity_time=T0)
    session.participants.update({"6590339936", "6590339937"})
    for e in entries:
        session.append_transcript(e)
    return session


def test_append_then_read_returns_same_entries_in_order(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    entries = [_entry(i, "A" if i % 2 else "B") for i in range(5)]

    async def scenario() -> list[TranscriptEntry]:
        for e in entries:
            await store.append_transcript(ROOM, e)
        return await store.read_transcripts(ROOM)

    assert asyncio.run(scenario()) == entries


def test_stored_file_uses_camel_case_fields(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    asyncio.run(store.append_transcript(ROOM, _entry(1)))
    with open(os.path.join(transcript_dir, f"{ROOM}.json"), encoding="utf-8") as f:
        data = json.load(f)
    assert data[0]["speakerLabel"] == "A"
    assert data[0]["isFinal"] is True
    assert data[0]["participantId"] == "6590339936"


def test_concurrent_appends_for_one_key_lose_nothing(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    entries = [_entry(i) for i in range(25)]

    async def scenario() -> list[TranscriptEntry]:
        await asyncio.gather(*(store.append_transcript(ROOM, e) for e in entries))
        return await store.read_transcripts(ROOM)

    stored = asyncio.run(scenario())
    assert sorted(e.id for e in stored) == sorted(e.id for e in entries)


def test_read_unknown_conversation_is_empty(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    assert asyncio.run(store.read_transcripts("room-6511111111-6522222222")) == []


def test_unsafe_conversation_id_is_rejected(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    with pytest.raises(PersistenceFailure):
        asyncio.run(store.append_transcript("../escape", _entry(1)))


def test_write_error_raises_persistence_failure(tmp_path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    store = JsonTranscriptStore(str(blocker))
    with pytest.raises(PersistenceFailure) as exc_info:
        asyncio.run(store.append_transcript(ROOM, _entry(1)))
    assert exc_info.value.conversation_id == ROOM


def test_summary_average_and_speaker_counts() -> None:
    entries = [
        _entry(0, "A", confidence=0.8),
        _entry(1, "B", confidence=0.9),
        _entry(2, "A", confidence=1.0),
    ]
    summary = build_summary(entries)
    assert summary.total_entries == 3
    assert summary.speaker_counts == {"A": 2, "B": 1}
    assert summary.average_confidence == pytest.approx(0.9)
    assert summary.duration_ms == 2000


def test_summary_for_no_entries_has_zero_average() -> None:
    summary = build_summary([])
    assert summary.total_entries == 0
    assert summary.average_confidence == 0.0
    assert summary.duration_ms == 0
    assert summary.speaker_counts == {"A": 0, "B": 0}


def test_finalize_writes_complete_record(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    session = _session_with([_entry(0, "A", 0.8), _entry(1, "B", 0.9), _entry(2, "A", 1.0)])

    record = asyncio.run(store.finalize_session(session, end_time=T0 + 60_000))

    assert record.summary.total_entries == 3
    with open(os.path.join(transcript_dir, f"{ROOM}-complete.json"), encoding="utf-8") as f:
        data = json.load(f)
    assert set(data) == {"id", "startTime", "endTime", "participants", "transcripts", "summary"}
    assert data["id"] == ROOM
    assert data["startTime"] == T0
    assert data["endTime"] == T0 + 60_000
    assert data["participants"] == ["6590339936", "6590339937"]
    assert [t["id"] for t in data["transcripts"]] == ["transcript-0", "transcript-1", "transcript-2"]
    assert data["summary"]["speakerCounts"] == {"A": 2, "B": 1}


def test_list_summaries_reads_finalized_records(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    other = ConversationSession(id="room-6581111111-6582222222", start_time=T0 - 5_000)

    async def scenario():
        await store.finalize_session(_session_with([_entry(0)]), end_time=T0 + 1_000)
        await store.finalize_session(other, end_time=T0)
        await store.append_transcript(ROOM, _entry(0))
        return await store.list_summaries()

    listings = asyncio.run(scenario())
    assert [item.id for item in listings] == ["room-6581111111-6582222222", ROOM]
    assert listings[0].summary.total_entries == 0
    assert listings[1].summary.total_entries == 1


def test_list_summaries_skips_unreadable_records(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)
    os.makedirs(transcript_dir, exist_ok=True)
    with open(os.path.join(transcript_dir, "room-broken-complete.json"), "w", encoding="utf-8") as f:
        f.write("{not json")

    async def scenario():
        await store.finalize_session(_session_with([]), end_time=T0)
        return await store.list_summaries()

    assert [item.id for item in asyncio.run(scenario())] == [ROOM]


def test_list_summaries_without_directory_is_empty(tmp_path) -> None:
    store = JsonTranscriptStore(str(tmp_path / "missing"))
    assert asyncio.run(store.list_summaries()) == []


def test_disabled_store_builds_record_without_files(tmp_path) -> None:
    store = create_transcript_store(enabled=False, transcript_dir=str(tmp_path / "unused"))
    assert isinstance(store, NoOpTranscriptStore)

    async def scenario():
        await store.append_transcript(ROOM, _entry(0))
        return await store.finalize_session(_session_with([_entry(0)]), end_time=T0)

    record = asyncio.run(scenario())
    assert record.summary.total_entries == 1
    assert not (tmp_path / "unused").exists()


def test_finished_conversations_leave_no_locks_behind(transcript_dir: str) -> None:
    store = JsonTranscriptStore(transcript_dir)

    async def scenario():
        for i in range(50):
            session = ConversationSession(id=f"room-65{80000000 + i}-6599999999", start_time=T0)
            await store.append_transcript(session.id, _entry(i))
            await store.finalize_session(session, end_time=T0 + 1_000)

    asyncio.run(scenario())
    gc.collect()
    assert len(store._locks) == 0
    assert len(asyncio.run(store.list_summaries())) == 50
