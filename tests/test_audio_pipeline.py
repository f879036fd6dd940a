from conftest import T0, chunk

from callscribe.audio import AudioIngestBuffer, SpeakerGrouper, WindowScheduler
from callscribe.session_store import ConversationSession


def _session(now: int = T0) -> ConversationSession:
    return ConversationSession(id="room-6590339936-6590339937", start_time=now, last_activity_time=now)


def _scheduler() -> WindowScheduler:
    return WindowScheduler(interval_ms=2_000, recency_ms=3_000, level_threshold=0.01)


def test_old_chunk_is_evicted_on_next_ingest() -> None:
    buffer = AudioIngestBuffer(retention_ms=10_000)
    session = _session()
    now = T0 + 60_000
    buffer.append(session, chunk("a", now - 15_000), now)
    buffer.append(session, chunk("b", now), now)
    assert [c.participant_id for c in session.audio_chunks] == ["b"]
    # participants never shrink even when their audio is evicted
    assert session.participants == {"a", "b"}


def test_retention_boundary_is_exclusive() -> None:
    buffer = AudioIngestBuffer(retention_ms=10_000)
    session = _session()
    now = T0 + 20_000
    buffer.append(session, chunk("a", now - 10_000), now)
    buffer.append(session, chunk("a", now - 9_999), now)
    assert [c.timestamp for c in session.audio_chunks] == [now - 9_999]


def test_append_keeps_arrival_order() -> None:
    buffer = AudioIngestBuffer(retention_ms=10_000)
    session = _session()
    for i, pid in enumerate(["a", "b", "a"]):
        buffer.append(session, chunk(pid, T0 + i), T0 + 10)
    assert [(c.participant_id, c.timestamp) for c in session.audio_chunks] == [
        ("a", T0),
        ("b", T0 + 1),
        ("a", T0 + 2),
    ]


def test_should_trigger_requires_recent_active_audio() -> None:
    scheduler = _scheduler()
    now = T0 + 10_000

    quiet = _session()
    quiet.audio_chunks = [chunk("a", now - 100, level=0.005)]
    assert not scheduler.should_trigger(quiet, now)

    stale = _session()
    stale.audio_chunks = [chunk("a", now - 3_000, level=0.9)]
    assert not scheduler.should_trigger(stale, now)

    active = _session()
    active.audio_chunks = [chunk("a", now - 2_999, level=0.02)]
    assert scheduler.should_trigger(active, now)


def test_should_trigger_respects_cadence() -> None:
    scheduler = _scheduler()
    session = _session()
    session.last_processed_time = T0
    session.audio_chunks = [chunk("a", T0 + 1_900)]
    assert not scheduler.should_trigger(session, T0 + 2_000)
    assert scheduler.should_trigger(session, T0 + 2_001)


def test_two_active_chunks_500ms_apart_start_one_pass() -> None:
    buffer = AudioIngestBuffer(retention_ms=10_000)
    scheduler = _scheduler()
    session = _session()
    started = 0

    for now in (T0 + 10_000, T0 + 10_500):
        buffer.append(session, chunk("a", now), now)
        if scheduler.try_begin_pass(session, now):
            started += 1
            scheduler.end_pass(session)

    assert started == 1
    assert session.last_processed_time == T0 + 10_000


def test_begin_pass_marks_session_before_work_starts() -> None:
    scheduler = _scheduler()
    session = _session()
    now = T0 + 10_000
    session.audio_chunks = [chunk("a", now)]
    assert scheduler.try_begin_pass(session, now)
    assert session.last_processed_time == now
    assert session.pass_in_flight


def test_second_trigger_is_suppressed_while_pass_in_flight() -> None:
    scheduler = _scheduler()
    session = _session()
    now = T0 + 10_000
    session.audio_chunks = [chunk("a", now)]
    assert scheduler.try_begin_pass(session, now)

    # cadence gate is open again, but the first pass has not finished
    later = now + 5_000
    session.audio_chunks.append(chunk("a", later))
    assert scheduler.should_trigger(session, later)
    assert not scheduler.try_begin_pass(session, later)
    assert session.last_processed_time == now

    scheduler.end_pass(session)
    assert scheduler.try_begin_pass(session, later)


def test_select_window_uses_duration_cutoff() -> None:
    grouper = SpeakerGrouper(window_ms=5_000)
    session = _session()
    now = T0 + 20_000
    session.audio_chunks = [chunk("a", now - 6_000), chunk("a", now - 5_000), chunk("b", now - 4_999)]
    assert [c.timestamp for c in grouper.select_window(session, now)] == [now - 4_999]
    assert len(grouper.select_window(session, now, duration_ms=7_000)) == 3


def test_group_by_participant_preserves_order_within_each_speaker() -> None:
    chunks = [
        chunk("b", T0, payload=b"b1"),
        chunk("a", T0 + 1, payload=b"a1"),
        chunk("b", T0 + 2, payload=b"b2"),
        chunk("a", T0 + 3, payload=b"a2"),
    ]
    grouped = SpeakerGrouper.group_by_participant(chunks)
    assert list(grouped) == ["b", "a"]
    assert [c.payload for c in grouped["a"]] == [b"a1", b"a2"]
    assert SpeakerGrouper.combine(grouped["b"]) == b"b1b2"


def test_combine_empty_is_empty_bytes() -> None:
    assert SpeakerGrouper.combine([]) == b""
