"""
ConversationEngine: session-scoped transcription pipeline.

chunk -> SessionRegistry.get_or_create -> AudioIngestBuffer.append
      -> WindowScheduler.try_begin_pass (cadence + activity gate, one pass in flight per session)
      -> SpeakerGrouper.select_window / group_by_participant / combine
      -> TranscriptionClient.transcribe per participant (concurrent, each with a timeout)
      -> TranscriptEntry -> BroadcastDispatcher.publish + TranscriptStore.append_transcript

Ingest is synchronous and fast; the pass runs as its own task so a slow backend never
blocks ingest for this or any other session. Failures of one participant's call are
logged and reported to the subscriber whose chunk triggered the pass; they never abort
the other participant or other sessions. Nothing is retried: the next pass covers
the window again.

Lifecycle: Absent -> Active (first chunk or start-conversation), Active -> Ended
(end-conversation or idle expiry): remove from registry, wait for the in-flight pass,
write the conversation record.
"""
from __future__ import annotations

import asyncio
import logging
import math
import uuid
from contextlib import suppress
from typing import Optional

from callscribe.asr.base import TranscriptionClient, TranscriptionFailure, TranscriptionResult
from callscribe.audio import AudioChunk, AudioIngestBuffer, SpeakerGrouper, WindowScheduler
from callscribe.config import get_settings
from callscribe.diarization import speaker_label
from callscribe.schemas.transcript import ConversationRecord, TranscriptEntry
from callscribe.session_store import ConversationSession, SessionRegistry
from callscribe.transcript.broadcast import BroadcastDispatcher, Subscriber
from callscribe.transcript.store import PersistenceFailure, TranscriptStoreBase, build_record

logger = logging.getLogger(__name__)


class ConversationEngine:
    def __init__(
        self,
        registry: SessionRegistry,
        transcriber: TranscriptionClient,
        store: TranscriptStoreBase,
        dispatcher: BroadcastDispatcher,
        *,
        ingest_buffer: AudioIngestBuffer | None = None,
        scheduler: WindowScheduler | None = None,
        grouper: SpeakerGrouper | None = None,
        transcribe_timeout_sec: float | None = None,
        end_pass_wait_sec: float | None = None,
        idle_timeout_sec: float | None = None,
        country_prefix: str | None = None,
    ) -> None:
        settings = get_settings()
        self._registry = registry
        self._clock = registry.clock
        self._transcriber = transcriber
        self._store = store
        self._dispatcher = dispatcher
        self._buffer = ingest_buffer or AudioIngestBuffer()
        self._scheduler = scheduler or WindowScheduler()
        self._grouper = grouper or SpeakerGrouper()
        self._timeout_sec = (
            transcribe_timeout_sec if transcribe_timeout_sec is not None else settings.TRANSCRIBE_TIMEOUT_SEC
        )
        self._end_wait_sec = end_pass_wait_sec if end_pass_wait_sec is not None else settings.END_PASS_WAIT_SEC
        self._idle_timeout_sec = (
            idle_timeout_sec if idle_timeout_sec is not None else settings.SESSION_IDLE_TIMEOUT_SEC
        )
        self._country_prefix = country_prefix or settings.DEFAULT_COUNTRY_PREFIX
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def dispatcher(self) -> BroadcastDispatcher:
        return self._dispatcher

    @property
    def store(self) -> TranscriptStoreBase:
        return self._store

    # --- inbound events ---

    def start_conversation(self, conversation_id: str, subscriber: Subscriber | None = None) -> ConversationSession:
        """Create the session if needed and subscribe the caller to its transcript broadcast."""
        session = self._registry.get_or_create(conversation_id)
        if subscriber is not None:
            self._dispatcher.subscribe(conversation_id, subscriber)
        logger.info("[%s] started transcription", conversation_id)
        return session

    def ingest_chunk(
        self,
        conversation_id: str,
        chunk: AudioChunk,
        origin: Subscriber | None = None,
    ) -> Optional["asyncio.Task[None]"]:
        """
        Buffer one chunk and start a processing pass when the scheduler allows it.
        Returns the pass task, or None when no pass was started. Must be called on the event loop.
        """
        now = self._clock()
        session = self._registry.get_or_create(conversation_id)
        self._buffer.append(session, chunk, now)
        if not self._scheduler.try_begin_pass(session, now):
            return None

        # Snapshot the window now; later ingests must not change what this pass transcribes.
        groups = self._grouper.group_by_participant(self._grouper.select_window(session, now))
        if not groups:
            self._scheduler.end_pass(session)
            return None

        task = asyncio.create_task(self._run_pass(session, groups, origin))
        session.pass_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def end_conversation(
        self,
        conversation_id: str,
        subscriber: Subscriber | None = None,
    ) -> ConversationRecord | None:
        """Unsubscribe, remove the session, wait for its pass, persist the final record."""
        session = self.detach_conversation(conversation_id, subscriber)
        if session is None:
            return None
        return await self.finalize_conversation(session)

    def detach_conversation(
        self,
        conversation_id: str,
        subscriber: Subscriber | None = None,
    ) -> ConversationSession | None:
        """Synchronous half of end_conversation: unsubscribe and take the session out of the registry."""
        if subscriber is not None:
            self._dispatcher.unsubscribe(conversation_id, subscriber)
        session = self._registry.remove(conversation_id)
        if session is None:
            logger.info("[%s] end-conversation for unknown session", conversation_id)
        return session

    async def finalize_conversation(self, session: ConversationSession) -> ConversationRecord:
        """Wait (bounded) for the detached session's pass, then write its conversation record."""
        conversation_id = session.id
        await self._wait_for_pass(session)
        end_time = self._clock()
        try:
            record = await self._store.finalize_session(session, end_time)
        except PersistenceFailure as e:
            logger.error("[%s] failed to save conversation record: %s", conversation_id, e)
            record = build_record(session, end_time)
        logger.info(
            "[%s] ended transcription: %d entries, participants=%s",
            conversation_id,
            record.summary.total_entries,
            record.participants,
        )
        return record

    # --- processing pass ---

    async def _run_pass(
        self,
        session: ConversationSession,
        groups: dict[str, list[AudioChunk]],
        origin: Subscriber | None,
    ) -> None:
        try:
            participant_ids = list(groups)
            results = await asyncio.gather(
                *(
                    self._transcribe_participant(session.id, pid, self._grouper.combine(groups[pid]))
                    for pid in participant_ids
                ),
                return_exceptions=True,
            )
            for participant_id, result in zip(participant_ids, results):
                if isinstance(result, BaseException):
                    await self._report_failure(session.id, participant_id, result, origin)
                    continue
                entry = self._make_entry(session, participant_id, result)
                if entry is None:
                    continue
                session.append_transcript(entry)
                logger.info("[%s] %s: %s", session.id, entry.speaker_label, entry.text)
                await self._dispatcher.publish(session.id, entry)
                try:
                    await self._store.append_transcript(session.id, entry)
                except PersistenceFailure as e:
                    logger.error("[%s] transcript entry %s not saved: %s", session.id, entry.id, e)
        except Exception:
            logger.exception("[%s] processing pass failed", session.id)
        finally:
            self._scheduler.end_pass(session)
            if session.pass_task is asyncio.current_task():
                session.pass_task = None

    async def _transcribe_participant(
        self, conversation_id: str, participant_id: str, payload: bytes
    ) -> TranscriptionResult:
        try:
            return await asyncio.wait_for(
                self._transcriber.transcribe(payload, participant_id),
                timeout=self._timeout_sec,
            )
        except asyncio.TimeoutError as err:
            raise TranscriptionFailure(
                f"timed out after {self._timeout_sec:.1f}s",
                provider_name=self._transcriber.name,
                participant_id=participant_id,
            ) from err
        except TranscriptionFailure:
            raise
        except Exception as err:
            raise TranscriptionFailure(
                str(err) or type(err).__name__,
                provider_name=self._transcriber.name,
                participant_id=participant_id,
            ) from err

    async def _report_failure(
        self,
        conversation_id: str,
        participant_id: str,
        error: BaseException,
        origin: Subscriber | None,
    ) -> None:
        message = error.message if isinstance(error, TranscriptionFailure) else repr(error)
        logger.warning("[%s] transcription failed for %s: %s", conversation_id, participant_id, message)
        await self._dispatcher.send_error(origin, f"Transcription failed for {participant_id}: {message}")

    def _make_entry(
        self,
        session: ConversationSession,
        participant_id: str,
        result: TranscriptionResult,
    ) -> TranscriptEntry | None:
        text = (result.text or "").strip()
        if not text:
            logger.debug("[%s] blank transcription for %s discarded", session.id, participant_id)
            return None
        confidence = result.confidence
        if confidence is None or math.isnan(confidence):
            confidence = 0.0
        timestamp = self._clock()
        if session.transcripts:
            timestamp = max(timestamp, session.transcripts[-1].timestamp)
        return TranscriptEntry(
            id=f"transcript-{uuid.uuid4().hex}",
            text=text,
            speaker_label=speaker_label(participant_id, session.id, self._country_prefix),
            participant_id=participant_id,
            timestamp=timestamp,
            confidence=min(1.0, max(0.0, float(confidence))),
            is_final=True,
        )

    async def _wait_for_pass(self, session: ConversationSession) -> None:
        task = session.pass_task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._end_wait_sec)
        except asyncio.CancelledError:
            # pass cancelled elsewhere (drain); only our own cancellation propagates
            if not task.cancelled():
                raise
            logger.warning("[%s] pass was cancelled before it finished", session.id)
        except asyncio.TimeoutError:
            logger.warning("[%s] pass still running after %.1fs; cancelling", session.id, self._end_wait_sec)
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    # --- housekeeping ---

    async def sweep_idle_sessions(self) -> int:
        """End sessions with no activity for SESSION_IDLE_TIMEOUT_SEC. Returns number ended."""
        if self._idle_timeout_sec <= 0:
            return 0
        idle_ms = int(self._idle_timeout_sec * 1000)
        expired = self._registry.idle_keys(self._clock(), idle_ms)
        for conversation_id in expired:
            logger.info("[%s] idle for %.0fs; ending session", conversation_id, self._idle_timeout_sec)
            await self.end_conversation(conversation_id)
        return len(expired)

    async def run_idle_sweeper(self, interval_sec: float) -> None:
        """Background loop for the app lifespan; cancelled on shutdown."""
        while True:
            await asyncio.sleep(interval_sec)
            try:
                await self.sweep_idle_sessions()
            except Exception:
                logger.exception("Idle session sweep failed")

    async def drain(self, timeout: float = 30.0) -> None:
        """Wait for outstanding processing passes (e.g. tests, shutdown)."""
        pending = list(self._tasks)
        if not pending:
            return
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning("Cancelled %d processing pass(es) still running after %.1fs", len(not_done), timeout)
            await asyncio.gather(*not_done, return_exceptions=True)

    async def shutdown(self) -> None:
        """Finalize every live session (best effort) so records are not lost on restart."""
        await self.drain(timeout=self._end_wait_sec)
        for conversation_id in self._registry.keys():
            await self.end_conversation(conversation_id)
