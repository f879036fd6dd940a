"""
Transcript persistence: one JSON file per conversation key.

- <TRANSCRIPT_DIR>/<key>.json: array of finalized entries in arrival order. Each append
  is read-modify-write of the whole array, so appends for the same key are serialized
  by a per-key asyncio.Lock (no lost updates). Different keys never wait on each other.
  Locks are weakly held, so finished conversations leave nothing behind.
- <TRANSCRIPT_DIR>/<key>-complete.json: final record {id, startTime, endTime,
  participants, transcripts, summary} written once when the conversation ends.
- File I/O runs in the default executor. Writes go to a temp file and os.replace it.
- Durability is best effort; failures raise PersistenceFailure for the caller to log.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import weakref
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from callscribe.schemas.transcript import (
    ConversationRecord,
    ConversationSummaryListing,
    TranscriptEntry,
)
from callscribe.transcript.summary import build_summary

if TYPE_CHECKING:
    from callscribe.session_store import ConversationSession

logger = logging.getLogger(__name__)

COMPLETE_SUFFIX = "-complete.json"
_SAFE_KEY_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")


class PersistenceFailure(RuntimeError):
    """Storage read/write error for one conversation key."""

    def __init__(self, message: str, conversation_id: str):
        super().__init__(message)
        self.message = message
        self.conversation_id = conversation_id


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(path: str, payload: Any) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    os.replace(tmp_path, path)


class TranscriptStoreBase(ABC):
    """Per-conversation transcript log plus final record and summary listing."""

    @abstractmethod
    async def append_transcript(self, conversation_id: str, entry: TranscriptEntry) -> None:
        ...

    @abstractmethod
    async def read_transcripts(self, conversation_id: str) -> list[TranscriptEntry]:
        ...

    @abstractmethod
    async def finalize_session(self, session: "ConversationSession", end_time: int) -> ConversationRecord:
        ...

    @abstractmethod
    async def list_summaries(self) -> list[ConversationSummaryListing]:
        ...


def build_record(session: "ConversationSession", end_time: int) -> ConversationRecord:
    transcripts = list(session.transcripts)
    return ConversationRecord(
        id=session.id,
        start_time=session.start_time,
        end_time=max(end_time, session.start_time),
        participants=sorted(session.participants),
        transcripts=transcripts,
        summary=build_summary(transcripts),
    )


class NoOpTranscriptStore(TranscriptStoreBase):
    """When transcript saving is disabled. No file I/O; records are still built and returned."""

    async def append_transcript(self, conversation_id: str, entry: TranscriptEntry) -> None:
        pass

    async def read_transcripts(self, conversation_id: str) -> list[TranscriptEntry]:
        return []

    async def finalize_session(self, session: "ConversationSession", end_time: int) -> ConversationRecord:
        return build_record(session, end_time)

    async def list_summaries(self) -> list[ConversationSummaryListing]:
        return []


class JsonTranscriptStore(TranscriptStoreBase):
    def __init__(self, transcript_dir: str) -> None:
        self._transcript_dir = transcript_dir
        # a key's lock lives only while some operation on that key holds or awaits it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @property
    def transcript_dir(self) -> str:
        return self._transcript_dir

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def _path(self, conversation_id: str, suffix: str = ".json") -> str:
        if not _SAFE_KEY_RE.fullmatch(conversation_id or ""):
            raise PersistenceFailure(
                f"Conversation id {conversation_id!r} is not usable as a file name", conversation_id
            )
        return os.path.join(self._transcript_dir, f"{conversation_id}{suffix}")

    def _append_sync(self, path: str, entry: TranscriptEntry) -> int:
        entries: list[Any] = []
        if os.path.exists(path):
            existing = _read_json(path)
            if isinstance(existing, list):
                entries = existing
            else:
                logger.warning("Transcript file %s is not a list; starting a new one", path)
        entries.append(entry.model_dump(mode="json", by_alias=True))
        _write_json_atomic(path, entries)
        return len(entries)

    async def append_transcript(self, conversation_id: str, entry: TranscriptEntry) -> None:
        path = self._path(conversation_id)
        loop = asyncio.get_running_loop()
        async with self._lock_for(conversation_id):
            try:
                count = await loop.run_in_executor(None, self._append_sync, path, entry)
            except (OSError, ValueError) as err:
                raise PersistenceFailure(f"Transcript append failed for {path}: {err}", conversation_id) from err
        logger.debug("[%s] stored entry %s (%d total)", conversation_id, entry.id, count)

    def _read_sync(self, path: str) -> list[TranscriptEntry]:
        if not os.path.exists(path):
            return []
        data = _read_json(path)
        if not isinstance(data, list):
            return []
        return [TranscriptEntry.model_validate(item) for item in data]

    async def read_transcripts(self, conversation_id: str) -> list[TranscriptEntry]:
        path = self._path(conversation_id)
        loop = asyncio.get_running_loop()
        async with self._lock_for(conversation_id):
            try:
                return await loop.run_in_executor(None, self._read_sync, path)
            except (OSError, ValueError) as err:
                raise PersistenceFailure(f"Transcript read failed for {path}: {err}", conversation_id) from err

    async def finalize_session(self, session: "ConversationSession", end_time: int) -> ConversationRecord:
        record = build_record(session, end_time)
        path = self._path(session.id, COMPLETE_SUFFIX)
        loop = asyncio.get_running_loop()
        async with self._lock_for(session.id):
            try:
                await loop.run_in_executor(
                    None, _write_json_atomic, path, record.model_dump(mode="json", by_alias=True)
                )
            except OSError as err:
                raise PersistenceFailure(f"Conversation record write failed for {path}: {err}", session.id) from err
        logger.info("[%s] saved complete transcript (%d entries)", session.id, record.summary.total_entries)
        return record

    def _list_sync(self) -> list[ConversationSummaryListing]:
        if not os.path.isdir(self._transcript_dir):
            return []
        listings: list[ConversationSummaryListing] = []
        for name in sorted(os.listdir(self._transcript_dir)):
            if not name.endswith(COMPLETE_SUFFIX):
                continue
            path = os.path.join(self._transcript_dir, name)
            try:
                record = ConversationRecord.model_validate(_read_json(path))
            except (OSError, ValueError) as err:
                logger.warning("Skipping unreadable conversation record %s: %s", path, err)
                continue
            listings.append(
                ConversationSummaryListing(
                    id=record.id,
                    start_time=record.start_time,
                    end_time=record.end_time,
                    participants=record.participants,
                    summary=record.summary,
                )
            )
        listings.sort(key=lambda item: (item.start_time, item.id))
        return listings

    async def list_summaries(self) -> list[ConversationSummaryListing]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._list_sync)


def create_transcript_store(enabled: bool, transcript_dir: str) -> TranscriptStoreBase:
    """JSON store when TRANSCRIPT_SAVE_ENABLED is true; else no-op."""
    if not enabled:
        return NoOpTranscriptStore()
    return JsonTranscriptStore(transcript_dir)
