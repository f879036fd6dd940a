"""
WindowScheduler: when does a session get a processing pass?

Gate (both must hold):
- cadence: now - last_processed_time > PROCESS_INTERVAL_MS (don't over-call the backend)
- activity: some retained chunk with now - timestamp < ACTIVITY_RECENCY_MS and
  audio_level > ACTIVITY_LEVEL_THRESHOLD (don't transcribe silence or stale audio)

The cadence timestamp alone does not stop a second pass from starting while a slow
one is still outstanding. try_begin_pass() therefore checks the in-flight flag, the
gate, and marks the session (last_processed_time + in-flight) in one synchronous
step with no await in between; end_pass() releases it. On a single event loop this
is an atomic compare-and-set per session.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from callscribe.config import get_settings

if TYPE_CHECKING:
    from callscribe.session_store import ConversationSession

logger = logging.getLogger(__name__)


class WindowScheduler:
    def __init__(
        self,
        interval_ms: int | None = None,
        recency_ms: int | None = None,
        level_threshold: float | None = None,
    ) -> None:
        settings = get_settings()
        self._interval_ms = interval_ms if interval_ms is not None else settings.PROCESS_INTERVAL_MS
        self._recency_ms = recency_ms if recency_ms is not None else settings.ACTIVITY_RECENCY_MS
        self._level_threshold = (
            level_threshold if level_threshold is not None else settings.ACTIVITY_LEVEL_THRESHOLD
        )

    def has_recent_activity(self, session: "ConversationSession", now: int) -> bool:
        return any(
            now - c.timestamp < self._recency_ms and c.audio_level > self._level_threshold
            for c in session.audio_chunks
        )

    def should_trigger(self, session: "ConversationSession", now: int) -> bool:
        """Cadence + activity gate. Does not look at the in-flight flag."""
        if now - session.last_processed_time <= self._interval_ms:
            return False
        return self.has_recent_activity(session, now)

    def try_begin_pass(self, session: "ConversationSession", now: int) -> bool:
        """
        Claim the session for one processing pass. False if a pass is in flight or the
        gate is closed. On success last_processed_time is set before any pass work runs.
        """
        if session.pass_in_flight:
            if self.should_trigger(session, now):
                logger.debug("[%s] pass already in flight; trigger suppressed", session.id)
            return False
        if not self.should_trigger(session, now):
            return False
        session.last_processed_time = max(session.last_processed_time, now)
        session.pass_in_flight = True
        return True

    def end_pass(self, session: "ConversationSession") -> None:
        session.pass_in_flight = False
