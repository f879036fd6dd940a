"""
Speaker labels for a two-party conversation.

- Labels are "A" and "B" (two-valued), derived from the participant identifier, not from
  who spoke first, so every pass and both call legs agree on who is A.
- Participant whose canonical number is the first segment of room-<a>-<b> is A, the
  second is B.
- Identities that are not one of the key's numbers (e.g. transport usernames) fall back
  to the parity of CRC-32 of the raw identifier: stable, but two such identities may
  collide on the same label.
"""
from __future__ import annotations

import logging
import zlib

from callscribe.identity import DEFAULT_COUNTRY_PREFIX, InvalidIdentifier, canonicalize, parse_key

logger = logging.getLogger(__name__)

SPEAKER_LABELS = ("A", "B")


def _hash_label(participant_id: str) -> str:
    return SPEAKER_LABELS[zlib.crc32(participant_id.encode("utf-8")) % 2]


def speaker_label(
    participant_id: str,
    conversation_key: str | None = None,
    country_prefix: str = DEFAULT_COUNTRY_PREFIX,
) -> str:
    """Deterministic A/B label for participant_id within conversation_key."""
    if conversation_key:
        try:
            first, second = parse_key(conversation_key)
            canonical = canonicalize(participant_id, country_prefix)
        except InvalidIdentifier:
            pass
        else:
            if canonical == first:
                return SPEAKER_LABELS[0]
            if canonical == second:
                return SPEAKER_LABELS[1]
    return _hash_label(participant_id)
