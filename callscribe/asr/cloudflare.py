"""
CloudflareWhisperClient: Whisper via Cloudflare Workers AI.

Sends the combined PCM payload as-is. Runs the HTTP call in executor to avoid
blocking the event loop. Non-200 responses and transport errors are failures.
"""
from __future__ import annotations

import asyncio

import httpx

from callscribe.asr.base import TranscriptionClient, TranscriptionFailure, TranscriptionResult
from callscribe.config import get_settings


def _sync_transcribe_cloudflare(pcm_bytes: bytes) -> TranscriptionResult:
    """Blocking HTTP call; run in executor."""
    settings = get_settings()
    account_id = settings.CLOUDFLARE_ACCOUNT_ID
    token = settings.CLOUDFLARE_API_TOKEN
    if not account_id or not token:
        raise TranscriptionFailure("Cloudflare credentials not configured", provider_name="cloudflare")

    url = f"https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/run/{settings.CLOUDFLARE_WHISPER_MODEL}"
    headers = {"Authorization": f"Bearer {token}"}
    body = {"audio": list(pcm_bytes)}

    try:
        with httpx.Client(timeout=settings.CLOUDFLARE_HTTP_TIMEOUT_SEC) as client:
            resp = client.post(url, headers=headers, json=body)
    except httpx.HTTPError as err:
        raise TranscriptionFailure(f"Cloudflare request failed: {err}", provider_name="cloudflare") from err
    if resp.status_code != 200:
        raise TranscriptionFailure(
            f"Cloudflare returned HTTP {resp.status_code}", provider_name="cloudflare"
        )

    data = resp.json()
    result = data.get("result", data)
    if isinstance(result, dict):
        text = result.get("text", result.get("transcript", ""))
    elif isinstance(result, str):
        text = result
    else:
        text = ""
    text = (text or "").strip()
    return TranscriptionResult(text=text, confidence=1.0 if text else 0.0)


class CloudflareWhisperClient(TranscriptionClient):
    """Remote Whisper via Cloudflare Workers AI. Workers AI reports no confidence; 1.0 when text."""

    async def transcribe(self, payload: bytes, participant_id: str) -> TranscriptionResult:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _sync_transcribe_cloudflare, payload)
        except TranscriptionFailure as err:
            err.participant_id = participant_id
            raise

    @property
    def name(self) -> str:
        return "cloudflare"
