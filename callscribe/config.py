"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono at this rate (what the capture side sends per chunk).
    # Local Whisper resamples to 16kHz when it differs.
    SAMPLE_RATE: int = 16000

    # Ingest buffer: chunks older than this (ms, relative to server clock) are evicted on every ingest
    AUDIO_RETENTION_MS: int = 10_000
    # Processing cadence: at most one pass per session every N ms
    PROCESS_INTERVAL_MS: int = 2_000
    # Activity gate: need a chunk newer than this (ms) with level above threshold
    ACTIVITY_RECENCY_MS: int = 3_000
    ACTIVITY_LEVEL_THRESHOLD: float = 0.01
    # Window handed to the transcription backend per pass
    PROCESS_WINDOW_MS: int = 5_000

    # Per-participant transcription call; a call that exceeds this is a failure for that pass
    TRANSCRIBE_TIMEOUT_SEC: float = 10.0
    # end-conversation waits at most this long for an outstanding pass before finalizing
    END_PASS_WAIT_SEC: float = 15.0

    # Identity: 8-digit local mobile numbers (8xxx/9xxx) get this country prefix
    DEFAULT_COUNTRY_PREFIX: str = "65"

    # Sessions that never get end-conversation: expire after N seconds idle (0 = never)
    SESSION_IDLE_TIMEOUT_SEC: float = 1800.0
    SESSION_SWEEP_INTERVAL_SEC: float = 60.0

    # ASR backend: "mock" (canned text) | "local" (faster-whisper) | "cloudflare"
    ASR_BACKEND: Literal["mock", "local", "cloudflare"] = "mock"
    MOCK_TRANSCRIBE_DELAY_SEC: float = 0.5

    # Cloudflare Workers AI (when ASR_BACKEND=cloudflare)
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    CLOUDFLARE_WHISPER_MODEL: str = "@cf/openai/whisper"
    CLOUDFLARE_HTTP_TIMEOUT_SEC: float = 30.0

    # Local Whisper (when ASR_BACKEND=local): model loaded once at startup
    LOCAL_WHISPER_MODEL: str = "base"  # base | small | medium | large-v3
    LOCAL_WHISPER_DEVICE: Literal["cpu", "cuda"] = "cpu"
    LOCAL_WHISPER_COMPUTE_TYPE: Literal["int8", "float16"] = "int8"
    LOCAL_WHISPER_BEAM_SIZE: int = 5
    LOCAL_WHISPER_LANGUAGE: str = ""  # empty = auto-detect

    # Conversation storage: <key>.json (entries, append) and <key>-complete.json (final record)
    TRANSCRIPT_SAVE_ENABLED: bool = True
    TRANSCRIPT_DIR: str = "./transcripts"

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path empty = console only
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
