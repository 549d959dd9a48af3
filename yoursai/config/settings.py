"""
YoursAI - Centralized Configuration
====================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.  Request handlers do not read it directly; they
  resolve it by name through the secret resolver on every request.
- ``MONGO_URI`` is also ``SecretStr`` — connection strings contain
  credentials and must never leak into logs.

Retry Policy
------------
``COMPLETION_RETRY_DELAYS`` is the ordered backoff schedule for the
completion API.  Its length must be ``COMPLETION_MAX_ATTEMPTS - 1`` and
the delays must never decrease; both rules are enforced at load time.

Connection Pool
---------------
``DB_MAX_OPEN_CONNS`` / ``DB_MAX_IDLE_CONNS`` / ``DB_CONN_MAX_LIFETIME_SECONDS``
bound the shared LanceDB pool built once at application startup.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required** — the app will refuse
    to start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini).  **Required.**
    MONGO_URI : SecretStr
        MongoDB connection string for chat history.  **Required.**
    GEMINI_KEY_SECRET_NAME : str
        Name under which the secret resolver looks up the Gemini key.
    EMBEDDING_DIMENSION : int
        Vector length produced by ``EMBEDDING_MODEL``.  Fixes the width
        of the knowledge table's vector column.
    MAX_MESSAGE_LENGTH : int
        Longest accepted chat message, in characters.
    RAG_MIN_MESSAGE_LENGTH : int
        Messages must be *longer* than this to trigger retrieval.
    CONTEXT_EXCHANGES : int
        Number of recent exchanges replayed into the prompt.
    MAX_CHATS_PER_SESSION : int
        Retention cap; older exchanges beyond it are pruned.
    API_CALL_DELAY_SECONDS : float
        Fixed pause before each AI call in the chat pipeline.
    MAX_TOKENS_PER_CHUNK : int
        Token budget per ingested chunk (≈ 0.75 words per token).
    INGEST_EMBED_DELAY_SECONDS : float
        Pause between consecutive chunk embeddings during ingestion.
    MAX_DOCUMENT_BYTES : int
        Largest accepted document body, measured in UTF-8 bytes.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: str | None = None

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr
    GEMINI_KEY_SECRET_NAME: str = "GOOGLE_API_KEY"

    # ── MongoDB (REQUIRED — no default) ────────────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "yoursai"
    CHAT_HISTORY_COLLECTION: str = "chat_history"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    EMBEDDING_DIMENSION: int = 3072
    EMBEDDING_TIMEOUT_SECONDS: float = 10.0
    LLM_MODEL: str = "gemini-2.5-flash-lite"
    LLM_TEMPERATURE: float = 0.2
    MAX_OUTPUT_TOKENS: int = 1024
    GEMINI_API_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    COMPLETION_TIMEOUT_SECONDS: float = 30.0

    # ── Completion Retry Policy ────────────────────────────────────────
    COMPLETION_MAX_ATTEMPTS: int = 3
    COMPLETION_RETRY_DELAYS: list[float] = [2.0, 5.0]

    # ── Chat Pipeline ──────────────────────────────────────────────────
    MAX_MESSAGE_LENGTH: int = 3000
    RAG_MIN_MESSAGE_LENGTH: int = 30
    SEARCH_RESULTS_LIMIT: int = 3
    CONTEXT_EXCHANGES: int = 5
    MAX_CHATS_PER_SESSION: int = 30
    API_CALL_DELAY_SECONDS: float = 2.0

    # ── Ingestion Parameters ───────────────────────────────────────────
    MAX_TOKENS_PER_CHUNK: int = 500
    INGEST_EMBED_DELAY_SECONDS: float = 0.5
    MAX_DOCUMENT_BYTES: int = 1_048_576

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "aiknowledge"

    # ── Connection Pool ────────────────────────────────────────────────
    DB_MAX_OPEN_CONNS: int = 10
    DB_MAX_IDLE_CONNS: int = 5
    DB_CONN_MAX_LIFETIME_SECONDS: float = 300.0

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("EMBEDDING_DIMENSION", "MAX_MESSAGE_LENGTH", "SEARCH_RESULTS_LIMIT", "MAX_CHATS_PER_SESSION", "MAX_DOCUMENT_BYTES", "COMPLETION_MAX_ATTEMPTS", "DB_MAX_OPEN_CONNS")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"must be ≥ 1, got {v}")
        return v


    @field_validator("MAX_TOKENS_PER_CHUNK")
    @classmethod
    def _chunk_budget(cls, v: int) -> int:
        # 2 tokens would round down to a single word per chunk
        if v < 2:
            raise ValueError(f"MAX_TOKENS_PER_CHUNK must be ≥ 2, got {v}")
        return v


    @model_validator(mode="after")
    def _retry_schedule(self) -> Settings:
        delays = self.COMPLETION_RETRY_DELAYS
        if len(delays) != self.COMPLETION_MAX_ATTEMPTS - 1:
            raise ValueError(f"COMPLETION_RETRY_DELAYS needs {self.COMPLETION_MAX_ATTEMPTS - 1} entries, got {len(delays)}")
        if any(d < 0 for d in delays) or any(b < a for a, b in zip(delays, delays[1:])):
            raise ValueError(f"COMPLETION_RETRY_DELAYS must be non-negative and non-decreasing, got {delays}")
        if self.DB_MAX_IDLE_CONNS > self.DB_MAX_OPEN_CONNS:
            raise ValueError("DB_MAX_IDLE_CONNS cannot exceed DB_MAX_OPEN_CONNS")
        return self

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from yoursai.config.settings import settings
settings = Settings()
