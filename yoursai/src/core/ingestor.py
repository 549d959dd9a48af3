"""
YoursAI - Ingest Orchestrator
==============================
Turns one plain-text document into owner-scoped knowledge chunks:
authenticate → validate → chunk → embed + insert → commit.

Key design decisions:
    • **All or nothing** – chunks are buffered in a single
      ``KnowledgeTransaction``; any embedding or insert failure rolls
      back the whole document, so a partial document is never visible.
    • **Sequential by design** – one embedding call at a time with a
      fixed pause between chunks to stay under the API rate limit.
    • **Fail early** – oversized documents are rejected (413) before any
      chunking, embedding or database work.

Usage:
    ingest = IngestOrchestrator(embedder, vector_store, secrets)
    response = await ingest.handle(authorization_header, raw_body)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, ConfigDict, StrictStr
from pydantic import ValidationError as PydanticValidationError

from yoursai.config.settings import Settings, settings as default_settings
from yoursai.src.core.embedding import EmbeddingClient
from yoursai.src.core.errors import AuthError, EmbeddingError, PayloadTooLargeError, SecretResolutionError, StorageError, ValidationError
from yoursai.src.core.identity import extract_identity
from yoursai.src.core.responses import EndpointResponse, error_response, json_response
from yoursai.src.core.secrets import SecretResolver
from yoursai.src.database.vector_store import KnowledgeTransaction, KnowledgeVectorStore
from yoursai.src.utils.logger import get_logger
from yoursai.src.utils.text_utils import chunk_text

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class IngestRequest(BaseModel):
    """Ingest request body.  Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    documentName: StrictStr
    text: StrictStr


class IngestOrchestrator:
    """
    Ingest endpoint pipeline.

    Parameters
    ----------
    embedder : EmbeddingClient
        Embeds each chunk.
    knowledge : KnowledgeVectorStore
        Target store; every chunk is written inside one transaction.
    secrets : SecretResolver
        Resolves the Gemini API key by name.
    config
        Settings instance.  Defaults to the global ``settings``.
    sleep
        Awaitable pause between chunk embeddings.
    """

    __slots__ = ("_embedder", "_knowledge", "_secrets", "_config", "_sleep")

    def __init__(self, embedder: EmbeddingClient, knowledge: KnowledgeVectorStore, secrets: SecretResolver, config: Settings | None = None, sleep: SleepFn = asyncio.sleep) -> None:
        self._embedder = embedder
        self._knowledge = knowledge
        self._secrets = secrets
        self._config = config or default_settings
        self._sleep = sleep


    async def handle(self, authorization: str | None, body: bytes | str) -> EndpointResponse:
        """Ingest one document.  Never raises for domain failures."""
        t_start = time.perf_counter()

        # ── 1. Authenticate ───────────────────────────────────────────
        try:
            owner = extract_identity(authorization)
        except AuthError as exc:
            logger.warning("[INGEST] Authentication failed: %s", exc.message)
            return error_response(401, "Authentication required")

        # ── 2. Validate ───────────────────────────────────────────────
        try:
            request = self._parse(body)
        except PayloadTooLargeError as exc:
            logger.warning("[INGEST] %s", exc.message)
            return error_response(413, exc.message)
        except ValidationError as exc:
            logger.warning("[INGEST] Invalid request body: %s", exc.message)
            return error_response(400, "Invalid request body")

        # ── 3. API key ────────────────────────────────────────────────
        try:
            api_key = self._secrets.get_secret(self._config.GEMINI_KEY_SECRET_NAME)
        except SecretResolutionError as exc:
            logger.error("[INGEST] Failed to resolve API key: %s", exc.message)
            return error_response(500, "Failed to get API key")

        # ── 4. Chunk ──────────────────────────────────────────────────
        chunks = chunk_text(request.text, self._config.MAX_TOKENS_PER_CHUNK)
        logger.info("[INGEST] '%s' → %d chunk(s)", request.documentName, len(chunks))

        # ── 5. Open transaction ───────────────────────────────────────
        try:
            tx = await asyncio.to_thread(self._knowledge.transaction)
        except StorageError as exc:
            logger.error("[INGEST] %s (cause: %r)", exc.message, exc.__cause__)
            return error_response(500, "Database connection failed")

        # ── 6. Embed + insert, then commit ────────────────────────────
        with tx:
            try:
                written = await self._write_chunks(tx, chunks, request.documentName, owner, api_key)
            except (EmbeddingError, StorageError) as exc:
                logger.error("[INGEST] Ingest of '%s' aborted, rolled back: %s", request.documentName, exc.message)
                return error_response(500, "Failed to ingest document")

        elapsed = time.perf_counter() - t_start
        logger.info("[INGEST] '%s' ingested: %d chunk(s) in %.2fs", request.documentName, written, elapsed)
        return json_response(200, {"message": f"Document '{request.documentName}' ingested successfully", "chunks": written})


    def _parse(self, body: bytes | str) -> IngestRequest:
        try:
            request = IngestRequest.model_validate_json(body)
        except PydanticValidationError as exc:
            raise ValidationError(f"{exc.error_count()} validation error(s)") from exc
        if not request.documentName.strip():
            raise ValidationError("documentName is blank")

        size = len(request.text.encode("utf-8"))
        limit = self._config.MAX_DOCUMENT_BYTES
        if size > limit:
            raise PayloadTooLargeError(f"Document exceeds the maximum size of {limit} bytes")
        return request


    async def _write_chunks(self, tx: KnowledgeTransaction, chunks: list[str], document_name: str, owner: str, api_key: str) -> int:
        """Embed and buffer every chunk in order, then commit once."""
        for i, chunk in enumerate(chunks):
            if i > 0:
                await self._sleep(self._config.INGEST_EMBED_DELAY_SECONDS)
            vector = await self._embedder.embed_document(chunk, api_key)
            tx.insert(chunk, vector, document_name, owner)
            logger.debug("[INGEST] Chunk %d/%d buffered", i + 1, len(chunks))
        return await asyncio.to_thread(tx.commit)
