"""
YoursAI - Embedding Client
===========================
Wraps a LangChain-compatible embedding model (``GoogleGenerativeAIEmbeddings``
by default) behind one awaitable call that:

  • builds (and caches) the model for the API key resolved per request,
  • runs the blocking ``embed_query`` (chat search) or ``embed_documents``
    (ingested chunks) in a worker thread under a fixed timeout,
  • validates the vector against the configured dimension before anyone
    tries to store or search with it.

Every failure is raised as ``EmbeddingError``; a wrong-length vector is
the distinct ``EmbeddingDimensionError``.  Callers decide whether that is
fatal (ingestion) or just disables retrieval (chat).

Usage:
    client = EmbeddingClient(dimension=settings.EMBEDDING_DIMENSION)
    vector = await client.embed("some text", api_key)
    stored = await client.embed_document("chunk text", api_key)
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from yoursai.config.settings import settings
from yoursai.src.core.errors import EmbeddingDimensionError, EmbeddingError
from yoursai.src.utils.logger import get_logger

logger = get_logger(__name__)


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


EmbedderFactory = Callable[[str], Embedder]


def google_embedder_factory(model: str | None = None) -> EmbedderFactory:
    """Return a factory building ``GoogleGenerativeAIEmbeddings`` for an API key."""
    model_name = model or settings.EMBEDDING_MODEL

    def _build(api_key: str) -> Embedder:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        return GoogleGenerativeAIEmbeddings(model=model_name, google_api_key=api_key)

    return _build


def validate_dimension(vector: list[float], dimension: int) -> list[float]:
    """Raise ``EmbeddingDimensionError`` unless *vector* has *dimension* entries."""
    if len(vector) != dimension:
        raise EmbeddingDimensionError(expected=dimension, actual=len(vector))
    return vector


class EmbeddingClient:
    """
    Text → vector client with per-key model caching.

    Parameters
    ----------
    dimension
        Expected vector length.  Defaults to ``settings.EMBEDDING_DIMENSION``.
    timeout
        Seconds allowed for one embedding call.
    factory
        Builds an ``Embedder`` from an API key.  Defaults to Gemini via
        LangChain; tests inject fakes here.
    """

    __slots__ = ("_dimension", "_timeout", "_factory", "_embedders", "_lock")

    def __init__(self, dimension: int | None = None, timeout: float | None = None, factory: EmbedderFactory | None = None) -> None:
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self._timeout = timeout if timeout is not None else settings.EMBEDDING_TIMEOUT_SECONDS
        self._factory = factory or google_embedder_factory()
        self._embedders: dict[str, Embedder] = {}
        self._lock = threading.Lock()


    @property
    def dimension(self) -> int:
        return self._dimension


    def _embedder_for(self, api_key: str) -> Embedder:
        embedder = self._embedders.get(api_key)
        if embedder is None:
            with self._lock:
                embedder = self._embedders.get(api_key)
                if embedder is None:
                    embedder = self._factory(api_key)
                    self._embedders[api_key] = embedder
        return embedder


    async def embed(self, text: str, api_key: str) -> list[float]:
        """
        Embed a single search query.

        Raises
        ------
        EmbeddingDimensionError
            The model returned a vector of the wrong length.
        EmbeddingError
            Model construction, the API call, or the timeout failed.
        """
        return await self._embed_one(text, api_key, document=False)


    async def embed_document(self, text: str, api_key: str) -> list[float]:
        """Embed a single chunk for storage.  Same errors as ``embed``."""
        return await self._embed_one(text, api_key, document=True)


    async def _embed_one(self, text: str, api_key: str, document: bool) -> list[float]:
        try:
            embedder = self._embedder_for(api_key)
            if document:
                call = asyncio.to_thread(lambda: embedder.embed_documents([text])[0])
            else:
                call = asyncio.to_thread(embedder.embed_query, text)
            raw = await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise EmbeddingError(f"Embedding call timed out after {self._timeout:.1f}s") from exc
        except Exception as exc:
            raise EmbeddingError(f"Embedding call failed: {exc}") from exc

        try:
            vector = [float(v) for v in raw]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("Embedding response is not a list of numbers") from exc

        logger.debug("Embedded %s of %d chars → %d dims", "document" if document else "query", len(text), len(vector))
        return validate_dimension(vector, self._dimension)
