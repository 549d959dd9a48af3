"""
YoursAI - Application Entry Point
==================================
FastAPI application factory.

On startup the lifespan builds the shared ``AppServices`` once: the
LanceDB connection pool, the MongoDB client, both stores, the AI clients
and the two orchestrators.  Everything request-scoped is created per
call; only these objects are shared.  On shutdown the HTTP client, the
MongoDB client and the pool are closed.

Usage:
    uvicorn yoursai.src.main:app
    python -m yoursai.src.main
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import motor.motor_asyncio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from yoursai.config.settings import Settings, settings as default_settings
from yoursai.src.api.routes import router
from yoursai.src.core.completion import CompletionClient
from yoursai.src.core.embedding import EmbeddingClient
from yoursai.src.core.ingestor import IngestOrchestrator
from yoursai.src.core.rag_engine import ChatOrchestrator
from yoursai.src.core.secrets import SettingsSecretResolver
from yoursai.src.database.chat_history import MongoConversationStore
from yoursai.src.database.vector_store import KnowledgeVectorStore, LanceConnectionPool
from yoursai.src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class AppServices:
    """Process-wide collaborators shared by every request."""

    chat: ChatOrchestrator
    ingest: IngestOrchestrator
    pool: LanceConnectionPool | None = None
    completions: CompletionClient | None = None
    mongo: motor.motor_asyncio.AsyncIOMotorClient | None = None

    async def aclose(self) -> None:
        if self.completions is not None:
            await self.completions.aclose()
        if self.mongo is not None:
            self.mongo.close()
        if self.pool is not None:
            self.pool.close()


def build_services(config: Settings | None = None) -> AppServices:
    """Wire the production object graph from settings."""
    config = config or default_settings

    pool = LanceConnectionPool(db_path=config.LANCEDB_PATH, table_name=config.LANCEDB_TABLE_NAME, dimension=config.EMBEDDING_DIMENSION, max_open=config.DB_MAX_OPEN_CONNS, max_idle=config.DB_MAX_IDLE_CONNS, max_lifetime=config.DB_CONN_MAX_LIFETIME_SECONDS)
    knowledge = KnowledgeVectorStore(pool)

    mongo = motor.motor_asyncio.AsyncIOMotorClient(config.MONGO_URI.get_secret_value())
    conversations = MongoConversationStore.from_client(mongo, config.MONGO_DB_NAME, config.CHAT_HISTORY_COLLECTION)

    embedder = EmbeddingClient(dimension=config.EMBEDDING_DIMENSION, timeout=config.EMBEDDING_TIMEOUT_SECONDS)
    completions = CompletionClient(http_client=httpx.AsyncClient(trust_env=False), model=config.LLM_MODEL, base_url=config.GEMINI_API_BASE_URL, temperature=config.LLM_TEMPERATURE, max_output_tokens=config.MAX_OUTPUT_TOKENS, timeout=config.COMPLETION_TIMEOUT_SECONDS, max_attempts=config.COMPLETION_MAX_ATTEMPTS, retry_delays=config.COMPLETION_RETRY_DELAYS)
    secrets = SettingsSecretResolver(config)

    chat = ChatOrchestrator(embedder, completions, knowledge, conversations, secrets, config=config)
    ingest = IngestOrchestrator(embedder, knowledge, secrets, config=config)
    logger.info("Services ready (llm=%s, embedding=%s, table=%s)", config.LLM_MODEL, config.EMBEDDING_MODEL, config.LANCEDB_TABLE_NAME)
    return AppServices(chat=chat, ingest=ingest, pool=pool, completions=completions, mongo=mongo)


def create_app(services: AppServices | None = None) -> FastAPI:
    """
    Build the FastAPI app.

    Parameters
    ----------
    services
        Pre-built collaborators (tests).  When omitted, the lifespan
        builds them from settings and closes them on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        app.state.services = services or build_services()
        try:
            yield
        finally:
            if owned:
                await app.state.services.aclose()
                logger.info("Services closed.")

    app = FastAPI(title="YoursAI Assistant", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    uvicorn.run("yoursai.src.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
