"""
YoursAI - Chat Orchestrator
============================
Runs one chat turn end to end and always returns an ``EndpointResponse``.

Architecture
------------
``ChatState``
    The strictly-forward phases of a turn.  Each transition is logged;
    a failure inside a phase produces that phase's terminal response.

``ChatTurn``
    Request-scoped context (identity, session, message, transcript,
    retrieved knowledge, reply).  Never persisted.

``ChatOrchestrator``
    Stateless pipeline.  Flow:
        1. Authenticate   → bearer token → identity            (401)
        2. Validate       → body shape, length, session id     (400)
        3. Greeting check → canned reply, no further calls
        4. Build context  → API key (500), history window,
                            retrieval for substantial messages
        5. Generate       → Gemini with retry/backoff
        6. Recover        → one follow-up when cut by MAX_TOKENS
        7. Persist        → save exchange, prune old ones
        8. Respond        → {"reply", "sessionId"}

Failure policy
--------------
- History read, retrieval, truncation follow-up and persistence are
  best-effort: their failures are logged and the turn continues.
- Upstream non-2xx after retries becomes a degraded 200 reply.
- Transport failures and malformed upstream bodies are 500s.

Usage:
    chat = ChatOrchestrator(embedder, completions, vector_store, conversations, secrets)
    response = await chat.handle(authorization_header, raw_body)
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, StrictStr
from pydantic import ValidationError as PydanticValidationError

from yoursai.config.prompt_templates import AI_LABEL, CONTINUE_INSTRUCTION, CONVERSATION_HEADER, GREETING_REPLY, GREETINGS, KNOWLEDGE_HEADER, MESSAGE_TOO_LONG_REPLY, NO_RESPONSE_REPLY, SERVICE_UNAVAILABLE_REPLY, SYSTEM_PROMPT, USER_LABEL
from yoursai.config.settings import Settings, settings as default_settings
from yoursai.src.core.completion import CompletionClient, CompletionResult
from yoursai.src.core.embedding import EmbeddingClient
from yoursai.src.core.errors import AuthError, EmbeddingError, EmptyCompletionError, RetrievalError, SecretResolutionError, StorageError, UpstreamFatalError, UpstreamResponseError, UpstreamTransientError, ValidationError
from yoursai.src.core.identity import extract_identity
from yoursai.src.core.responses import EndpointResponse, error_response, json_response
from yoursai.src.core.secrets import SecretResolver
from yoursai.src.database.chat_history import ChatExchange, ConversationStore
from yoursai.src.database.vector_store import KnowledgeHit, KnowledgeVectorStore
from yoursai.src.utils.logger import get_logger
from yoursai.src.utils.text_utils import is_greeting

logger = get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class ChatState(str, Enum):
    AUTHENTICATING = "AUTHENTICATING"
    VALIDATING = "VALIDATING"
    GREETING_CHECK = "GREETING_CHECK"
    CONTEXT_BUILDING = "CONTEXT_BUILDING"
    GENERATING = "GENERATING"
    TRUNCATION_RECOVERY = "TRUNCATION_RECOVERY"
    PERSISTING = "PERSISTING"
    RESPONDING = "RESPONDING"


class ChatRequest(BaseModel):
    """Chat request body.  Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    message: StrictStr
    sessionId: StrictStr | None = None


@dataclass
class ChatTurn:
    """Everything one turn accumulates on its way through the states."""

    identity: str
    session: str
    message: str
    api_key: str = ""
    transcript: str = ""
    knowledge: list[KnowledgeHit] = field(default_factory=list)
    reply: str = ""
    state: ChatState = ChatState.VALIDATING


# ══════════════════════════════════════════════════════════════════════
#  PROMPT ASSEMBLY
# ══════════════════════════════════════════════════════════════════════


def render_transcript(exchanges: list[ChatExchange]) -> str:
    """``User: …\\nAI: …`` per exchange, oldest first, newline-terminated."""
    return "".join(f"{USER_LABEL}{ex.user_message}\n{AI_LABEL}{ex.ai_reply}\n" for ex in exchanges)


def render_knowledge(hits: list[KnowledgeHit]) -> str:
    if not hits:
        return ""
    return KNOWLEDGE_HEADER + "".join(f"- [From: {hit.document_name}] {hit.content}\n" for hit in hits)


def _with_transcript(transcript: str) -> str:
    prompt = SYSTEM_PROMPT
    if transcript:
        prompt += CONVERSATION_HEADER + transcript
    return prompt


def build_prompt(turn: ChatTurn) -> str:
    """System → conversation → knowledge → user message, in that order."""
    return _with_transcript(turn.transcript) + render_knowledge(turn.knowledge) + "\n" + USER_LABEL + turn.message


def build_continuation_prompt(turn: ChatTurn) -> str:
    """Replays the turn with the partial reply and asks for the rest."""
    return _with_transcript(turn.transcript) + f"\n{USER_LABEL}{turn.message}\n{AI_LABEL}{turn.reply}\n{USER_LABEL}{CONTINUE_INSTRUCTION}"


# ══════════════════════════════════════════════════════════════════════
#  ORCHESTRATOR
# ══════════════════════════════════════════════════════════════════════


class ChatOrchestrator:
    """
    Chat endpoint pipeline.

    Parameters
    ----------
    embedder : EmbeddingClient
        Embeds messages for retrieval.
    completions : CompletionClient
        Gemini generation with retry/backoff.
    knowledge : KnowledgeVectorStore
        Owner-scoped vector search.
    conversations : ConversationStore
        Chat history (read window, append, prune).
    secrets : SecretResolver
        Resolves the Gemini API key by name.
    config
        Settings instance.  Defaults to the global ``settings``.
    sleep
        Awaitable delay before AI calls; tests pass a no-op.
    """

    __slots__ = ("_embedder", "_completions", "_knowledge", "_conversations", "_secrets", "_config", "_sleep")

    def __init__(self, embedder: EmbeddingClient, completions: CompletionClient, knowledge: KnowledgeVectorStore, conversations: ConversationStore, secrets: SecretResolver, config: Settings | None = None, sleep: SleepFn = asyncio.sleep) -> None:
        self._embedder = embedder
        self._completions = completions
        self._knowledge = knowledge
        self._conversations = conversations
        self._secrets = secrets
        self._config = config or default_settings
        self._sleep = sleep


    async def handle(self, authorization: str | None, body: bytes | str) -> EndpointResponse:
        """Run one turn.  Never raises for domain failures."""
        t_start = time.perf_counter()

        # ── 1. Authenticate ───────────────────────────────────────────
        self._enter(ChatState.AUTHENTICATING)
        try:
            identity = extract_identity(authorization)
        except AuthError as exc:
            logger.warning("[CHAT] Authentication failed: %s", exc.message)
            return error_response(401, "Authentication required")

        # ── 2. Validate ───────────────────────────────────────────────
        self._enter(ChatState.VALIDATING)
        try:
            request = self._parse(body)
        except ValidationError as exc:
            logger.warning("[CHAT] Invalid request body: %s", exc.message)
            return error_response(400, "Invalid request body")

        session = request.sessionId if request.sessionId and request.sessionId.strip() else str(uuid.uuid4())
        limit = self._config.MAX_MESSAGE_LENGTH
        if len(request.message) > limit:
            logger.warning("[CHAT] Message of %d chars exceeds limit %d", len(request.message), limit)
            return json_response(400, {"reply": MESSAGE_TOO_LONG_REPLY.format(limit=limit)})

        turn = ChatTurn(identity=identity, session=session, message=request.message)

        # ── 3. Greeting short-circuit ─────────────────────────────────
        self._enter(ChatState.GREETING_CHECK, turn)
        if is_greeting(turn.message, GREETINGS):
            return json_response(200, {"reply": GREETING_REPLY, "sessionId": turn.session})

        # ── 4. Context ────────────────────────────────────────────────
        self._enter(ChatState.CONTEXT_BUILDING, turn)
        try:
            turn.api_key = self._secrets.get_secret(self._config.GEMINI_KEY_SECRET_NAME)
        except SecretResolutionError as exc:
            logger.error("[CHAT] Failed to resolve API key: %s", exc.message)
            return error_response(500, "Failed to get API key")

        turn.transcript = await self._load_transcript(turn)
        if len(turn.message) > self._config.RAG_MIN_MESSAGE_LENGTH:
            turn.knowledge = await self._retrieve(turn)

        # ── 5. Generate ───────────────────────────────────────────────
        self._enter(ChatState.GENERATING, turn)
        await self._sleep(self._config.API_CALL_DELAY_SECONDS)
        t_llm = time.perf_counter()
        try:
            result = await self._completions.generate(build_prompt(turn), turn.api_key)
        except UpstreamTransientError as exc:
            logger.warning("[CHAT] AI service unavailable after retries (status %d)", exc.status_code)
            return json_response(200, {"reply": SERVICE_UNAVAILABLE_REPLY, "sessionId": turn.session})
        except EmptyCompletionError:
            logger.warning("[CHAT] AI returned no candidates")
            return json_response(200, {"reply": NO_RESPONSE_REPLY, "sessionId": turn.session})
        except UpstreamResponseError as exc:
            logger.error("[CHAT] Unusable AI response: %s", exc.message)
            return error_response(500, exc.message)
        except UpstreamFatalError as exc:
            logger.error("[CHAT] AI call failed: %s (cause: %r)", exc.message, exc.__cause__)
            return error_response(500, "Failed to call AI service")
        llm_ms = (time.perf_counter() - t_llm) * 1000
        turn.reply = result.text

        # ── 6. Truncation recovery ────────────────────────────────────
        if result.truncated:
            self._enter(ChatState.TRUNCATION_RECOVERY, turn)
            await self._continue_reply(turn)

        # ── 7. Persist ────────────────────────────────────────────────
        self._enter(ChatState.PERSISTING, turn)
        await self._persist(turn)

        # ── 8. Respond ────────────────────────────────────────────────
        self._enter(ChatState.RESPONDING, turn)
        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[CHAT] Turn total: %.1fms (llm=%.1f, knowledge=%d, reply=%d chars)", total_ms, llm_ms, len(turn.knowledge), len(turn.reply))
        return json_response(200, {"reply": turn.reply, "sessionId": turn.session})

    # ══════════════════════════════════════════════════════════════════
    #  PHASES
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _enter(state: ChatState, turn: ChatTurn | None = None) -> None:
        if turn is not None:
            turn.state = state
            logger.debug("[CHAT] → %s (session=%s)", state.value, turn.session)
        else:
            logger.debug("[CHAT] → %s", state.value)


    @staticmethod
    def _parse(body: bytes | str) -> ChatRequest:
        try:
            request = ChatRequest.model_validate_json(body)
        except PydanticValidationError as exc:
            raise ValidationError(f"{exc.error_count()} validation error(s)") from exc
        if not request.message.strip():
            raise ValidationError("message is blank")
        return request


    async def _load_transcript(self, turn: ChatTurn) -> str:
        t0 = time.perf_counter()
        try:
            exchanges = await self._conversations.recent(turn.identity, turn.session, self._config.CONTEXT_EXCHANGES)
        except StorageError as exc:
            logger.error("[CHAT] History read failed, continuing without it: %s", exc.message)
            return ""
        logger.info("[CHAT] History fetched: %d exchange(s) in %.1fms", len(exchanges), (time.perf_counter() - t0) * 1000)
        return render_transcript(exchanges)


    async def _retrieve(self, turn: ChatTurn) -> list[KnowledgeHit]:
        """Top-k chunks owned by the caller, or nothing if retrieval fails."""
        await self._sleep(self._config.API_CALL_DELAY_SECONDS)
        t0 = time.perf_counter()
        try:
            vector = await self._embedder.embed(turn.message, turn.api_key)
            hits = await asyncio.to_thread(self._knowledge.nearest, vector, turn.identity, self._config.SEARCH_RESULTS_LIMIT)
        except (EmbeddingError, RetrievalError) as exc:
            logger.warning("[CHAT] Retrieval skipped: %s", exc.message)
            return []
        logger.info("[CHAT] Retrieved %d chunk(s) in %.1fms", len(hits), (time.perf_counter() - t0) * 1000)
        return hits


    async def _continue_reply(self, turn: ChatTurn) -> None:
        """One single-attempt follow-up; the truncated reply stands on failure."""
        try:
            continuation: CompletionResult = await self._completions.generate(build_continuation_prompt(turn), turn.api_key, max_attempts=1)
        except Exception:
            logger.exception("[CHAT] Continuation call failed; keeping truncated reply")
            return
        turn.reply += continuation.text
        logger.info("[CHAT] Reply continued (+%d chars)", len(continuation.text))


    async def _persist(self, turn: ChatTurn) -> None:
        exchange = ChatExchange(identity=turn.identity, session=turn.session, user_message=turn.message, ai_reply=turn.reply)
        try:
            await self._conversations.append(exchange)
            await self._conversations.prune(turn.identity, turn.session, self._config.MAX_CHATS_PER_SESSION)
        except Exception:
            logger.exception("[CHAT] Failed to persist exchange for session '%s'", turn.session)
