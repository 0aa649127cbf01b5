"""
DocChat - Chat Engine
======================
Routes every chat request through one of four response modes that
share the same per-session memory.

``ChatOrchestrator``
    Stateless across requests apart from the injected
    ``ConversationMemory``.  Modes:

    1. **Plain chat** — message + session history → model.
    2. **RAG chat** — (optional query rewrite) → retrieval over the
       whole corpus → context-augmented prompt → model.  An empty
       retrieval still calls the model, which then falls back on its
       own knowledge.
    3. **Category RAG** — retrieval restricted to one category.  An
       empty retrieval returns a fixed "nothing in this category"
       message without calling the model and without touching memory.
    4. **Smart chat** — a small unscoped retrieval probe decides
       between modes 2 and 1.  Any failure degrades to plain chat;
       this mode never raises for dependency failures.

Turn recording
--------------
The user turn and the assistant turn are appended together, and only
after the model has answered.  A failed call leaves memory untouched.

Errors
------
Dependency failures are logged with the session id and operation, then
re-raised as ``ChatServiceError``.  Input errors raise
``InputValidationError`` before any external call.

Usage:
    from docchat.src.core.rag_engine import ChatOrchestrator
    engine = ChatOrchestrator(store, GeminiResponseGenerator(), ConversationMemory())
    answer = engine.smart_chat("session-42", "What does the leave policy say?")
"""

from __future__ import annotations

import time
from typing import Protocol

from docchat.config.prompt_templates import ANALYSIS_EMPTY, ANALYSIS_HEADER, CATEGORY_NOT_FOUND_RESPONSE, CHAT_SYSTEM_PROMPT, NO_CONTEXT_NOTICE, QUERY_REWRITE_PROMPT, RAG_CONTEXT_TEMPLATE, RAG_DOCUMENT_BLOCK, RAG_STATUS_TEMPLATE, RAG_SYSTEM_PROMPT, SERVICE_UNAVAILABLE_RESPONSE
from docchat.config.settings import settings
from docchat.src.core.errors import ChatServiceError, InputValidationError
from docchat.src.core.generator import GenerationOptions, ResponseGenerator, chat_options, rag_options, rewrite_options
from docchat.src.core.memory import DEFAULT_SESSION_ID, ConversationMemory, Turn
from docchat.src.database.vector_store import Document
from docchat.src.utils.logger import get_logger
from docchat.src.utils.text_utils import truncate_preview

logger = get_logger(__name__)


class DocumentStore(Protocol):
    """The retrieval surface the engine needs from the vector store."""

    def search(self, query: str, top_k: int = 5, similarity_threshold: float = 0.0, category: str | None = None) -> list[Document]: ...

    def count(self) -> int: ...

    def category_counts(self) -> dict[str, int]: ...


# ══════════════════════════════════════════════════════════════════════
#  PROMPT ASSEMBLY
# ══════════════════════════════════════════════════════════════════════


def build_contextual_prompt(question: str, documents: list[Document]) -> str:
    """Wrap *question* with numbered document blocks and answering rules."""
    if documents:
        context = "\n\n".join(RAG_DOCUMENT_BLOCK.format(index=i, content=doc.content) for i, doc in enumerate(documents, 1))
    else:
        context = NO_CONTEXT_NOTICE
    return RAG_CONTEXT_TEMPLATE.format(context=context, question=question)


def _require_text(value: str, what: str) -> None:
    if value is None or not value.strip():
        raise InputValidationError(f"{what} must not be empty")


# ══════════════════════════════════════════════════════════════════════
#  CHAT ORCHESTRATOR
# ══════════════════════════════════════════════════════════════════════


class ChatOrchestrator:
    """
    Chooses a response mode per request and records the exchange.

    Parameters
    ----------
    store
        Retrieval backend (normally ``DocumentVectorStore``).
    generator
        Any ``ResponseGenerator``.
    memory
        Session history store.  A fresh ``ConversationMemory`` if omitted.
    similarity_threshold
        Minimum retrieval score.  Defaults to ``settings.RAG_SIMILARITY_THRESHOLD``.
    rewrite_query
        Rewrite questions before RAG retrieval.  Defaults to
        ``settings.RAG_REWRITE_QUERY``.
    """

    __slots__ = ("_store", "_generator", "_memory", "_threshold", "_rewrite_query")

    def __init__(self, store: DocumentStore, generator: ResponseGenerator, memory: ConversationMemory | None = None, similarity_threshold: float | None = None, rewrite_query: bool | None = None) -> None:
        self._store = store
        self._generator = generator
        self._memory = memory if memory is not None else ConversationMemory()
        self._threshold: float = settings.RAG_SIMILARITY_THRESHOLD if similarity_threshold is None else similarity_threshold
        self._rewrite_query: bool = settings.RAG_REWRITE_QUERY if rewrite_query is None else rewrite_query


    @property
    def memory(self) -> ConversationMemory:
        return self._memory

    # ══════════════════════════════════════════════════════════════════
    #  RESPONSE MODES
    # ══════════════════════════════════════════════════════════════════

    def chat(self, session_id: str, message: str, options: GenerationOptions | None = None) -> str:
        """Plain chat: no retrieval; *options* overrides the chat preset."""
        _require_text(message, "message")
        logger.debug("[CHAT] session=%s message=%.80s", session_id, message)

        try:
            history = self._memory.get(session_id)
            answer = self._generate(message, history, options or chat_options(), CHAT_SYSTEM_PROMPT)
        except Exception as exc:
            logger.exception("[CHAT] Model call failed (session=%s).", session_id)
            raise ChatServiceError("Chat", exc) from exc

        self._memory.append_exchange(session_id, message, answer)
        return answer


    def chat_with_rag(self, session_id: str, message: str) -> str:
        """RAG over the whole corpus; the model is called even with no matches."""
        _require_text(message, "message")
        logger.debug("[RAG] session=%s message=%.80s", session_id, message)

        try:
            history = self._memory.get(session_id)
            search_query = self._rewrite(message) if self._rewrite_query else message
            documents = self._store.search(search_query, top_k=settings.RAG_TOP_K, similarity_threshold=self._threshold)
            if not documents:
                logger.info("[RAG] No documents above threshold %.2f (session=%s); answering from model knowledge.", self._threshold, session_id)
            prompt = build_contextual_prompt(message, documents)
            answer = self._generate(prompt, history, rag_options(), RAG_SYSTEM_PROMPT)
        except Exception as exc:
            logger.exception("[RAG] Retrieval-augmented call failed (session=%s).", session_id)
            raise ChatServiceError("RAG", exc) from exc

        self._memory.append_exchange(session_id, message, answer)
        return answer


    def chat_with_rag_by_category(self, session_id: str, message: str, category: str) -> str:
        """
        RAG restricted to documents whose ``category`` equals *category*.

        When nothing in the category matches, returns
        ``CATEGORY_NOT_FOUND_RESPONSE`` with no model call and no memory
        change.
        """
        _require_text(message, "message")
        _require_text(category, "category")
        logger.debug("[RAG] session=%s category=%s message=%.80s", session_id, category, message)

        try:
            documents = self._store.search(message, top_k=settings.CATEGORY_TOP_K, similarity_threshold=self._threshold, category=category)
            if not documents:
                logger.info("[RAG] Category '%s' has no matching documents (session=%s).", category, session_id)
                return CATEGORY_NOT_FOUND_RESPONSE.format(category=category)

            history = self._memory.get(session_id)
            prompt = build_contextual_prompt(message, documents)
            answer = self._generate(prompt, history, chat_options(), CHAT_SYSTEM_PROMPT)
        except Exception as exc:
            logger.exception("[RAG] Category call failed (session=%s, category=%s).", session_id, category)
            raise ChatServiceError("Category RAG", exc) from exc

        self._memory.append_exchange(session_id, message, answer)
        return answer


    def smart_chat(self, session_id: str, message: str) -> str:
        """
        Probe the corpus, then answer with RAG on a hit or plain chat otherwise.

        Failures in the probe or the chosen mode fall back to plain chat.
        If that also fails, ``SERVICE_UNAVAILABLE_RESPONSE`` is returned, so
        no dependency failure ever reaches the caller.

        The one exception is caller input: an empty or blank *message*
        raises ``InputValidationError`` before the probe, as in every
        other mode.
        """
        _require_text(message, "message")

        try:
            probe = self._store.search(message, top_k=settings.SMART_CHAT_PROBE_K, similarity_threshold=self._threshold)
            if probe:
                logger.debug("[SMART] %d document(s) matched; using RAG (session=%s).", len(probe), session_id)
                return self.chat_with_rag(session_id, message)
            logger.debug("[SMART] No documents matched; using plain chat (session=%s).", session_id)
            return self.chat(session_id, message)
        except Exception:
            logger.exception("[SMART] Routing failed (session=%s); degrading to plain chat.", session_id)

        try:
            return self.chat(session_id, message)
        except Exception:
            logger.exception("[SMART] Plain-chat fallback failed (session=%s).", session_id)
            return SERVICE_UNAVAILABLE_RESPONSE

    # ══════════════════════════════════════════════════════════════════
    #  SESSIONS
    # ══════════════════════════════════════════════════════════════════

    def start_new_conversation(self, session_id: str = DEFAULT_SESSION_ID) -> None:
        logger.info("[CHAT] Starting new conversation (session=%s).", session_id)
        self._memory.clear(session_id)


    def get_conversation_history(self, session_id: str = DEFAULT_SESSION_ID) -> list[Turn]:
        return self._memory.get(session_id)


    def get_session_info(self, session_id: str = DEFAULT_SESSION_ID) -> dict[str, str | int]:
        """Message and round counts for one session."""
        count = len(self._memory.get(session_id))
        return {"sessionId": session_id, "messageCount": count, "conversationRounds": count // 2}

    # ══════════════════════════════════════════════════════════════════
    #  DIAGNOSTICS
    # ══════════════════════════════════════════════════════════════════

    def analyze_document_relevance(self, query: str) -> str:
        """
        Ranked, human-readable summary of the top matches for *query*.

        Lists index, source, category and a 200-character preview.  No
        model call is made.
        """
        _require_text(query, "query")

        try:
            documents = self._store.search(query, top_k=settings.ANALYSIS_MAX_RESULTS, similarity_threshold=self._threshold)
        except Exception as exc:
            logger.exception("[ANALYZE] Retrieval failed for query %.80s", query)
            raise ChatServiceError("Document relevance analysis", exc) from exc

        if not documents:
            return ANALYSIS_EMPTY

        parts = [ANALYSIS_HEADER.format(count=len(documents))]
        for i, doc in enumerate(documents, 1):
            labels: list[str] = []
            source = doc.metadata.get("source_file") or doc.metadata.get("title")
            if source:
                labels.append(f"Source: {source}")
            if doc.metadata.get("category"):
                labels.append(f"Category: {doc.metadata['category']}")
            if doc.score is not None:
                labels.append(f"Score: {doc.score:.3f}")
            parts.append(f"{i}. {' | '.join(labels)}\n   Summary: {truncate_preview(doc.content)}\n\n")
        return "".join(parts)


    def get_rag_system_status(self) -> str:
        """Status text: corpus size, file types, category distribution."""
        try:
            total = self._store.count()
            categories = self._store.category_counts()
        except Exception as exc:
            logger.exception("[STATUS] Could not read vector store statistics.")
            raise ChatServiceError("RAG status", exc) from exc

        category_lines = ""
        if categories:
            category_lines = "Category distribution:\n" + "".join(f"  - {name}: {count} document(s)\n" for name, count in sorted(categories.items()))

        return RAG_STATUS_TEMPLATE.format(total_documents=total, supported_file_types=", ".join(settings.supported_document_types), categories=category_lines, table_name=settings.LANCEDB_TABLE_NAME, embedding_model=settings.EMBEDDING_MODEL)

    # ══════════════════════════════════════════════════════════════════
    #  INTERNALS
    # ══════════════════════════════════════════════════════════════════

    def _generate(self, prompt: str, history: list[Turn], options: GenerationOptions, system_prompt: str) -> str:
        t_llm = time.perf_counter()
        answer = self._generator.generate(prompt, history, options, system_prompt=system_prompt)
        logger.info("[CHAT] Generation finished in %.1fms (%d chars).", (time.perf_counter() - t_llm) * 1000, len(answer))
        return answer


    def _rewrite(self, message: str) -> str:
        """Ask the model for a retrieval query; blank output keeps *message*."""
        rewritten = self._generator.generate(QUERY_REWRITE_PROMPT.format(question=message), [], rewrite_options()).strip()
        if not rewritten:
            return message
        logger.info("[RAG] Query rewritten: '%.50s' → '%.50s'", message, rewritten)
        return rewritten
