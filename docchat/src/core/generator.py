"""
DocChat - Response Generation
==============================
Thin adapter between the chat engine and the Gemini chat model.

``ResponseGenerator`` is the structural contract the engine depends on;
``GeminiResponseGenerator`` satisfies it with LangChain's
``ChatGoogleGenerativeAI``.  Sampling parameters travel with every call
as ``GenerationOptions``; they are per-mode configuration, never
computed by the engine.

One LangChain client is cached per distinct option set, so the first
call for a preset pays the construction cost and later calls reuse it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from docchat.config.settings import settings
from docchat.src.core.memory import Turn
from docchat.src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    """Model selection and sampling parameters for one generation call."""

    model: str
    temperature: float
    top_p: float
    max_output_tokens: int


def chat_options() -> GenerationOptions:
    """Preset for plain chat (and category-scoped RAG)."""
    return GenerationOptions(model=settings.LLM_MODEL, temperature=settings.CHAT_TEMPERATURE, top_p=settings.CHAT_TOP_P, max_output_tokens=settings.CHAT_MAX_TOKENS)


def rag_options() -> GenerationOptions:
    """Preset for knowledge-base RAG chat: lower temperature, longer output."""
    return GenerationOptions(model=settings.LLM_MODEL, temperature=settings.RAG_TEMPERATURE, top_p=settings.RAG_TOP_P, max_output_tokens=settings.RAG_MAX_TOKENS)


def rewrite_options() -> GenerationOptions:
    """Near-deterministic preset used for query rewriting."""
    return GenerationOptions(model=settings.LLM_MODEL, temperature=0.0, top_p=1.0, max_output_tokens=256)


@runtime_checkable
class ResponseGenerator(Protocol):
    """Anything that turns a prompt plus conversation history into text."""

    def generate(self, prompt: str, history: list[Turn], options: GenerationOptions, system_prompt: str | None = None) -> str: ...


class GeminiResponseGenerator:
    """
    ``ResponseGenerator`` backed by Gemini via LangChain.

    Parameters
    ----------
    api_key
        Google AI Studio key.  Defaults to ``settings.GOOGLE_API_KEY``.
    """

    __slots__ = ("_api_key", "_clients", "_lock")

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key: str = api_key or settings.GOOGLE_API_KEY.get_secret_value()
        self._clients: dict[GenerationOptions, object] = {}
        self._lock = threading.Lock()


    def _client_for(self, options: GenerationOptions) -> object:
        """Return (or build) the LangChain chat model for *options*."""
        with self._lock:
            client = self._clients.get(options)
            if client is None:
                from langchain_google_genai import ChatGoogleGenerativeAI

                client = ChatGoogleGenerativeAI(model=options.model, temperature=options.temperature, top_p=options.top_p, max_output_tokens=options.max_output_tokens, google_api_key=self._api_key)
                self._clients[options] = client
                logger.info("LLM initialised: %s (temperature=%.1f, top_p=%.1f, max_tokens=%d)", options.model, options.temperature, options.top_p, options.max_output_tokens)
        return client


    def generate(self, prompt: str, history: list[Turn], options: GenerationOptions, system_prompt: str | None = None) -> str:
        """
        Invoke the model with ``[system] + history + [prompt]``.

        Exceptions from the client (network, quota, timeout) propagate;
        the chat engine decides how to surface them.
        """
        from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

        messages = [SystemMessage(content=system_prompt)] if system_prompt else []
        for turn in history:
            messages.append(HumanMessage(content=turn.content) if turn.role == "user" else AIMessage(content=turn.content))
        messages.append(HumanMessage(content=prompt))

        t_llm = time.perf_counter()
        response = self._client_for(options).invoke(messages)  # type: ignore[attr-defined]
        answer = response.content if hasattr(response, "content") else str(response)
        if isinstance(answer, list):
            answer = "".join(part if isinstance(part, str) else str(part.get("text", "")) for part in answer)

        logger.info("[LLM] %s responded in %.1fms (%d chars, %d history turn(s)).", options.model, (time.perf_counter() - t_llm) * 1000, len(answer), len(history))
        return answer
