"""
DocChat - Application Entry Point
==================================
FastAPI application factory.

``create_app`` mounts the chat and RAG routers under
``settings.API_PREFIX`` and wires the services onto ``app.state``:

  • Services passed in explicitly (tests, embedding in another app) are
    used as-is.
  • Otherwise the lifespan hook builds the production stack once:
    Gemini embedder → ``DocumentVectorStore`` → ``DocumentService`` and
    ``GeminiResponseGenerator`` + ``ConversationMemory`` →
    ``ChatOrchestrator``.

Every uncaught error, including request-validation errors, is turned
into the HTTP 500 failure envelope.

Run:
    uvicorn docchat.src.main:app --reload
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from docchat.config.settings import settings
from docchat.src.api.routes import chat_router, rag_router
from docchat.src.core.generator import GeminiResponseGenerator
from docchat.src.core.ingestor import DocumentService
from docchat.src.core.memory import ConversationMemory
from docchat.src.core.rag_engine import ChatOrchestrator
from docchat.src.database.vector_store import DocumentVectorStore
from docchat.src.utils.logger import get_logger

logger = get_logger(__name__)


def build_services() -> tuple[ChatOrchestrator, DocumentService]:
    """Construct the production service graph from ``settings``."""
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    t_start = time.perf_counter()
    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    store = DocumentVectorStore(embedder=embedder)
    engine = ChatOrchestrator(store=store, generator=GeminiResponseGenerator(), memory=ConversationMemory())
    documents = DocumentService(store)
    logger.info("Services initialised in %.1fms (store=%r).", (time.perf_counter() - t_start) * 1000, store)
    return engine, documents


@asynccontextmanager
async def _lifespan(app: FastAPI):
    if getattr(app.state, "chat_engine", None) is None or getattr(app.state, "document_service", None) is None:
        app.state.chat_engine, app.state.document_service = build_services()
    yield


def _failure(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": message, "timestamp": int(time.time() * 1000)})


def create_app(chat_engine: ChatOrchestrator | None = None, document_service: DocumentService | None = None) -> FastAPI:
    app = FastAPI(title="DocChat", description="Session-aware chat with retrieval-augmented generation", lifespan=_lifespan)
    app.state.chat_engine = chat_engine
    app.state.document_service = document_service

    app.include_router(chat_router, prefix=settings.API_PREFIX)
    app.include_router(rag_router, prefix=settings.API_PREFIX)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors())
        logger.warning("[API] Invalid request to %s: %s", request.url.path, details)
        return _failure(f"Invalid request: {details}")

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("[API] Unhandled error on %s", request.url.path)
        return _failure(str(exc))

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve ``app`` with uvicorn."""
    import uvicorn

    uvicorn.run("docchat.src.main:app", host="0.0.0.0", port=8000)
