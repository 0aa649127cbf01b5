"""
DocChat - API Routes
=====================
Thin controllers: validate the request shape, call the chat engine or
the document service, wrap the result in the JSON envelope.

Envelope
--------
Success: ``{"success": true, ...payload}``
Failure: ``{"success": false, "error": "<operation> failed: <detail>",
"timestamp": <epoch millis>}`` with HTTP 500.  There is no other status
taxonomy.

Services are read from ``request.app.state`` (wired by
``docchat.src.main.create_app``); no route constructs its own.
"""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from docchat.src.api.schemas import AddTextRequest, CategoryChatRequest, ChatRequest
from docchat.src.core.ingestor import DocumentService
from docchat.src.core.memory import DEFAULT_SESSION_ID
from docchat.src.core.rag_engine import ChatOrchestrator
from docchat.src.database.vector_store import Document
from docchat.src.utils.logger import get_logger
from docchat.src.utils.text_utils import truncate_preview

logger = get_logger(__name__)

chat_router = APIRouter(prefix="/chat", tags=["chat"])
rag_router = APIRouter(prefix="/rag", tags=["rag"])


# ── Dependencies ───────────────────────────────────────────────────────

def get_chat_engine(request: Request) -> ChatOrchestrator:
    return request.app.state.chat_engine


def get_document_service(request: Request) -> DocumentService:
    return request.app.state.document_service


def get_session_id(session_id: str = Query(DEFAULT_SESSION_ID, alias="sessionId")) -> str:
    """``?sessionId`` query parameter; blank maps to the default session."""
    return session_id.strip() or DEFAULT_SESSION_ID


# ── Envelope helpers ───────────────────────────────────────────────────

def _epoch_millis() -> int:
    return int(time.time() * 1000)


def error_response(operation: str, exc: BaseException) -> JSONResponse:
    """HTTP 500 with the failure envelope."""
    return JSONResponse(status_code=500, content={"success": False, "error": f"{operation} failed: {exc}", "timestamp": _epoch_millis()})


def _ok(**payload: Any) -> dict[str, Any]:
    return {"success": True, **payload}


def _elapsed(t_start: float) -> str:
    return f"{int((time.perf_counter() - t_start) * 1000)}ms"


def _document_to_dict(doc: Document) -> dict[str, Any]:
    return {"content": doc.content, "metadata": doc.metadata, "summary": truncate_preview(doc.content), "score": doc.score}


# ══════════════════════════════════════════════════════════════════════
#  PLAIN CHAT
# ══════════════════════════════════════════════════════════════════════

@chat_router.post("")
def chat(body: ChatRequest, engine: ChatOrchestrator = Depends(get_chat_engine)):
    t_start = time.perf_counter()
    try:
        response = engine.chat(body.session_id, body.message)
    except Exception as exc:
        logger.error("[API] Chat failed (session=%s): %s", body.session_id, exc)
        return error_response("Chat", exc)
    return _ok(response=response, sessionId=body.session_id, processingTime=_elapsed(t_start))


@chat_router.get("/session")
def session_info(session_id: str = Depends(get_session_id), engine: ChatOrchestrator = Depends(get_chat_engine)):
    try:
        info = engine.get_session_info(session_id)
    except Exception as exc:
        return error_response("Session info", exc)
    return _ok(**info)


# ══════════════════════════════════════════════════════════════════════
#  RAG CHAT
# ══════════════════════════════════════════════════════════════════════

@rag_router.post("/chat")
def rag_chat(body: ChatRequest, engine: ChatOrchestrator = Depends(get_chat_engine)):
    t_start = time.perf_counter()
    try:
        response = engine.chat_with_rag(body.session_id, body.message)
    except Exception as exc:
        logger.error("[API] RAG chat failed (session=%s): %s", body.session_id, exc)
        return error_response("RAG chat", exc)
    return _ok(response=response, sessionId=body.session_id, processingTime=_elapsed(t_start), mode="RAG")


@rag_router.post("/smart-chat")
def smart_chat(body: ChatRequest, engine: ChatOrchestrator = Depends(get_chat_engine)):
    t_start = time.perf_counter()
    try:
        response = engine.smart_chat(body.session_id, body.message)
    except Exception as exc:
        logger.error("[API] Smart chat failed (session=%s): %s", body.session_id, exc)
        return error_response("Smart chat", exc)
    return _ok(response=response, sessionId=body.session_id, processingTime=_elapsed(t_start), mode="SMART")


@rag_router.post("/chat/category")
def category_chat(body: CategoryChatRequest, engine: ChatOrchestrator = Depends(get_chat_engine)):
    t_start = time.perf_counter()
    try:
        response = engine.chat_with_rag_by_category(body.session_id, body.message, body.category)
    except Exception as exc:
        logger.error("[API] Category chat failed (session=%s, category=%s): %s", body.session_id, body.category, exc)
        return error_response("Category RAG chat", exc)
    return _ok(response=response, sessionId=body.session_id, category=body.category, processingTime=_elapsed(t_start), mode="RAG_CATEGORY")


@rag_router.post("/chat/reset")
def reset_conversation(session_id: str = Depends(get_session_id), engine: ChatOrchestrator = Depends(get_chat_engine)):
    try:
        engine.start_new_conversation(session_id)
    except Exception as exc:
        return error_response("Conversation reset", exc)
    return _ok(message="Conversation reset", sessionId=session_id)


@rag_router.get("/chat/history")
def conversation_history(session_id: str = Depends(get_session_id), engine: ChatOrchestrator = Depends(get_chat_engine)):
    try:
        history = engine.get_conversation_history(session_id)
    except Exception as exc:
        return error_response("Conversation history", exc)
    return _ok(sessionId=session_id, messageCount=len(history), history=[turn.to_dict() for turn in history])


# ══════════════════════════════════════════════════════════════════════
#  DOCUMENTS
# ══════════════════════════════════════════════════════════════════════

@rag_router.post("/documents/upload")
def upload_document(file: UploadFile = File(...), category: str | None = Form(None), service: DocumentService = Depends(get_document_service)):
    try:
        message = service.upload_document(file.filename or "", file.file.read(), category)
    except Exception as exc:
        logger.error("[API] Upload of '%s' failed: %s", file.filename, exc)
        return error_response("Document upload", exc)
    return _ok(message=message, filename=file.filename, category=category)


@rag_router.post("/documents/upload-batch")
def upload_documents(files: list[UploadFile] = File(...), category: str | None = Form(None), service: DocumentService = Depends(get_document_service)):
    try:
        outcomes = service.upload_documents([(f.filename or "", f.file.read()) for f in files], category)
    except Exception as exc:
        return error_response("Batch document upload", exc)
    succeeded = sum(1 for outcome in outcomes.values() if outcome.success)
    return _ok(results={name: outcome.message for name, outcome in outcomes.items()}, successCount=succeeded, failureCount=len(outcomes) - succeeded)


@rag_router.post("/documents/add-text")
def add_text_document(body: AddTextRequest, service: DocumentService = Depends(get_document_service)):
    try:
        message = service.add_text_document(body.content, body.title, body.category)
    except Exception as exc:
        return error_response("Add text document", exc)
    return _ok(message=message, title=body.title, category=body.category)


@rag_router.get("/documents/search")
def search_documents(query: str = Query(...), max_results: int = Query(5, alias="maxResults", ge=1), service: DocumentService = Depends(get_document_service)):
    try:
        documents = service.search_documents(query, max_results)
    except Exception as exc:
        return error_response("Document search", exc)
    return _ok(query=query, documents=[_document_to_dict(d) for d in documents], totalResults=len(documents))


@rag_router.get("/documents/search/category")
def search_documents_by_category(query: str = Query(...), category: str = Query(...), max_results: int = Query(5, alias="maxResults", ge=1), service: DocumentService = Depends(get_document_service)):
    try:
        documents = service.search_documents_by_category(query, category, max_results)
    except Exception as exc:
        return error_response("Category document search", exc)
    return _ok(query=query, category=category, documents=[_document_to_dict(d) for d in documents], totalResults=len(documents))


@rag_router.get("/documents/analyze")
def analyze_documents(query: str = Query(...), engine: ChatOrchestrator = Depends(get_chat_engine)):
    try:
        analysis = engine.analyze_document_relevance(query)
    except Exception as exc:
        return error_response("Document relevance analysis", exc)
    return _ok(query=query, analysis=analysis)


@rag_router.get("/documents/stats")
def document_stats(service: DocumentService = Depends(get_document_service)):
    try:
        stats = service.get_document_stats()
    except Exception as exc:
        return error_response("Document statistics", exc)
    return _ok(**stats)


@rag_router.delete("/documents/clear-all")
def clear_all_documents(service: DocumentService = Depends(get_document_service)):
    try:
        message = service.clear_all_documents()
    except Exception as exc:
        return error_response("Clear documents", exc)
    return _ok(message=message, warning="All documents have been removed; this cannot be undone")


@rag_router.get("/status")
def rag_status(engine: ChatOrchestrator = Depends(get_chat_engine)):
    try:
        status = engine.get_rag_system_status()
    except Exception as exc:
        return error_response("RAG status", exc)
    return _ok(status=status, timestamp=_epoch_millis())
