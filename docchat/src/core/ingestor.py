"""
DocChat - Document Service
===========================
Everything that puts text into, inspects, or empties the knowledge base:

    validate → save → read → clean → split → embed → store

Key design decisions:
    • **Dependency Injection** – receives the ``DocumentVectorStore``.
    • **Validate first** – empty uploads, unsupported extensions and
      empty text are rejected with ``InputValidationError`` before any
      file is written or any embedding call is made.  A saved original
      is removed again when processing fails.
    • **Uniform chunking** – every source format goes through the same
      LangChain ``RecursiveCharacterTextSplitter`` (``CHUNK_SIZE`` /
      ``CHUNK_OVERLAP``).  Each chunk inherits its parent's metadata
      plus a ``chunk_index``.
    • **Batch isolation** – ``upload_documents`` records a per-file
      outcome; one failing file never aborts the batch.
    • **No de-duplication** – uploading the same file twice stores its
      chunks twice.

Usage:
    from docchat.src.core.ingestor import DocumentService
    service = DocumentService(store)
    service.upload_document("handbook.pdf", pdf_bytes, category="policy")
    service.add_text_document("Remote work is allowed on Fridays.", title="WFH", category="policy")
"""

from __future__ import annotations

import io
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docchat.config.settings import settings
from docchat.src.core.errors import DocumentProcessingError, InputValidationError
from docchat.src.database.vector_store import Document, DocumentVectorStore
from docchat.src.utils.logger import get_logger
from docchat.src.utils.text_utils import clean_text, file_extension

logger = get_logger(__name__)

DEFAULT_TEXT_TITLE = "Manual document"
MANUAL_SOURCE = "manual_input"
_TEXT_TYPES = ("txt", "md")


@dataclass(frozen=True)
class UploadOutcome:
    """Result of one file in a batch upload."""

    success: bool
    message: str


class DocumentService:
    """
    Upload, text ingestion, search and statistics over the vector store.

    Parameters
    ----------
    store
        An initialised ``DocumentVectorStore`` (injected).
    storage_dir
        Where uploaded originals are kept.  Defaults to
        ``settings.DOCUMENT_STORAGE_PATH``.
    supported_types
        Extension allow-list.  Defaults to ``settings.supported_document_types``.
    similarity_threshold
        Minimum score for ``search_documents*``.  Defaults to
        ``settings.RAG_SIMILARITY_THRESHOLD``.
    """

    def __init__(self, store: DocumentVectorStore, storage_dir: Path | None = None, supported_types: list[str] | None = None, similarity_threshold: float | None = None, chunk_size: int | None = None, chunk_overlap: int | None = None) -> None:
        self._store = store
        self._storage_dir = Path(storage_dir or settings.DOCUMENT_STORAGE_PATH)
        self._supported_types: list[str] = supported_types or settings.supported_document_types
        self._threshold: float = settings.RAG_SIMILARITY_THRESHOLD if similarity_threshold is None else similarity_threshold
        self._splitter = RecursiveCharacterTextSplitter(chunk_size=chunk_size or settings.CHUNK_SIZE, chunk_overlap=settings.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap)


    @property
    def supported_types(self) -> list[str]:
        return list(self._supported_types)

    # ══════════════════════════════════════════════════════════════════
    #  INGESTION
    # ══════════════════════════════════════════════════════════════════

    def upload_document(self, filename: str, content: bytes, category: str | None = None) -> str:
        """
        Validate, save, split and index one uploaded file.

        Returns
        -------
        str
            Human-readable summary with the number of chunks stored.

        Raises
        ------
        InputValidationError
            Empty file, blank text file or unsupported extension.
        DocumentProcessingError
            Reading, embedding or storing failed.
        """
        if not content:
            raise InputValidationError("Uploaded file is empty")
        if not filename or not self.is_supported(filename):
            raise InputValidationError(f"Unsupported file type; supported types: {', '.join(self._supported_types)}")
        if file_extension(filename) in _TEXT_TYPES and not _decode(content).strip():
            raise InputValidationError("Document content is empty")

        t_file = time.perf_counter()
        saved_path = self._save_upload(filename, content)
        logger.info("[INGEST] Saved upload '%s' to %s", filename, saved_path)

        try:
            pages = self._load(filename, content, category)
            chunks = self._split(pages)
            if not chunks:
                raise DocumentProcessingError("no text could be extracted from the document")
            added = self._store.add_documents(chunks)
        except InputValidationError:
            saved_path.unlink(missing_ok=True)
            raise
        except Exception as exc:
            logger.exception("[INGEST] Failed to process '%s'.", filename)
            saved_path.unlink(missing_ok=True)
            raise DocumentProcessingError(f"Document processing failed: {exc}") from exc

        logger.info("[INGEST] '%s' → %d chunk(s) in %.1fms.", filename, added, (time.perf_counter() - t_file) * 1000)
        return f"Document '{filename}' processed successfully: {added} chunk(s) stored in the knowledge base"


    def upload_documents(self, files: list[tuple[str, bytes]], category: str | None = None) -> dict[str, UploadOutcome]:
        """Upload several files; each gets its own outcome."""
        results: dict[str, UploadOutcome] = {}
        for filename, content in files:
            try:
                results[filename] = UploadOutcome(True, self.upload_document(filename, content, category))
            except Exception as exc:
                logger.error("[INGEST] Batch item '%s' failed: %s", filename, exc)
                results[filename] = UploadOutcome(False, f"Processing failed: {exc}")

        succeeded = sum(1 for outcome in results.values() if outcome.success)
        logger.info("[INGEST] Batch complete: %d succeeded, %d failed.", succeeded, len(results) - succeeded)
        return results


    def add_text_document(self, content: str, title: str | None = None, category: str | None = None) -> str:
        """Index raw text supplied by the caller."""
        if content is None or not content.strip():
            raise InputValidationError("Document content must not be empty")

        title = title.strip() if title and title.strip() else DEFAULT_TEXT_TITLE
        metadata: dict[str, str | int] = {"title": title, "source": MANUAL_SOURCE, "upload_time": _now_iso()}
        if category and category.strip():
            metadata["category"] = category.strip()

        try:
            chunks = self._split([Document(clean_text(content), metadata)])
            added = self._store.add_documents(chunks)
        except Exception as exc:
            logger.exception("[INGEST] Failed to add text document '%s'.", title)
            raise DocumentProcessingError(f"Text document ingestion failed: {exc}") from exc

        logger.info("[INGEST] Text document '%s' → %d chunk(s).", title, added)
        return f"Text document '{title}' added successfully: {added} chunk(s) stored"

    # ══════════════════════════════════════════════════════════════════
    #  SEARCH & STATS
    # ══════════════════════════════════════════════════════════════════

    def search_documents(self, query: str, max_results: int = 5) -> list[Document]:
        """Unfiltered similarity search; at most ``SEARCH_MAX_RESULTS`` hits."""
        if query is None or not query.strip():
            raise InputValidationError("query must not be empty")
        results = self._store.search(query, top_k=min(max_results, settings.SEARCH_MAX_RESULTS), similarity_threshold=self._threshold)
        logger.debug("[SEARCH] '%.60s' returned %d document(s).", query, len(results))
        return results


    def search_documents_by_category(self, query: str, category: str, max_results: int = 5) -> list[Document]:
        """Similarity search restricted to one category."""
        if query is None or not query.strip():
            raise InputValidationError("query must not be empty")
        if category is None or not category.strip():
            raise InputValidationError("category must not be empty")
        results = self._store.search(query, top_k=min(max_results, settings.SEARCH_MAX_RESULTS), similarity_threshold=self._threshold, category=category)
        logger.debug("[SEARCH] '%.60s' in category '%s' returned %d document(s).", query, category, len(results))
        return results


    def get_document_stats(self) -> dict[str, Any]:
        return {"total_documents": self._store.count(), "categories": self._store.category_counts(), "supported_file_types": self.supported_types}


    def clear_all_documents(self) -> str:
        """Remove every chunk from the knowledge base."""
        logger.warning("[INGEST] Clearing all documents …")
        removed = self._store.clear()
        return f"All documents cleared: {removed} chunk(s) removed"

    # ══════════════════════════════════════════════════════════════════
    #  HELPERS
    # ══════════════════════════════════════════════════════════════════

    def is_supported(self, filename: str) -> bool:
        return file_extension(filename) in self._supported_types


    def _save_upload(self, filename: str, content: bytes) -> Path:
        """Persist the original as ``<millis>_<name>`` under the storage dir."""
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        target = self._storage_dir / f"{int(time.time() * 1000)}_{Path(filename).name}"
        target.write_bytes(content)
        return target


    def _load(self, filename: str, content: bytes, category: str | None) -> list[Document]:
        """Turn raw bytes into page-level documents with base metadata."""
        extension = file_extension(filename)
        base: dict[str, str | int] = {"source_file": Path(filename).name, "file_type": extension, "upload_time": _now_iso()}
        if category and category.strip():
            base["category"] = category.strip()

        if extension == "pdf":
            return self._read_pdf(content, base)
        if extension in _TEXT_TYPES:
            return [Document(clean_text(_decode(content)), dict(base))]
        raise InputValidationError(f"No reader available for file type: {extension}")


    @staticmethod
    def _read_pdf(content: bytes, base: dict[str, str | int]) -> list[Document]:
        """One document per non-empty PDF page (``pypdf``)."""
        from pypdf import PdfReader

        reader = PdfReader(io.BytesIO(content))
        pages: list[Document] = []
        for number, page in enumerate(reader.pages, 1):
            text = clean_text(page.extract_text() or "")
            if text:
                pages.append(Document(text, {**base, "page_number": number}))
        logger.debug("[INGEST] PDF has %d page(s), %d with text.", len(reader.pages), len(pages))
        return pages


    def _split(self, documents: list[Document]) -> list[Document]:
        """Split every document; chunks share the parent's metadata."""
        chunks: list[Document] = []
        for doc in documents:
            for idx, piece in enumerate(self._splitter.split_text(doc.content)):
                chunks.append(Document(piece, {**doc.metadata, "chunk_index": idx}))
        return chunks


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return content.decode("latin-1")
