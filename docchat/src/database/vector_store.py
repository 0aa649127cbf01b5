"""
DocChat - DocumentVectorStore
==============================
OOP wrapper around LanceDB providing the retrieval capability the chat
engine consumes:
  • Chunk insertion (embedding + metadata) with batching
  • Cosine similarity search with a score threshold and an optional
    category prefilter
  • Corpus statistics and a full reset

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per path to avoid file-lock issues.
  • **Dependency Injection** — the embedder is injected, never
    hard-coded, so tests run against a deterministic fake.
  • **Lazy table** — the table is created on the first insert, when the
    embedding dimension is known (LanceDB needs a fixed-size vector
    column to search).
  • **Threshold in the store** — results under the similarity threshold
    never leave this module; callers only see qualifying chunks.

Usage:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings
    from docchat.src.database.vector_store import Document, DocumentVectorStore

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    store = DocumentVectorStore(embedder)
    store.add_documents([Document("text", {"source_file": "a.txt", "category": "policy"})])
    hits = store.search("query text", top_k=5, similarity_threshold=0.75, category="policy")
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Protocol, runtime_checkable

import lancedb
import pyarrow as pa

from docchat.config.settings import settings
from docchat.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
DocumentMetadata = dict[str, str | int]
DocumentRecord = dict[str, str | int | list[float] | None]


@dataclass
class Document:
    """
    One retrievable unit of text.

    ``score`` is the cosine similarity to the query and is only set on
    documents returned by ``DocumentVectorStore.search``.
    """

    content: str
    metadata: DocumentMetadata = field(default_factory=dict)
    score: float | None = None


# ── Embedder Protocol ─────────────────────────────────────────────────

@runtime_checkable
class Embedder(Protocol):
    """Structural type for any LangChain-compatible embedding model."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


# ── Metadata columns ──────────────────────────────────────────────────
# Metadata keys outside these columns are not persisted.
_STRING_FIELDS: tuple[str, ...] = ("source_file", "file_type", "title", "source", "category", "upload_time")
_INT_FIELDS: tuple[str, ...] = ("page_number", "chunk_index")


def _build_schema(dimension: int) -> pa.Schema:
    return pa.schema(
        [pa.field("vector", pa.list_(pa.float32(), dimension)), pa.field("text", pa.utf8())]
        + [pa.field(name, pa.utf8()) for name in _STRING_FIELDS]
        + [pa.field(name, pa.int32()) for name in _INT_FIELDS]
    )


# ── Constants ──────────────────────────────────────────────────────────
_EMBED_BATCH_SIZE = 64
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Return a cached ``lancedb.DBConnection`` for *db_path* (thread-safe).

    Opened with strong read consistency, so every read sees rows
    committed by other handles or processes.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path, read_consistency_interval=timedelta(0))
    return _db_connection_cache[db_path]


def _quote(value: str) -> str:
    """Quote a string literal for a LanceDB SQL filter."""
    return "'" + value.replace("'", "''") + "'"


class DocumentVectorStore:
    """
    High-level abstraction over a LanceDB vector table of document chunks.

    Parameters
    ----------
    embedder : Embedder
        Any object satisfying the ``Embedder`` protocol.
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    table_name
        Override the table name.  Defaults to ``settings.LANCEDB_TABLE_NAME``.
    """

    __slots__ = ("embedder", "_db_path", "_table_name", "_write_lock", "db", "table")

    def __init__(self, embedder: Embedder, db_path: str | None = None, table_name: str | None = None) -> None:
        self.embedder: Embedder = embedder
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_name: str = table_name or settings.LANCEDB_TABLE_NAME
        self._write_lock = threading.Lock()
        self.db: lancedb.DBConnection | None = None
        self.table: lancedb.table.Table | None = None
        self._connect()


    def _connect(self) -> None:
        """Open (or re-use) the LanceDB connection and any existing table."""
        try:
            self.db = _get_connection(self._db_path)
            if self._table_name in self.db.table_names():
                self.table = self.db.open_table(self._table_name)
                logger.info("Opened existing table '%s' (%d rows).", self._table_name, self.table.count_rows())
            else:
                logger.info("Table '%s' not found; it will be created on first insert.", self._table_name)
        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise
        except Exception:
            logger.exception("Unexpected error connecting to LanceDB.")
            raise


    def _sync_table(self) -> lancedb.table.Table | None:
        """
        Re-resolve the table handle against the database.

        Another process (the setup CLI, a second worker) may create or
        drop the table at any time, so the cached handle is checked
        against ``table_names()`` on every access.
        """
        exists = self._table_name in self.db.table_names()
        if exists and self.table is None:
            self.table = self.db.open_table(self._table_name)
            logger.info("Table '%s' appeared; opened it (%d rows).", self._table_name, self.table.count_rows())
        elif not exists and self.table is not None:
            logger.info("Table '%s' was dropped externally; releasing handle.", self._table_name)
            self.table = None
        return self.table

    # ══════════════════════════════════════════════════════════════════
    #  WRITE
    # ══════════════════════════════════════════════════════════════════

    def add_documents(self, documents: list[Document]) -> int:
        """
        Embed document chunks and persist them with their metadata.

        Re-adding identical chunks stores duplicates; no de-duplication
        is attempted.

        Returns
        -------
        int
            Number of rows added.
        """
        if not documents:
            return 0

        texts = [doc.content for doc in documents]
        logger.info("Embedding %d chunks in batches of %d …", len(texts), _EMBED_BATCH_SIZE)

        vectors: list[list[float]] = []
        for i in range(0, len(texts), _EMBED_BATCH_SIZE):
            batch = texts[i : i + _EMBED_BATCH_SIZE]
            try:
                vectors.extend(self.embedder.embed_documents(batch))
            except Exception as exc:
                logger.error("Embedding batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise

        records = [self._to_record(doc, vec) for doc, vec in zip(documents, vectors)]

        with self._write_lock:
            try:
                if self._sync_table() is None:
                    self.table = self.db.create_table(self._table_name, data=records, schema=_build_schema(len(vectors[0])))
                    logger.info("Created table '%s' (dimension=%d).", self._table_name, len(vectors[0]))
                else:
                    self.table.add(records)
            except OSError as exc:
                logger.error("Failed to write records to LanceDB: %s", exc)
                raise

        logger.info("Added %d chunks. Table '%s' now has %d total rows.", len(records), self._table_name, self.count())
        return len(records)


    @staticmethod
    def _to_record(doc: Document, vector: list[float]) -> DocumentRecord:
        record: DocumentRecord = {"vector": vector, "text": doc.content}
        for name in _STRING_FIELDS:
            value = doc.metadata.get(name)
            record[name] = str(value) if value not in (None, "") else None
        for name in _INT_FIELDS:
            value = doc.metadata.get(name)
            record[name] = int(value) if value is not None else None
        return record

    # ══════════════════════════════════════════════════════════════════
    #  READ
    # ══════════════════════════════════════════════════════════════════

    def search(self, query: str, top_k: int = 5, similarity_threshold: float = 0.0, category: str | None = None) -> list[Document]:
        """
        Cosine similarity search with threshold and optional category filter.

        Parameters
        ----------
        query
            Natural-language query to embed and search.
        top_k
            Maximum number of results.
        similarity_threshold
            Minimum cosine similarity (``1 - cosine distance``) to keep.
        category
            When given, only chunks whose ``category`` equals it are
            considered (LanceDB prefilter).

        Returns
        -------
        list[Document]
            At most ``top_k`` documents, most similar first.  Empty when
            nothing qualifies or the table does not exist yet.
        """
        table = self._sync_table()
        if table is None or top_k <= 0:
            logger.debug("Search skipped (table=%s, top_k=%d).", table is not None, top_k)
            return []

        try:
            query_vector = self.embedder.embed_query(query)
        except Exception as exc:
            logger.error("Failed to embed query: %s", exc)
            raise

        builder = table.search(query_vector).distance_type("cosine").limit(top_k)
        if category is not None:
            where_str = f"category = {_quote(category)}"
            builder = builder.where(where_str, prefilter=True)
            logger.info("Searching with filter: %s (top_k=%d)", where_str, top_k)
        else:
            logger.info("Searching without filters (top_k=%d).", top_k)

        documents: list[Document] = []
        for row in builder.to_list():
            score = 1.0 - float(row["_distance"])
            if score < similarity_threshold:
                continue
            documents.append(self._to_document(row, score))

        logger.info("Search returned %d result(s) at threshold %.2f.", len(documents), similarity_threshold)
        return documents


    @staticmethod
    def _to_document(row: dict, score: float) -> Document:
        metadata: DocumentMetadata = {name: row[name] for name in _STRING_FIELDS + _INT_FIELDS if row.get(name) is not None}
        return Document(content=row["text"], metadata=metadata, score=score)


    def count(self) -> int:
        """Return the total number of chunks in the table."""
        table = self._sync_table()
        if table is None:
            return 0
        return table.count_rows()


    def category_counts(self) -> dict[str, int]:
        """Return ``{category: chunk count}`` for chunks that carry a category."""
        table = self._sync_table()
        if table is None:
            return {}
        categories = table.to_arrow().column("category").to_pylist()
        return dict(Counter(c for c in categories if c))

    # ══════════════════════════════════════════════════════════════════
    #  RESET
    # ══════════════════════════════════════════════════════════════════

    def clear(self) -> int:
        """
        Drop the vector table.  The next insert recreates it.

        Returns
        -------
        int
            Number of chunks removed.
        """
        with self._write_lock:
            if self._sync_table() is None:
                logger.info("Table '%s' does not exist — nothing to clear.", self._table_name)
                return 0
            removed = self.table.count_rows()
            try:
                self.db.drop_table(self._table_name)
            except OSError as exc:
                logger.error("Filesystem error dropping table '%s': %s", self._table_name, exc)
                raise
            self.table = None

        logger.warning("Dropped table '%s' (%d chunks removed).", self._table_name, removed)
        return removed


    @property
    def table_name(self) -> str:
        return self._table_name


    def __repr__(self) -> str:
        return f"DocumentVectorStore(db='{self._db_path}', table='{self._table_name}', rows={self.count()})"
