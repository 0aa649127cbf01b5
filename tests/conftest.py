import os

# Settings() is built at import time and requires the key.
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("ENV", "prod")

import hashlib
import math
import re

import pytest
from fastapi.testclient import TestClient

from docchat.src.core.generator import GenerationOptions
from docchat.src.core.ingestor import DocumentService
from docchat.src.core.memory import ConversationMemory, Turn
from docchat.src.core.rag_engine import ChatOrchestrator
from docchat.src.database.vector_store import Document, DocumentVectorStore
from docchat.src.main import create_app

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class HashingEmbedder:
    """Deterministic bag-of-words embedder; shared words mean higher cosine."""

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            vector[int(hashlib.md5(token.encode()).hexdigest(), 16) % self.dimension] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0.0:
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)


class ScriptedGenerator:
    """Records every call; replies from *replies* in order, then ``answer N``."""

    def __init__(self, replies: list[str] | None = None, fail: bool = False) -> None:
        self.replies = list(replies or [])
        self.fail = fail
        self.calls: list[dict] = []

    def generate(self, prompt: str, history: list[Turn], options: GenerationOptions, system_prompt: str | None = None) -> str:
        self.calls.append({"prompt": prompt, "history": list(history), "options": options, "system_prompt": system_prompt})
        if self.fail:
            raise RuntimeError("model unreachable")
        if self.replies:
            return self.replies.pop(0)
        return f"answer {len(self.calls)}"


class StubStore:
    """In-memory retrieval stub returning canned documents."""

    def __init__(self, documents: list[Document] | None = None, fail: bool = False) -> None:
        self.documents = list(documents or [])
        self.fail = fail
        self.searches: list[dict] = []

    def search(self, query: str, top_k: int = 5, similarity_threshold: float = 0.0, category: str | None = None) -> list[Document]:
        self.searches.append({"query": query, "top_k": top_k, "similarity_threshold": similarity_threshold, "category": category})
        if self.fail:
            raise ConnectionError("vector store unavailable")
        hits = [d for d in self.documents if category is None or d.metadata.get("category") == category]
        return hits[:top_k]

    def count(self) -> int:
        if self.fail:
            raise ConnectionError("vector store unavailable")
        return len(self.documents)

    def category_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for d in self.documents:
            if d.metadata.get("category"):
                counts[d.metadata["category"]] = counts.get(d.metadata["category"], 0) + 1
        return counts


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def vector_store(tmp_path, embedder) -> DocumentVectorStore:
    return DocumentVectorStore(embedder, db_path=str(tmp_path / "lancedb"), table_name="test_docs")


@pytest.fixture
def document_service(tmp_path, vector_store) -> DocumentService:
    return DocumentService(vector_store, storage_dir=tmp_path / "uploads", similarity_threshold=0.3, chunk_size=200, chunk_overlap=20)


@pytest.fixture
def engine(vector_store, generator) -> ChatOrchestrator:
    return ChatOrchestrator(vector_store, generator, ConversationMemory(), similarity_threshold=0.3, rewrite_query=False)


@pytest.fixture
def client(engine, document_service) -> TestClient:
    return TestClient(create_app(chat_engine=engine, document_service=document_service))
