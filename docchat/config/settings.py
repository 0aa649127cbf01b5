"""
DocChat - Centralized Configuration
====================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic will raise a ``ValidationError``
  with a clear error message.  The raw value is never exposed in repr,
  logs, or tracebacks.

Paths
-----
All filesystem paths are ``Path.resolve()``-d at class level so they
work identically on Windows, WSL, and Linux.

Generation presets
------------------
Plain chat and RAG chat use separate sampling parameters.  Plain chat
is tuned for conversational breadth, RAG for faithfulness to the
retrieved context (lower temperature, longer output budget).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required** — the app will refuse
    to start until they are provided.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini).  **Required.**
    ENV : Literal["dev", "prod"]
        Environment mode controlling logging verbosity.
    LOG_LEVEL : str | None
        Explicit log level; overrides the level derived from ``ENV``.
    EMBEDDING_MODEL : str
        Model identifier passed to ``GoogleGenerativeAIEmbeddings``.
    LLM_MODEL : str
        Model identifier for the response-generation LLM.
    RAG_SIMILARITY_THRESHOLD : float
        Minimum cosine similarity (0–1) for a chunk to be retrieved.
    RAG_TOP_K : int
        Number of chunks retrieved for unscoped RAG chat.
    RAG_REWRITE_QUERY : bool
        Rewrite the user question into a search query before retrieval.
    CHUNK_SIZE / CHUNK_OVERLAP : int
        Splitter parameters applied to every ingested document, in
        characters (not model tokens).
    MEMORY_MAX_MESSAGES : int
        Sliding-window bound on stored turns per session.
    SUPPORTED_DOCUMENT_TYPES : str
        Comma-separated extension allow-list for uploads.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    LANCEDB_PATH: Path = BASE_DIR / "data" / "lancedb"
    DOCUMENT_STORAGE_PATH: Path = BASE_DIR / "data" / "documents"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None

    # ── API Keys (REQUIRED — no default) ───────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── HTTP ───────────────────────────────────────────────────────────
    API_PREFIX: str = "/api"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    LLM_MODEL: str = "gemini-2.0-flash"

    # Plain chat (and category-scoped RAG)
    CHAT_TEMPERATURE: float = 0.7
    CHAT_TOP_P: float = 0.8
    CHAT_MAX_TOKENS: int = 2048

    # Knowledge-base RAG chat
    RAG_TEMPERATURE: float = 0.3
    RAG_TOP_P: float = 0.9
    RAG_MAX_TOKENS: int = 3072

    # ── Retrieval ──────────────────────────────────────────────────────
    RAG_SIMILARITY_THRESHOLD: float = 0.75
    RAG_TOP_K: int = 5
    RAG_REWRITE_QUERY: bool = True
    CATEGORY_TOP_K: int = 5
    SMART_CHAT_PROBE_K: int = 3
    ANALYSIS_MAX_RESULTS: int = 10
    SEARCH_MAX_RESULTS: int = 20

    # ── Ingestion Parameters ───────────────────────────────────────────
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    SUPPORTED_DOCUMENT_TYPES: str = "pdf,txt,md"

    # ── Conversation Memory ────────────────────────────────────────────
    MEMORY_MAX_MESSAGES: int = 20

    # ── LanceDB ────────────────────────────────────────────────────────
    LANCEDB_TABLE_NAME: str = "docchat_docs"

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("RAG_SIMILARITY_THRESHOLD")
    @classmethod
    def _threshold_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"RAG_SIMILARITY_THRESHOLD must be 0–1, got {v}")
        return v


    @field_validator("CHUNK_SIZE")
    @classmethod
    def _chunk_size_positive(cls, v: int) -> int:
        if v < 50:
            raise ValueError(f"CHUNK_SIZE must be ≥ 50, got {v}")
        return v


    @field_validator("MEMORY_MAX_MESSAGES")
    @classmethod
    def _window_size(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"MEMORY_MAX_MESSAGES must hold at least one exchange (≥ 2), got {v}")
        return v


    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> "Settings":
        if not 0 <= self.CHUNK_OVERLAP < self.CHUNK_SIZE:
            raise ValueError(f"CHUNK_OVERLAP must be in [0, CHUNK_SIZE), got {self.CHUNK_OVERLAP}")
        return self

    # ── Derived Values ─────────────────────────────────────────────────

    @property
    def supported_document_types(self) -> list[str]:
        """Normalised extension allow-list (lower-case, no leading dot)."""
        return [t.strip().lower().lstrip(".") for t in self.SUPPORTED_DOCUMENT_TYPES.split(",") if t.strip()]

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from docchat.config.settings import settings
settings = Settings()
