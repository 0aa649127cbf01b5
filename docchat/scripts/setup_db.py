"""
DocChat - Knowledge Base Setup & Bulk Ingestion
================================================
CLI entry point that orchestrates:
    1. Validate that ``GOOGLE_API_KEY`` is set (fail-fast).
    2. Initialise ``DocumentVectorStore`` (optionally drop the table).
    3. Feed every supported file under ``--source`` through
       ``DocumentService.upload_documents``.
    4. Print a structured execution summary with timing breakdown.

Flags:
    --source DIR   Directory scanned recursively for pdf / txt / md files.
    --category C   Category stored on every ingested chunk.
    --drop         Drop the LanceDB table before ingesting.
    --drop-only    Drop the table and exit immediately (no ingestion).

Usage:
    python -m docchat.scripts.setup_db --source ./handbook --category policy
    python -m docchat.scripts.setup_db --drop --source ./handbook
    python -m docchat.scripts.setup_db --drop-only
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="DocChat — Initialise the vector database and bulk-ingest documents.")
    parser.add_argument("--source", type=Path, default=None, help="Directory to scan for documents (recursive).")
    parser.add_argument("--category", default=None, help="Category attached to every ingested chunk.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop the LanceDB table before ingesting.")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Drop the LanceDB table and exit (no ingestion).")
    return parser.parse_args(argv)


def collect_files(source: Path, supported_types: list[str]) -> list[Path]:
    """Every file under *source* whose extension is in *supported_types*, sorted."""
    return sorted(p for p in source.rglob("*") if p.is_file() and p.suffix.lower().lstrip(".") in supported_types)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from docchat.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from docchat.src.utils.logger import get_logger
    logger = get_logger(__name__)

    if not args.drop_only and (args.source is None or not args.source.is_dir()):
        logger.error("--source must point to an existing directory (got %s).", args.source)
        return 2

    _print_header(settings, args)

    # ── 1. Initialise embedder (timed) ─────────────────────────────────
    t_embedder = time.perf_counter()
    logger.info("Initialising embedding model: %s", settings.EMBEDDING_MODEL)
    try:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    except Exception:
        logger.exception("Failed to initialise embedding model.")
        return 1
    embedder_ms = (time.perf_counter() - t_embedder) * 1000

    # ── 2. Initialise DocumentVectorStore (timed) ──────────────────────
    from docchat.src.core.ingestor import DocumentService
    from docchat.src.database.vector_store import DocumentVectorStore

    t_lancedb = time.perf_counter()
    store = DocumentVectorStore(embedder=embedder)
    lancedb_ms = (time.perf_counter() - t_lancedb) * 1000
    startup_ms = settings_ms + embedder_ms + lancedb_ms

    if args.drop or args.drop_only:
        logger.warning("Dropping table '%s' as requested.", store.table_name)
        store.clear()
        if args.drop_only:
            _print_footer(0, 0, 0, time.perf_counter() - t_start, startup_ms)
            return 0

    logger.info("VectorStore ready — table '%s' (%d existing rows).", store.table_name, store.count())

    # ── 3. Ingest ──────────────────────────────────────────────────────
    service = DocumentService(store)
    files = collect_files(args.source, service.supported_types)
    logger.info("Found %d supported file(s) under %s.", len(files), args.source)

    rows_before = store.count()
    outcomes = service.upload_documents([(path.name, path.read_bytes()) for path in files], args.category)
    failed = [name for name, outcome in outcomes.items() if not outcome.success]
    for name in failed:
        logger.error("  %s: %s", name, outcomes[name].message)

    # ── 4. Print execution summary ─────────────────────────────────────
    _print_footer(len(files), store.count() - rows_before, len(failed), time.perf_counter() - t_start, startup_ms)
    return 1 if failed else 0


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, args: argparse.Namespace) -> None:
    api_key_val = settings.GOOGLE_API_KEY.get_secret_value()  # type: ignore[attr-defined]
    masked = f"****{api_key_val[-4:]}" if len(api_key_val) > 4 else "****"

    print()
    print("=" * 60)
    print("  DOCCHAT — Knowledge Base Setup & Ingestion")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                   # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")       # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")          # type: ignore[attr-defined]
    print(f"  Table        : {settings.LANCEDB_TABLE_NAME}")    # type: ignore[attr-defined]
    print(f"  Source dir   : {args.source or '-'}")
    print(f"  Category     : {args.category or '-'}")
    print(f"  Chunk size   : {settings.CHUNK_SIZE} chars (overlap {settings.CHUNK_OVERLAP})")  # type: ignore[attr-defined]
    print(f"  API Key      : {masked}")
    print("=" * 60)
    print()


def _print_footer(total_files: int, total_chunks: int, failed: int, elapsed: float, startup_ms: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Files found          : {total_files}")
    print(f"  Files ingested       : {total_files - failed}")
    print(f"  Files failed         : {failed}")
    print(f"  Chunks stored        : {total_chunks}")
    print("-" * 60)
    print(f"  Startup time         : {startup_ms:>8.1f}ms")
    print(f"  Processing time      : {elapsed - startup_ms / 1000:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(main())
