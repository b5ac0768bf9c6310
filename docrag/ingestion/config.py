"""
Ingestion pipeline configuration.

All values can be overridden via environment variables prefixed with
``INGEST_`` (e.g. ``INGEST_CHUNK_SIZE=1000``).
"""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class IngestSettings(BaseSettings):
    """Tuneable knobs for every pipeline stage."""

    # ── Chunking ─────────────────────────────────────────────────────────
    chunk_size: int = 800  # characters
    chunk_overlap: int = 150

    # ── Quality gates ────────────────────────────────────────────────────
    min_chunk_length: int = 50  # chars – chunks at or below are not persisted

    # ── Extraction ───────────────────────────────────────────────────────
    pdf_failure_mode: Literal["raise", "sentinel"] = "raise"
    preview_length: int = 10_000

    # ── Embeddings ───────────────────────────────────────────────────────
    embedding_dimension: int = 384  # storage schema width
    embedding_concurrency: int = 4
    hash_embedding_jitter: bool = False  # True = random magnitudes per call

    model_config = {
        "env_prefix": "INGEST_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }
