"""Deployment configuration for memory-bank, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _api_key() -> str:
    return os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY") or ""


@dataclass(frozen=True, slots=True)
class Config:
    """Server configuration with sensible defaults."""

    db_path: Path = Path(os.environ.get("MEMORY_BANK_DB_PATH", Path.home() / ".memory-bank" / "lancedb"))
    collection_prefix: str = "memory_bank_"

    # Providers (one deployment-wide choice each)
    embedding_provider: str = os.environ.get("EMBEDDING_PROVIDER", "local")  # local | ollama | google
    embedding_model: str = os.environ.get("EMBEDDING_MODEL", "nomic-embed-text:v1.5")
    embedding_dim: int = int(os.environ.get("EMBEDDING_DIM", "768"))
    summarizer_provider: str = os.environ.get("SUMMARIZER_PROVIDER", "none")  # none | ollama | google
    summarizer_model: str = os.environ.get("SUMMARIZER_MODEL", "gemini-2.0-flash")
    ollama_base_url: str = os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    google_api_key: str = _api_key()
    request_timeout: float = 30.0
    max_input_chars: int = 8000

    # Caches
    cache_ttl_seconds: float = float(os.environ.get("CACHE_TTL_SECONDS", "300"))
    embedding_cache_size: int = int(os.environ.get("EMBEDDING_CACHE_SIZE", "1000"))
    query_cache_size: int = int(os.environ.get("QUERY_CACHE_SIZE", "500"))
    context_cache_size: int = 100
    pattern_cache_size: int = 50

    # Text preprocessing
    max_text_length: int = 5000  # chunk or summarize above this
    chunk_size: int = 1500
    chunk_overlap: int = 200
    break_window: int = 200
    max_chunks: int = 10

    # Retries for third-party calls
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 5.0
    retry_backoff_factor: float = 2.0

    # Reads
    default_top_k: int = int(os.environ.get("DEFAULT_TOP_K", "5"))
    link_candidate_limit: int = 100
    scan_limit: int = 10_000


CONFIG = Config()
