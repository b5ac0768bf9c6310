"""Application configuration loaded from environment variables."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration – values are read from `.env` or the environment."""

    # LLM (Ollama – local, OpenAI-compatible endpoint)
    ollama_base_url: str = "http://localhost:11434/v1"
    llm_model: str = "llama3.2"
    llm_temperature: float = 0.7
    llm_timeout: float = 30.0

    # Embeddings
    embedding_provider: Literal["openai", "sentence-transformers", "none"] = "sentence-transformers"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_timeout: float = 30.0

    # Retrieval
    match_threshold: float = 0.5
    match_count: int = 5
    keyword_limit: int = 10
    listing_limit: int = 10
    context_top_k: int = 10

    # Paths
    base_dir: Path = Path(__file__).resolve().parent.parent
    sqlite_path: Path = base_dir / "storage" / "sqlite" / "documents.db"
    chroma_dir: Path = base_dir / "storage" / "chroma_db"
    chroma_collection: str = "document_chunks"

    # Background processing
    worker_count: int = 2

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
