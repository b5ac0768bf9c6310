"""Builds the component graph from the two settings objects."""

from __future__ import annotations

from dataclasses import dataclass

from docrag.config import Settings
from docrag.ingestion.config import IngestSettings
from docrag.ingestion.embeddings import EmbeddingGenerator, EmbeddingProvider, build_provider
from docrag.ingestion.extractors import TextExtractor
from docrag.ingestion.pipeline import DocumentProcessor
from docrag.ingestion.vectordb import ChunkVectorIndex
from docrag.services.document_store import DocumentStore
from docrag.services.llm import ChatClient
from docrag.services.orchestrator import AnswerService
from docrag.services.retriever import Retriever


@dataclass
class Services:
    settings: Settings
    ingest_settings: IngestSettings
    store: DocumentStore
    embedder: EmbeddingGenerator
    processor: DocumentProcessor
    retriever: Retriever
    answers: AnswerService


def build_services(
    settings: Settings,
    ingest_settings: IngestSettings,
    *,
    provider: EmbeddingProvider | None = None,
    llm: ChatClient | None = None,
) -> Services:
    """Wire every component; *provider* / *llm* override the configured ones."""
    index = ChunkVectorIndex(settings.chroma_dir, settings.chroma_collection)
    store = DocumentStore(settings.sqlite_path, index)
    embedder = EmbeddingGenerator(
        ingest_settings,
        provider if provider is not None else build_provider(settings),
        timeout=settings.embedding_timeout,
    )
    processor = DocumentProcessor(store, TextExtractor(ingest_settings), embedder, ingest_settings)
    retriever = Retriever(store, embedder, settings)
    answers = AnswerService(retriever, llm or ChatClient(settings), settings.context_top_k)
    return Services(
        settings=settings,
        ingest_settings=ingest_settings,
        store=store,
        embedder=embedder,
        processor=processor,
        retriever=retriever,
        answers=answers,
    )
