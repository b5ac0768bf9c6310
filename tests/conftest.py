"""Shared fixtures: temporary stores, fake embedding providers and a fake LLM."""

from __future__ import annotations

import asyncio
import hashlib
import re

import pytest

from docrag.ingestion.embeddings import EmbeddingProvider


class FixedWidthProvider(EmbeddingProvider):
    """Returns vectors of a fixed native width; optionally fails or stalls."""

    name = "fixed"

    def __init__(self, width: int = 384, *, fail: bool = False, delay: float = 0.0) -> None:
        self.width = width
        self.fail = fail
        self.delay = delay
        self.calls: list[str] = []

    async def embed_query(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("quota exceeded")
        return [0.25] * self.width


class BagOfWordsProvider(EmbeddingProvider):
    """Hashes lower-cased words into buckets, so shared words mean similar vectors."""

    name = "bag-of-words"

    def __init__(self, width: int = 384) -> None:
        self.width = width

    async def embed_query(self, text: str) -> list[float]:
        vector = [0.0] * self.width
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.width
            vector[bucket] += 1.0
        return vector


class FakeChatClient:
    """Stands in for the LLM endpoint and records every prompt."""

    def __init__(self, reply: str = "Grounded answer.") -> None:
        self.reply = reply
        self.prompts: list[tuple[str, str]] = []

    def chat(self, system_prompt: str, user_prompt: str, **kwargs) -> str:
        self.prompts.append((system_prompt, user_prompt))
        return self.reply


@pytest.fixture
def settings(tmp_path):
    from docrag.config import Settings

    return Settings(
        sqlite_path=tmp_path / "sqlite" / "documents.db",
        chroma_dir=tmp_path / "chroma",
        embedding_provider="none",
        worker_count=1,
    )


@pytest.fixture
def ingest_settings():
    from docrag.ingestion.config import IngestSettings

    return IngestSettings(chunk_size=1000, chunk_overlap=0)


@pytest.fixture
def fake_llm():
    return FakeChatClient()


@pytest.fixture
def services(settings, ingest_settings, fake_llm):
    from docrag.services.container import build_services

    return build_services(settings, ingest_settings, provider=BagOfWordsProvider(), llm=fake_llm)


@pytest.fixture
def two_heading_text() -> str:
    """~3000 characters of plain text under two headings."""
    intro = (
        "The quarterly report covers revenue growth across every region we serve. "
        "Sales teams expanded their pipelines and closed larger contracts this year. "
    ) * 10
    details = (
        "Operating costs fell as the logistics network was consolidated further. "
        "Warehouse automation reduced handling time for most customer orders. "
    ) * 10
    return f"Introduction:\n{intro.strip()}\nDetails:\n{details.strip()}\n"
