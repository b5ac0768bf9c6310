"""
Embedding generation with a fallback chain.

1. Semantic provider – ``sentence-transformers`` (``all-MiniLM-L6-v2``,
   384-dim, local) or an OpenAI-compatible embeddings API.  Output is
   truncated / zero-padded to the storage width.
2. Hash fallback – signs from the SHA-256 digest of the text.
3. Random vector – only if the hash path itself fails.

``EmbeddingGenerator.embed`` therefore always returns a vector of exactly
``IngestSettings.embedding_dimension`` floats.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import random
import warnings
from typing import Sequence

from docrag.config import Settings
from docrag.errors import EmbeddingError
from docrag.ingestion.config import IngestSettings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Vector helpers
# ═══════════════════════════════════════════════════════════════════════════

def fit_dimension(vector: Sequence[float], dimension: int) -> list[float]:
    """Truncate or right-pad with zeros to *dimension* entries."""
    values = [float(v) for v in vector]
    if len(values) >= dimension:
        return values[:dimension]
    return values + [0.0] * (dimension - len(values))


def format_vector(vector: Sequence[float]) -> str:
    """Render as the bracketed comma-separated string the datastore expects."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def parse_vector(text: str) -> list[float]:
    body = text.strip().removeprefix("[").removesuffix("]").strip()
    if not body:
        return []
    return [float(v) for v in body.split(",")]


def hash_embedding(text: str, dimension: int = 384, *, jitter: bool = False) -> list[float]:
    """Pseudo-embedding derived from the SHA-256 digest of *text*.

    The sign of dimension ``i`` is bit ``i % 8`` of digest byte ``i % 32``.
    Magnitudes lie in [0, 0.5): drawn from a generator seeded with the
    digest, or freshly random per call when *jitter* is set.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    rng = random.Random() if jitter else random.Random(digest)
    vector: list[float] = []
    for i in range(dimension):
        bit = (digest[i % len(digest)] >> (i % 8)) & 1
        magnitude = rng.random() * 0.5
        vector.append(magnitude if bit else -magnitude)
    return vector


def random_embedding(dimension: int = 384) -> list[float]:
    return [random.random() - 0.5 for _ in range(dimension)]


# ═══════════════════════════════════════════════════════════════════════════
# Providers
# ═══════════════════════════════════════════════════════════════════════════

class EmbeddingProvider:
    """Semantic embedding backend; vectors come back at native width."""

    name = "base"

    async def embed_query(self, text: str) -> list[float]:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI (or compatible) ``/embeddings`` endpoint via the async client."""

    name = "openai"

    def __init__(self, settings: Settings) -> None:
        import openai

        client_kwargs: dict = {"api_key": settings.openai_api_key, "timeout": settings.embedding_timeout}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model

    async def embed_query(self, text: str) -> list[float]:
        response = await self._client.embeddings.create(input=[text], model=self._model)
        return list(response.data[0].embedding)


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Local sentence-transformers model, loaded on first use."""

    name = "sentence-transformers"

    def __init__(self, model_name: str) -> None:
        self._model_name = model_name
        self._model = None

    def _get_model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model '%s' …", self._model_name)
            self._model = SentenceTransformer(self._model_name, device="cpu")
            logger.info(
                "Embedding model loaded (dim=%d, max_seq=%d).",
                self._model.get_sentence_embedding_dimension(),
                self._model.max_seq_length,
            )
        return self._model

    def _encode(self, text: str) -> list[float]:
        model = self._get_model()
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore", message=".*Token indices sequence length.*")
            emb = model.encode([text], show_progress_bar=False, normalize_embeddings=True)
        return emb[0].tolist()

    async def embed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._encode, text)


def build_provider(settings: Settings) -> EmbeddingProvider | None:
    """Provider named by ``settings.embedding_provider``, or None."""
    if settings.embedding_provider == "openai":
        if not settings.openai_api_key:
            logger.warning("OpenAI embeddings selected but no API key set – using hash fallback.")
            return None
        return OpenAIEmbeddingProvider(settings)
    if settings.embedding_provider == "sentence-transformers":
        return SentenceTransformerEmbeddingProvider(settings.embedding_model)
    return None


# ═══════════════════════════════════════════════════════════════════════════
# Generator
# ═══════════════════════════════════════════════════════════════════════════

class EmbeddingGenerator:
    """Provider → hash → random, always at the storage width."""

    def __init__(
        self,
        settings: IngestSettings,
        provider: EmbeddingProvider | None = None,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._dimension = settings.embedding_dimension
        self._jitter = settings.hash_embedding_jitter
        self._concurrency = max(1, settings.embedding_concurrency)
        self._provider = provider
        self._timeout = timeout

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        if self._provider is not None:
            try:
                vector = await asyncio.wait_for(self._provider.embed_query(text), timeout=self._timeout)
                return fit_dimension(vector, self._dimension)
            except Exception as exc:
                logger.warning(
                    "Embedding provider '%s' failed (%s) – falling back to hash-based.",
                    self._provider.name,
                    exc,
                )
        return self._fallback(text)

    def _fallback(self, text: str) -> list[float]:
        try:
            return hash_embedding(text, self._dimension, jitter=self._jitter)
        except Exception as exc:
            logger.error("Hash-based embedding failed: %s", exc)
        try:
            return random_embedding(self._dimension)
        except Exception as exc:
            raise EmbeddingError(f"Could not produce an embedding: {exc}") from exc

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed concurrently; results keep the order of *texts*."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(text: str) -> list[float]:
            async with semaphore:
                return await self.embed(text)

        return list(await asyncio.gather(*(_one(t) for t in texts)))
