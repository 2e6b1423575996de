"""Embedding providers behind one capability: embed_texts(list[str]) -> list[vector].

A backend knows how to turn one piece of text into a raw vector. The gateway
adds everything around it: preprocessing (chunk or summarize), retries,
chunk averaging, dimension fitting and the per-text local fallback.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Protocol

import numpy as np
import requests

from .config import CONFIG, Config
from .errors import ThirdPartyCallError
from .preprocess import TextPreprocessor
from .retry import DEFAULT_POLICY, RetryPolicy, with_retry
from .summarizer import Summarizer
from .utils import content_hash, fit_dimension, mean_vector

if TYPE_CHECKING:
    from google.genai import Client as GenAIClient

VALID_PROVIDERS = frozenset({"local", "ollama", "google"})


class EmbeddingBackend(Protocol):
    name: str

    async def embed(self, text: str) -> list[float]: ...


# =============================================================================
# Backends
# =============================================================================


class LocalEmbeddingBackend:
    """Deterministic pseudo-embedding seeded from the SHA-256 of the text.

    No semantic meaning, but never fails and needs no network, so a memory can
    always be saved. Identical texts always get identical vectors.
    """

    name = "local"

    def __init__(self, dimension: int = CONFIG.embedding_dim) -> None:
        self.dimension = dimension

    def vector(self, text: str) -> list[float]:
        seed = int(content_hash(text)[:16], 16)
        values = np.random.default_rng(seed).standard_normal(self.dimension)
        return fit_dimension(values, self.dimension)

    async def embed(self, text: str) -> list[float]:
        return self.vector(text)


class OllamaEmbeddingBackend:
    """Local model server, `POST /api/embeddings`."""

    name = "ollama"

    def __init__(self, config: Config = CONFIG) -> None:
        self.base_url = config.ollama_base_url.rstrip("/")
        self.model = config.embedding_model
        self.timeout = config.request_timeout
        self.max_input_chars = config.max_input_chars

    def _post(self, text: str) -> list[float]:
        try:
            response = requests.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text[: self.max_input_chars]},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except (requests.Timeout, requests.ConnectionError) as e:
            raise ThirdPartyCallError(f"Ollama network timeout or connection failure: {e}") from e
        except requests.HTTPError as e:
            raise ThirdPartyCallError(f"Ollama request failed: {e}") from e
        embedding = response.json().get("embedding")
        if not embedding:
            raise ThirdPartyCallError("Invalid response format from Ollama API")
        return embedding

    async def embed(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._post, text)


class GoogleEmbeddingBackend:
    """Google GenAI `embed_content`, via the async client."""

    name = "google"

    def __init__(self, config: Config = CONFIG, client: GenAIClient | None = None) -> None:
        if client is None:
            if not config.google_api_key:
                raise ValueError("GOOGLE_API_KEY not found. Set GOOGLE_API_KEY or GEMINI_API_KEY.")
            from google import genai

            client = genai.Client(api_key=config.google_api_key)
        self.client = client
        self.model = config.embedding_model
        self.dimension = config.embedding_dim
        self.max_input_chars = config.max_input_chars

    async def embed(self, text: str) -> list[float]:
        from google.genai import types

        response = await self.client.aio.models.embed_content(
            model=self.model,
            contents=text[: self.max_input_chars],
            config=types.EmbedContentConfig(
                task_type="SEMANTIC_SIMILARITY", output_dimensionality=self.dimension
            ),
        )
        if not response.embeddings or not response.embeddings[0].values:
            raise ThirdPartyCallError("Empty embedding from Google GenAI")
        return list(response.embeddings[0].values)


# =============================================================================
# Gateway
# =============================================================================


class EmbeddingGateway:
    """Embeds batches of text with one backend, falling back per text to local."""

    def __init__(
        self,
        backend: EmbeddingBackend,
        preprocessor: TextPreprocessor | None = None,
        *,
        dimension: int = CONFIG.embedding_dim,
        fallback: LocalEmbeddingBackend | None = None,
        retry_policy: RetryPolicy = DEFAULT_POLICY,
    ) -> None:
        self.backend = backend
        self.preprocessor = preprocessor or TextPreprocessor()
        self.dimension = dimension
        self.fallback = fallback or LocalEmbeddingBackend(dimension)
        self.retry_policy = retry_policy

    @property
    def provider_name(self) -> str:
        return self.backend.name

    async def _embed_one(self, backend: EmbeddingBackend, text: str) -> list[float]:
        vector = await with_retry(
            lambda: backend.embed(text), self.retry_policy, label=f"{backend.name} embedding"
        )
        return fit_dimension(vector, self.dimension)

    async def _embed_processed(self, backend: EmbeddingBackend, processed: str | list[str]) -> list[float]:
        if isinstance(processed, str):
            return await self._embed_one(backend, processed)
        # Chunks go one at a time; the mean stands in for a single-pass embedding.
        chunk_vectors = [await self._embed_one(backend, chunk) for chunk in processed]
        return fit_dimension(mean_vector(chunk_vectors), self.dimension)

    async def embed_text(self, text: str) -> list[float]:
        processed = await self.preprocessor.preprocess(text)
        try:
            return await self._embed_processed(self.backend, processed)
        except Exception as e:
            if self.backend is self.fallback:
                raise
            print(
                f"[memory-bank] {self.backend.name} embedding failed for text "
                f"(len={len(text)}), falling back to local: {e}",
                file=sys.stderr,
            )
            return await self._embed_processed(self.fallback, processed)

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed every text concurrently; result[i] belongs to texts[i]."""
        return list(await asyncio.gather(*(self.embed_text(text) for text in texts)))


def build_embedding_gateway(config: Config = CONFIG, summarizer: Summarizer | None = None) -> EmbeddingGateway:
    """Make the deployment-wide provider choice once, at startup."""
    provider = config.embedding_provider.lower()
    if provider not in VALID_PROVIDERS:
        raise ValueError(
            f"Unknown embedding provider '{config.embedding_provider}'. Valid: {sorted(VALID_PROVIDERS)}"
        )
    local = LocalEmbeddingBackend(config.embedding_dim)
    if provider == "google":
        backend: EmbeddingBackend = GoogleEmbeddingBackend(config)
    elif provider == "ollama":
        backend = OllamaEmbeddingBackend(config)
    else:
        backend = local
    print(f"[memory-bank] Using embedding provider: {backend.name}", file=sys.stderr)
    return EmbeddingGateway(
        backend,
        TextPreprocessor.from_config(config, summarizer),
        dimension=config.embedding_dim,
        fallback=local,
        retry_policy=RetryPolicy.from_config(config),
    )
