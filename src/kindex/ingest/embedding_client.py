"""Embedding client — LiteLLM embeddings in batch or sequential mode.

Batch mode sends fixed-size batches to the provider and requires every batch
to come back with exactly one vector per input, in input order. A short or
long response raises EmbeddingAlignmentError.

Sequential mode issues one provider call per text.

The client holds no per-call state and is safe to share between threads.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import litellm

from kindex.errors import EmbeddingAlignmentError, EmbeddingSpaceError, ProviderError

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
}

BATCH = "batch"
SEQUENTIAL = "sequential"


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 20
    num_retries: int = 3


def validate_api_key(model: str) -> None:
    """Check that the API key env var for *model*'s provider is set.

    Raises:
        EnvironmentError: If the required key is missing from the environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


class EmbeddingClient:
    """Turn texts into vectors with one fixed embedding model.

    Args:
        config: Model, expected dimensions, batch size and retry count.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()
        if self._config.batch_size < 1:
            raise ValueError("batch_size must be >= 1")

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def dimensions(self) -> int:
        return self._config.dimensions

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def embed_one(self, text: str) -> list[float]:
        """Embed a single text."""
        vectors = self._call([text])
        if len(vectors) != 1:
            raise EmbeddingAlignmentError(expected=1, received=len(vectors))
        return vectors[0]

    def embed_many(
        self,
        texts: Sequence[str],
        mode: str = BATCH,
        on_progress: Callable[[int], None] | None = None,
    ) -> list[list[float]]:
        """Embed *texts*, returning vectors in the same order.

        Args:
            texts: Texts to embed.
            mode: 'batch' (default) or 'sequential'.
            on_progress: Called with the number of texts embedded so far.

        Raises:
            EmbeddingAlignmentError: A batch returned the wrong number of vectors.
            ProviderError: The provider call failed.
        """
        if mode == BATCH:
            return self.embed_batch(texts, on_progress=on_progress)
        if mode == SEQUENTIAL:
            return self.embed_sequential(texts, on_progress=on_progress)
        raise ValueError(f"Unknown embedding mode '{mode}' (expected '{BATCH}' or '{SEQUENTIAL}')")

    def embed_batch(
        self,
        texts: Sequence[str],
        on_progress: Callable[[int], None] | None = None,
    ) -> list[list[float]]:
        """Embed *texts* in fixed-size batches, asserting positional alignment."""
        vectors: list[list[float]] = []
        size = self._config.batch_size
        for start in range(0, len(texts), size):
            batch = list(texts[start : start + size])
            result = self._call(batch)
            if len(result) != len(batch):
                raise EmbeddingAlignmentError(
                    expected=len(batch), received=len(result), batch_start=start
                )
            vectors.extend(result)
            logger.debug("Embedded batch %d-%d", start, start + len(batch) - 1)
            if on_progress is not None:
                on_progress(len(vectors))
        return vectors

    def embed_sequential(
        self,
        texts: Sequence[str],
        on_progress: Callable[[int], None] | None = None,
    ) -> list[list[float]]:
        """Embed *texts* with one provider call each."""
        vectors: list[list[float]] = []
        for text in texts:
            vectors.append(self.embed_one(text))
            if on_progress is not None:
                on_progress(len(vectors))
        return vectors

    # ------------------------------------------------------------------
    # Provider call
    # ------------------------------------------------------------------

    def _call(self, texts: list[str]) -> list[list[float]]:
        """Call litellm.embedding() and return vectors ordered by response index."""
        try:
            response = litellm.embedding(
                model=self._config.model,
                input=texts,
                num_retries=self._config.num_retries,
            )
        except Exception as exc:
            raise ProviderError(f"Embedding request to {self._config.model} failed: {exc}") from exc

        items = list(response.data)
        if items and all(_field(item, "index") is not None for item in items):
            items.sort(key=lambda item: _field(item, "index"))
        vectors = [list(_field(item, "embedding")) for item in items]

        for vector in vectors:
            if len(vector) != self._config.dimensions:
                raise EmbeddingSpaceError(
                    f"{self._config.model} returned a {len(vector)}-dim vector, "
                    f"expected {self._config.dimensions}"
                )
        return vectors


def _field(item: object, name: str) -> object:
    """Read *name* from a provider data item (dict or attribute object)."""
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
