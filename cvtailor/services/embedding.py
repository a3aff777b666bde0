"""
Vector Embedder: text → vector through an embedding provider, plus cosine similarity.

No retries happen here; retry policy belongs to the caller.
"""
import asyncio
from functools import partial
from typing import List, Optional, Protocol, Sequence

import numpy as np
import requests

from cvtailor.models.models import BaseComponent
from cvtailor.models.settings import EmbeddingSettings
from cvtailor.utils.exceptions import DimensionMismatchError, EmbeddingError
from cvtailor.utils.logging_config import get_logger
from cvtailor.utils.utils import ollama_embed

logger = get_logger(__name__)


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]: ...

    async def embed_batch(self, texts: List[str]) -> List[List[float]]: ...


class OllamaEmbeddingProvider:
    """Embeds through a local Ollama server; HTTP runs in the default executor."""

    def __init__(self, settings: EmbeddingSettings = None):
        self.settings = settings or EmbeddingSettings.from_env()

    async def _call(self, payload):
        loop = asyncio.get_running_loop()
        fn = partial(
            ollama_embed,
            payload,
            model=self.settings.model_name,
            base_url=self.settings.base_url,
            timeout=self.settings.timeout,
        )
        try:
            return await loop.run_in_executor(None, fn)
        except requests.RequestException as e:
            raise EmbeddingError(
                f"Embedding provider unreachable: {e}",
                model_name=self.settings.model_name,
                cause=e,
            ) from e

    async def embed(self, text: str) -> List[float]:
        return await self._call(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return await self._call(list(texts))


class VectorEmbedder:
    def __init__(self, provider: EmbeddingProvider, dimension: Optional[int] = None):
        self.provider = provider
        self.dimension = dimension

    def _check_vector(self, vector) -> List[float]:
        if vector is None or len(vector) == 0:
            raise EmbeddingError("No embedding values returned")
        if self.dimension and len(vector) != self.dimension:
            raise EmbeddingError(
                f"Provider returned {len(vector)} dimensions, expected {self.dimension}"
            )
        return [float(x) for x in vector]

    async def embed(self, text: str) -> List[float]:
        if text is None or not text.strip():
            raise EmbeddingError("Cannot embed empty text")
        try:
            vector = await self.provider.embed(text)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(f"Embedding provider failed: {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}", cause=e) from e
        return self._check_vector(vector)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        texts = list(texts)
        if not texts:
            return []
        for i, text in enumerate(texts):
            if text is None or not text.strip():
                raise EmbeddingError("Cannot embed empty text", details={"index": i})
        try:
            vectors = await self.provider.embed_batch(texts)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(f"Batch embedding failed for {len(texts)} texts: {e}")
            raise EmbeddingError(f"Failed to generate embeddings: {e}", cause=e) from e
        if vectors is None or len(vectors) != len(texts):
            raise EmbeddingError(
                f"Provider returned {0 if vectors is None else len(vectors)} embeddings for {len(texts)} texts"
            )
        return [self._check_vector(v) for v in vectors]

    async def embed_component(self, component: BaseComponent) -> List[float]:
        """Embedding cached on the component, computed on first use."""
        if component.embedding:
            return component.embedding
        vector = await self.embed(component.embedding_text())
        component.embedding = vector
        return vector

    @staticmethod
    def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
        if len(a) != len(b):
            raise DimensionMismatchError(
                "Embeddings must have the same length", left=len(a), right=len(b)
            )
        va = np.asarray(a, dtype=np.float64)
        vb = np.asarray(b, dtype=np.float64)
        den = float(np.linalg.norm(va) * np.linalg.norm(vb))
        if den == 0.0:
            return 0.0
        return float(np.clip(np.dot(va, vb) / den, -1.0, 1.0))
