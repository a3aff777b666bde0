import pytest
import requests
from unittest.mock import AsyncMock, patch

from cvtailor.models.models import Component, ComponentType
from cvtailor.models.settings import EmbeddingSettings
from cvtailor.services.embedding import OllamaEmbeddingProvider, VectorEmbedder
from cvtailor.utils.exceptions import DimensionMismatchError, EmbeddingError


class TestVectorEmbedder:
    """Embedding contract on top of a provider"""

    @pytest.mark.asyncio
    async def test_embed(self, embedder, provider):
        vector = await embedder.embed("python on aws")

        assert vector[0] == 1.0
        assert len(vector) == 12
        assert provider.embed_calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_empty_text_is_rejected(self, embedder, provider, text):
        with pytest.raises(EmbeddingError):
            await embedder.embed(text)
        assert provider.embed_calls == 0

    @pytest.mark.asyncio
    async def test_provider_errors_are_wrapped(self):
        provider = AsyncMock()
        provider.embed.side_effect = ConnectionError("refused")
        embedder = VectorEmbedder(provider)

        with pytest.raises(EmbeddingError) as exc_info:
            await embedder.embed("python")
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_dimension_is_enforced(self, provider):
        embedder = VectorEmbedder(provider, dimension=768)

        with pytest.raises(EmbeddingError):
            await embedder.embed("python")

    @pytest.mark.asyncio
    async def test_batch_preserves_order_and_length(self, embedder, provider):
        vectors = await embedder.embed_batch(["python", "react", "java"])

        assert [v.index(1.0) for v in vectors] == [0, 1, 9]
        assert provider.batch_calls == 1

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_call(self, embedder, provider):
        assert await embedder.embed_batch([]) == []
        assert provider.batch_calls == 0

    @pytest.mark.asyncio
    async def test_batch_rejects_blank_entries(self, embedder, provider):
        with pytest.raises(EmbeddingError) as exc_info:
            await embedder.embed_batch(["python", " "])
        assert exc_info.value.details["index"] == 1
        assert provider.batch_calls == 0

    @pytest.mark.asyncio
    async def test_batch_count_mismatch(self):
        provider = AsyncMock()
        provider.embed_batch.return_value = [[1.0, 0.0]]
        embedder = VectorEmbedder(provider)

        with pytest.raises(EmbeddingError):
            await embedder.embed_batch(["a", "b"])

    @pytest.mark.asyncio
    async def test_component_embedding_is_cached(self, embedder, provider):
        component = Component(type=ComponentType.SKILL, title="Python", description="python")

        first = await embedder.embed_component(component)
        second = await embedder.embed_component(component)

        assert first == second
        assert provider.embed_calls == 1

    @pytest.mark.asyncio
    async def test_editing_embedded_fields_invalidates_cache(self, embedder, provider):
        component = Component(type=ComponentType.SKILL, title="Python", description="python")
        await embedder.embed_component(component)

        component.highlights = ["unrelated"]
        assert component.embedding is not None
        component.description = "react"
        assert component.embedding is None

        vector = await embedder.embed_component(component)
        assert vector[1] == 1.0
        assert provider.embed_calls == 2


class TestCosineSimilarity:
    """Cosine similarity on raw vectors"""

    def test_identical_and_opposite(self):
        assert VectorEmbedder.cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
        assert VectorEmbedder.cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
        assert VectorEmbedder.cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_result_is_clipped(self):
        value = VectorEmbedder.cosine_similarity([1e-3, 1e-3], [1e-3, 1e-3])
        assert -1.0 <= value <= 1.0

    def test_zero_vector(self):
        assert VectorEmbedder.cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError) as exc_info:
            VectorEmbedder.cosine_similarity([1, 2], [1, 2, 3])
        assert exc_info.value.details == {"left_dimension": 2, "right_dimension": 3}


class TestOllamaEmbeddingProvider:
    """HTTP provider runs in the executor and wraps request failures"""

    @pytest.mark.asyncio
    @patch("cvtailor.services.embedding.ollama_embed")
    async def test_embed_passes_settings(self, mock_embed):
        mock_embed.return_value = [0.1, 0.2]
        settings = EmbeddingSettings(model_name="mxbai-embed-large", base_url="http://ollama:11434", timeout=5)
        provider = OllamaEmbeddingProvider(settings)

        vector = await provider.embed("hello")

        assert vector == [0.1, 0.2]
        mock_embed.assert_called_once_with(
            "hello", model="mxbai-embed-large", base_url="http://ollama:11434", timeout=5)

    @pytest.mark.asyncio
    @patch("cvtailor.services.embedding.ollama_embed")
    async def test_batch_sends_list(self, mock_embed):
        mock_embed.return_value = [[0.1], [0.2]]
        provider = OllamaEmbeddingProvider(EmbeddingSettings())

        vectors = await provider.embed_batch(["a", "b"])

        assert vectors == [[0.1], [0.2]]
        assert mock_embed.call_args.args[0] == ["a", "b"]

    @pytest.mark.asyncio
    @patch("cvtailor.services.embedding.ollama_embed")
    async def test_unreachable_provider(self, mock_embed):
        mock_embed.side_effect = requests.ConnectionError("connection refused")
        provider = OllamaEmbeddingProvider(EmbeddingSettings(model_name="nomic-embed-text"))

        with pytest.raises(EmbeddingError) as exc_info:
            await provider.embed("hello")
        assert exc_info.value.details["model_name"] == "nomic-embed-text"
