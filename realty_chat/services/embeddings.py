"""
Embedding provider contract and its OpenAI implementation.

The contract is order-preserving and batch-oriented: one call embeds the
whole sequence. Callers rely on that for the intent classifier build (one
round trip for every example) and for ingestion.
"""

from collections.abc import Sequence
from typing import Protocol

import structlog
from openai import AsyncOpenAI, OpenAIError

from realty_chat.errors import EmbeddingUnavailable

logger = structlog.get_logger(__name__)


class EmbeddingProvider(Protocol):
    """Maps texts to fixed-length vectors."""

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed every text in one call, preserving input order."""


class OpenAIEmbeddingProvider:
    """Embeddings via the OpenAI embeddings endpoint."""

    def __init__(self, client: AsyncOpenAI, model: str = "text-embedding-3-small") -> None:
        self.client = client
        self.model = model

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        batch = list(texts)
        if not batch:
            return []

        try:
            response = await self.client.embeddings.create(model=self.model, input=batch)
        except OpenAIError as exc:
            logger.warning("embedding_request_failed", model=self.model, error=str(exc))
            raise EmbeddingUnavailable(f"embedding request failed: {exc}") from exc

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(batch):
            logger.warning(
                "embedding_batch_mismatch", requested=len(batch), returned=len(data)
            )
            raise EmbeddingUnavailable(
                f"expected {len(batch)} embeddings, got {len(data)}"
            )

        return [list(item.embedding) for item in data]
