"""
Retrieval engine: selects the items eligible to ground an answer.

Two modes:
    structured  — PropertyFilters → PropertyDirectory (exact, no embedding)
    semantic    — embed query → VectorIndex top-K → PropertyItem / DocChunkItem

merge_results() combines both: structured matches take priority, duplicates
collapse onto one item tagged MatchSource.BOTH (keeping the structured
score), and the union is ranked by score with stable tie-breaking.
"""

from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from realty_chat.config import RetrievalConfig
from realty_chat.errors import EmbeddingUnavailable
from realty_chat.models.retrieval import (
    DocChunkItem,
    MatchSource,
    PropertyFilters,
    PropertyItem,
    RetrievalItem,
    VectorMatch,
)
from realty_chat.services.embeddings import EmbeddingProvider
from realty_chat.services.property_directory import PropertyDirectory
from realty_chat.services.vector_index import VectorIndex

logger = structlog.get_logger(__name__)


def rank_items(items: Sequence[RetrievalItem]) -> list[RetrievalItem]:
    """Sort by score descending; equal scores keep input order."""
    return sorted(items, key=lambda item: item.score, reverse=True)


def item_from_match(match: VectorMatch) -> RetrievalItem | None:
    """
    Map a vector index match to a retrieval item using its metadata.

    `kind` decides the variant; legacy rows without it are treated as
    document chunks when they carry `content`, else as properties when they
    carry a `title`. Unusable metadata yields None.
    """
    metadata: dict[str, Any] = dict(match.metadata)
    kind = metadata.get("kind")
    if kind is None:
        if "content" in metadata:
            kind = "document_chunk"
        elif "title" in metadata:
            kind = "property"

    try:
        if kind == "document_chunk":
            return DocChunkItem(
                document_id=str(metadata.get("document_id") or match.id),
                chunk_index=int(metadata.get("chunk_index", 0)),
                total_chunks=int(metadata.get("total_chunks", 1)),
                content=str(metadata.get("content", "")),
                score=match.score,
                source=MatchSource.SEMANTIC,
            )
        if kind == "property":
            return PropertyItem(
                id=str(metadata.get("id") or match.id),
                title=metadata.get("title") or "",
                location=metadata.get("location") or "",
                price=metadata.get("price"),
                bedrooms=metadata.get("bedrooms"),
                bathrooms=metadata.get("bathrooms"),
                area_sqm=metadata.get("area_sqm", metadata.get("area")),
                available=bool(metadata.get("available", True)),
                description=metadata.get("description") or "",
                listing_type=metadata.get("listing_type"),
                category=metadata.get("category"),
                featured=bool(metadata.get("featured", False)),
                score=match.score,
                source=MatchSource.SEMANTIC,
            )
    except (TypeError, ValueError, ValidationError):
        logger.warning("vector_match_unparseable", match_id=match.id)
        return None

    logger.warning("vector_match_unknown_kind", match_id=match.id, kind=kind)
    return None


def merge_results(
    structured: Sequence[RetrievalItem],
    semantic: Sequence[RetrievalItem],
    cap: int = 10,
) -> list[RetrievalItem]:
    """
    Union structured and semantic items, deduplicated by entity identity.

    Structured items come first and win on conflict: an entity present in
    both is kept once, tagged BOTH, with its structured score.
    """
    merged: dict[str, RetrievalItem] = {}

    for item in structured:
        if item.identity not in merged:
            merged[item.identity] = item.model_copy(update={"source": MatchSource.STRUCTURED})

    for item in semantic:
        existing = merged.get(item.identity)
        if existing is None:
            merged[item.identity] = item.model_copy(update={"source": MatchSource.SEMANTIC})
        elif existing.source == MatchSource.STRUCTURED:
            merged[item.identity] = existing.model_copy(update={"source": MatchSource.BOTH})

    return rank_items(list(merged.values()))[:cap]


class RetrievalEngine:
    """Runs structured and semantic retrieval against injected collaborators."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        directory: PropertyDirectory,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.directory = directory
        self.config = config or RetrievalConfig()

    async def search_properties(self, filters: PropertyFilters) -> list[PropertyItem]:
        """
        Exact directory lookup. Items get the fixed structured score.

        Raises:
            StoreUnavailable: the directory failed.
        """
        items = await self.directory.list(filters)
        scored = [
            item.model_copy(
                update={"score": self.config.structured_score, "source": MatchSource.STRUCTURED}
            )
            for item in items
        ]
        logger.info(
            "structured_retrieval",
            filters=filters.model_dump(exclude_none=True),
            results=len(scored),
        )
        return scored

    async def search_semantic(
        self,
        query: str,
        filter: dict[str, Any] | None = None,
    ) -> list[RetrievalItem]:
        """
        Embed the query and return the index's top-K eligible items.

        Raises:
            EmbeddingUnavailable: the query could not be embedded.
            IndexUnavailable: the index query failed.
        """
        vectors = await self.embedder.embed([query])
        if len(vectors) != 1:
            raise EmbeddingUnavailable(f"expected 1 embedding, got {len(vectors)}")

        matches = await self.index.query(vectors[0], top_k=self.config.top_k, filter=filter)

        items: list[RetrievalItem] = []
        for match in matches:
            if match.score <= self.config.min_similarity:
                continue
            item = item_from_match(match)
            if item is not None:
                items.append(item)

        ranked = rank_items(items)
        logger.info("semantic_retrieval", matches=len(matches), eligible=len(ranked))
        return ranked

    def merge(
        self,
        structured: Sequence[RetrievalItem],
        semantic: Sequence[RetrievalItem],
    ) -> list[RetrievalItem]:
        return merge_results(structured, semantic, cap=self.config.merge_cap)
