"""
Vector index contract plus Supabase (pgvector) and in-memory implementations.

The conversation engine only queries; upsert/delete are used by ingestion.

Supabase layout:
    table `documents` (id text pk, embedding vector, metadata jsonb)
    rpc   `match_documents(query_embedding, match_count, filter)`
          → rows {id, similarity, metadata}, best first
"""

from collections.abc import Sequence
from typing import Any, Protocol

import structlog
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from realty_chat.errors import IndexUnavailable
from realty_chat.models.retrieval import VectorMatch, VectorRecord
from realty_chat.services.similarity import cosine_similarity

logger = structlog.get_logger(__name__)


class VectorIndex(Protocol):
    """Nearest-neighbour index over embedded properties and document chunks."""

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return up to top_k matches, best first, with metadata."""

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        """Insert or replace records by id. Returns the number written."""

    async def delete(self, ids: Sequence[str]) -> int:
        """Delete records by id. Returns the number removed."""

    async def delete_where(self, filter: dict[str, Any]) -> int:
        """Delete records whose metadata matches every key in `filter`."""

    async def fetch(self, filter: dict[str, Any]) -> list[VectorMatch]:
        """Return every record whose metadata matches `filter`, unscored."""


def _metadata_matches(metadata: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    if not filter:
        return True
    return all(metadata.get(key) == value for key, value in filter.items())


class InMemoryVectorIndex:
    """Brute-force cosine index used for tests and local runs."""

    def __init__(self) -> None:
        self.records: dict[str, VectorRecord] = {}

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        scored = [
            VectorMatch(
                id=record.id,
                score=cosine_similarity(vector, record.values),
                metadata=dict(record.metadata),
            )
            for record in self.records.values()
            if _metadata_matches(record.metadata, filter)
        ]
        # sorted() is stable: equal scores keep insertion order
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        for record in records:
            self.records[record.id] = record.model_copy(deep=True)
        return len(records)

    async def delete(self, ids: Sequence[str]) -> int:
        removed = 0
        for record_id in ids:
            if self.records.pop(record_id, None) is not None:
                removed += 1
        return removed

    async def delete_where(self, filter: dict[str, Any]) -> int:
        """Delete every record whose metadata matches `filter`."""
        doomed = [rid for rid, rec in self.records.items() if _metadata_matches(rec.metadata, filter)]
        return await self.delete(doomed)

    async def fetch(self, filter: dict[str, Any]) -> list[VectorMatch]:
        return [
            VectorMatch(id=record.id, score=0.0, metadata=dict(record.metadata))
            for record in self.records.values()
            if _metadata_matches(record.metadata, filter)
        ]


class SupabaseVectorIndex:
    """pgvector index behind a Supabase RPC."""

    def __init__(
        self,
        client: AsyncSupabaseClient,
        table: str = "documents",
        match_rpc: str = "match_documents",
    ) -> None:
        self.client = client
        self.table = table
        self.match_rpc = match_rpc

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        params = {
            "query_embedding": list(vector),
            "match_count": top_k,
            "filter": filter or {},
        }
        try:
            response = await self.client.rpc(self.match_rpc, params).execute()
        except Exception as exc:
            logger.warning("vector_query_failed", rpc=self.match_rpc, error=str(exc))
            raise IndexUnavailable(f"vector query failed: {exc}") from exc

        return [
            VectorMatch(
                id=str(row["id"]),
                score=float(row.get("similarity") or 0.0),
                metadata=row.get("metadata") or {},
            )
            for row in response.data or []
        ]

    async def upsert(self, records: Sequence[VectorRecord]) -> int:
        if not records:
            return 0
        rows = [
            {"id": record.id, "embedding": record.values, "metadata": record.metadata}
            for record in records
        ]
        try:
            response = await self.client.table(self.table).upsert(rows, on_conflict="id").execute()
        except Exception as exc:
            logger.warning("vector_upsert_failed", table=self.table, error=str(exc))
            raise IndexUnavailable(f"vector upsert failed: {exc}") from exc
        return len(response.data or rows)

    async def delete(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0
        try:
            response = await self.client.table(self.table).delete().in_("id", list(ids)).execute()
        except Exception as exc:
            logger.warning("vector_delete_failed", table=self.table, error=str(exc))
            raise IndexUnavailable(f"vector delete failed: {exc}") from exc
        return len(response.data or [])

    async def delete_where(self, filter: dict[str, Any]) -> int:
        """Delete every row whose metadata contains `filter`."""
        try:
            response = (
                await self.client.table(self.table)
                .delete()
                .contains("metadata", filter)
                .execute()
            )
        except Exception as exc:
            logger.warning("vector_delete_failed", table=self.table, error=str(exc))
            raise IndexUnavailable(f"vector delete failed: {exc}") from exc
        return len(response.data or [])

    async def fetch(self, filter: dict[str, Any]) -> list[VectorMatch]:
        """Rows whose metadata contains `filter`, without embeddings."""
        try:
            response = (
                await self.client.table(self.table)
                .select("id, metadata")
                .contains("metadata", filter)
                .execute()
            )
        except Exception as exc:
            logger.warning("vector_fetch_failed", table=self.table, error=str(exc))
            raise IndexUnavailable(f"vector fetch failed: {exc}") from exc

        return [
            VectorMatch(id=str(row["id"]), score=0.0, metadata=row.get("metadata") or {})
            for row in response.data or []
        ]
