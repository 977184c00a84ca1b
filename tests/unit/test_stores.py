"""Unit tests for lead / history / directory / vector index repositories."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from realty_chat.errors import IndexUnavailable, StoreUnavailable
from realty_chat.models.lead import LeadState, LeadStatus
from realty_chat.models.retrieval import MatchSource, PropertyFilters, VectorRecord
from realty_chat.services.history_store import InMemoryHistoryStore, SupabaseHistoryStore
from realty_chat.services.lead_store import InMemoryLeadStore, SupabaseLeadStore
from realty_chat.services.property_directory import (
    InMemoryPropertyDirectory,
    SupabasePropertyDirectory,
)
from realty_chat.services.vector_index import InMemoryVectorIndex, SupabaseVectorIndex

_BUILDER_METHODS = (
    "select",
    "eq",
    "ilike",
    "gte",
    "lte",
    "order",
    "limit",
    "insert",
    "upsert",
    "delete",
    "in_",
    "contains",
)


def make_supabase(data=None, error: Exception | None = None) -> tuple[MagicMock, MagicMock]:
    """Mock async Supabase client whose query builder chains back to itself."""
    query = MagicMock()
    for method in _BUILDER_METHODS:
        getattr(query, method).return_value = query
    query.execute = AsyncMock(return_value=MagicMock(data=data), side_effect=error)

    client = MagicMock()
    client.table.return_value = query
    client.rpc.return_value = query
    return client, query


class TestInMemoryLeadStore:
    async def test_get_missing_returns_none(self):
        assert await InMemoryLeadStore().get("nobody") is None

    async def test_upsert_creates_then_merges(self, clock):
        store = InMemoryLeadStore(now_provider=clock.now)

        created = await store.upsert("u1", {"step": LeadState.AWAITING_NAME})
        updated = await store.upsert("u1", {"name": "Ana", "step": LeadState.AWAITING_EMAIL})

        assert created.created_at == clock.now()
        assert updated.name == "Ana"
        assert updated.step == LeadState.AWAITING_EMAIL
        assert updated.status == LeadStatus.NEW

    async def test_returned_leads_are_copies(self):
        store = InMemoryLeadStore()
        lead = await store.upsert("u1", {"interested_properties": ["a"]})
        lead.interested_properties.append("b")

        assert (await store.get("u1")).interested_properties == ["a"]

    async def test_unknown_fields_are_rejected(self):
        with pytest.raises(ValueError):
            await InMemoryLeadStore().upsert("u1", {"favourite_colour": "blue"})


class TestSupabaseLeadStore:
    async def test_get_maps_columns(self):
        client, query = make_supabase(
            data=[{"user_id": "u1", "name": "Ana", "lead_step": 2, "lead_status": "new"}]
        )

        lead = await SupabaseLeadStore(client).get("u1")

        client.table.assert_called_with("leads")
        query.eq.assert_called_with("user_id", "u1")
        assert lead.step == LeadState.AWAITING_EMAIL
        assert lead.name == "Ana"

    async def test_get_missing_returns_none(self):
        client, _ = make_supabase(data=[])
        assert await SupabaseLeadStore(client).get("u1") is None

    async def test_upsert_renames_step_and_serialises_enums(self):
        client, query = make_supabase(data=[{"user_id": "u1", "lead_step": 1}])

        lead = await SupabaseLeadStore(client).upsert("u1", {"step": LeadState.AWAITING_NAME})

        payload = query.upsert.call_args.args[0]
        assert payload["lead_step"] == 1
        assert payload["user_id"] == "u1"
        assert query.upsert.call_args.kwargs == {"on_conflict": "user_id"}
        assert lead.step == LeadState.AWAITING_NAME

    async def test_failure_raises_store_unavailable(self):
        client, _ = make_supabase(error=RuntimeError("connection reset"))
        with pytest.raises(StoreUnavailable):
            await SupabaseLeadStore(client).get("u1")


class TestHistoryStores:
    async def test_in_memory_recent_is_chronological_and_bounded(self, clock):
        store = InMemoryHistoryStore(now_provider=clock.now)
        for i in range(5):
            await store.append("s1", f"q{i}", f"a{i}")
        await store.append("other", "x", "y")

        turns = await store.recent("s1", 3)

        assert [t.user_message for t in turns] == ["q2", "q3", "q4"]

    async def test_in_memory_orders_by_timestamp(self, clock):
        times = iter([clock.now() + timedelta(minutes=2), clock.now()])
        store = InMemoryHistoryStore(now_provider=lambda: next(times))
        await store.append("s1", "late", "a")
        await store.append("s1", "early", "a")

        assert [t.user_message for t in await store.recent("s1", 10)] == ["early", "late"]

    async def test_zero_limit_returns_nothing(self):
        store = InMemoryHistoryStore()
        await store.append("s1", "q", "a")
        assert await store.recent("s1", 0) == []

    async def test_supabase_recent_reverses_newest_first_rows(self):
        rows = [
            {"session_id": "s1", "user_message": "new", "assistant_message": "a",
             "timestamp": "2026-03-01T10:00:00+00:00"},
            {"session_id": "s1", "user_message": "old", "assistant_message": "a",
             "timestamp": "2026-03-01T09:00:00+00:00"},
        ]
        client, query = make_supabase(data=rows)

        turns = await SupabaseHistoryStore(client).recent("s1", 10)

        query.order.assert_called_with("timestamp", desc=True)
        query.limit.assert_called_with(10)
        assert [t.user_message for t in turns] == ["old", "new"]

    async def test_supabase_append_failure_raises(self):
        client, _ = make_supabase(error=RuntimeError("timeout"))
        with pytest.raises(StoreUnavailable):
            await SupabaseHistoryStore(client).append("s1", "q", "a", user_id="u1")


class TestPropertyDirectories:
    async def test_in_memory_filters_and_limits(self, sample_properties):
        directory = InMemoryPropertyDirectory(sample_properties, limit=1)

        items = await directory.list(PropertyFilters(listing_type="rent"))

        assert [item.id for item in items] == ["p1"]
        assert items[0].source == MatchSource.STRUCTURED

    async def test_supabase_builds_and_combined_query(self):
        client, query = make_supabase(data=[{"id": 7, "title": "Villa", "price": 100}])

        items = await SupabasePropertyDirectory(client).list(
            PropertyFilters(category="Villa", location="lusail", max_price=5000, bedrooms=3)
        )

        query.ilike.assert_any_call("category", "Villa")
        query.ilike.assert_any_call("location", "%lusail%")
        query.lte.assert_called_with("price", 5000)
        query.eq.assert_called_with("bedrooms", 3)
        assert items[0].id == "7"

    async def test_supabase_failure_raises_store_unavailable(self):
        client, _ = make_supabase(error=RuntimeError("boom"))
        with pytest.raises(StoreUnavailable):
            await SupabasePropertyDirectory(client).list(PropertyFilters())


class TestVectorIndexes:
    async def test_in_memory_query_filters_and_ranks(self):
        index = InMemoryVectorIndex()
        await index.upsert(
            [
                VectorRecord(id="a", values=[1.0, 0.0], metadata={"kind": "property"}),
                VectorRecord(id="b", values=[1.0, 1.0], metadata={"kind": "property"}),
                VectorRecord(id="c", values=[1.0, 0.0], metadata={"kind": "document_chunk"}),
            ]
        )

        matches = await index.query([1.0, 0.0], top_k=5, filter={"kind": "property"})

        assert [m.id for m in matches] == ["a", "b"]
        assert matches[0].score == pytest.approx(1.0)

    async def test_in_memory_delete_where(self):
        index = InMemoryVectorIndex()
        await index.upsert(
            [
                VectorRecord(id="d#0", values=[1.0], metadata={"document_id": "d"}),
                VectorRecord(id="d#1", values=[1.0], metadata={"document_id": "d"}),
                VectorRecord(id="e#0", values=[1.0], metadata={"document_id": "e"}),
            ]
        )

        assert await index.delete_where({"document_id": "d"}) == 2
        assert list(index.records) == ["e#0"]

    async def test_supabase_query_calls_match_rpc(self):
        client, _ = make_supabase(
            data=[{"id": 3, "similarity": 0.77, "metadata": {"kind": "property"}}]
        )

        matches = await SupabaseVectorIndex(client).query([0.1, 0.2], top_k=5)

        client.rpc.assert_called_once_with(
            "match_documents", {"query_embedding": [0.1, 0.2], "match_count": 5, "filter": {}}
        )
        assert matches[0].id == "3"
        assert matches[0].score == 0.77

    async def test_supabase_query_failure_raises_index_unavailable(self):
        client, _ = make_supabase(error=RuntimeError("rpc missing"))
        with pytest.raises(IndexUnavailable):
            await SupabaseVectorIndex(client).query([0.1], top_k=5)

    async def test_supabase_delete_where_uses_metadata_containment(self):
        client, query = make_supabase(data=[{"id": "d#0"}, {"id": "d#1"}])

        deleted = await SupabaseVectorIndex(client).delete_where({"document_id": "d"})

        query.contains.assert_called_once_with("metadata", {"document_id": "d"})
        assert deleted == 2

    async def test_in_memory_fetch_returns_matching_records(self):
        index = InMemoryVectorIndex()
        await index.upsert(
            [
                VectorRecord(id="d#0", values=[1.0], metadata={"document_id": "d", "chunk_index": 0}),
                VectorRecord(id="e#0", values=[1.0], metadata={"document_id": "e", "chunk_index": 0}),
            ]
        )

        matches = await index.fetch({"document_id": "d"})

        assert [m.id for m in matches] == ["d#0"]
        assert matches[0].metadata["chunk_index"] == 0

    async def test_supabase_fetch_selects_by_metadata_containment(self):
        client, query = make_supabase(
            data=[{"id": "d#0", "metadata": {"document_id": "d", "chunk_index": 0}}]
        )

        matches = await SupabaseVectorIndex(client).fetch({"document_id": "d"})

        client.table.assert_called_once_with("documents")
        query.select.assert_called_once_with("id, metadata")
        query.contains.assert_called_once_with("metadata", {"document_id": "d"})
        assert matches[0].id == "d#0"
        assert matches[0].score == 0.0

    async def test_supabase_fetch_failure_raises_index_unavailable(self):
        client, _ = make_supabase(error=RuntimeError("timeout"))
        with pytest.raises(IndexUnavailable):
            await SupabaseVectorIndex(client).fetch({"document_id": "d"})

    async def test_supabase_delete_by_ids(self):
        client, query = make_supabase(data=[{"id": "d#1"}, {"id": "d#2"}])

        deleted = await SupabaseVectorIndex(client).delete(["d#1", "d#2"])

        query.in_.assert_called_once_with("id", ["d#1", "d#2"])
        assert deleted == 2

    async def test_supabase_delete_nothing_skips_the_call(self):
        client, query = make_supabase()

        assert await SupabaseVectorIndex(client).delete([]) == 0
        query.execute.assert_not_awaited()
