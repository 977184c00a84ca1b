"""
Integration tests for the conversation orchestrator graph.

Every collaborator is an in-memory repository or a deterministic fake, so
the tests exercise the real routing, lead flow, retrieval and persistence.
"""

from unittest.mock import AsyncMock

import pytest

from realty_chat.agents.filters import extract_filters
from realty_chat.agents.intent_classifier import IntentCache
from realty_chat.agents.orchestrator import (
    CONTINUE_LEAD,
    DOCUMENT_SEARCH,
    PROPERTY_SEARCH,
    START_LEAD,
    build_orchestrator,
    choose_route,
)
from realty_chat.config import IntentConfig, Settings
from realty_chat.constants import (
    ASK_EMAIL_RESPONSE,
    ASK_NAME_RESPONSE,
    CLARIFY_RESPONSE,
    GENERATION_FAILED_RESPONSE,
    INTERNAL_ERROR_RESPONSE,
    LEAD_ALREADY_CAPTURED_RESPONSE,
    LEAD_CONFIRMATION_RESPONSE,
    NO_DATA_RESPONSE,
)
from realty_chat.errors import IndexUnavailable, StoreUnavailable
from realty_chat.models.intent import IntentMatch
from realty_chat.models.lead import Lead, LeadState
from realty_chat.models.retrieval import MatchSource
from realty_chat.services.history_store import InMemoryHistoryStore
from realty_chat.services.ingestion import ingest_document, ingest_properties
from realty_chat.services.lead_store import InMemoryLeadStore
from realty_chat.services.property_directory import InMemoryPropertyDirectory
from realty_chat.services.vector_index import InMemoryVectorIndex

CONTACT_MESSAGE = "Please contact me, I want an agent to call"
DEPOSIT_TEXT = "Our deposit policy: tenants pay one month deposit, refunded after the lease."


class Harness:
    def __init__(self, embedder, generator, notifier, intent_definitions, clock):
        self.embedder = embedder
        self.generator = generator
        self.notifier = notifier
        self.lead_store = InMemoryLeadStore(now_provider=clock.now)
        self.history_store = InMemoryHistoryStore(now_provider=clock.now)
        self.index = InMemoryVectorIndex()
        self.directory = InMemoryPropertyDirectory()
        self.cache = IntentCache(embedder, intent_definitions)
        self.orchestrator = build_orchestrator(
            Settings(),
            embedder=embedder,
            generator=generator,
            index=self.index,
            directory=self.directory,
            lead_store=self.lead_store,
            history_store=self.history_store,
            notifier=notifier,
            cache=self.cache,
        )

    async def seed(self, properties):
        await ingest_properties(
            properties, embedder=self.embedder, index=self.index, directory=self.directory
        )
        await ingest_document("policies", DEPOSIT_TEXT, embedder=self.embedder, index=self.index)
        self.embedder.calls.clear()


@pytest.fixture
async def harness(embedder, generator, notifier, intent_definitions, clock, sample_properties):
    h = Harness(embedder, generator, notifier, intent_definitions, clock)
    await h.seed(sample_properties)
    return h


class TestChooseRoute:
    def _state(self, intent, score, lead=None, user_id="u1"):
        return {"intent": IntentMatch(intent=intent, score=score), "lead": lead, "user_id": user_id}

    def test_high_intent_without_lead_starts_flow(self):
        assert choose_route(self._state("contact", 0.9), intents=IntentConfig()) == START_LEAD

    def test_high_intent_at_threshold_does_not_start_flow(self):
        assert choose_route(self._state("contact", 0.8), intents=IntentConfig()) == DOCUMENT_SEARCH

    def test_anonymous_user_never_starts_flow(self):
        state = self._state("viewing", 0.95, user_id=None)
        assert choose_route(state, intents=IntentConfig()) == DOCUMENT_SEARCH

    def test_existing_lead_continues_flow(self):
        lead = Lead(user_id="u1", step=LeadState.AWAITING_EMAIL)
        assert choose_route(self._state("greeting", 0.99, lead), intents=IntentConfig()) == CONTINUE_LEAD

    def test_lead_at_step_zero_counts_as_absent(self):
        lead = Lead(user_id="u1", step=LeadState.NOT_STARTED)
        assert choose_route(self._state("contact", 0.9, lead), intents=IntentConfig()) == START_LEAD

    def test_property_search_threshold(self):
        assert choose_route(self._state("property_search", 0.71), intents=IntentConfig()) == PROPERTY_SEARCH
        assert choose_route(self._state("property_search", 0.7), intents=IntentConfig()) == DOCUMENT_SEARCH


class TestLeadCaptureConversation:
    async def test_full_lead_flow(self, harness):
        orchestrator = harness.orchestrator

        first = await orchestrator.handle_message("s1", CONTACT_MESSAGE, user_id="u1")
        assert first.response == ASK_NAME_RESPONSE
        assert first.route == START_LEAD

        assert (await orchestrator.handle_message("s1", "John123", "u1")).response.startswith("Name")
        assert (await harness.lead_store.get("u1")).step == LeadState.AWAITING_NAME

        assert (await orchestrator.handle_message("s1", "O'Brien-Smith", "u1")).response == ASK_EMAIL_RESPONSE
        await orchestrator.handle_message("s1", "a@b.com", "u1")
        last = await orchestrator.handle_message("s1", "+15551234567", "u1")

        assert last.response == LEAD_CONFIRMATION_RESPONSE
        lead = await harness.lead_store.get("u1")
        assert lead.step == LeadState.COMPLETE
        assert lead.name == "O'Brien-Smith"
        assert len(harness.notifier.leads) == 1
        # Field-collection exchanges are not conversation history
        assert await harness.history_store.recent("s1", 10) == []
        assert harness.generator.calls == []

    async def test_completed_lead_gets_acknowledgement(self, harness):
        await harness.lead_store.upsert("u1", {"name": "Ana", "step": LeadState.COMPLETE})
        before = await harness.lead_store.get("u1")

        result = await harness.orchestrator.handle_message("s1", CONTACT_MESSAGE, "u1")

        assert result.response == LEAD_ALREADY_CAPTURED_RESPONSE
        assert await harness.lead_store.get("u1") == before
        assert harness.notifier.leads == []

    async def test_lead_context_captures_earlier_questions(self, harness):
        await harness.orchestrator.handle_message("s1", "2 bedroom apartment in lusail", "u1")
        await harness.lead_store.upsert("u1", {"step": LeadState.AWAITING_PHONE})

        await harness.orchestrator.handle_message("s1", "+97455512345", "u1")

        lead = await harness.lead_store.get("u1")
        assert lead.interested_properties == [
            "Q: 2 bedroom apartment in lusail | A: Here is what I found."
        ]

    async def test_lead_store_failure_reports_category(self, harness):
        harness.lead_store.get = AsyncMock(side_effect=StoreUnavailable("db down"))

        result = await harness.orchestrator.handle_message("s1", CONTACT_MESSAGE, "u1")

        assert result.error == "store_unavailable"
        assert result.response == INTERNAL_ERROR_RESPONSE
        assert result.session_id == "s1"


class TestPropertySearch:
    async def test_structured_and_semantic_matches_merge(self, harness):
        result = await harness.orchestrator.handle_message(
            "s1", "2 bedroom apartment under 5000 in lusail", "u1"
        )

        assert result.route == PROPERTY_SEARCH
        assert result.response == "Here is what I found."
        [call] = harness.generator.calls
        assert "/property/p1" in call["system_prompt"]
        # p3 is over budget and p2 is a villa: neither may ground the answer
        assert "/property/p3" not in call["system_prompt"]
        assert "/property/p2" not in call["system_prompt"]
        assert call["temperature"] == 0.0
        assert call["max_tokens"] == 500

    async def test_grounding_is_deduplicated(self, harness):
        engine = harness.orchestrator.retrieval
        structured = await engine.search_properties(extract_filters("2 bedroom apartment in lusail"))
        semantic = await engine.search_semantic("2 bedroom apartment", filter={"kind": "property"})

        merged = engine.merge(structured, semantic)

        ids = [item.id for item in merged]
        assert ids.count("p1") == 1
        p1 = merged[ids.index("p1")]
        assert p1.source == MatchSource.BOTH
        assert p1.score == 0.9

    async def test_no_matching_property_yields_no_data(self, harness):
        result = await harness.orchestrator.handle_message(
            "s1", "2 bedroom apartment in al khor", "u1"
        )

        assert result.route == PROPERTY_SEARCH
        assert result.response == NO_DATA_RESPONSE
        assert harness.generator.calls == []

    async def test_turn_is_persisted(self, harness):
        await harness.orchestrator.handle_message("s1", "villa", "u1")

        [turn] = await harness.history_store.recent("s1", 10)
        assert turn.user_message == "villa"
        assert turn.user_id == "u1"


class TestDocumentSearch:
    async def test_document_question_is_grounded_in_chunks(self, harness):
        result = await harness.orchestrator.handle_message("s1", "What is the deposit policy?")

        assert result.route == DOCUMENT_SEARCH
        [call] = harness.generator.calls
        assert "[document policies, part 1/1]" in call["system_prompt"]
        assert DEPOSIT_TEXT in call["system_prompt"]

    async def test_unrelated_question_yields_no_data(self, harness):
        result = await harness.orchestrator.handle_message("s1", "zzz qqq")

        assert result.response == NO_DATA_RESPONSE
        assert harness.generator.calls == []

    async def test_history_reaches_the_prompt(self, harness):
        await harness.orchestrator.handle_message("s1", "What is the deposit policy?")
        await harness.orchestrator.handle_message("s1", "and the maintenance policy?")

        second_prompt = harness.generator.calls[1]["system_prompt"]
        assert "User: What is the deposit policy?" in second_prompt


class TestDegradation:
    async def test_embedding_outage_degrades_to_no_data(self, harness):
        harness.embedder.fail = True

        result = await harness.orchestrator.handle_message("s1", "What is the deposit policy?", "u1")

        assert result.error is None
        assert result.response == NO_DATA_RESPONSE
        # No lead was started by a failed classification
        assert await harness.lead_store.get("u1") is None

    async def test_generation_failure_returns_apology_and_skips_history(self, harness):
        harness.generator.fail = True

        result = await harness.orchestrator.handle_message("s1", "What is the deposit policy?")

        assert result.response == GENERATION_FAILED_RESPONSE
        assert await harness.history_store.recent("s1", 10) == []

    async def test_history_read_failure_is_tolerated(self, harness):
        harness.history_store.recent = AsyncMock(side_effect=StoreUnavailable("down"))

        result = await harness.orchestrator.handle_message("s1", "What is the deposit policy?")

        assert result.error is None
        assert result.response == "Here is what I found."

    async def test_unexpected_failure_is_internal_error(self, harness):
        harness.history_store.append = AsyncMock(side_effect=KeyError("boom"))

        result = await harness.orchestrator.handle_message("s1", "What is the deposit policy?")

        assert result.error == "internal_error"
        assert result.response == INTERNAL_ERROR_RESPONSE
        assert "boom" not in result.response

    async def test_index_outage_degrades_to_no_data(self, harness):
        harness.index.query = AsyncMock(side_effect=IndexUnavailable("down"))

        result = await harness.orchestrator.handle_message("s1", "What is the deposit policy?")

        assert result.response == NO_DATA_RESPONSE


class TestSessionsAndDeterminism:
    async def test_session_id_is_generated_when_absent(self, harness):
        result = await harness.orchestrator.handle_message(None, "hello")
        assert result.session_id
        assert result.response

    async def test_blank_message_gets_clarifying_prompt(self, harness):
        result = await harness.orchestrator.handle_message("s1", "   ")
        assert result.response == CLARIFY_RESPONSE

    async def test_intent_cache_is_built_once(self, harness):
        await harness.orchestrator.handle_message("s1", "hello")
        await harness.orchestrator.handle_message("s1", "hello again")

        total_examples = sum(len(d.examples) for d in harness.cache.definitions)
        batch_calls = [call for call in harness.embedder.calls if len(call) == total_examples]
        assert len(batch_calls) == 1

    async def test_same_message_same_outcome(self, harness):
        first = await harness.orchestrator.handle_message("a", "2 bedroom apartment in lusail")
        second = await harness.orchestrator.handle_message("b", "2 bedroom apartment in lusail")

        assert (first.intent, first.route, first.response) == (
            second.intent,
            second.route,
            second.response,
        )
        assert harness.generator.calls[0]["system_prompt"] == harness.generator.calls[1]["system_prompt"]
