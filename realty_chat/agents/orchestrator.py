"""
Conversation orchestrator LangGraph pipeline.

Graph topology:
    START → load_history → classify → load_lead ─┬─ start_lead ──────────────┐
                                                 ├─ continue_lead ───────────┤
                                                 ├─ property_search ─ generate ┤→ persist → END
                                                 └─ document_search ─ generate ┘

Nodes:
    load_history     — bounded, chronological history for the session
    classify         — ensure the intent cache, then classify the message
    load_lead        — look up the user's lead (skipped without a user_id)
    start_lead       — open the lead flow (ask for the name)
    continue_lead    — consume the message as the awaited lead field
    property_search  — structured directory lookup merged with semantic property matches
    document_search  — semantic top-K over the vector index
    generate         — grounded answer, or the fixed no-data response
    persist          — append the turn unless it was a lead field-collection exchange

Degradation:
    classification failure → "unknown" routing
    retrieval failure      → empty grounding → no-data response
    generation failure     → fixed apology, turn not persisted
    lead store failure     → ChatResult(error="store_unavailable")
"""

import uuid

import structlog
from langgraph.graph import END, StateGraph

from realty_chat.agents.filters import extract_filters
from realty_chat.agents.intent_classifier import IntentCache, IntentClassifier
from realty_chat.agents.lead_flow import LeadCaptureFlow
from realty_chat.agents.prompts import build_system_prompt
from realty_chat.agents.retrieval import RetrievalEngine
from realty_chat.agents.state import ConversationState, create_initial_state
from realty_chat.config import ConversationConfig, IntentConfig, Settings
from realty_chat.constants import (
    CLARIFY_RESPONSE,
    GENERATION_FAILED_RESPONSE,
    INTERNAL_ERROR_RESPONSE,
    NO_DATA_RESPONSE,
)
from realty_chat.errors import (
    EmbeddingUnavailable,
    GenerationUnavailable,
    IndexUnavailable,
    RealtyChatError,
    StoreUnavailable,
)
from realty_chat.models.conversation import ChatResult
from realty_chat.models.intent import IntentMatch
from realty_chat.models.lead import LeadState
from realty_chat.models.retrieval import PropertyItem
from realty_chat.prompts.intent_examples import INTENT_EXAMPLES
from realty_chat.services.embeddings import EmbeddingProvider
from realty_chat.services.generation import GenerationProvider
from realty_chat.services.history_store import HistoryStore
from realty_chat.services.lead_store import LeadStore
from realty_chat.services.notification import NotificationSink
from realty_chat.services.property_directory import PropertyDirectory
from realty_chat.services.vector_index import VectorIndex

logger = structlog.get_logger(__name__)

START_LEAD = "start_lead"
CONTINUE_LEAD = "continue_lead"
PROPERTY_SEARCH = "property_search"
DOCUMENT_SEARCH = "document_search"

# Metadata filter restricting the index to property vectors
_PROPERTY_VECTORS = {"kind": "property"}


# ---------------------------------------------------------------------------
# Context nodes
# ---------------------------------------------------------------------------


async def load_history_node(
    state: ConversationState, *, history_store: HistoryStore, limit: int
) -> dict:
    try:
        history = await history_store.recent(state["session_id"], limit)
    except StoreUnavailable:
        logger.warning("history_unavailable", session_id=state["session_id"])
        history = []
    return {"history": history}


async def classify_node(state: ConversationState, *, classifier: IntentClassifier) -> dict:
    """
    Ensure the example cache is built, then classify.

    Any embedding failure (cache build or message) routes as unknown.
    """
    try:
        await classifier.cache.ensure_built()
        intent = await classifier.classify(state["message"])
    except EmbeddingUnavailable:
        logger.warning("intent_classification_failed")
        intent = IntentMatch.unknown()
    return {"intent": intent}


async def load_lead_node(state: ConversationState, *, lead_store: LeadStore) -> dict:
    """Look up the user's lead. StoreUnavailable propagates to the caller."""
    user_id = state.get("user_id")
    if not user_id:
        return {"lead": None}
    return {"lead": await lead_store.get(user_id)}


def choose_route(state: ConversationState, *, intents: IntentConfig) -> str:
    """
    Pick the branch for this message.

    A lead at step 0 counts as absent. Messages from anonymous users never
    enter the lead flow.
    """
    intent = state.get("intent") or IntentMatch.unknown()
    lead = state.get("lead")
    has_lead = lead is not None and lead.step != LeadState.NOT_STARTED

    if has_lead:
        return CONTINUE_LEAD
    if state.get("user_id") and intent.qualifies(intents.high_intent_labels, intents.lead_threshold):
        return START_LEAD
    if intent.qualifies(intents.property_search_labels, intents.property_search_threshold):
        return PROPERTY_SEARCH
    return DOCUMENT_SEARCH


# ---------------------------------------------------------------------------
# Lead nodes
# ---------------------------------------------------------------------------


async def start_lead_node(state: ConversationState, *, lead_flow: LeadCaptureFlow) -> dict:
    response = await lead_flow.start(state["user_id"])
    return {"route": START_LEAD, "response": response, "persist": False}


async def continue_lead_node(state: ConversationState, *, lead_flow: LeadCaptureFlow) -> dict:
    lead = state["lead"]
    response = await lead_flow.step(lead, state["message"], state["session_id"])
    # Field-collection exchanges (including the one that completes the flow)
    # are not conversation history
    return {"route": CONTINUE_LEAD, "response": response, "persist": not lead.step.collecting}


# ---------------------------------------------------------------------------
# Retrieval nodes
# ---------------------------------------------------------------------------


async def property_search_node(
    state: ConversationState,
    *,
    retrieval: RetrievalEngine,
) -> dict:
    """Structured lookup, merged with filter-consistent semantic property matches."""
    filters = extract_filters(state["message"])

    try:
        structured = await retrieval.search_properties(filters)
    except StoreUnavailable:
        logger.warning("property_directory_unavailable")
        structured = []

    semantic = []
    if retrieval.config.merge_semantic_properties:
        try:
            matches = await retrieval.search_semantic(state["message"], filter=_PROPERTY_VECTORS)
        except (EmbeddingUnavailable, IndexUnavailable) as exc:
            logger.warning("semantic_retrieval_failed", error=exc.category)
            matches = []
        semantic = [
            item for item in matches if isinstance(item, PropertyItem) and filters.matches(item)
        ]

    return {
        "route": PROPERTY_SEARCH,
        "filters": filters,
        "grounding": retrieval.merge(structured, semantic),
    }


async def document_search_node(
    state: ConversationState,
    *,
    retrieval: RetrievalEngine,
) -> dict:
    try:
        grounding = await retrieval.search_semantic(state["message"])
    except (EmbeddingUnavailable, IndexUnavailable) as exc:
        logger.warning("semantic_retrieval_failed", error=exc.category)
        grounding = []
    return {"route": DOCUMENT_SEARCH, "grounding": grounding[: retrieval.config.merge_cap]}


# ---------------------------------------------------------------------------
# Generation + persistence
# ---------------------------------------------------------------------------


async def generate_node(
    state: ConversationState,
    *,
    generator: GenerationProvider,
    conversation: ConversationConfig,
) -> dict:
    """
    Answer from the grounding. No grounding means the fixed no-data
    response; the generator is not called.
    """
    grounding = state.get("grounding") or []
    if not grounding:
        logger.info("no_grounding_found", route=state.get("route"))
        return {"response": NO_DATA_RESPONSE}

    system_prompt = build_system_prompt(
        state["message"],
        grounding,
        state.get("history") or [],
        max_history_turns=conversation.prompt_history_turns,
    )
    try:
        response = await generator.generate(
            system_prompt,
            state["message"],
            max_tokens=conversation.max_tokens,
            temperature=conversation.temperature,
        )
    except GenerationUnavailable:
        logger.warning("generation_failed", route=state.get("route"), grounding=len(grounding))
        return {"response": GENERATION_FAILED_RESPONSE, "persist": False}

    return {"response": response}


async def persist_node(state: ConversationState, *, history_store: HistoryStore) -> dict:
    if not state.get("persist", True) or not state.get("response"):
        return {}
    try:
        await history_store.append(
            state["session_id"],
            state["message"],
            state["response"],
            user_id=state.get("user_id"),
        )
    except StoreUnavailable:
        logger.error("history_append_failed", session_id=state["session_id"])
    return {}


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


def build_conversation_graph(
    *,
    classifier: IntentClassifier,
    retrieval: RetrievalEngine,
    lead_flow: LeadCaptureFlow,
    generator: GenerationProvider,
    lead_store: LeadStore,
    history_store: HistoryStore,
    intents: IntentConfig,
    conversation: ConversationConfig,
):
    """
    Build the per-message conversation graph.

    Returns:
        Compiled StateGraph ready for ainvoke()
    """
    graph = StateGraph(ConversationState)

    # Wrap each async node in an async function (not a lambda) so LangGraph
    # awaits the coroutine.

    async def load_history_with_services(state: ConversationState) -> dict:
        return await load_history_node(
            state, history_store=history_store, limit=conversation.history_limit
        )

    async def classify_with_services(state: ConversationState) -> dict:
        return await classify_node(state, classifier=classifier)

    async def load_lead_with_services(state: ConversationState) -> dict:
        return await load_lead_node(state, lead_store=lead_store)

    def route_with_config(state: ConversationState) -> str:
        return choose_route(state, intents=intents)

    async def start_lead_with_services(state: ConversationState) -> dict:
        return await start_lead_node(state, lead_flow=lead_flow)

    async def continue_lead_with_services(state: ConversationState) -> dict:
        return await continue_lead_node(state, lead_flow=lead_flow)

    async def property_search_with_services(state: ConversationState) -> dict:
        return await property_search_node(state, retrieval=retrieval)

    async def document_search_with_services(state: ConversationState) -> dict:
        return await document_search_node(state, retrieval=retrieval)

    async def generate_with_services(state: ConversationState) -> dict:
        return await generate_node(state, generator=generator, conversation=conversation)

    async def persist_with_services(state: ConversationState) -> dict:
        return await persist_node(state, history_store=history_store)

    graph.add_node("load_history", load_history_with_services)
    graph.add_node("classify", classify_with_services)
    graph.add_node("load_lead", load_lead_with_services)
    graph.add_node(START_LEAD, start_lead_with_services)
    graph.add_node(CONTINUE_LEAD, continue_lead_with_services)
    graph.add_node(PROPERTY_SEARCH, property_search_with_services)
    graph.add_node(DOCUMENT_SEARCH, document_search_with_services)
    graph.add_node("generate", generate_with_services)
    graph.add_node("persist", persist_with_services)

    graph.set_entry_point("load_history")
    graph.add_edge("load_history", "classify")
    graph.add_edge("classify", "load_lead")
    graph.add_conditional_edges(
        "load_lead",
        route_with_config,
        {
            START_LEAD: START_LEAD,
            CONTINUE_LEAD: CONTINUE_LEAD,
            PROPERTY_SEARCH: PROPERTY_SEARCH,
            DOCUMENT_SEARCH: DOCUMENT_SEARCH,
        },
    )
    graph.add_edge(START_LEAD, "persist")
    graph.add_edge(CONTINUE_LEAD, "persist")
    graph.add_edge(PROPERTY_SEARCH, "generate")
    graph.add_edge(DOCUMENT_SEARCH, "generate")
    graph.add_edge("generate", "persist")
    graph.add_edge("persist", END)

    return graph.compile()


class ConversationOrchestrator:
    """
    Entry point for one chat message.

    Usage:
        orchestrator = build_orchestrator(settings, embedder=..., generator=..., ...)
        result = await orchestrator.handle_message(session_id, "2 bedroom in lusail")
    """

    def __init__(
        self,
        *,
        classifier: IntentClassifier,
        retrieval: RetrievalEngine,
        lead_flow: LeadCaptureFlow,
        generator: GenerationProvider,
        lead_store: LeadStore,
        history_store: HistoryStore,
        intents: IntentConfig | None = None,
        conversation: ConversationConfig | None = None,
    ) -> None:
        self.classifier = classifier
        self.retrieval = retrieval
        self.lead_flow = lead_flow
        self.graph = build_conversation_graph(
            classifier=classifier,
            retrieval=retrieval,
            lead_flow=lead_flow,
            generator=generator,
            lead_store=lead_store,
            history_store=history_store,
            intents=intents or IntentConfig(),
            conversation=conversation or ConversationConfig(),
        )

    async def handle_message(
        self,
        session_id: str | None,
        message: str,
        user_id: str | None = None,
    ) -> ChatResult:
        """
        Route, answer and record one message. Never raises and never returns
        an empty response; failures are reported through `ChatResult.error`.
        """
        session_id = session_id or str(uuid.uuid4())

        with structlog.contextvars.bound_contextvars(session_id=session_id):
            if not (message or "").strip():
                return ChatResult(response=CLARIFY_RESPONSE, session_id=session_id)

            try:
                final = await self.graph.ainvoke(
                    create_initial_state(session_id, message, user_id=user_id)
                )
            except StoreUnavailable as exc:
                logger.error("lead_store_unavailable", user_id=user_id, error=str(exc))
                return ChatResult(
                    response=INTERNAL_ERROR_RESPONSE,
                    session_id=session_id,
                    error=exc.category,
                )
            except Exception as exc:
                logger.exception("handle_message_failed", user_id=user_id)
                category = exc.category if isinstance(exc, RealtyChatError) else "internal_error"
                return ChatResult(
                    response=INTERNAL_ERROR_RESPONSE,
                    session_id=session_id,
                    error=category,
                )

            intent = final.get("intent")
            result = ChatResult(
                response=final.get("response") or CLARIFY_RESPONSE,
                session_id=session_id,
                intent=intent.intent if intent else None,
                route=final.get("route"),
            )
            logger.info("message_handled", route=result.route, intent=result.intent)
            return result


def build_orchestrator(
    settings: Settings,
    *,
    embedder: EmbeddingProvider,
    generator: GenerationProvider,
    index: VectorIndex,
    directory: PropertyDirectory,
    lead_store: LeadStore,
    history_store: HistoryStore,
    notifier: NotificationSink,
    cache: IntentCache | None = None,
) -> ConversationOrchestrator:
    """Wire the conversation engine from settings and collaborators."""
    cache = cache or IntentCache(embedder, INTENT_EXAMPLES)
    return ConversationOrchestrator(
        classifier=IntentClassifier(embedder, cache),
        retrieval=RetrievalEngine(embedder, index, directory, settings.retrieval),
        lead_flow=LeadCaptureFlow(
            lead_store,
            history_store,
            notifier,
            context_turns=settings.conversation.lead_context_turns,
        ),
        generator=generator,
        lead_store=lead_store,
        history_store=history_store,
        intents=settings.intents,
        conversation=settings.conversation,
    )
