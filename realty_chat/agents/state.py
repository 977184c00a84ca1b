"""
Conversation graph state.

ConversationState is the dict that flows through the per-message LangGraph
pipeline. Each node reads what it needs and returns only the keys it sets:

    load_history → classify → load_lead → (route) → ... → persist
"""

from typing import TypedDict

from realty_chat.models.conversation import ConversationTurn
from realty_chat.models.intent import IntentMatch
from realty_chat.models.lead import Lead
from realty_chat.models.retrieval import PropertyFilters, RetrievalItem


class ConversationState(TypedDict, total=False):
    """Full state for one message through the conversation graph."""

    # Input
    session_id: str
    user_id: str | None
    message: str

    # Context loaded at turn start (history is chronological)
    history: list[ConversationTurn]
    intent: IntentMatch
    lead: Lead | None

    # Branch taken: start_lead | continue_lead | property_search | document_search
    route: str

    # Retrieval
    filters: PropertyFilters | None
    grounding: list[RetrievalItem]

    # Output
    response: str
    # False for lead field-collection turns and failed generations
    persist: bool


def create_initial_state(
    session_id: str,
    message: str,
    user_id: str | None = None,
) -> ConversationState:
    return {
        "session_id": session_id,
        "user_id": user_id,
        "message": message,
        "history": [],
        "lead": None,
        "filters": None,
        "grounding": [],
        "response": "",
        "persist": True,
    }
