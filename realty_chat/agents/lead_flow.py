"""
Lead capture state machine.

    NOT_STARTED ─enter─▶ AWAITING_NAME ─name─▶ AWAITING_EMAIL ─email─▶ AWAITING_PHONE ─phone─▶ COMPLETE

advance() is the pure transition: (state, message) → LeadTransition. It
never touches storage. Invalid input leaves the state where it was, so
replaying a bad message any number of times is a no-op.

LeadCaptureFlow applies transitions against a LeadStore, attaches recent
conversation context when the flow completes, and hands the finished lead
to a NotificationSink (best-effort).
"""

import re
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from realty_chat.constants import (
    ASK_EMAIL_RESPONSE,
    ASK_NAME_RESPONSE,
    ASK_PHONE_RESPONSE,
    INVALID_EMAIL_RESPONSE,
    INVALID_NAME_RESPONSE,
    INVALID_PHONE_RESPONSE,
    LEAD_ALREADY_CAPTURED_RESPONSE,
    LEAD_CONFIRMATION_RESPONSE,
)
from realty_chat.errors import StoreUnavailable, ValidationFailure
from realty_chat.models.conversation import ConversationTurn
from realty_chat.models.lead import Lead, LeadState
from realty_chat.services.history_store import HistoryStore
from realty_chat.services.lead_store import LeadStore
from realty_chat.services.notification import NotificationSink

logger = structlog.get_logger(__name__)

NAME_PATTERN = re.compile(r"^[A-Za-z\s'-]+$")
PHONE_PATTERN = re.compile(r"^\+?\d{7,15}$")

# Longest interest line kept on the lead
_INTEREST_MAX_CHARS = 300


class LeadTransition(BaseModel):
    """Result of feeding one message to the state machine."""

    model_config = ConfigDict(frozen=True)

    state: LeadState
    response: str
    updates: dict[str, Any] = Field(default_factory=dict)
    accepted: bool = True

    @property
    def completed(self) -> bool:
        """True when this transition reached COMPLETE by accepting the phone."""
        return self.accepted and self.state == LeadState.COMPLETE and "phone" in self.updates


def validate_name(value: str) -> str:
    if not NAME_PATTERN.match(value):
        raise ValidationFailure("name", INVALID_NAME_RESPONSE)
    return value


def validate_email(value: str) -> str:
    if "@" not in value:
        raise ValidationFailure("email", INVALID_EMAIL_RESPONSE)
    return value


def validate_phone(value: str) -> str:
    if not PHONE_PATTERN.match(value):
        raise ValidationFailure("phone", INVALID_PHONE_RESPONSE)
    return value


# state → (field, validator, next state, prompt for the next field)
_COLLECTION_STEPS = {
    LeadState.AWAITING_NAME: ("name", validate_name, LeadState.AWAITING_EMAIL, ASK_EMAIL_RESPONSE),
    LeadState.AWAITING_EMAIL: ("email", validate_email, LeadState.AWAITING_PHONE, ASK_PHONE_RESPONSE),
    LeadState.AWAITING_PHONE: ("phone", validate_phone, LeadState.COMPLETE, LEAD_CONFIRMATION_RESPONSE),
}


def advance(state: LeadState, message: str) -> LeadTransition:
    """
    Pure lead-flow transition.

    NOT_STARTED enters the flow regardless of the message. In the three
    collecting states the stripped message is validated as the awaited
    field. COMPLETE only acknowledges.
    """
    if state == LeadState.NOT_STARTED:
        return LeadTransition(
            state=LeadState.AWAITING_NAME,
            response=ASK_NAME_RESPONSE,
            updates={"step": LeadState.AWAITING_NAME},
        )

    if state == LeadState.COMPLETE:
        return LeadTransition(state=state, response=LEAD_ALREADY_CAPTURED_RESPONSE)

    field, validator, next_state, next_prompt = _COLLECTION_STEPS[state]
    value = (message or "").strip()
    try:
        validator(value)
    except ValidationFailure as failure:
        return LeadTransition(state=state, response=failure.message, accepted=False)

    return LeadTransition(
        state=next_state,
        response=next_prompt,
        updates={field: value, "step": next_state},
    )


def summarize_turns(turns: list[ConversationTurn]) -> list[str]:
    """Render recent turns as the lead's interested_properties lines."""
    lines: list[str] = []
    for turn in turns:
        line = f"Q: {turn.user_message} | A: {turn.assistant_message}"
        if len(line) > _INTEREST_MAX_CHARS:
            line = line[: _INTEREST_MAX_CHARS - 3] + "..."
        lines.append(line)
    return lines


class LeadCaptureFlow:
    """Applies lead transitions to storage and notifies on completion."""

    def __init__(
        self,
        lead_store: LeadStore,
        history_store: HistoryStore,
        notifier: NotificationSink,
        context_turns: int = 5,
    ) -> None:
        self.lead_store = lead_store
        self.history_store = history_store
        self.notifier = notifier
        self.context_turns = context_turns

    async def start(self, user_id: str) -> str:
        """Create (or reset) the lead at AWAITING_NAME and ask for the name."""
        transition = advance(LeadState.NOT_STARTED, "")
        await self.lead_store.upsert(user_id, dict(transition.updates))
        logger.info("lead_flow_started", user_id=user_id)
        return transition.response

    async def step(self, lead: Lead, message: str, session_id: str) -> str:
        """
        Consume `message` for the lead's current step and return the reply.

        Raises:
            StoreUnavailable: the lead could not be written.
        """
        transition = advance(lead.step, message)

        if not transition.accepted:
            logger.info("lead_step_rejected", user_id=lead.user_id, step=int(lead.step))
            return transition.response
        if not transition.updates:
            return transition.response

        updates = dict(transition.updates)
        if transition.completed:
            updates["interested_properties"] = await self._recent_context(session_id)

        saved = await self.lead_store.upsert(lead.user_id, updates)
        logger.info("lead_step_accepted", user_id=lead.user_id, step=int(saved.step))

        if transition.completed:
            await self._notify(saved)

        return transition.response

    async def _recent_context(self, session_id: str) -> list[str]:
        try:
            turns = await self.history_store.recent(session_id, self.context_turns)
        except StoreUnavailable:
            logger.warning("lead_context_unavailable", session_id=session_id)
            return []
        return summarize_turns(turns)

    async def _notify(self, lead: Lead) -> None:
        try:
            delivered = await self.notifier.notify(lead)
        except Exception:
            logger.exception("lead_notification_failed", user_id=lead.user_id)
            return
        if not delivered:
            logger.error("lead_notification_failed", user_id=lead.user_id)
