"""Conversation history and chat result models."""

from datetime import datetime

from pydantic import BaseModel, Field


class ConversationTurn(BaseModel):
    """One persisted user/assistant exchange."""

    session_id: str
    user_id: str | None = None
    user_message: str
    assistant_message: str
    timestamp: datetime


class ChatResult(BaseModel):
    """Outcome of handling one message."""

    response: str
    session_id: str
    intent: str | None = Field(default=None, description="Intent label used for routing")
    route: str | None = Field(default=None, description="Branch that produced the response")
    error: str | None = Field(
        default=None, description="Failure category label; None on success"
    )
