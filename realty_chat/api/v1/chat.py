"""
Chat API endpoint.

Endpoint:
    POST /api/v1/chat

Request body:
    { "message": string, "session_id": string | null, "user_id": string | null }

Response body:
    { "response": string, "session_id": string }

Errors:
    422 — empty message
    503 — conversation engine not initialised
    500 — {"error": "<category>"}; no internal detail is exposed
"""

import uuid

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from realty_chat.constants import UNSAFE_INPUT_RESPONSE
from realty_chat.services.safety import sanitize_input

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""

    message: str
    session_id: str | None = Field(default=None, description="Omit to start a new session")
    user_id: str | None = Field(default=None, description="Required for lead capture")


class ChatResponse(BaseModel):
    """Response body for the chat endpoint."""

    response: str
    session_id: str


@router.post("", response_model=ChatResponse)
async def chat(body: ChatRequest, request: Request):
    """
    Answer one message from the property corpus, or advance the lead
    capture flow when the user asks to be contacted.

    Example usage with curl:
    ```
    curl -X POST http://localhost:8000/api/v1/chat \\
      -H "Content-Type: application/json" \\
      -d '{"message": "2 bedroom apartment under 5000 in lusail", "user_id": "u-1"}'
    ```
    """
    if not body.message or not body.message.strip():
        raise HTTPException(status_code=422, detail="Message must not be empty.")

    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Chat service not available.")

    structlog.contextvars.bind_contextvars(
        user_id=body.user_id, message_preview=body.message[:50]
    )

    message = sanitize_input(body.message.strip())
    if message is None:
        return ChatResponse(
            response=UNSAFE_INPUT_RESPONSE,
            session_id=body.session_id or str(uuid.uuid4()),
        )

    result = await orchestrator.handle_message(body.session_id, message, user_id=body.user_id)
    if result.error:
        logger.error("chat_failed", error=result.error, session_id=result.session_id)
        return JSONResponse(status_code=500, content={"error": result.error})

    return ChatResponse(response=result.response, session_id=result.session_id)


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check for the chat service."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    cache_ready = orchestrator is not None and not orchestrator.classifier.cache.is_empty()
    return {
        "status": "healthy" if orchestrator is not None else "unavailable",
        "service": "realty-chat",
        "intent_cache_ready": cache_ready,
    }
