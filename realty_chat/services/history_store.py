"""Chat history store contract and repositories."""

from collections import defaultdict
from datetime import UTC, datetime
from typing import Protocol

import structlog
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from realty_chat.errors import StoreUnavailable
from realty_chat.models.conversation import ConversationTurn

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class HistoryStore(Protocol):
    """Append-only log of user/assistant exchanges per session."""

    async def append(
        self,
        session_id: str,
        user_message: str,
        assistant_message: str,
        user_id: str | None = None,
    ) -> None:
        """Persist one turn."""

    async def recent(self, session_id: str, limit: int) -> list[ConversationTurn]:
        """Return the newest `limit` turns in chronological order."""


class InMemoryHistoryStore:
    """In-memory repository used for tests and local fallback."""

    def __init__(self, now_provider=_utcnow) -> None:
        self.turns: dict[str, list[ConversationTurn]] = defaultdict(list)
        self.now_provider = now_provider

    async def append(
        self,
        session_id: str,
        user_message: str,
        assistant_message: str,
        user_id: str | None = None,
    ) -> None:
        self.turns[session_id].append(
            ConversationTurn(
                session_id=session_id,
                user_id=user_id,
                user_message=user_message,
                assistant_message=assistant_message,
                timestamp=self.now_provider(),
            )
        )

    async def recent(self, session_id: str, limit: int) -> list[ConversationTurn]:
        if limit <= 0:
            return []
        # Stable sort keeps append order for equal timestamps
        turns = sorted(self.turns.get(session_id, []), key=lambda t: t.timestamp)
        return [turn.model_copy() for turn in turns[-limit:]]


class SupabaseHistoryStore:
    """Supabase-backed history (table `chat_history`)."""

    def __init__(self, client: AsyncSupabaseClient, table: str = "chat_history") -> None:
        self.client = client
        self.table = table

    async def append(
        self,
        session_id: str,
        user_message: str,
        assistant_message: str,
        user_id: str | None = None,
    ) -> None:
        data = {
            "session_id": session_id,
            "user_message": user_message,
            "assistant_message": assistant_message,
            "user_id": user_id,
            "timestamp": _utcnow().isoformat(),
        }
        try:
            await self.client.table(self.table).insert(data).execute()
        except Exception as exc:
            logger.warning("history_append_failed", session_id=session_id, error=str(exc))
            raise StoreUnavailable(f"history append failed: {exc}") from exc

    async def recent(self, session_id: str, limit: int) -> list[ConversationTurn]:
        if limit <= 0:
            return []
        try:
            response = (
                await self.client.table(self.table)
                .select("session_id, user_id, user_message, assistant_message, timestamp")
                .eq("session_id", session_id)
                .order("timestamp", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as exc:
            logger.warning("history_fetch_failed", session_id=session_id, error=str(exc))
            raise StoreUnavailable(f"history fetch failed: {exc}") from exc

        # Newest first from the query; callers want chronological
        rows = list(reversed(response.data or []))
        return [ConversationTurn.model_validate(row) for row in rows]
