"""Lead store contract and repositories."""

from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from realty_chat.errors import StoreUnavailable
from realty_chat.models.lead import Lead, LeadState, LeadStatus

logger = structlog.get_logger(__name__)

LEAD_FIELDS = {"name", "email", "phone", "interested_properties", "status", "step"}

# Model field → leads table column
_COLUMN_NAMES = {"status": "lead_status", "step": "lead_step"}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - LEAD_FIELDS
    if unknown:
        raise ValueError(f"unknown lead fields: {sorted(unknown)}")


class LeadStore(Protocol):
    """Storage contract for leads, keyed by user_id."""

    async def get(self, user_id: str) -> Lead | None:
        """Fetch the user's lead, or None."""

    async def upsert(self, user_id: str, fields: dict[str, Any]) -> Lead:
        """Create the lead or update the given fields in place."""


class InMemoryLeadStore:
    """In-memory repository used for tests and local fallback."""

    def __init__(self, now_provider=_utcnow) -> None:
        self.leads: dict[str, Lead] = {}
        self.now_provider = now_provider

    async def get(self, user_id: str) -> Lead | None:
        lead = self.leads.get(user_id)
        return lead.model_copy(deep=True) if lead else None

    async def upsert(self, user_id: str, fields: dict[str, Any]) -> Lead:
        _check_fields(fields)
        now = self.now_provider()
        existing = self.leads.get(user_id)
        if existing is None:
            stored = Lead(user_id=user_id, created_at=now, updated_at=now, **fields)
        else:
            stored = Lead.model_validate({**existing.model_dump(), **fields, "updated_at": now})
        self.leads[user_id] = stored
        return stored.model_copy(deep=True)


class SupabaseLeadStore:
    """Supabase-backed lead repository (table `leads`, unique on user_id)."""

    def __init__(self, client: AsyncSupabaseClient, table: str = "leads") -> None:
        self.client = client
        self.table = table

    @staticmethod
    def _to_lead(row: dict[str, Any]) -> Lead:
        return Lead(
            user_id=row["user_id"],
            name=row.get("name"),
            email=row.get("email"),
            phone=row.get("phone"),
            interested_properties=row.get("interested_properties") or [],
            status=row.get("lead_status") or LeadStatus.NEW,
            step=row.get("lead_step") or LeadState.NOT_STARTED,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    async def get(self, user_id: str) -> Lead | None:
        try:
            response = (
                await self.client.table(self.table)
                .select("*")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            logger.warning("lead_fetch_failed", user_id=user_id, error=str(exc))
            raise StoreUnavailable(f"lead lookup failed: {exc}") from exc

        rows = response.data or []
        return self._to_lead(rows[0]) if rows else None

    async def upsert(self, user_id: str, fields: dict[str, Any]) -> Lead:
        _check_fields(fields)
        payload: dict[str, Any] = {"user_id": user_id, "updated_at": _utcnow().isoformat()}
        for key, value in fields.items():
            if isinstance(value, (LeadState, LeadStatus)):
                value = value.value
            payload[_COLUMN_NAMES.get(key, key)] = value

        try:
            response = (
                await self.client.table(self.table)
                .upsert(payload, on_conflict="user_id")
                .execute()
            )
        except Exception as exc:
            logger.warning("lead_upsert_failed", user_id=user_id, error=str(exc))
            raise StoreUnavailable(f"lead upsert failed: {exc}") from exc

        rows = response.data or []
        if rows:
            return self._to_lead(rows[0])
        # Some Supabase responses return no data unless `returning=representation`.
        lead = await self.get(user_id)
        if lead is None:
            raise StoreUnavailable(f"lead for {user_id} missing after upsert")
        return lead
