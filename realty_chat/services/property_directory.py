"""
Property directory: exact, filter-based listing lookup.

Used for structured retrieval. No embedding call happens on this path;
every filter in PropertyFilters narrows the result (AND).
"""

from collections.abc import Sequence
from typing import Any, Protocol

import structlog
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from realty_chat.errors import StoreUnavailable
from realty_chat.models.retrieval import MatchSource, PropertyFilters, PropertyItem

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 20


class PropertyDirectory(Protocol):
    """Lists properties matching structured filters."""

    async def list(self, filters: PropertyFilters) -> list[PropertyItem]:
        """Return matching properties in directory order."""


class InMemoryPropertyDirectory:
    """Directory over an in-process list of properties."""

    def __init__(self, properties: Sequence[PropertyItem] = (), limit: int = DEFAULT_LIMIT) -> None:
        self.properties: dict[str, PropertyItem] = {p.id: p for p in properties}
        self.limit = limit

    def add(self, items: Sequence[PropertyItem]) -> None:
        for item in items:
            self.properties[item.id] = item.model_copy(deep=True)

    async def list(self, filters: PropertyFilters) -> list[PropertyItem]:
        matched = [
            item.model_copy(update={"source": MatchSource.STRUCTURED})
            for item in self.properties.values()
            if filters.matches(item)
        ]
        return matched[: self.limit]


class SupabasePropertyDirectory:
    """Supabase-backed directory (table `properties`)."""

    def __init__(
        self,
        client: AsyncSupabaseClient,
        table: str = "properties",
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.client = client
        self.table = table
        self.limit = limit

    @staticmethod
    def _to_item(row: dict[str, Any]) -> PropertyItem:
        return PropertyItem(
            id=str(row["id"]),
            title=row.get("title") or "",
            location=row.get("location") or "",
            price=row.get("price"),
            bedrooms=row.get("bedrooms"),
            bathrooms=row.get("bathrooms"),
            area_sqm=row.get("area_sqm"),
            available=bool(row.get("available", True)),
            description=row.get("description") or "",
            listing_type=row.get("listing_type"),
            category=row.get("category"),
            featured=bool(row.get("featured", False)),
            source=MatchSource.STRUCTURED,
        )

    async def list(self, filters: PropertyFilters) -> list[PropertyItem]:
        query = self.client.table(self.table).select("*")
        if filters.listing_type is not None:
            query = query.eq("listing_type", filters.listing_type)
        if filters.category is not None:
            query = query.ilike("category", filters.category)
        if filters.location is not None:
            query = query.ilike("location", f"%{filters.location}%")
        if filters.bedrooms is not None:
            query = query.eq("bedrooms", filters.bedrooms)
        if filters.bathrooms is not None:
            query = query.eq("bathrooms", filters.bathrooms)
        if filters.min_price is not None:
            query = query.gte("price", filters.min_price)
        if filters.max_price is not None:
            query = query.lte("price", filters.max_price)
        if filters.featured is not None:
            query = query.eq("featured", filters.featured)

        try:
            response = await query.order("id").limit(self.limit).execute()
        except Exception as exc:
            logger.warning("property_directory_failed", error=str(exc))
            raise StoreUnavailable(f"property lookup failed: {exc}") from exc

        return [self._to_item(row) for row in response.data or []]
