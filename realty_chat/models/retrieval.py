"""
Grounding models: the items that may back a generated answer, the
structured filters extracted from a message, and raw vector index matches.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class MatchSource(str, Enum):
    """Where a retrieval item came from."""

    STRUCTURED = "structured"
    SEMANTIC = "semantic"
    BOTH = "both"


class PropertyItem(BaseModel):
    """A property listing eligible as grounding."""

    kind: Literal["property"] = "property"
    id: str = Field(description="Property identifier")
    title: str = ""
    location: str = ""
    price: float | None = Field(default=None, description="Price in QAR")
    bedrooms: int | None = None
    bathrooms: int | None = None
    area_sqm: float | None = None
    available: bool = True
    description: str = ""
    listing_type: str | None = Field(default=None, description="'rent' or 'sale'")
    category: str | None = Field(default=None, description="e.g. 'Apartment', 'Villa'")
    featured: bool = False
    score: float = 0.0
    source: MatchSource = MatchSource.SEMANTIC

    @property
    def identity(self) -> str:
        return f"property:{self.id}"


class DocChunkItem(BaseModel):
    """A chunk of an ingested document eligible as grounding."""

    kind: Literal["document_chunk"] = "document_chunk"
    document_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    content: str
    score: float = 0.0
    source: MatchSource = MatchSource.SEMANTIC

    @property
    def identity(self) -> str:
        return f"chunk:{self.document_id}:{self.chunk_index}"


RetrievalItem = Annotated[Union[PropertyItem, DocChunkItem], Field(discriminator="kind")]


class PropertyFilters(BaseModel):
    """
    Structured filters extracted from free text.

    Every field is optional and the set is AND-combined; an unset field
    does not constrain the search.
    """

    model_config = ConfigDict(frozen=True)

    listing_type: str | None = None
    category: str | None = None
    location: str | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    min_price: int | None = None
    max_price: int | None = None
    featured: bool | None = None

    def matches(self, item: PropertyItem) -> bool:
        """Check an item against every set filter.

        Fields the item does not carry (None) fail any filter on them.
        """
        if self.listing_type is not None and (item.listing_type or "").lower() != self.listing_type:
            return False
        if self.category is not None and (item.category or "").lower() != self.category.lower():
            return False
        if self.location is not None and self.location not in item.location.lower():
            return False
        if self.bedrooms is not None and item.bedrooms != self.bedrooms:
            return False
        if self.bathrooms is not None and item.bathrooms != self.bathrooms:
            return False
        if self.min_price is not None and (item.price is None or item.price < self.min_price):
            return False
        if self.max_price is not None and (item.price is None or item.price > self.max_price):
            return False
        if self.featured is not None and item.featured != self.featured:
            return False
        return True


class VectorMatch(BaseModel):
    """A raw nearest-neighbour result from the vector index."""

    id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class VectorRecord(BaseModel):
    """A vector to upsert into the index."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)
