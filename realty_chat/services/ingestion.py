"""
Corpus ingestion into the vector index.

Properties:
    render_property_text() → one batch embed → VectorRecord(kind="property")
    and, when the directory is in-memory, the structured listing as well.

Documents:
    chunk_text() → one batch embed → VectorRecord(kind="document_chunk")
    per chunk, id "{document_id}#{chunk_index}". Re-ingesting a document
    writes the new chunks, then deletes the old ones the new version no
    longer covers.

Reading back:
    list_documents() counts chunks per document; get_document() joins a
    document's chunks in chunk_index order.
"""

from collections.abc import Sequence

import structlog

from realty_chat.constants import (
    CURRENCY,
    DOCUMENT_CHUNK_SIZE,
    PROPERTY_DESCRIPTION_MAX_CHARS,
)
from realty_chat.errors import EmbeddingUnavailable
from realty_chat.models.retrieval import MatchSource, PropertyItem, VectorMatch, VectorRecord
from realty_chat.services.embeddings import EmbeddingProvider
from realty_chat.services.property_directory import InMemoryPropertyDirectory, PropertyDirectory
from realty_chat.services.vector_index import VectorIndex

logger = structlog.get_logger(__name__)


def render_property_text(item: PropertyItem) -> str:
    """Descriptive text embedded for a property listing."""
    availability = "Available" if item.available else "Not available"
    return (
        f"{item.title} ({availability}) in {item.location}, "
        f"{item.area_sqm} sqm, {item.bedrooms} bedrooms, {item.bathrooms} bathrooms, "
        f"{item.price} {CURRENCY}. {item.description}"
    ).strip()


def property_metadata(item: PropertyItem) -> dict:
    return {
        "kind": "property",
        "id": item.id,
        "title": item.title,
        "location": item.location,
        "price": item.price,
        "bedrooms": item.bedrooms,
        "bathrooms": item.bathrooms,
        "area_sqm": item.area_sqm,
        "available": item.available,
        "listing_type": item.listing_type,
        "category": item.category,
        "featured": item.featured,
        "description": item.description[:PROPERTY_DESCRIPTION_MAX_CHARS],
    }


def chunk_text(text: str, size: int = DOCUMENT_CHUNK_SIZE) -> list[str]:
    """
    Split text into chunks of at most `size` characters.

    Breaks fall on the last whitespace inside the window when there is one.
    Blank text yields no chunks.
    """
    if size <= 0:
        raise ValueError("chunk size must be positive")

    text = text.strip()
    chunks: list[str] = []
    while text:
        if len(text) <= size:
            chunks.append(text)
            break
        cut = text.rfind(" ", 0, size + 1)
        if cut <= 0:
            cut = size
        chunks.append(text[:cut].strip())
        text = text[cut:].strip()
    return chunks


async def _embed_exact(embedder: EmbeddingProvider, texts: list[str]) -> list[list[float]]:
    vectors = await embedder.embed(texts)
    if len(vectors) != len(texts):
        raise EmbeddingUnavailable(f"expected {len(texts)} embeddings, got {len(vectors)}")
    return vectors


async def ingest_properties(
    items: Sequence[PropertyItem],
    *,
    embedder: EmbeddingProvider,
    index: VectorIndex,
    directory: PropertyDirectory | None = None,
) -> int:
    """
    Embed and index property listings.

    Raises:
        EmbeddingUnavailable: the batch embedding failed.
        IndexUnavailable: the upsert failed.
    """
    if not items:
        return 0

    vectors = await _embed_exact(embedder, [render_property_text(item) for item in items])
    records = [
        VectorRecord(id=f"property:{item.id}", values=vector, metadata=property_metadata(item))
        for item, vector in zip(items, vectors)
    ]
    count = await index.upsert(records)

    if isinstance(directory, InMemoryPropertyDirectory):
        directory.add([item.model_copy(update={"source": MatchSource.STRUCTURED}) for item in items])

    logger.info("properties_ingested", count=count)
    return count


async def ingest_document(
    document_id: str,
    text: str,
    *,
    embedder: EmbeddingProvider,
    index: VectorIndex,
    chunk_size: int = DOCUMENT_CHUNK_SIZE,
) -> int:
    """
    Chunk, embed and index one document, replacing any previous version.

    Returns the number of chunks written.
    """
    chunks = chunk_text(text, chunk_size)
    if not chunks:
        logger.warning("document_empty", document_id=document_id)
        return 0

    vectors = await _embed_exact(embedder, chunks)
    previous = await index.fetch({"kind": "document_chunk", "document_id": document_id})

    total = len(chunks)
    records = [
        VectorRecord(
            id=f"{document_id}#{i}",
            values=vector,
            metadata={
                "kind": "document_chunk",
                "document_id": document_id,
                "chunk_index": i,
                "total_chunks": total,
                "content": chunk,
            },
        )
        for i, (chunk, vector) in enumerate(zip(chunks, vectors))
    ]
    count = await index.upsert(records)

    current = {record.id for record in records}
    stale = [match.id for match in previous if match.id not in current]
    if stale:
        await index.delete(stale)
    logger.info("document_ingested", document_id=document_id, chunks=count, replaced=len(stale))
    return count


async def delete_document(document_id: str, *, index: VectorIndex) -> int:
    """Remove every chunk of a document from the index."""
    deleted = await index.delete_where({"document_id": document_id})
    logger.info("document_deleted", document_id=document_id, chunks=deleted)
    return deleted


def _chunk_index(match: VectorMatch) -> int:
    return int(match.metadata.get("chunk_index", 0))


async def list_documents(*, index: VectorIndex) -> dict[str, int]:
    """Map each indexed document id to its number of chunks, sorted by id."""
    counts: dict[str, int] = {}
    for match in await index.fetch({"kind": "document_chunk"}):
        document_id = str(match.metadata.get("document_id") or match.id)
        counts[document_id] = counts.get(document_id, 0) + 1
    return dict(sorted(counts.items()))


async def get_document(document_id: str, *, index: VectorIndex) -> str | None:
    """
    Reassemble a document from its chunks.

    Returns None when the document has no chunks in the index.
    """
    matches = await index.fetch({"kind": "document_chunk", "document_id": document_id})
    if not matches:
        return None
    chunks = sorted(matches, key=_chunk_index)
    return " ".join(str(match.metadata.get("content", "")) for match in chunks)
