"""
Corpus administration endpoints.

    POST   /api/v1/admin/properties              — embed + index property listings
    POST   /api/v1/admin/documents               — chunk + embed + index one document
    GET    /api/v1/admin/documents               — document ids with chunk counts
    GET    /api/v1/admin/documents/{document_id} — a document reassembled from its chunks
    DELETE /api/v1/admin/documents/{document_id} — remove a document's chunks

Embedding or index failures return 502 with the failure category. An
unknown document id returns 404.
"""

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from realty_chat.errors import EmbeddingUnavailable, IndexUnavailable
from realty_chat.models.retrieval import PropertyItem
from realty_chat.services.ingestion import (
    delete_document,
    get_document,
    ingest_document,
    ingest_properties,
    list_documents,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class PropertyIngestRequest(BaseModel):
    properties: list[PropertyItem] = Field(min_length=1)


class DocumentIngestRequest(BaseModel):
    document_id: str = Field(min_length=1)
    text: str = Field(min_length=1, description="Extracted plain text of the document")


class IngestResponse(BaseModel):
    indexed: int


class DeleteResponse(BaseModel):
    document_id: str
    deleted: int


class DocumentSummary(BaseModel):
    document_id: str
    chunks: int


class DocumentResponse(BaseModel):
    document_id: str
    text: str


def _require(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ingestion not available.")
    return service


@router.post("/properties", response_model=IngestResponse)
async def add_properties(body: PropertyIngestRequest, request: Request) -> IngestResponse:
    embedder = _require(request, "embedder")
    index = _require(request, "vector_index")
    try:
        count = await ingest_properties(
            body.properties,
            embedder=embedder,
            index=index,
            directory=getattr(request.app.state, "property_directory", None),
        )
    except (EmbeddingUnavailable, IndexUnavailable) as exc:
        logger.error("property_ingest_failed", error=exc.category)
        raise HTTPException(status_code=502, detail=exc.category) from exc
    return IngestResponse(indexed=count)


@router.post("/documents", response_model=IngestResponse)
async def add_document(body: DocumentIngestRequest, request: Request) -> IngestResponse:
    embedder = _require(request, "embedder")
    index = _require(request, "vector_index")
    try:
        count = await ingest_document(body.document_id, body.text, embedder=embedder, index=index)
    except (EmbeddingUnavailable, IndexUnavailable) as exc:
        logger.error("document_ingest_failed", document_id=body.document_id, error=exc.category)
        raise HTTPException(status_code=502, detail=exc.category) from exc
    return IngestResponse(indexed=count)


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
async def remove_document(document_id: str, request: Request) -> DeleteResponse:
    index = _require(request, "vector_index")
    try:
        deleted = await delete_document(document_id, index=index)
    except IndexUnavailable as exc:
        logger.error("document_delete_failed", document_id=document_id)
        raise HTTPException(status_code=502, detail=exc.category) from exc
    return DeleteResponse(document_id=document_id, deleted=deleted)


@router.get("/documents", response_model=list[DocumentSummary])
async def get_documents(request: Request) -> list[DocumentSummary]:
    index = _require(request, "vector_index")
    try:
        counts = await list_documents(index=index)
    except IndexUnavailable as exc:
        logger.error("document_list_failed", error=exc.category)
        raise HTTPException(status_code=502, detail=exc.category) from exc
    return [DocumentSummary(document_id=doc_id, chunks=n) for doc_id, n in counts.items()]


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def view_document(document_id: str, request: Request) -> DocumentResponse:
    index = _require(request, "vector_index")
    try:
        text = await get_document(document_id, index=index)
    except IndexUnavailable as exc:
        logger.error("document_view_failed", document_id=document_id, error=exc.category)
        raise HTTPException(status_code=502, detail=exc.category) from exc
    if text is None:
        raise HTTPException(status_code=404, detail="Document not found.")
    return DocumentResponse(document_id=document_id, text=text)
