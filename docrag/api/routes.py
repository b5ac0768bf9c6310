"""REST API routes for document upload, processing status and chat."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Header, HTTPException, Request, UploadFile, status
from pydantic import BaseModel, Field

from docrag.errors import DocumentNotFoundError, PersistenceError, UnsupportedTypeError
from docrag.ingestion.extractors import is_supported_type
from docrag.ingestion.schemas import Document
from docrag.services.container import Services
from docrag.services.task_queue import ProcessingQueue

logger = logging.getLogger(__name__)

router = APIRouter()

_BUSY = "Document is already being processed"


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class ChatRequest(BaseModel):
    message: str = Field("", description="The user's question.")


class ChatResponse(BaseModel):
    response: str
    documents_referenced: list[str]


class DocumentStatus(BaseModel):
    id: str
    filename: str
    content_type: str
    file_size: int
    processed: bool
    processing: bool = False
    processing_error: str | None = None
    uploaded_at: str
    updated_at: str

    @classmethod
    def from_document(cls, doc: Document) -> "DocumentStatus":
        return cls(**doc.model_dump(include=set(cls.model_fields)))


class QueuedResponse(BaseModel):
    success: bool = True
    document_id: str
    message: str


class HealthResponse(BaseModel):
    status: str
    documents: int
    workers_running: bool


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_queue(request: Request) -> ProcessingQueue:
    return request.app.state.queue


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """The identity provider in front of the API sets ``X-Owner-Id``."""
    if not x_owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return x_owner_id


def _load_document(services: Services, document_id: str, owner_id: str) -> Document:
    try:
        return services.store.get_document(document_id, owner_id, with_bytes=False)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check(
    services: Services = Depends(get_services),
    queue: ProcessingQueue = Depends(get_queue),
):
    """Return service health and store size."""
    return HealthResponse(
        status="ok",
        documents=services.store.count_documents(),
        workers_running=queue.running,
    )


@router.post("/documents", response_model=QueuedResponse, status_code=202, tags=["documents"])
async def upload_document(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
    queue: ProcessingQueue = Depends(get_queue),
):
    """Store the upload unprocessed and queue it; processing continues in the background."""
    content_type = file.content_type or "application/octet-stream"
    if not is_supported_type(content_type):
        raise HTTPException(status_code=415, detail=str(UnsupportedTypeError(content_type)))
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    try:
        doc = services.processor.create_document(owner_id, file.filename or "", content_type, data)
    except PersistenceError as exc:
        logger.exception("Upload failed.")
        raise HTTPException(status_code=500, detail="Failed to store file in database") from exc

    queue.enqueue(doc.id, owner_id)
    return QueuedResponse(document_id=doc.id, message="File uploaded; processing started")


@router.get("/documents", response_model=list[DocumentStatus], tags=["documents"])
async def list_documents(
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    return [DocumentStatus.from_document(d) for d in services.store.list_documents(owner_id)]


@router.get("/documents/{document_id}", response_model=DocumentStatus, tags=["documents"])
async def get_document(
    document_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    return DocumentStatus.from_document(_load_document(services, document_id, owner_id))


@router.post(
    "/documents/{document_id}/process",
    response_model=QueuedResponse,
    status_code=202,
    tags=["documents"],
)
async def process_document(
    document_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
    queue: ProcessingQueue = Depends(get_queue),
):
    """Queue (re-)processing of an unprocessed document, e.g. after an error."""
    doc = _load_document(services, document_id, owner_id)
    if doc.processed:
        raise HTTPException(status_code=409, detail="Document already processed")
    if doc.processing or not queue.enqueue(doc.id, owner_id):
        raise HTTPException(status_code=409, detail=_BUSY)
    return QueuedResponse(document_id=doc.id, message="Processing started")


@router.post(
    "/documents/{document_id}/reset",
    response_model=QueuedResponse,
    status_code=202,
    tags=["documents"],
)
async def reset_document(
    document_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
    queue: ProcessingQueue = Depends(get_queue),
):
    """Drop existing chunks and process the document again."""
    if _load_document(services, document_id, owner_id).processing:
        raise HTTPException(status_code=409, detail=_BUSY)
    try:
        services.store.reset_document(document_id, owner_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    queue.enqueue(document_id, owner_id)
    return QueuedResponse(document_id=document_id, message="Document reset; processing started")


@router.post("/chat", response_model=ChatResponse, tags=["chat"])
async def chat(
    body: ChatRequest,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Answer a question grounded in the caller's documents."""
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        result = await services.answers.answer(body.message, owner_id)
    except Exception as exc:
        logger.exception("Error answering question.")
        raise HTTPException(status_code=500, detail="Failed to get response from LLM") from exc
    return ChatResponse(**result)
