"""Document routes.

Client actions (X-User-Id required):
- POST   /v1/documents                              create on Nolej
- GET    /v1/documents/{id}                         status and packages
- DELETE /v1/documents/{id}                         cascade delete
- POST   /v1/documents/{id}/transcription           download transcription
- POST   /v1/documents/{id}/analysis                start analysis
- GET    /v1/documents/{id}/resources/{resource}    read resource
- PUT    /v1/documents/{id}/resources/{resource}    save revised resource
- POST   /v1/documents/{id}/review                  close revision
- POST   /v1/documents/{id}/activities              request generation
- POST   /v1/documents/{id}/lastwebhook             replay last webhook

Public (read by Nolej):
- GET    /v1/documents/{id}/files/transcription.htm
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Body, Path, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from nolej.api.deps import CurrentUser, Services
from nolej.api.errors import NolejHttpError
from nolej.models.document import Document, MediaType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Documents"])

DocumentId = Annotated[str, Path(min_length=1, max_length=50)]


class CreateDocumentRequest(BaseModel):
    """Request body for POST /v1/documents."""

    title: Annotated[str, Field(min_length=1, max_length=250)]
    source_url: Annotated[str, Field(min_length=1, description="URL or text sent to Nolej")]
    media_type: MediaType
    language: Annotated[str, Field(min_length=2, max_length=5)]
    automatic_mode: bool = False
    decremented_credit: Annotated[int, Field(ge=0)] = 1


class StartAnalysisRequest(BaseModel):
    title: Annotated[str | None, Field(default=None, max_length=250)] = None


class GenerateActivitiesRequest(BaseModel):
    """Request body for POST /v1/documents/{id}/activities."""

    desired_packages: Annotated[list[str], Field(description="Packages to generate")]
    settings: dict[str, Any] = Field(default_factory=dict)


class PackageResponse(BaseModel):
    type: str
    content_id: int
    generated_at: int


class DocumentResponse(BaseModel):
    """Document with its current packages."""

    document_id: str
    status: int
    status_name: str
    title: str | None
    consumed_credit: int
    doc_url: str
    media_type: str
    automatic_mode: bool
    language: str
    packages: list[PackageResponse] = Field(default_factory=list)


class TranscriptionResponse(BaseModel):
    document_id: str
    title: str | None


class WebhookReplayResponse(BaseModel):
    http_status: int
    message: str
    status: int | None


def _to_response(
    document: Document, packages: list[PackageResponse] | None = None
) -> DocumentResponse:
    return DocumentResponse(
        document_id=document.document_id,
        status=int(document.status),
        status_name=document.status.name,
        title=document.title,
        consumed_credit=document.consumed_credit,
        doc_url=document.doc_url,
        media_type=document.media_type,
        automatic_mode=document.automatic_mode,
        language=document.language,
        packages=packages or [],
    )


@router.post("/documents", response_model=DocumentResponse, status_code=201)
def create_document(
    request_body: CreateDocumentRequest,
    services: Services,
    user_id: CurrentUser,
) -> DocumentResponse:
    document = services.workflow.create_document(
        user_id=user_id,
        title=request_body.title,
        source_url=request_body.source_url,
        media_type=request_body.media_type.value,
        language=request_body.language,
        automatic_mode=request_body.automatic_mode,
        decremented_credit=request_body.decremented_credit,
    )
    return _to_response(document)


@router.get("/documents/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: DocumentId, services: Services, user_id: CurrentUser
) -> DocumentResponse:
    document = services.workflow.get_document(document_id)
    packages = [
        PackageResponse(type=p.type, content_id=p.content_id, generated_at=p.generated_at)
        for p in services.workflow.list_packages(document_id)
    ]
    return _to_response(document, packages)


@router.delete("/documents/{document_id}", status_code=204)
def delete_document(document_id: DocumentId, services: Services, user_id: CurrentUser) -> Response:
    if not services.workflow.delete_document(document_id):
        raise NolejHttpError(404, "document_not_found", f"Document not found: {document_id}")
    return Response(status_code=204)


@router.post("/documents/{document_id}/transcription", response_model=TranscriptionResponse)
def download_transcription(
    document_id: DocumentId, services: Services, user_id: CurrentUser
) -> TranscriptionResponse:
    title = services.workflow.download_transcription(document_id)
    return TranscriptionResponse(document_id=document_id, title=title)


@router.post("/documents/{document_id}/analysis", response_model=DocumentResponse)
def start_analysis(
    document_id: DocumentId,
    services: Services,
    user_id: CurrentUser,
    request_body: StartAnalysisRequest | None = None,
) -> DocumentResponse:
    title = request_body.title if request_body is not None else None
    return _to_response(services.workflow.start_analysis(document_id, user_id, title))


@router.get("/documents/{document_id}/resources/{resource}")
def get_resource(
    document_id: DocumentId, resource: str, services: Services, user_id: CurrentUser
) -> Any:
    return services.workflow.get_resource(document_id, resource)


@router.put("/documents/{document_id}/resources/{resource}", status_code=204)
def save_resource(
    document_id: DocumentId,
    resource: str,
    content: Annotated[dict[str, Any] | list[Any], Body()],
    services: Services,
    user_id: CurrentUser,
) -> Response:
    services.workflow.save_resource(document_id, resource, content)
    return Response(status_code=204)


@router.post("/documents/{document_id}/review", response_model=DocumentResponse)
def mark_reviewed(
    document_id: DocumentId, services: Services, user_id: CurrentUser
) -> DocumentResponse:
    return _to_response(services.workflow.mark_reviewed(document_id))


@router.post("/documents/{document_id}/activities", response_model=DocumentResponse)
def generate_activities(
    document_id: DocumentId,
    request_body: GenerateActivitiesRequest,
    services: Services,
    user_id: CurrentUser,
) -> DocumentResponse:
    document = services.workflow.generate_activities(
        document_id,
        user_id,
        request_body.desired_packages,
        request_body.settings,
    )
    return _to_response(document)


@router.post("/documents/{document_id}/lastwebhook", response_model=WebhookReplayResponse)
def replay_last_webhook(
    document_id: DocumentId, services: Services, user_id: CurrentUser
) -> WebhookReplayResponse:
    outcome = services.workflow.recover_last_webhook(document_id)
    return WebhookReplayResponse(
        http_status=outcome.http_status,
        message=outcome.message,
        status=int(outcome.status) if outcome.status is not None else None,
    )


@router.get("/documents/{document_id}/files/transcription.htm", response_class=HTMLResponse)
def get_transcription_file(document_id: DocumentId, services: Services) -> HTMLResponse:
    """Transcription as downloaded from Nolej, read back by Nolej for the analysis."""
    content = services.workflow.read_transcription(document_id)
    if content is None:
        raise NolejHttpError(404, "file_not_found", "Transcription not found")
    return HTMLResponse(content)
