from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse

from ..models.api_models import (
    DocumentDetailsResponse,
    DownloadResponse,
    Envelope,
    FavoriteToggleResponse,
    TagsResponse,
)
from ..models.document import StoredDocument
from ..models.user import UserAccount
from ..services.document_service import DocumentService
from .dependencies import (
    get_current_user,
    get_document_service,
    get_optional_user,
    require_admin,
)


router = APIRouter(prefix="/pdfs", tags=["pdfs"])


@router.get("", response_model=List[StoredDocument])
async def list_documents(
    documents: DocumentService = Depends(get_document_service),
) -> List[StoredDocument]:
    return list(await documents.list_documents())


@router.get("/tags", response_model=TagsResponse)
async def list_tags(
    documents: DocumentService = Depends(get_document_service),
) -> TagsResponse:
    return TagsResponse(tags=await documents.list_tags())


@router.get("/{document_id}")
async def stream_document(
    document_id: str,
    range_header: Optional[str] = Header(default=None, alias="Range"),
    documents: DocumentService = Depends(get_document_service),
) -> StreamingResponse:
    stream = await documents.open_stream(document_id, range_header)
    return StreamingResponse(
        stream.body(),
        status_code=stream.status_code,
        headers=stream.headers,
        media_type=stream.headers["Content-Type"],
    )


@router.get("/{document_id}/details", response_model=DocumentDetailsResponse)
async def document_details(
    document_id: str,
    viewer: Optional[UserAccount] = Depends(get_optional_user),
    documents: DocumentService = Depends(get_document_service),
) -> DocumentDetailsResponse:
    return DocumentDetailsResponse(data=await documents.get_details(document_id, viewer))


@router.post("/{document_id}/favorite", response_model=FavoriteToggleResponse)
async def toggle_favorite(
    document_id: str,
    user: UserAccount = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
) -> FavoriteToggleResponse:
    favorited, count = await documents.toggle_favorite(document_id, user.id)  # type: ignore[arg-type]
    return FavoriteToggleResponse(favorited=favorited, favorites_count=count)


@router.post("/{document_id}/download", response_model=DownloadResponse)
async def download_document(
    document_id: str,
    user: UserAccount = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
) -> DownloadResponse:
    remaining = await documents.charge_download(document_id, user.id)  # type: ignore[arg-type]
    return DownloadResponse(remaining_credits=remaining)


@router.delete("/{document_id}", response_model=Envelope)
async def delete_document(
    document_id: str,
    _admin: UserAccount = Depends(require_admin),
    documents: DocumentService = Depends(get_document_service),
) -> Envelope:
    await documents.delete_document(document_id)
    return Envelope()
