# Filename: orgdrive/routers/documents.py
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlmodel import Session

from ..auth import get_current_user
from ..config import settings
from ..db import get_session, get_storage
from ..errors import DriveError, NotFoundError
from ..models import User
from ..schemas import DocumentOut, DocumentShareRequest, DocumentTarget
from ..services.documents import DocumentService
from ..storage import MirrorPolicy, StorageLayout, save_upload_file

router = APIRouter(prefix="/api/documents", tags=["documents"])


def get_document_service(
    session: Session = Depends(get_session),
    storage: StorageLayout = Depends(get_storage),
) -> DocumentService:
    return DocumentService(session, storage)


@router.post("/upload", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
async def upload_document(
    upload: UploadFile = File(...),
    folder_id: int = Form(...),
    organization_id: int = Form(...),
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    staged = await save_upload_file(upload, documents.storage)
    staged_path = documents.storage.staged_file(staged.filename)

    # size is only known once the body has been written out
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    if staged.size > max_bytes:
        documents.storage.unlink(staged_path, MirrorPolicy.LOGGED)
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Uploaded file exceeds max_upload_size_mb",
        )

    try:
        doc = documents.upload_document(staged, current_user.id, folder_id, organization_id)
    except DriveError:
        documents.storage.unlink(staged_path, MirrorPolicy.LOGGED)
        raise
    return DocumentOut.model_validate(doc)


@router.get("/recent", response_model=List[DocumentOut])
def recent_documents(
    organization_id: int = Query(...),
    limit: Optional[int] = Query(default=None),
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    docs = documents.get_user_recent_documents(
        current_user.id, organization_id, limit or settings.recent_documents_limit
    )
    return [DocumentOut.model_validate(d) for d in docs]


@router.get("", response_model=List[DocumentOut])
def list_documents(
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    return [DocumentOut.model_validate(d) for d in documents.list_documents(current_user.id)]


@router.get("/{document_id}", response_model=DocumentOut)
def get_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    return DocumentOut.model_validate(documents.get_document(document_id, current_user.id))


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    doc = documents.get_document(document_id, current_user.id)
    path = documents.document_file(doc)
    if not path.is_file():
        raise NotFoundError("File missing on disk", document_id=doc.id)
    return FileResponse(path, media_type=doc.mime_type or "application/octet-stream", filename=doc.originalname)


@router.post("/{document_id}/move", response_model=DocumentOut)
def move_document(
    document_id: int,
    data: DocumentTarget,
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    doc = documents.move_document(document_id, current_user.id, data.target_folder_id)
    return DocumentOut.model_validate(doc)


@router.post("/{document_id}/copy", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def copy_document(
    document_id: int,
    data: DocumentTarget,
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    doc = documents.copy_document(document_id, current_user.id, data.target_folder_id)
    return DocumentOut.model_validate(doc)


@router.post("/{document_id}/share", response_model=DocumentOut)
def share_document(
    document_id: int,
    data: DocumentShareRequest,
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    doc = documents.share_document(document_id, current_user.id, data.user_ids)
    return DocumentOut.model_validate(doc)


@router.delete("/{document_id}", response_model=DocumentOut)
def delete_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service),
):
    return documents.delete_document(document_id, current_user.id)
