# Filename: orgdrive/services/documents.py
"""
Document placement engine: upload, move, copy, delete and sharing of
documents, with quota accounting on the uploader and the physical file
kept under its folder's mirrored directory.

Placement (upload, move, copy) fails as a whole when the file cannot be put
in place. Removal (delete) only logs file errors: the record goes away and
the quota is released either way.
"""
import logging
import os
import time
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import (
    CrossTenantError,
    ForbiddenError,
    NotFoundError,
    QuotaExceededError,
    StorageIOError,
    ValidationError,
)
from ..models import (
    DEFAULT_MAX_STORAGE_PER_USER,
    Document,
    DocumentShare,
    Folder,
    FolderRole,
    Organization,
    OrganizationMember,
    User,
    utcnow,
)
from ..schemas import DocumentOut
from ..storage import MirrorPolicy, StagedFile, StorageLayout
from ..utils import ensure_owner, require_id
from .folders import FolderService

logger = logging.getLogger(__name__)


def mime_type_allowed(mime_type: str, allowed_types: Iterable[str]) -> bool:
    allowed = list(allowed_types or ["*"])
    if "*" in allowed:
        return True
    for pattern in allowed:
        if pattern.endswith("/*"):
            if mime_type.startswith(pattern[:-1]):
                return True
        elif mime_type == pattern:
            return True
    return False


def copy_filename(filename: str, timestamp_ms: Optional[int] = None) -> str:
    """report.pdf -> report-copy-<ms>.pdf"""
    base, ext = os.path.splitext(filename)
    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{base}-copy-{stamp}{ext}"


class DocumentService:
    def __init__(self, session: Session, storage: StorageLayout, folders: Optional[FolderService] = None):
        self.session = session
        self.storage = storage
        self.folders = folders or FolderService(session, storage)

    # --- helpers ---

    def _get_document(self, document_id) -> Document:
        require_id(document_id, "document ID")
        doc = self.session.get(Document, document_id)
        if not doc:
            raise NotFoundError("Document not found")
        return doc

    def _get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _get_organization(self, organization_id: int) -> Organization:
        org = self.session.get(Organization, organization_id)
        if not org:
            raise NotFoundError("Organization not found")
        return org

    @staticmethod
    def _check_quota(user: User, org: Organization, size: int) -> None:
        maximum = org.max_storage_per_user or DEFAULT_MAX_STORAGE_PER_USER
        current = user.storage_used or 0
        if current + size > maximum:
            raise QuotaExceededError(current=current, maximum=maximum, attempted=size)

    def _same_tenant(self, doc: Document, folder: Folder, action: str) -> None:
        if doc.organization_id != folder.organization_id:
            raise CrossTenantError(
                f"Cannot {action} document to folder in different organization",
                document_id=doc.id,
                target_folder_id=folder.id,
            )

    # --- upload ---

    def upload_document(self, file: StagedFile, user_id: int, folder_id, organization_id) -> Document:
        if not file or not file.filename:
            raise ValidationError("File is required")
        if not folder_id:
            raise ValidationError("Folder ID is required")
        if not organization_id:
            raise ValidationError("Organization ID is required")
        require_id(folder_id, "folder ID")
        require_id(organization_id, "organization ID")

        folder = self.folders.validate_folder_access(folder_id, user_id, FolderRole.editor)
        user = self._get_user(user_id)
        org = self._get_organization(organization_id)

        if folder.organization_id != organization_id:
            raise CrossTenantError("Folder does not belong to this organization", folder_id=folder_id)

        size = file.size or 0
        self._check_quota(user, org, size)

        mime_type = file.mime_type or "application/octet-stream"
        if not mime_type_allowed(mime_type, org.allowed_file_types):
            raise ForbiddenError(f"File type {mime_type} is not allowed", mime_type=mime_type)

        filename = self.storage.sanitize_filename(file.filename)
        staged_path = self.storage.staged_file(file.filename)
        document_path = f"{folder.path}/{filename}"
        physical_path = self.storage.document_file(org.slug, document_path)

        if not staged_path.exists():
            raise StorageIOError("Uploaded file not found in staging directory", filename=filename)
        self.storage.move_file(staged_path, physical_path, MirrorPolicy.FATAL)

        doc = Document(
            filename=filename,
            originalname=file.originalname or filename,
            mime_type=mime_type,
            size=size,
            uploaded_by=user_id,
            folder_id=folder.id,
            organization_id=organization_id,
            path=document_path,
            url=self.storage.document_url(org.slug, document_path),
        )
        self.session.add(doc)
        user.storage_used = (user.storage_used or 0) + size
        user.updated_at = utcnow()
        self.session.add(user)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            # put the file back where the transport left it
            self.storage.move_file(physical_path, staged_path, MirrorPolicy.LOGGED)
            raise
        self.session.refresh(doc)
        logger.info("Uploaded document %s (%s bytes) to folder %s", doc.id, size, folder.id)
        return doc

    # --- delete ---

    def delete_document(self, document_id, user_id: int) -> DocumentOut:
        doc = self._get_document(document_id)
        ensure_owner(doc.uploaded_by, user_id, document_id=doc.id)

        org = self.session.get(Organization, doc.organization_id)
        if org:
            self.folders.unlink_document_file(doc, org)

        user = self.session.get(User, user_id)
        if user and doc.size:
            user.storage_used = max(0, (user.storage_used or 0) - doc.size)
            user.updated_at = utcnow()
            self.session.add(user)

        # snapshot before the row (and its share links) go away
        deleted = DocumentOut.model_validate(doc)
        self.session.delete(doc)
        self.session.commit()
        logger.info("Deleted document %s", document_id)
        return deleted

    # --- move / copy ---

    def move_document(self, document_id, user_id: int, target_folder_id) -> Document:
        require_id(target_folder_id, "target folder ID")
        doc = self._get_document(document_id)
        ensure_owner(doc.uploaded_by, user_id, "Only document owner can move it", document_id=doc.id)

        target = self.folders.validate_folder_access(target_folder_id, user_id, FolderRole.editor)
        self._same_tenant(doc, target, "move")
        org = self._get_organization(doc.organization_id)

        filename = self.storage.sanitize_filename(doc.filename)
        new_path = f"{target.path}/{filename}"
        old_physical = self.storage.document_file(org.slug, doc.path)
        new_physical = self.storage.document_file(org.slug, new_path)

        if old_physical.exists():
            self.storage.move_file(old_physical, new_physical, MirrorPolicy.FATAL)
        else:
            logger.warning("Document %s has no file at %s; moving record only", doc.id, old_physical)

        doc.folder_id = target.id
        doc.path = new_path
        doc.url = self.storage.document_url(org.slug, new_path)
        doc.updated_at = utcnow()
        self.session.add(doc)
        self.session.commit()
        self.session.refresh(doc)
        return doc

    def copy_document(self, document_id, user_id: int, target_folder_id) -> Document:
        require_id(target_folder_id, "target folder ID")
        doc = self._get_document(document_id)
        if not doc.is_readable_by(user_id):
            raise ForbiddenError("You do not have access to this document", document_id=doc.id)

        target = self.folders.validate_folder_access(target_folder_id, user_id, FolderRole.editor)
        self._same_tenant(doc, target, "copy")
        org = self._get_organization(doc.organization_id)
        user = self._get_user(user_id)

        self._check_quota(user, org, doc.size or 0)

        new_filename = self.storage.sanitize_filename(copy_filename(doc.filename))
        new_path = f"{target.path}/{new_filename}"
        source_physical = self.storage.document_file(org.slug, doc.path)
        target_physical = self.storage.document_file(org.slug, new_path)

        if not source_physical.exists():
            raise StorageIOError("Source file not found in storage", document_id=doc.id)
        self.storage.copy_file(source_physical, target_physical, MirrorPolicy.FATAL)

        copy = Document(
            filename=new_filename,
            originalname=f"Copy of {doc.originalname}",
            mime_type=doc.mime_type,
            size=doc.size,
            uploaded_by=user_id,
            folder_id=target.id,
            organization_id=doc.organization_id,
            path=new_path,
            url=self.storage.document_url(org.slug, new_path),
        )
        self.session.add(copy)
        user.storage_used = (user.storage_used or 0) + (doc.size or 0)
        user.updated_at = utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(copy)
        return copy

    # --- sharing / reads ---

    def share_document(self, document_id, user_id: int, user_ids: List[int]) -> Document:
        doc = self._get_document(document_id)
        if not isinstance(user_ids, list) or not user_ids:
            raise ValidationError("user_ids must be a non-empty list")
        unique_ids = []
        for uid in user_ids:
            if isinstance(uid, int) and not isinstance(uid, bool) and uid > 0 and uid not in unique_ids:
                unique_ids.append(uid)
        if not unique_ids:
            raise ValidationError("At least one valid user id is required")
        ensure_owner(doc.uploaded_by, user_id, document_id=doc.id)

        others = [uid for uid in unique_ids if uid != user_id]
        if not others:
            raise ValidationError("Cannot share document with yourself as the owner")

        members = select(OrganizationMember.user_id).where(OrganizationMember.organization_id == doc.organization_id)
        targets = self.session.exec(
            select(User).where(User.id.in_(others), User.id.in_(members))
        ).all()
        if not targets:
            raise ValidationError("No valid users found to share with")

        for target in targets:
            if target.id not in doc.shared_with:
                doc.shares.append(DocumentShare(user_id=target.id))
        doc.updated_at = utcnow()
        self.session.add(doc)
        self.session.commit()
        self.session.refresh(doc)
        return doc

    def get_document(self, document_id, user_id: int) -> Document:
        doc = self._get_document(document_id)
        if not doc.is_readable_by(user_id):
            raise ForbiddenError("You do not have access to this document", document_id=doc.id)
        return doc

    def document_file(self, doc: Document):
        org = self._get_organization(doc.organization_id)
        return self.storage.document_file(org.slug, doc.path)

    def list_documents(self, user_id) -> List[Document]:
        require_id(user_id, "user ID")
        return list(self.session.exec(
            select(Document).where(Document.uploaded_by == user_id).order_by(Document.created_at.desc())
        ).all())

    def get_user_recent_documents(self, user_id, organization_id, limit: int = 10) -> List[Document]:
        require_id(user_id, "user ID")
        require_id(organization_id, "organization ID")
        if limit <= 0:
            raise ValidationError("Limit must be positive")

        shared = select(DocumentShare.document_id).where(DocumentShare.user_id == user_id)
        return list(self.session.exec(
            select(Document)
            .where(
                Document.organization_id == organization_id,
                or_(Document.uploaded_by == user_id, Document.id.in_(shared)),
            )
            .order_by(Document.created_at.desc(), Document.id.desc())
            .limit(limit)
        ).all())
