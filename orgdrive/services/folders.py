# Filename: orgdrive/services/folders.py
"""
Folder tree engine: creation, listing, rename with subtree path rewrite,
guarded/forced deletion and sharing, each paired with its physical-directory
mirror.

Mirror policy per operation:
    create root folder  FATAL, the folder record is rolled back
    create folder       FATAL, the folder record is kept
    rename              LOGGED
    delete / force      LOGGED
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import (
    ConflictError,
    CrossTenantError,
    ForbiddenError,
    NotFoundError,
    StorageIOError,
    StructuralViolationError,
    ValidationError,
)
from ..models import (
    Document,
    DocumentShare,
    Folder,
    FolderPermission,
    FolderRole,
    FolderType,
    Organization,
    OrganizationMember,
    User,
    utcnow,
)
from ..storage import MirrorPolicy, StorageLayout
from ..utils import replace_path_prefix, require_id
from . import access

logger = logging.getLogger(__name__)


@dataclass
class FolderContents:
    folder: Folder
    subfolders: List[Folder]
    documents: List[Document]


@dataclass
class FolderNode:
    folder: Folder
    children: List["FolderNode"] = field(default_factory=list)


def root_folder_name(user_id: int) -> str:
    return f"root_user_{user_id}"


class FolderService:
    def __init__(self, session: Session, storage: StorageLayout):
        self.session = session
        self.storage = storage

    # --- lookups ---

    def _get_organization(self, organization_id: int) -> Organization:
        org = self.session.get(Organization, organization_id)
        if not org:
            raise NotFoundError("Organization not found")
        return org

    def _accessible_by(self, user_id: int):
        granted = select(FolderPermission.folder_id).where(FolderPermission.user_id == user_id)
        return or_(Folder.owner_id == user_id, Folder.id.in_(granted))

    def validate_folder_access(self, folder_id, user_id: int, required_role: Optional[FolderRole] = None) -> Folder:
        require_id(folder_id, "folder ID")
        folder = self.session.get(Folder, folder_id)
        if not folder:
            raise NotFoundError("Folder not found")
        if not access.has_access(folder, user_id, required_role):
            if required_role:
                message = f"User does not have {FolderRole(required_role).value} access to this folder"
            else:
                message = "User does not have access to this folder"
            raise ForbiddenError(message, folder_id=folder_id, required_role=required_role)
        return folder

    def _ensure_distinct_segment(self, parent_id: int, name: str, exclude_id: Optional[int] = None) -> None:
        # siblings share a parent directory, so their sanitized names must differ (case-insensitively)
        segment = self.storage.sanitize_segment(name).lower()
        for sibling in self._children(parent_id):
            if sibling.id != exclude_id and self.storage.sanitize_segment(sibling.name).lower() == segment:
                raise ConflictError(
                    "Folder name already exists in this location",
                    name=name,
                    conflicts_with=sibling.name,
                )

    def folder_dir(self, folder: Folder, org: Optional[Organization] = None):
        org = org or self._get_organization(folder.organization_id)
        return self.storage.folder_dir(org.slug, folder.path)

    # --- creation ---

    def create_root_folder(self, user_id: int, organization_id: int) -> Folder:
        """Provision the user's root folder in an organization; returns the existing one if present."""
        org = self._get_organization(organization_id)
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        existing = self.session.exec(
            select(Folder).where(
                Folder.owner_id == user_id,
                Folder.organization_id == organization_id,
                Folder.is_root == True,  # noqa: E712
            )
        ).first()
        if existing:
            return existing

        path = f"/{self.storage.sanitize_slug(org.slug)}/{user_id}"
        target_dir = self.storage.folder_dir(org.slug, path)
        folder = Folder(
            name=root_folder_name(user_id),
            type=FolderType.root,
            owner_id=user_id,
            organization_id=organization_id,
            parent_id=None,
            is_root=True,
            path=path,
        )
        self.session.add(folder)
        self.session.commit()
        self.session.refresh(folder)

        try:
            self.storage.ensure_dir(target_dir, MirrorPolicy.FATAL)
        except StorageIOError:
            # a user without a usable storage root is not recoverable later
            self.session.delete(folder)
            self.session.commit()
            raise

        if user.root_folder_id is None:
            user.root_folder_id = folder.id
            self.session.add(user)
            self.session.commit()
        self.session.refresh(folder)
        logger.info("Provisioned root folder %s for user %s in org %s", folder.id, user_id, organization_id)
        return folder

    def create_folder(
        self,
        name: str,
        owner_id: int,
        organization_id,
        parent_id,
        display_name: Optional[str] = None,
    ) -> Folder:
        if not name:
            raise ValidationError("Folder name is required")
        if not owner_id:
            raise ValidationError("Owner is required")
        if not organization_id:
            raise ValidationError("Organization ID is required")
        if not parent_id:
            raise ValidationError("Parent folder ID is required")
        require_id(organization_id, "organization ID")
        require_id(parent_id, "parent folder ID")
        if "/" in name:
            raise ValidationError("Folder name cannot contain '/'")

        if not self.session.get(User, owner_id):
            raise NotFoundError("Owner user not found")
        org = self._get_organization(organization_id)

        parent = self.validate_folder_access(parent_id, owner_id, FolderRole.editor)
        if parent.organization_id != organization_id:
            raise CrossTenantError("Parent folder belongs to another organization")
        self._ensure_distinct_segment(parent.id, name)

        folder = Folder(
            name=name,
            display_name=display_name or name,
            type=FolderType.folder,
            owner_id=owner_id,
            organization_id=organization_id,
            parent_id=parent.id,
            path=f"{parent.path}/{name}",
        )
        folder.permissions.append(FolderPermission(user_id=owner_id, role=FolderRole.owner))
        self.session.add(folder)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Folder name already exists in this location", name=name, parent_id=parent_id)
        self.session.refresh(folder)

        # record stays even if the directory cannot be created; the caller still sees the failure
        self.storage.ensure_dir(self.storage.folder_dir(org.slug, folder.path), MirrorPolicy.FATAL)
        logger.info("Created folder %s at %s", folder.id, folder.path)
        return folder

    # --- reads ---

    def get_folder_contents(self, folder_id, user_id: int) -> FolderContents:
        folder = self.validate_folder_access(folder_id, user_id, FolderRole.viewer)

        subfolders = self.session.exec(
            select(Folder)
            .where(Folder.parent_id == folder.id, self._accessible_by(user_id))
            .order_by(Folder.name)
        ).all()

        shared = select(DocumentShare.document_id).where(DocumentShare.user_id == user_id)
        documents = self.session.exec(
            select(Document)
            .where(
                Document.folder_id == folder.id,
                or_(Document.uploaded_by == user_id, Document.id.in_(shared)),
            )
            .order_by(Document.created_at.desc(), Document.id.desc())
        ).all()

        return FolderContents(folder=folder, subfolders=list(subfolders), documents=list(documents))

    def get_user_folder_tree(self, user_id, organization_id) -> Optional[FolderNode]:
        """
        Rebuild the folder tree the user can see in one organization and return the
        subtree under the user's own root folder, or None when it does not exist yet.
        """
        require_id(user_id, "user ID")
        require_id(organization_id, "organization ID")

        folders = self.session.exec(
            select(Folder)
            .where(Folder.organization_id == organization_id, self._accessible_by(user_id))
            .order_by(Folder.path)
        ).all()
        if not folders:
            return None

        nodes: Dict[int, FolderNode] = {f.id: FolderNode(folder=f) for f in folders}
        roots: List[FolderNode] = []
        for f in folders:
            node = nodes[f.id]
            parent = nodes.get(f.parent_id) if f.parent_id is not None else None
            if parent is None:
                roots.append(node)
            else:
                parent.children.append(node)

        for node in nodes.values():
            node.children.sort(key=lambda n: n.folder.name)

        for node in roots:
            if node.folder.is_root and node.folder.owner_id == user_id:
                return node
        return None

    def list_folders(self, owner_id, organization_id=None) -> List[Folder]:
        """Flat list of the folders a user owns, newest first."""
        require_id(owner_id, "owner ID")
        statement = select(Folder).where(Folder.owner_id == owner_id)
        if organization_id is not None:
            require_id(organization_id, "organization ID")
            statement = statement.where(Folder.organization_id == organization_id)
        return list(self.session.exec(statement.order_by(Folder.created_at.desc(), Folder.id.desc())).all())

    def _children(self, folder_id: int) -> List[Folder]:
        return list(self.session.exec(select(Folder).where(Folder.parent_id == folder_id)).all())

    def _documents_in(self, folder_id: int) -> List[Document]:
        return list(self.session.exec(select(Document).where(Document.folder_id == folder_id)).all())

    # --- rename ---

    def rename_folder(
        self,
        folder_id,
        user_id: int,
        name: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Folder:
        folder = self.validate_folder_access(folder_id, user_id, FolderRole.editor)
        new_name = name if name is not None else folder.name
        if not new_name:
            raise ValidationError("Folder name is required")
        if "/" in new_name:
            raise ValidationError("Folder name cannot contain '/'")

        if folder.type == FolderType.root and new_name != folder.name:
            raise StructuralViolationError(
                "Cannot rename root folder technical name, use displayName instead",
                folder_id=folder.id,
            )

        if folder.parent_id is not None and new_name != folder.name:
            self._ensure_distinct_segment(folder.parent_id, new_name, exclude_id=folder.id)

        org = self._get_organization(folder.organization_id)
        old_path = folder.path
        if folder.parent_id is not None:
            new_path = f"{old_path[:old_path.rfind('/')]}/{new_name}"
        else:
            new_path = old_path

        # persist first so a sibling-name clash surfaces before any subtree work
        folder.name = new_name
        if display_name is not None:
            folder.display_name = display_name
        folder.path = new_path
        folder.updated_at = utcnow()
        self.session.add(folder)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Folder name already exists in this location", name=new_name)

        if new_path != old_path:
            self._rewrite_subtree_paths(folder, old_path, new_path, org)
        self.session.commit()
        self.session.refresh(folder)

        if new_path != old_path:
            self.storage.rename_dir(
                self.storage.folder_dir(org.slug, old_path),
                self.storage.folder_dir(org.slug, new_path),
                MirrorPolicy.LOGGED,
            )
        logger.info("Renamed folder %s: %s -> %s", folder.id, old_path, new_path)
        return folder

    def _rewrite_subtree_paths(self, folder: Folder, old_prefix: str, new_prefix: str, org: Organization) -> None:
        """Walk the whole subtree (explicit stack) and rewrite stored folder and document paths."""
        stack = [folder.id]
        while stack:
            current_id = stack.pop()
            for doc in self._documents_in(current_id):
                doc.path = replace_path_prefix(doc.path, old_prefix, new_prefix)
                doc.url = self.storage.document_url(org.slug, doc.path)
                self.session.add(doc)
            for child in self._children(current_id):
                child.path = replace_path_prefix(child.path, old_prefix, new_prefix)
                self.session.add(child)
                stack.append(child.id)
        self.session.flush()

    # --- delete ---

    def delete_folder(self, folder_id, user_id: int, force: bool = False) -> Dict[str, bool]:
        folder = self.validate_folder_access(folder_id, user_id, FolderRole.owner)

        if folder.type == FolderType.root or folder.is_root:
            raise StructuralViolationError("Cannot delete root folder", folder_id=folder.id)

        org = self._get_organization(folder.organization_id)

        if not force:
            if self.session.exec(select(Folder.id).where(Folder.parent_id == folder.id)).first():
                raise StructuralViolationError("Folder contains subfolders", folder_id=folder.id)
            if self.session.exec(select(Document.id).where(Document.folder_id == folder.id)).first():
                raise StructuralViolationError("Folder is not empty", folder_id=folder.id)
        else:
            for descendant in self._descendants_bottom_up(folder):
                self._delete_documents(descendant.id, org)
                self.session.delete(descendant)
                self.session.flush()
            self._delete_documents(folder.id, org)

        target_dir = self.storage.folder_dir(org.slug, folder.path)
        self.session.delete(folder)
        self.session.commit()

        self.storage.remove_tree(target_dir, MirrorPolicy.LOGGED)
        logger.info("Deleted folder %s (force=%s)", folder_id, force)
        return {"success": True}

    def _descendants_bottom_up(self, folder: Folder) -> List[Folder]:
        """All descendants of ``folder``, every child listed before its parent."""
        org_folders = self.session.exec(
            select(Folder).where(Folder.organization_id == folder.organization_id)
        ).all()
        children: Dict[int, List[Folder]] = {}
        for f in org_folders:
            if f.parent_id is not None:
                children.setdefault(f.parent_id, []).append(f)

        ordered: List[Folder] = []
        stack = [(child, False) for child in children.get(folder.id, [])]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                ordered.append(node)
                continue
            stack.append((node, True))
            stack.extend((child, False) for child in children.get(node.id, []))
        return ordered

    def _delete_documents(self, folder_id: int, org: Organization) -> None:
        for doc in self._documents_in(folder_id):
            self.unlink_document_file(doc, org)
            uploader = self.session.get(User, doc.uploaded_by)
            if uploader:
                uploader.storage_used = max(0, (uploader.storage_used or 0) - (doc.size or 0))
                self.session.add(uploader)
            self.session.delete(doc)

    def unlink_document_file(self, doc: Document, org: Organization) -> None:
        """Best effort: mirrored location first, then the legacy flat uploads directory."""
        try:
            self.storage.unlink(self.storage.document_file(org.slug, doc.path), MirrorPolicy.LOGGED)
            if doc.filename:
                self.storage.unlink(self.storage.legacy_file(doc.filename), MirrorPolicy.LOGGED)
        except ValidationError as exc:
            logger.warning("Skipping file cleanup for document %s: %s", doc.id, exc.message)

    # --- sharing ---

    def share_folder(self, folder_id, user_id: int, target_user_id, role: FolderRole = FolderRole.viewer) -> Folder:
        folder = self.validate_folder_access(folder_id, user_id, FolderRole.owner)
        require_id(target_user_id, "target user ID")

        target = self.session.get(User, target_user_id)
        if not target:
            raise NotFoundError("Target user not found")
        member = self.session.exec(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == folder.organization_id,
                OrganizationMember.user_id == target_user_id,
            )
        ).first()
        if not member:
            raise CrossTenantError(
                "Target user does not belong to this organization",
                target_user_id=target_user_id,
            )

        access.share_with(folder, target_user_id, FolderRole(role))
        folder.updated_at = utcnow()
        self.session.add(folder)
        self.session.commit()
        self.session.refresh(folder)
        return folder

    def unshare_folder(self, folder_id, user_id: int, target_user_id) -> Folder:
        folder = self.validate_folder_access(folder_id, user_id, FolderRole.owner)
        require_id(target_user_id, "target user ID")
        if target_user_id == folder.owner_id:
            raise StructuralViolationError("Cannot remove the folder owner's access")

        access.unshare_with(folder, target_user_id)
        folder.updated_at = utcnow()
        self.session.add(folder)
        self.session.commit()
        self.session.refresh(folder)
        return folder
