# Filename: orgdrive/services/organizations.py
"""
Identity & tenancy: organizations, membership and the per-user storage
roots provisioned when someone joins.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    StorageIOError,
    StructuralViolationError,
    ValidationError,
)
from ..models import (
    DEFAULT_MAX_STORAGE_PER_USER,
    DEFAULT_MAX_USERS,
    Document,
    Folder,
    Organization,
    OrganizationMember,
    User,
    utcnow,
)
from ..schemas import OrganizationSettings
from ..storage import MirrorPolicy, StorageLayout, path_segments
from ..utils import generate_slug, require_id
from .folders import FolderService

logger = logging.getLogger(__name__)


class OrganizationService:
    def __init__(
        self,
        session: Session,
        storage: StorageLayout,
        folders: Optional[FolderService] = None,
        defaults: Optional[OrganizationSettings] = None,
    ):
        self.session = session
        self.storage = storage
        self.folders = folders or FolderService(session, storage)
        self.defaults = defaults or OrganizationSettings(
            max_storage_per_user=DEFAULT_MAX_STORAGE_PER_USER,
            allowed_file_types=["*"],
            max_users=DEFAULT_MAX_USERS,
        )

    def _get(self, organization_id) -> Organization:
        require_id(organization_id, "organization ID")
        org = self.session.get(Organization, organization_id)
        if not org:
            raise NotFoundError("Organization not found")
        return org

    def _require_owner(self, org: Organization, user_id: int, action: str) -> None:
        if org.owner_id != user_id:
            raise ForbiddenError(f"Only organization owner can {action} organization")

    def unique_slug(self, name: str, exclude_id: Optional[int] = None) -> str:
        """Slug from ``name``, suffixed -1, -2, ... until no other organization uses it."""
        base = generate_slug(name)
        if not base:
            raise ValidationError("Organization name must contain letters or digits")
        counter = 0
        while True:
            candidate = f"{base}-{counter}" if counter else base
            stmt = select(Organization.id).where(Organization.slug == candidate)
            if exclude_id is not None:
                stmt = stmt.where(Organization.id != exclude_id)
            if not self.session.exec(stmt).first():
                return candidate
            counter += 1

    # --- lifecycle ---

    def create_organization(self, name: str, owner_id, settings: Optional[OrganizationSettings] = None) -> Organization:
        require_id(owner_id, "owner ID")
        owner = self.session.get(User, owner_id)
        if not owner:
            raise NotFoundError("Owner user not found")

        settings = settings or OrganizationSettings()
        org = Organization(
            name=name.strip(),
            slug=self.unique_slug(name),
            owner_id=owner_id,
            max_storage_per_user=(
                settings.max_storage_per_user
                if settings.max_storage_per_user is not None
                else self.defaults.max_storage_per_user
            ),
            allowed_file_types=list(settings.allowed_file_types or self.defaults.allowed_file_types or ["*"]),
            max_users=settings.max_users or self.defaults.max_users,
        )
        org.add_member(owner_id)
        self.session.add(org)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Organization slug already exists", name=name)
        self.session.refresh(org)

        try:
            self.storage.ensure_dir(self.storage.org_dir(org.slug), MirrorPolicy.FATAL)
        except StorageIOError as exc:
            self.session.delete(org)
            self.session.commit()
            raise StorageIOError("Failed to create organization directory", organization=name) from exc

        previous_organization_id = owner.organization_id
        if owner.organization_id is None:
            owner.organization_id = org.id
            self.session.add(owner)
            self.session.commit()
        try:
            self.folders.create_root_folder(owner_id, org.id)
        except StorageIOError:
            org_dir = self.storage.org_dir(org.slug)
            owner.organization_id = previous_organization_id
            self.session.add(owner)
            self.session.delete(org)
            self.session.commit()
            self.storage.remove_tree(org_dir, MirrorPolicy.LOGGED)
            raise
        self.session.refresh(org)
        logger.info("Created organization %s (%s) owned by user %s", org.id, org.slug, owner_id)
        return org

    def add_member(self, organization_id, user_id) -> None:
        org = self._get(organization_id)
        require_id(user_id, "user ID")
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")

        if org.max_users and len(org.members) >= org.max_users:
            raise ForbiddenError(
                f"Organization has reached maximum users limit ({org.max_users})",
                max_users=org.max_users,
            )
        if user_id in org.members:
            raise ConflictError("User is already a member of this organization")

        previous_organization_id = user.organization_id
        org.add_member(user_id)
        user.organization_id = org.id
        user.updated_at = utcnow()
        self.session.add(org)
        self.session.add(user)
        self.session.commit()

        try:
            self.folders.create_root_folder(user_id, org.id)
        except StorageIOError:
            # a member without a storage root cannot use the organization
            org.remove_member(user_id)
            user.organization_id = previous_organization_id
            self.session.add(org)
            self.session.add(user)
            self.session.commit()
            raise
        logger.info("Added user %s to organization %s", user_id, org.id)

    def remove_member(self, organization_id, user_id) -> None:
        org = self._get(organization_id)
        require_id(user_id, "user ID")
        if org.owner_id == user_id:
            raise StructuralViolationError("Cannot remove the owner from the organization")

        org.remove_member(user_id)
        self.session.add(org)
        user = self.session.get(User, user_id)
        if user and user.organization_id == org.id:
            user.organization_id = None
            self.session.add(user)
        self.session.commit()

    # --- reads ---

    def get_user_organizations(self, user_id) -> List[Organization]:
        require_id(user_id, "user ID")
        member_of = select(OrganizationMember.organization_id).where(OrganizationMember.user_id == user_id)
        return list(self.session.exec(
            select(Organization).where(Organization.id.in_(member_of), Organization.active == True)  # noqa: E712
        ).all())

    def get_organization(self, organization_id) -> Organization:
        return self._get(organization_id)

    # --- updates ---

    def update_organization(
        self,
        organization_id,
        user_id: int,
        name: Optional[str] = None,
        settings: Optional[OrganizationSettings] = None,
        active: Optional[bool] = None,
    ) -> Organization:
        org = self._get(organization_id)
        self._require_owner(org, user_id, "update")

        if name is not None and name.strip() != org.name:
            old_slug = org.slug
            org.name = name.strip()
            org.slug = self.unique_slug(org.name, exclude_id=org.id)
            if org.slug != old_slug:
                self._move_tenant_root(org, old_slug)

        if settings is not None:
            if settings.max_storage_per_user is not None:
                org.max_storage_per_user = settings.max_storage_per_user
            if settings.allowed_file_types is not None:
                org.allowed_file_types = list(settings.allowed_file_types)
            if settings.max_users is not None:
                org.max_users = settings.max_users

        if active is not None:
            org.active = active

        org.updated_at = utcnow()
        self.session.add(org)
        self.session.commit()
        self.session.refresh(org)
        return org

    def _move_tenant_root(self, org: Organization, old_slug: str) -> None:
        """Rewrite the tenant segment of every stored path and rename the org directory."""
        new_segment = self.storage.sanitize_slug(org.slug)

        def retarget(path: str) -> str:
            rest = path_segments(path)[1:]
            return "/" + "/".join([new_segment] + rest)

        for folder in self.session.exec(select(Folder).where(Folder.organization_id == org.id)).all():
            folder.path = retarget(folder.path)
            self.session.add(folder)
        for doc in self.session.exec(select(Document).where(Document.organization_id == org.id)).all():
            doc.path = retarget(doc.path)
            doc.url = self.storage.document_url(org.slug, doc.path)
            self.session.add(doc)

        self.storage.rename_dir(self.storage.org_dir(old_slug), self.storage.org_dir(org.slug), MirrorPolicy.LOGGED)

    def delete_organization(self, organization_id, user_id: int) -> None:
        org = self._get(organization_id)
        self._require_owner(org, user_id, "delete")
        org.active = False
        org.updated_at = utcnow()
        self.session.add(org)
        self.session.commit()

    # --- stats ---

    def get_storage_stats(self, organization_id) -> Dict[str, object]:
        org = self._get(organization_id)
        members = org.members
        users = list(self.session.exec(select(User).where(User.id.in_(members))).all()) if members else []

        total_documents = self.session.exec(
            select(func.count()).select_from(Document).where(Document.organization_id == org.id)
        ).one()
        total_folders = self.session.exec(
            select(func.count()).select_from(Folder).where(Folder.organization_id == org.id)
        ).one()

        total_limit = org.max_storage_per_user * len(members)
        used = sum(u.storage_used for u in users)
        return {
            "total_users": len(users),
            "total_storage_limit": total_limit,
            "total_documents": total_documents,
            "total_folders": total_folders,
            "used_storage": used,
            "available_storage": total_limit - used,
            "storage_per_user": [
                {
                    "user_id": u.id,
                    "user_name": u.name,
                    "storage_used": u.storage_used,
                    "percentage": (u.storage_used / org.max_storage_per_user * 100) if org.max_storage_per_user else 0.0,
                }
                for u in users
            ],
        }
