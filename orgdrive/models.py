# Filename: orgdrive/models.py
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import Column, DateTime, JSON, UniqueConstraint
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum

DEFAULT_MAX_STORAGE_PER_USER = 5 * 1024 * 1024 * 1024
DEFAULT_MAX_USERS = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FolderType(str, Enum):
    root = "root"
    folder = "folder"
    shared = "shared"


class FolderRole(str, Enum):
    viewer = "viewer"
    editor = "editor"
    owner = "owner"


class UserRole(str, Enum):
    user = "user"
    admin = "admin"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)
    hashed_password: str
    role: UserRole = Field(default=UserRole.user)
    active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    # plain references: organization and folder both point back at user
    organization_id: Optional[int] = Field(default=None, index=True)
    root_folder_id: Optional[int] = Field(default=None)

    storage_used: int = Field(default=0, nullable=False)


class OrganizationMember(SQLModel, table=True):
    organization_id: Optional[int] = Field(default=None, foreign_key="organization.id", primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", primary_key=True)
    joined_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    organization: Optional["Organization"] = Relationship(back_populates="memberships")


class Organization(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(index=True, unique=True)
    owner_id: int = Field(foreign_key="user.id", index=True)
    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    # settings
    max_storage_per_user: int = Field(default=DEFAULT_MAX_STORAGE_PER_USER, nullable=False)
    allowed_file_types: List[str] = Field(default_factory=lambda: ["*"], sa_column=Column(JSON, nullable=False))
    max_users: int = Field(default=DEFAULT_MAX_USERS, nullable=False)

    memberships: List[OrganizationMember] = Relationship(
        back_populates="organization",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "OrganizationMember.joined_at"},
    )

    @property
    def members(self) -> List[int]:
        return [m.user_id for m in self.memberships]

    def add_member(self, user_id: int) -> None:
        if user_id not in self.members:
            self.memberships.append(OrganizationMember(user_id=user_id))

    def remove_member(self, user_id: int) -> None:
        self.memberships = [m for m in self.memberships if m.user_id != user_id]


class FolderPermission(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    folder_id: Optional[int] = Field(default=None, foreign_key="folder.id", index=True)
    user_id: int = Field(index=True)
    role: FolderRole

    folder: Optional["Folder"] = Relationship(back_populates="permissions")


class Folder(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("organization_id", "parent_id", "name", name="uq_folder_sibling_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    display_name: Optional[str] = None
    type: FolderType = Field(default=FolderType.folder)
    owner_id: int = Field(foreign_key="user.id", index=True)
    organization_id: int = Field(foreign_key="organization.id", index=True)
    parent_id: Optional[int] = Field(default=None, foreign_key="folder.id", index=True)
    is_root: bool = Field(default=False, index=True)
    path: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    permissions: List[FolderPermission] = Relationship(
        back_populates="folder",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "FolderPermission.id"},
    )

    @property
    def shared_with(self) -> List[int]:
        return [p.user_id for p in self.permissions if p.user_id != self.owner_id]

    @property
    def visible_name(self) -> str:
        return self.display_name or self.name


class DocumentShare(SQLModel, table=True):
    document_id: Optional[int] = Field(default=None, foreign_key="document.id", primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", primary_key=True)

    document: Optional["Document"] = Relationship(back_populates="shares")


class Document(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    filename: str  # name on disk
    originalname: str
    url: Optional[str] = None
    uploaded_by: int = Field(foreign_key="user.id", index=True)
    organization_id: int = Field(foreign_key="organization.id", index=True)
    folder_id: int = Field(foreign_key="folder.id", index=True)
    path: str
    size: int = Field(default=0, ge=0)
    mime_type: str = "application/octet-stream"
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    shares: List[DocumentShare] = Relationship(
        back_populates="document",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def shared_with(self) -> List[int]:
        return [s.user_id for s in self.shares]

    def is_readable_by(self, user_id: int) -> bool:
        return self.uploaded_by == user_id or user_id in self.shared_with
