# Filename: orgdrive/schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr
from typing import Optional, List
from datetime import datetime

from .models import FolderRole, FolderType, UserRole


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RegisterRequest(BaseModel):
    name: constr(min_length=1, max_length=100)
    email: EmailStr
    password: constr(min_length=8)
    organization_id: int


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    active: bool
    organization_id: Optional[int]
    root_folder_id: Optional[int]
    storage_used: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# --- organizations ---

class OrganizationSettings(BaseModel):
    max_storage_per_user: Optional[int] = Field(default=None, ge=0)
    allowed_file_types: Optional[List[str]] = None
    max_users: Optional[int] = Field(default=None, ge=1)


class OrganizationCreate(BaseModel):
    name: constr(min_length=2, max_length=100)
    settings: Optional[OrganizationSettings] = None


class OrganizationUpdate(BaseModel):
    name: Optional[constr(min_length=2, max_length=100)] = None
    settings: Optional[OrganizationSettings] = None
    active: Optional[bool] = None


class OrganizationOut(BaseModel):
    id: int
    name: str
    slug: str
    owner_id: int
    members: List[int]
    active: bool
    max_storage_per_user: int
    allowed_file_types: List[str]
    max_users: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MemberAdd(BaseModel):
    user_id: int


class UserStorageOut(BaseModel):
    user_id: int
    user_name: str
    storage_used: int
    percentage: float


class StorageStatsOut(BaseModel):
    total_users: int
    total_storage_limit: int
    total_documents: int
    total_folders: int
    used_storage: int
    available_storage: int
    storage_per_user: List[UserStorageOut]


# --- folders ---

class PermissionOut(BaseModel):
    user_id: int
    role: FolderRole

    model_config = ConfigDict(from_attributes=True)


class FolderCreate(BaseModel):
    name: constr(min_length=1, max_length=255)
    parent_id: int
    display_name: Optional[constr(min_length=1, max_length=255)] = None


class FolderRename(BaseModel):
    name: Optional[constr(min_length=1, max_length=255)] = None
    display_name: Optional[constr(min_length=1, max_length=255)] = None


class FolderShare(BaseModel):
    user_id: int
    role: FolderRole = FolderRole.viewer


class FolderOut(BaseModel):
    id: int
    name: str
    display_name: Optional[str]
    visible_name: str
    type: FolderType
    owner_id: int
    organization_id: int
    parent_id: Optional[int]
    is_root: bool
    path: str
    permissions: List[PermissionOut]
    shared_with: List[int]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FolderTreeOut(BaseModel):
    folder: FolderOut
    children: List["FolderTreeOut"] = []

    model_config = ConfigDict(from_attributes=True)


# --- documents ---

class DocumentOut(BaseModel):
    id: int
    filename: str
    originalname: str
    url: Optional[str]
    uploaded_by: int
    organization_id: int
    folder_id: int
    path: str
    size: int
    mime_type: str
    shared_with: List[int]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FolderContentsOut(BaseModel):
    folder: FolderOut
    subfolders: List[FolderOut]
    documents: List[DocumentOut]

    model_config = ConfigDict(from_attributes=True)


class DocumentTarget(BaseModel):
    target_folder_id: int


class DocumentShareRequest(BaseModel):
    user_ids: List[int]


class DeleteResult(BaseModel):
    success: bool
