# Filename: orgdrive/routers/organizations.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from ..auth import get_current_user
from ..config import settings
from ..db import get_session, get_storage
from ..errors import ForbiddenError
from ..models import Organization, User
from ..schemas import (
    DeleteResult,
    MemberAdd,
    OrganizationCreate,
    OrganizationOut,
    OrganizationSettings,
    OrganizationUpdate,
    StorageStatsOut,
)
from ..services.organizations import OrganizationService
from ..storage import StorageLayout
from ..utils import ensure_owner

router = APIRouter(prefix="/api/organizations", tags=["organizations"])


def get_organization_service(
    session: Session = Depends(get_session),
    storage: StorageLayout = Depends(get_storage),
) -> OrganizationService:
    defaults = OrganizationSettings(
        max_storage_per_user=settings.default_max_storage_per_user,
        allowed_file_types=settings.default_allowed_file_types,
        max_users=settings.default_max_users,
    )
    return OrganizationService(session, storage, defaults=defaults)


def _require_member(org: Organization, user: User) -> None:
    if user.id not in org.members:
        raise ForbiddenError("You are not a member of this organization", organization_id=org.id)


@router.post("", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
def create_organization(
    data: OrganizationCreate,
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    org = organizations.create_organization(data.name, current_user.id, data.settings)
    return OrganizationOut.model_validate(org)


@router.get("/mine", response_model=List[OrganizationOut])
def my_organizations(
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    return [OrganizationOut.model_validate(o) for o in organizations.get_user_organizations(current_user.id)]


@router.get("/{organization_id}", response_model=OrganizationOut)
def get_organization(
    organization_id: int,
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    org = organizations.get_organization(organization_id)
    _require_member(org, current_user)
    return OrganizationOut.model_validate(org)


@router.patch("/{organization_id}", response_model=OrganizationOut)
def update_organization(
    organization_id: int,
    data: OrganizationUpdate,
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    org = organizations.update_organization(
        organization_id,
        current_user.id,
        name=data.name,
        settings=data.settings,
        active=data.active,
    )
    return OrganizationOut.model_validate(org)


@router.delete("/{organization_id}", response_model=DeleteResult)
def delete_organization(
    organization_id: int,
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    organizations.delete_organization(organization_id, current_user.id)
    return {"success": True}


@router.post("/{organization_id}/members", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
def add_member(
    organization_id: int,
    data: MemberAdd,
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    org = organizations.get_organization(organization_id)
    ensure_owner(org.owner_id, current_user.id, "Only organization owner can add members", organization_id=org.id)
    organizations.add_member(organization_id, data.user_id)
    return OrganizationOut.model_validate(organizations.get_organization(organization_id))


@router.delete("/{organization_id}/members/{user_id}", response_model=OrganizationOut)
def remove_member(
    organization_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    org = organizations.get_organization(organization_id)
    ensure_owner(org.owner_id, current_user.id, "Only organization owner can remove members", organization_id=org.id)
    organizations.remove_member(organization_id, user_id)
    return OrganizationOut.model_validate(organizations.get_organization(organization_id))


@router.get("/{organization_id}/stats", response_model=StorageStatsOut)
def storage_stats(
    organization_id: int,
    current_user: User = Depends(get_current_user),
    organizations: OrganizationService = Depends(get_organization_service),
):
    org = organizations.get_organization(organization_id)
    _require_member(org, current_user)
    return organizations.get_storage_stats(organization_id)
