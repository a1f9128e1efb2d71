# Filename: orgdrive/routers/folders.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from ..auth import get_current_user
from ..db import get_session, get_storage
from ..errors import NotFoundError
from ..models import User
from ..schemas import (
    DeleteResult,
    DocumentOut,
    FolderContentsOut,
    FolderCreate,
    FolderOut,
    FolderRename,
    FolderShare,
    FolderTreeOut,
)
from ..services.folders import FolderNode, FolderService
from ..storage import StorageLayout

router = APIRouter(prefix="/api/folders", tags=["folders"])


def get_folder_service(
    session: Session = Depends(get_session),
    storage: StorageLayout = Depends(get_storage),
) -> FolderService:
    return FolderService(session, storage)


def _tree_out(node: FolderNode) -> FolderTreeOut:
    # iterative so deep trees do not hit the recursion limit
    root = FolderTreeOut(folder=FolderOut.model_validate(node.folder), children=[])
    stack = [(node, root)]
    while stack:
        current, out = stack.pop()
        for child in current.children:
            child_out = FolderTreeOut(folder=FolderOut.model_validate(child.folder), children=[])
            out.children.append(child_out)
            stack.append((child, child_out))
    return root


@router.post("", response_model=FolderOut, status_code=status.HTTP_201_CREATED)
def create_folder(
    data: FolderCreate,
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    parent = folders.validate_folder_access(data.parent_id, current_user.id)
    folder = folders.create_folder(
        name=data.name,
        owner_id=current_user.id,
        organization_id=parent.organization_id,
        parent_id=data.parent_id,
        display_name=data.display_name,
    )
    return FolderOut.model_validate(folder)


@router.get("", response_model=List[FolderOut])
def list_folders(
    organization_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    return [FolderOut.model_validate(f) for f in folders.list_folders(current_user.id, organization_id)]


@router.get("/tree", response_model=FolderTreeOut)
def folder_tree(
    organization_id: int = Query(...),
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    tree = folders.get_user_folder_tree(current_user.id, organization_id)
    if tree is None:
        raise NotFoundError("Root folder not found", organization_id=organization_id)
    return _tree_out(tree)


@router.get("/{folder_id}/contents", response_model=FolderContentsOut)
def folder_contents(
    folder_id: int,
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    contents = folders.get_folder_contents(folder_id, current_user.id)
    return FolderContentsOut(
        folder=FolderOut.model_validate(contents.folder),
        subfolders=[FolderOut.model_validate(f) for f in contents.subfolders],
        documents=[DocumentOut.model_validate(d) for d in contents.documents],
    )


@router.patch("/{folder_id}", response_model=FolderOut)
def rename_folder(
    folder_id: int,
    data: FolderRename,
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    folder = folders.rename_folder(folder_id, current_user.id, name=data.name, display_name=data.display_name)
    return FolderOut.model_validate(folder)


@router.delete("/{folder_id}", response_model=DeleteResult)
def delete_folder(
    folder_id: int,
    force: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    return folders.delete_folder(folder_id, current_user.id, force=force)


@router.post("/{folder_id}/share", response_model=FolderOut)
def share_folder(
    folder_id: int,
    data: FolderShare,
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    folder = folders.share_folder(folder_id, current_user.id, data.user_id, data.role)
    return FolderOut.model_validate(folder)


@router.delete("/{folder_id}/share/{user_id}", response_model=FolderOut)
def unshare_folder(
    folder_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    folders: FolderService = Depends(get_folder_service),
):
    folder = folders.unshare_folder(folder_id, current_user.id, user_id)
    return FolderOut.model_validate(folder)
