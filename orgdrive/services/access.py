# Filename: orgdrive/services/access.py
"""
Folder access evaluation.

Owner access comes from ``folder.owner_id`` and is checked before the
permission list is consulted, so an unshare call can never lock an owner
out of their own folder. Non-owners need an explicit permission entry;
roles rank owner > editor > viewer.

These helpers only touch the in-memory folder object. Persisting the
change and checking organization membership is the caller's job.
"""
from typing import Optional

from ..models import Folder, FolderPermission, FolderRole

ROLE_RANK = {
    FolderRole.viewer: 1,
    FolderRole.editor: 2,
    FolderRole.owner: 3,
}


def find_permission(folder: Folder, user_id: int) -> Optional[FolderPermission]:
    for permission in folder.permissions:
        if permission.user_id == user_id:
            return permission
    return None


def has_access(folder: Folder, user_id: int, required_role: Optional[FolderRole] = None) -> bool:
    if folder.owner_id == user_id:
        return True

    permission = find_permission(folder, user_id)
    if permission is None:
        return False
    if required_role is None:
        return True
    return ROLE_RANK.get(FolderRole(permission.role), 0) >= ROLE_RANK[FolderRole(required_role)]


def share_with(folder: Folder, target_user_id: int, role: FolderRole = FolderRole.viewer) -> None:
    if folder.owner_id == target_user_id:
        return

    existing = find_permission(folder, target_user_id)
    if existing is not None:
        existing.role = FolderRole(role)
    else:
        folder.permissions.append(FolderPermission(user_id=target_user_id, role=FolderRole(role)))


def unshare_with(folder: Folder, target_user_id: int) -> None:
    folder.permissions = [p for p in folder.permissions if p.user_id != target_user_id]
