# Filename: orgdrive/errors.py
"""
Error taxonomy shared by the folder and document engines.

Every error is an HTTPException so FastAPI renders it without extra glue,
but it also carries a machine-readable ``error_type`` and ``context`` that
the app-level handler adds to the response body.

Hierarchy:
    DriveError
    ├── ValidationError           400  malformed or missing identifiers/fields
    ├── NotFoundError             404  entity absent
    ├── ForbiddenError            403  insufficient role or ownership
    │   ├── CrossTenantError      403  object belongs to another organization
    │   └── QuotaExceededError    403  upload/copy would exceed the quota
    ├── ConflictError             409  uniqueness violation
    ├── StructuralViolationError  400  non-empty delete, root delete/rename
    └── StorageIOError            500  physical mirror failed
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DriveError(HTTPException):
    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None, **context: Any):
        self.message = message
        self.error_type = self.__class__.__name__
        self.context: Dict[str, Any] = context
        super().__init__(status_code=status_code or self.status_code_default, detail=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "error_type": self.error_type,
            "context": self.context,
        }

    def __str__(self) -> str:
        return self.message


class ValidationError(DriveError):
    status_code_default = status.HTTP_400_BAD_REQUEST


class NotFoundError(DriveError):
    status_code_default = status.HTTP_404_NOT_FOUND


class ForbiddenError(DriveError):
    status_code_default = status.HTTP_403_FORBIDDEN


class CrossTenantError(ForbiddenError):
    pass


class QuotaExceededError(ForbiddenError):
    def __init__(self, current: int, maximum: int, attempted: int):
        super().__init__(
            f"Storage quota exceeded. Current: {current}, Max: {maximum}, Attempted: {attempted}",
            current=current,
            maximum=maximum,
            attempted=attempted,
        )
        self.current = current
        self.maximum = maximum
        self.attempted = attempted


class ConflictError(DriveError):
    status_code_default = status.HTTP_409_CONFLICT


class StructuralViolationError(DriveError):
    status_code_default = status.HTTP_400_BAD_REQUEST


class StorageIOError(DriveError):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
