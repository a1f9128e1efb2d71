# Filename: orgdrive/storage.py
"""
Physical mirror of the folder/document tree.

Layout on disk:
    <root>/<sanitized org slug>/<sanitized path segments...>/<sanitized filename>

Stored logical paths start with a tenant segment (``/<slug>/<userId>/...``).
That first segment is always replaced by the organization's current
sanitized slug, every other segment is sanitized on its own, and the final
absolute path must stay inside the root. Nothing here trusts a stored path
string as-is.
"""
import logging
import os
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional
from uuid import uuid4

import aiofiles
from fastapi import UploadFile

from .errors import StorageIOError, ValidationError

logger = logging.getLogger(__name__)

SEGMENT_UNSAFE = re.compile(r"[^a-z0-9_.-]", re.IGNORECASE)
SLUG_UNSAFE = re.compile(r"[^a-z0-9-]")
FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")
TRAVERSAL_PATTERNS = (
    re.compile(r"\.\."),
    re.compile(r"%2e%2e", re.IGNORECASE),
    re.compile(r"%252e%252e", re.IGNORECASE),
)
MAX_FILENAME_LENGTH = 100
CHUNK_SIZE = 1024 * 1024


class MirrorPolicy(str, Enum):
    FATAL = "fatal"    # failure aborts the operation
    LOGGED = "logged"  # failure is logged, database stays authoritative


@dataclass
class MirrorOutcome:
    label: str
    ok: bool
    error: Optional[str] = None


@dataclass
class StagedFile:
    """An upload already written to the staging directory by the transport layer."""
    filename: str
    originalname: str
    size: int
    mime_type: str = "application/octet-stream"


def path_segments(logical_path: str) -> List[str]:
    return [p for p in logical_path.split("/") if p]


class StorageLayout:
    def __init__(self, root, staging_root, blocked_extensions: Iterable[str] = ()):
        self.root = Path(root).resolve()
        self.staging_root = Path(staging_root).resolve()
        self.blocked_extensions = {e.lower() for e in blocked_extensions}

    # --- sanitization ---

    @staticmethod
    def sanitize_segment(segment: str) -> str:
        cleaned = SEGMENT_UNSAFE.sub("-", segment)
        # "." and ".." survive the character filter
        if not cleaned.strip("."):
            cleaned = "-" * len(cleaned)
        return cleaned or "-"

    @staticmethod
    def sanitize_slug(slug: str) -> str:
        safe = SLUG_UNSAFE.sub("-", slug.lower()).strip("-")
        if not safe:
            raise ValidationError("Invalid organization slug")
        return safe

    def sanitize_filename(self, filename: str) -> str:
        if not filename:
            raise ValidationError("File name is required")
        if any(p.search(filename) for p in TRAVERSAL_PATTERNS):
            raise ValidationError("Path traversal attempt detected", filename=filename)
        cleaned = FILENAME_UNSAFE.sub("_", filename.strip()).lstrip(".")
        if not cleaned:
            raise ValidationError("Invalid file name", filename=filename)
        if len(cleaned) > MAX_FILENAME_LENGTH:
            raise ValidationError(
                f"File name exceeds maximum length of {MAX_FILENAME_LENGTH} characters",
                filename=filename,
            )
        ext = os.path.splitext(cleaned)[1].lower()
        if ext and ext in self.blocked_extensions:
            raise ValidationError(f"File extension '{ext}' is not allowed", filename=filename)
        return cleaned

    # --- path resolution ---

    def ensure_within(self, path: Path, base: Path) -> Path:
        resolved = path.resolve()
        if resolved != base and base not in resolved.parents:
            raise ValidationError("Invalid destination path")
        return resolved

    def org_dir(self, slug: str) -> Path:
        return self.ensure_within(self.root / self.sanitize_slug(slug), self.root)

    def folder_dir(self, slug: str, logical_path: str) -> Path:
        tail = [self.sanitize_segment(s) for s in path_segments(logical_path)[1:]]
        return self.ensure_within(self.root / self.sanitize_slug(slug) / Path(*tail), self.root)

    # documents live at <folder path>/<filename>, so the same mapping applies
    document_file = folder_dir

    def staged_file(self, filename: str) -> Path:
        # staged names come from the transport as-is; only a bare name is accepted
        if not filename or Path(filename).name != filename or any(p.search(filename) for p in TRAVERSAL_PATTERNS):
            raise ValidationError("Invalid staged file name", filename=filename)
        return self.ensure_within(self.staging_root / filename, self.staging_root)

    def legacy_file(self, filename: str) -> Path:
        """Flat uploads location used before files were mirrored under the org tree."""
        return self.staged_file(filename)

    @staticmethod
    def document_url(slug: str, logical_path: str) -> str:
        """Public URL, relative to the storage root, mirroring ``document_file``."""
        tail = [StorageLayout.sanitize_segment(s) for s in path_segments(logical_path)[1:]]
        return "/".join(["/storage", StorageLayout.sanitize_slug(slug)] + tail)

    # --- mirroring ---

    def mirror(self, label: str, policy: MirrorPolicy, action: Callable[[], object]) -> MirrorOutcome:
        try:
            action()
        except OSError as exc:
            if policy is MirrorPolicy.FATAL:
                logger.error("%s failed: %s", label, exc)
                raise StorageIOError(f"Storage operation failed: {label}", operation=label) from exc
            logger.warning("%s failed (ignored): %s", label, exc)
            return MirrorOutcome(label=label, ok=False, error=str(exc))
        return MirrorOutcome(label=label, ok=True)

    def ensure_dir(self, path: Path, policy: MirrorPolicy) -> MirrorOutcome:
        return self.mirror(f"create directory {path}", policy, lambda: path.mkdir(parents=True, exist_ok=True))

    def rename_dir(self, old: Path, new: Path, policy: MirrorPolicy) -> MirrorOutcome:
        def _rename():
            if old.exists() and old != new:
                new.parent.mkdir(parents=True, exist_ok=True)
                old.rename(new)
            elif not new.exists():
                new.mkdir(parents=True, exist_ok=True)

        return self.mirror(f"rename directory {old} -> {new}", policy, _rename)

    def remove_tree(self, path: Path, policy: MirrorPolicy) -> MirrorOutcome:
        def _remove():
            if path.exists():
                shutil.rmtree(path)

        return self.mirror(f"remove directory {path}", policy, _remove)

    def move_file(self, src: Path, dst: Path, policy: MirrorPolicy) -> MirrorOutcome:
        def _move():
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src), str(dst))

        return self.mirror(f"move file {src} -> {dst}", policy, _move)

    def copy_file(self, src: Path, dst: Path, policy: MirrorPolicy) -> MirrorOutcome:
        def _copy():
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dst)

        return self.mirror(f"copy file {src} -> {dst}", policy, _copy)

    def unlink(self, path: Path, policy: MirrorPolicy) -> MirrorOutcome:
        return self.mirror(f"unlink {path}", policy, lambda: path.unlink(missing_ok=True))


# --- upload staging (transport side) ---

def make_storage_name(original_filename: str) -> str:
    uid = uuid4().hex
    sanitized = FILENAME_UNSAFE.sub("_", original_filename or "").strip("._")
    return f"{uid}_{sanitized}"[:MAX_FILENAME_LENGTH]


async def save_upload_file(upload_file: UploadFile, storage: StorageLayout) -> StagedFile:
    """
    Stream an UploadFile into the staging directory. Returns the StagedFile descriptor
    the document engine consumes.
    """
    storage.staging_root.mkdir(parents=True, exist_ok=True)
    storage_name = make_storage_name(upload_file.filename or "upload")
    dest_path = storage.staged_file(storage_name)
    size = 0
    try:
        async with aiofiles.open(dest_path, "wb") as out_file:
            while True:
                chunk = await upload_file.read(CHUNK_SIZE)
                if not chunk:
                    break
                await out_file.write(chunk)
                size += len(chunk)
    finally:
        await upload_file.close()
    return StagedFile(
        filename=dest_path.name,
        originalname=upload_file.filename or storage_name,
        size=size,
        mime_type=upload_file.content_type or "application/octet-stream",
    )
