# Filename: orgdrive/utils.py
import re
import unicodedata

from .errors import ForbiddenError, ValidationError


def require_id(value, label: str) -> int:
    """Identifiers are positive integers; reject anything else before it reaches a query."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid {label}")
    return value


def ensure_owner(resource_owner_id: int, user_id: int, message: str = "Forbidden", **context) -> None:
    if resource_owner_id != user_id:
        raise ForbiddenError(message, **context)


def generate_slug(name: str) -> str:
    # strip accents, then collapse everything outside [a-z0-9] into single dashes
    normalized = unicodedata.normalize("NFD", name.lower().strip())
    ascii_only = "".join(c for c in normalized if not unicodedata.combining(c))
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_only)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def replace_path_prefix(path: str, old_prefix: str, new_prefix: str) -> str:
    """Swap a leading path prefix; paths that do not start with it are returned untouched."""
    if path == old_prefix:
        return new_prefix
    if path.startswith(old_prefix + "/"):
        return new_prefix + path[len(old_prefix):]
    return path
