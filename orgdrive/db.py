# Filename: orgdrive/db.py
from pathlib import Path
from sqlmodel import SQLModel, create_engine, Session
from .config import settings
from .storage import StorageLayout

DATABASE_URL = settings.database_url

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def init_db() -> None:
    """Create DB tables and storage dirs"""
    settings.storage_path.mkdir(parents=True, exist_ok=True)
    settings.uploads_path.mkdir(parents=True, exist_ok=True)
    if DATABASE_URL.startswith("sqlite:///./"):
        # relative sqlite file: make sure its directory exists
        Path(DATABASE_URL[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)


def get_session():
    """Yield a DB session (dependency)."""
    with Session(engine) as session:
        yield session


def get_storage() -> StorageLayout:
    """Physical mirror rooted at the configured storage and staging directories (dependency)."""
    return StorageLayout(
        settings.storage_path,
        settings.uploads_path,
        blocked_extensions=settings.blocked_extensions,
    )
