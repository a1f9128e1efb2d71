"""
Pytest configuration and fixtures for testing.
"""
import os

# settings are read at import time
os.environ.setdefault("ORGDRIVE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ORGDRIVE_DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from orgdrive.auth import get_password_hash
from orgdrive.models import User
from orgdrive.schemas import OrganizationSettings
from orgdrive.services.documents import DocumentService
from orgdrive.services.folders import FolderService
from orgdrive.services.organizations import OrganizationService
from orgdrive.storage import StagedFile, StorageLayout

PASSWORD = "testpassword123"
_password_hash = None


def password_hash() -> str:
    # bcrypt is slow; hash once per run
    global _password_hash
    if _password_hash is None:
        _password_hash = get_password_hash(PASSWORD)
    return _password_hash


@pytest.fixture
def engine():
    """In-memory database shared across threads (TestClient runs handlers in a worker thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    """Storage root and staging directory inside the test's temporary directory."""
    layout = StorageLayout(
        tmp_path / "storage",
        tmp_path / "uploads",
        blocked_extensions=[".exe", ".sh", ".bat"],
    )
    layout.root.mkdir(parents=True)
    layout.staging_root.mkdir(parents=True)
    return layout


@pytest.fixture
def folders(session, storage):
    return FolderService(session, storage)


@pytest.fixture
def documents(session, storage, folders):
    return DocumentService(session, storage, folders)


@pytest.fixture
def organizations(session, storage, folders):
    return OrganizationService(session, storage, folders)


@pytest.fixture
def make_user(session):
    """Factory creating an active user with the shared test password."""
    def _make_user(name: str, email: str) -> User:
        user = User(name=name, email=email, hashed_password=password_hash())
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user("Alice", "alice@example.com")


@pytest.fixture
def bob(make_user):
    return make_user("Bob", "bob@example.com")


@pytest.fixture
def carol(make_user):
    return make_user("Carol", "carol@example.com")


@pytest.fixture
def acme(organizations, alice):
    """Acme Corp, owned by alice, default settings."""
    return organizations.create_organization("Acme Corp", alice.id)


@pytest.fixture
def small_acme(organizations, alice):
    """Acme Corp with a 1000 byte quota and only text/plain and images allowed."""
    return organizations.create_organization(
        "Acme Corp",
        alice.id,
        OrganizationSettings(max_storage_per_user=1000, allowed_file_types=["text/plain", "image/*"]),
    )


@pytest.fixture
def alice_root(folders, alice, acme):
    return folders.create_root_folder(alice.id, acme.id)


@pytest.fixture
def stage(storage):
    """Write bytes into the staging directory the way the upload transport does."""
    def _stage(filename: str, content: bytes = b"x", mime_type: str = "text/plain", size: int = None) -> StagedFile:
        (storage.staging_root / filename).write_bytes(content)
        return StagedFile(
            filename=filename,
            originalname=filename,
            size=len(content) if size is None else size,
            mime_type=mime_type,
        )

    return _stage


@pytest.fixture
def deny_storage(monkeypatch):
    """Make one StorageLayout filesystem operation fail as if permission was denied."""
    def _deny(method: str) -> None:
        def deny():
            raise PermissionError("denied")

        def broken(self, *args):
            # the mirror policy is always the last argument
            return self.mirror(f"{method} (denied)", args[-1], deny)

        monkeypatch.setattr(StorageLayout, method, broken)

    return _deny
