"""
Tests for the folder tree engine.
"""
import pytest
from sqlmodel import select

from orgdrive.errors import (
    ConflictError,
    CrossTenantError,
    ForbiddenError,
    NotFoundError,
    StorageIOError,
    StructuralViolationError,
    ValidationError,
)
from orgdrive.models import Document, Folder, FolderRole, FolderType


@pytest.fixture
def projects(folders, alice, acme, alice_root):
    return folders.create_folder("Projects", alice.id, acme.id, alice_root.id)


@pytest.fixture
def webapp(folders, alice, acme, projects):
    return folders.create_folder("WebApp", alice.id, acme.id, projects.id)


@pytest.fixture
def bob_member(organizations, acme, bob):
    organizations.add_member(acme.id, bob.id)
    return bob


def user_dir(storage, org, user):
    return storage.root / org.slug / str(user.id)


class TestCreateFolder:
    """Tests for FolderService.create_folder."""

    def test_create_under_root(self, folders, storage, alice, acme, alice_root):
        folder = folders.create_folder("Projects", alice.id, acme.id, alice_root.id, display_name="My Projects")

        assert folder.path == f"{alice_root.path}/Projects"
        assert folder.parent_id == alice_root.id
        assert folder.type == FolderType.folder
        assert folder.visible_name == "My Projects"
        assert [(p.user_id, p.role) for p in folder.permissions] == [(alice.id, FolderRole.owner)]
        assert (user_dir(storage, acme, alice) / "Projects").is_dir()

    def test_path_extends_parent(self, webapp, projects):
        assert webapp.path == f"{projects.path}/WebApp"

    def test_duplicate_sibling_name_conflicts(self, folders, alice, acme, alice_root, projects):
        with pytest.raises(ConflictError):
            folders.create_folder("Projects", alice.id, acme.id, alice_root.id)

    def test_same_name_under_different_parents(self, folders, alice, acme, projects, webapp):
        nested = folders.create_folder("Projects", alice.id, acme.id, webapp.id)
        assert nested.path.endswith("/Projects/WebApp/Projects")

    @pytest.mark.parametrize("name", ["", "a/b"])
    def test_invalid_name(self, folders, alice, acme, alice_root, name):
        with pytest.raises(ValidationError):
            folders.create_folder(name, alice.id, acme.id, alice_root.id)

    def test_invalid_parent_id(self, folders, alice, acme):
        with pytest.raises(ValidationError):
            folders.create_folder("Projects", alice.id, acme.id, "12")
        with pytest.raises(NotFoundError):
            folders.create_folder("Projects", alice.id, acme.id, 9999)

    def test_requires_editor_on_parent(self, folders, bob_member, alice, acme, projects):
        """A viewer cannot create inside a folder; an editor can."""
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.viewer)
        with pytest.raises(ForbiddenError):
            folders.create_folder("Mine", bob_member.id, acme.id, projects.id)

        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.editor)
        created = folders.create_folder("Mine", bob_member.id, acme.id, projects.id)
        assert created.owner_id == bob_member.id

    def test_parent_in_other_organization(self, folders, organizations, alice, acme, alice_root):
        globex = organizations.create_organization("Globex", alice.id)
        with pytest.raises(CrossTenantError):
            folders.create_folder("Projects", alice.id, globex.id, alice_root.id)

    @pytest.mark.parametrize("first, second", [("a b", "a-b"), ("Work", "work"), ("..", "--")])
    def test_names_sharing_a_directory_conflict(self, folders, alice, acme, alice_root, first, second):
        folders.create_folder(first, alice.id, acme.id, alice_root.id)
        with pytest.raises(ConflictError):
            folders.create_folder(second, alice.id, acme.id, alice_root.id)

    def test_lookalike_sibling_cannot_claim_directory(self, session, folders, documents, storage, stage,
                                                       alice, acme, alice_root):
        """A lookalike name would share the directory, so deleting it would take these files too."""
        ab = folders.create_folder("a-b", alice.id, acme.id, alice_root.id)
        doc = documents.upload_document(stage("report.txt", b"data"), alice.id, ab.id, acme.id)

        with pytest.raises(ConflictError):
            folders.create_folder("a b", alice.id, acme.id, alice_root.id)

        assert documents.document_file(doc).read_bytes() == b"data"
        assert [f.name for f in folders.get_folder_contents(alice_root.id, alice.id).subfolders] == ["a-b"]

    def test_directory_failure_keeps_record(self, session, folders, deny_storage, alice, acme, alice_root):
        deny_storage("ensure_dir")

        with pytest.raises(StorageIOError):
            folders.create_folder("Projects", alice.id, acme.id, alice_root.id)

        kept = session.exec(select(Folder).where(Folder.parent_id == alice_root.id)).all()
        assert [f.name for f in kept] == ["Projects"]

    def test_timestamps_are_timezone_aware(self, alice, acme):
        folder = Folder(name="Projects", owner_id=alice.id, organization_id=acme.id, path="/acme-corp/1/Projects")
        assert folder.created_at.tzinfo is not None
        assert folder.updated_at.tzinfo is not None


class TestRootFolder:
    """Per-user root folder provisioning."""

    def test_root_created_with_organization(self, session, storage, alice, acme, alice_root):
        session.refresh(alice)
        assert alice_root.is_root
        assert alice_root.type == FolderType.root
        assert alice_root.name == f"root_user_{alice.id}"
        assert alice_root.path == f"/acme-corp/{alice.id}"
        assert alice_root.permissions == []
        assert alice.root_folder_id == alice_root.id
        assert user_dir(storage, acme, alice).is_dir()

    def test_root_is_idempotent(self, session, folders, alice, acme, alice_root):
        again = folders.create_root_folder(alice.id, acme.id)
        assert again.id == alice_root.id
        roots = session.exec(
            select(Folder).where(Folder.owner_id == alice.id, Folder.is_root == True)  # noqa: E712
        ).all()
        assert len(roots) == 1

    def test_directory_failure_rolls_back(self, session, folders, deny_storage, carol, acme):
        deny_storage("ensure_dir")

        with pytest.raises(StorageIOError):
            folders.create_root_folder(carol.id, acme.id)

        session.refresh(carol)
        assert carol.root_folder_id is None
        assert session.exec(select(Folder).where(Folder.owner_id == carol.id)).all() == []


class TestListFolders:
    """Tests for FolderService.list_folders."""

    def test_owned_folders_newest_first(self, folders, alice, acme, alice_root, projects, webapp):
        assert [f.id for f in folders.list_folders(alice.id)] == [webapp.id, projects.id, alice_root.id]

    def test_scoped_to_organization(self, folders, organizations, alice, acme, alice_root, projects):
        globex = organizations.create_organization("Globex", alice.id)

        listed = folders.list_folders(alice.id, globex.id)

        assert [f.organization_id for f in listed] == [globex.id]
        assert listed[0].is_root

    def test_shared_folders_not_listed(self, folders, alice, bob_member, projects):
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.editor)
        assert projects.id not in [f.id for f in folders.list_folders(bob_member.id)]


class TestRenameFolder:
    """Tests for FolderService.rename_folder."""

    def test_mid_tree_rename_rewrites_descendants(self, session, folders, documents, storage, stage,
                                                   alice, acme, alice_root, projects, webapp):
        doc = documents.upload_document(stage("notes.txt", b"hello"), alice.id, webapp.id, acme.id)

        folders.rename_folder(projects.id, alice.id, name="Work")

        session.refresh(webapp)
        session.refresh(doc)
        assert webapp.path == f"{alice_root.path}/Work/WebApp"
        assert doc.path == f"{alice_root.path}/Work/WebApp/notes.txt"
        assert doc.url == f"/storage/acme-corp/{alice.id}/Work/WebApp/notes.txt"

        base = user_dir(storage, acme, alice)
        assert (base / "Work" / "WebApp" / "notes.txt").is_file()
        assert not (base / "Projects").exists()

    def test_every_path_extends_parent_after_rename(self, session, folders, alice, acme, alice_root, projects, webapp):
        folders.create_folder("Deep", alice.id, acme.id, webapp.id)
        folders.rename_folder(projects.id, alice.id, name="Work")

        by_id = {f.id: f for f in session.exec(select(Folder)).all()}
        for f in by_id.values():
            if f.parent_id is not None:
                assert f.path == f"{by_id[f.parent_id].path}/{f.name}"

    def test_display_name_only(self, folders, alice, projects):
        renamed = folders.rename_folder(projects.id, alice.id, display_name="Client Work")
        assert renamed.name == "Projects"
        assert renamed.visible_name == "Client Work"

    def test_root_technical_name_is_fixed(self, folders, alice, alice_root):
        with pytest.raises(StructuralViolationError):
            folders.rename_folder(alice_root.id, alice.id, name="Everything")

    def test_root_display_name_can_change(self, folders, alice, alice_root):
        renamed = folders.rename_folder(alice_root.id, alice.id, display_name="My Drive")
        assert renamed.visible_name == "My Drive"
        assert renamed.path == f"/acme-corp/{alice.id}"

    def test_rename_to_sibling_name_conflicts(self, folders, alice, acme, alice_root, projects):
        folders.create_folder("Archive", alice.id, acme.id, alice_root.id)
        with pytest.raises(ConflictError):
            folders.rename_folder(projects.id, alice.id, name="Archive")

    def test_rename_onto_lookalike_directory_conflicts(self, session, folders, alice, acme, alice_root, projects):
        folders.create_folder("a-b", alice.id, acme.id, alice_root.id)
        with pytest.raises(ConflictError):
            folders.rename_folder(projects.id, alice.id, name="A B")

        session.refresh(projects)
        assert projects.path == f"{alice_root.path}/Projects"

    def test_case_change_of_own_name(self, folders, storage, alice, acme, projects):
        renamed = folders.rename_folder(projects.id, alice.id, name="projects")

        assert renamed.path.endswith("/projects")
        assert (user_dir(storage, acme, alice) / "projects").is_dir()

    def test_viewer_cannot_rename(self, folders, alice, bob_member, projects):
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.viewer)
        with pytest.raises(ForbiddenError):
            folders.rename_folder(projects.id, bob_member.id, name="Mine")


class TestDeleteFolder:
    """Tests for FolderService.delete_folder."""

    def test_delete_empty_folder(self, session, folders, storage, alice, acme, projects):
        path = user_dir(storage, acme, alice) / "Projects"
        assert folders.delete_folder(projects.id, alice.id) == {"success": True}
        assert session.get(Folder, projects.id) is None
        assert not path.exists()

    def test_folder_with_subfolders_not_deleted(self, session, folders, alice, projects, webapp):
        with pytest.raises(StructuralViolationError):
            folders.delete_folder(projects.id, alice.id)
        assert session.get(Folder, projects.id) is not None

    def test_folder_with_documents_not_deleted(self, folders, documents, stage, alice, acme, projects):
        documents.upload_document(stage("a.txt"), alice.id, projects.id, acme.id)
        with pytest.raises(StructuralViolationError):
            folders.delete_folder(projects.id, alice.id)

    def test_force_delete_removes_whole_subtree(self, session, folders, documents, storage, stage,
                                                alice, acme, projects, webapp):
        deep = folders.create_folder("Deep", alice.id, acme.id, webapp.id)
        docs = [
            documents.upload_document(stage("a.txt", b"a" * 10), alice.id, projects.id, acme.id),
            documents.upload_document(stage("b.txt", b"b" * 20), alice.id, webapp.id, acme.id),
            documents.upload_document(stage("c.txt", b"c" * 30), alice.id, deep.id, acme.id),
        ]
        doc_ids = [d.id for d in docs]
        folder_ids = [projects.id, webapp.id, deep.id]
        session.refresh(alice)
        assert alice.storage_used == 60

        folders.delete_folder(projects.id, alice.id, force=True)

        for folder_id in folder_ids:
            assert session.get(Folder, folder_id) is None
        for doc_id in doc_ids:
            assert session.get(Document, doc_id) is None
        session.refresh(alice)
        assert alice.storage_used == 0
        assert not (user_dir(storage, acme, alice) / "Projects").exists()

    def test_root_cannot_be_deleted_even_with_force(self, folders, alice, alice_root):
        with pytest.raises(StructuralViolationError):
            folders.delete_folder(alice_root.id, alice.id, force=True)

    @pytest.mark.parametrize("role", [FolderRole.viewer, FolderRole.editor])
    def test_only_owner_may_delete(self, folders, alice, bob_member, projects, role):
        folders.share_folder(projects.id, alice.id, bob_member.id, role)
        with pytest.raises(ForbiddenError):
            folders.delete_folder(projects.id, bob_member.id)


class TestFolderTree:
    """Tests for FolderService.get_user_folder_tree."""

    def test_tree_under_users_root(self, folders, alice, acme, alice_root, projects, webapp):
        folders.create_folder("Archive", alice.id, acme.id, alice_root.id)

        tree = folders.get_user_folder_tree(alice.id, acme.id)

        assert tree.folder.id == alice_root.id
        assert [c.folder.name for c in tree.children] == ["Archive", "Projects"]
        projects_node = tree.children[1]
        assert [c.folder.id for c in projects_node.children] == [webapp.id]

    def test_shared_folders_outside_own_root_are_not_in_tree(self, folders, alice, bob_member, acme, projects):
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.viewer)

        tree = folders.get_user_folder_tree(bob_member.id, acme.id)

        assert tree.folder.owner_id == bob_member.id
        assert tree.children == []

    def test_no_root_returns_none(self, folders, carol, acme):
        assert folders.get_user_folder_tree(carol.id, acme.id) is None


class TestFolderContents:
    """Tests for FolderService.get_folder_contents."""

    def test_documents_filtered_per_user(self, folders, documents, stage, alice, bob_member, acme, projects):
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.editor)
        a = documents.upload_document(stage("a.txt"), alice.id, projects.id, acme.id)
        documents.upload_document(stage("b.txt"), alice.id, projects.id, acme.id)
        c = documents.upload_document(stage("c.txt"), bob_member.id, projects.id, acme.id)

        alice_view = folders.get_folder_contents(projects.id, alice.id)
        assert [d.filename for d in alice_view.documents] == ["b.txt", "a.txt"]

        bob_view = folders.get_folder_contents(projects.id, bob_member.id)
        assert [d.id for d in bob_view.documents] == [c.id]

        documents.share_document(a.id, alice.id, [bob_member.id])
        bob_view = folders.get_folder_contents(projects.id, bob_member.id)
        assert sorted(d.id for d in bob_view.documents) == sorted([a.id, c.id])

    def test_subfolders_need_their_own_access(self, folders, alice, bob_member, projects, webapp):
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.viewer)

        assert [f.id for f in folders.get_folder_contents(projects.id, alice.id).subfolders] == [webapp.id]
        assert folders.get_folder_contents(projects.id, bob_member.id).subfolders == []

    def test_stranger_cannot_list(self, folders, carol, projects):
        with pytest.raises(ForbiddenError):
            folders.get_folder_contents(projects.id, carol.id)


class TestShareFolder:
    """Tests for FolderService.share_folder / unshare_folder."""

    def test_share_with_non_member_rejected(self, folders, alice, carol, projects):
        with pytest.raises(CrossTenantError):
            folders.share_folder(projects.id, alice.id, carol.id, FolderRole.viewer)

    def test_share_requires_owner(self, folders, alice, bob_member, carol, organizations, acme, projects):
        organizations.add_member(acme.id, carol.id)
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.editor)
        with pytest.raises(ForbiddenError):
            folders.share_folder(projects.id, bob_member.id, carol.id, FolderRole.viewer)

    def test_unshare(self, folders, alice, bob_member, projects):
        folders.share_folder(projects.id, alice.id, bob_member.id, FolderRole.viewer)
        assert bob_member.id in projects.shared_with

        folder = folders.unshare_folder(projects.id, alice.id, bob_member.id)
        assert bob_member.id not in folder.shared_with
        with pytest.raises(ForbiddenError):
            folders.get_folder_contents(projects.id, bob_member.id)

    def test_owner_access_cannot_be_removed(self, folders, alice, projects):
        with pytest.raises(StructuralViolationError):
            folders.unshare_folder(projects.id, alice.id, alice.id)
