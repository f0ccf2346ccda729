"""
Tests for moves within and across ownership scopes.
"""
import pytest

from lakesync.core.exceptions import Conflict, InvalidArgument
from lakesync.db.models import Group
from lakesync.services import groups, sync_journal


def _actions(page, entity_id):
    return [e.action for e in page.events if e.entity_id == entity_id]


class TestMoveWithinScope:
    """Test moves that keep the scope."""

    def test_move_file_between_folders(self, test_db_session, store, alice):
        """A same-scope move journals a single move."""
        target = store.create_folder(alice.user_id, "Archive")
        file = store.create_file(alice.user_id, "a.txt", b"a")
        cursor = sync_journal.pull(test_db_session, alice.user_id).next_cursor

        store.move_file(alice.user_id, file.file_id, target.folder_id)
        assert file.folder_id == target.folder_id
        page = sync_journal.pull(test_db_session, alice.user_id, cursor)
        assert _actions(page, file.file_id) == ["move"]
        assert page.events[-1].data["path"] == "/Archive/a.txt"

    def test_move_to_same_place_is_noop(self, test_db_session, store, alice):
        """Moving onto the current parent journals nothing."""
        folder = store.create_folder(alice.user_id, "Projects")
        cursor = sync_journal.pull(test_db_session, alice.user_id).next_cursor
        store.move_folder(alice.user_id, folder.folder_id, None)
        assert sync_journal.pull(test_db_session, alice.user_id, cursor).events == []

    def test_move_into_descendant_rejected(self, store, alice):
        """A folder cannot be moved into its own subtree."""
        root = store.create_folder(alice.user_id, "Projects")
        child = store.create_folder(alice.user_id, "docs", root.folder_id)
        grandchild = store.create_folder(alice.user_id, "deep", child.folder_id)
        with pytest.raises(InvalidArgument):
            store.move_folder(alice.user_id, root.folder_id, grandchild.folder_id)
        with pytest.raises(InvalidArgument):
            store.move_folder(alice.user_id, root.folder_id, root.folder_id)

    def test_move_onto_taken_name(self, store, alice):
        """The target must not hold a live sibling with the same name."""
        target = store.create_folder(alice.user_id, "Archive")
        store.create_file(alice.user_id, "a.txt", b"old", folder_id=target.folder_id)
        file = store.create_file(alice.user_id, "a.txt", b"new")
        with pytest.raises(Conflict):
            store.move_file(alice.user_id, file.file_id, target.folder_id)


class TestMoveAcrossScopes:
    """Test moves from a personal tree into a group folder."""

    @pytest.fixture
    def design_folder(self, test_db_session, alice, bob):
        """Group folder shared by alice and bob; mallory is not involved."""
        group = groups.create_group(test_db_session, "design")
        groups.add_member(test_db_session, group.group_id, alice.user_id)
        groups.add_member(test_db_session, group.group_id, bob.user_id)
        group_folder = groups.create_group_folder(test_db_session, "Design")
        groups.grant_access(test_db_session, group_folder.group_folder_id, group.group_id)
        return group_folder

    def test_folder_move_rescopes_subtree(self, test_db_session, store, alice, bob, design_folder):
        """Moving a personal folder into a group re-scopes every descendant."""
        gid = design_folder.group_folder_id
        projects = store.create_folder(alice.user_id, "Projects")
        docs = store.create_folder(alice.user_id, "docs", projects.folder_id)
        file = store.create_file(alice.user_id, "x.txt", b"x", folder_id=docs.folder_id)
        alice_cursor = sync_journal.pull(test_db_session, alice.user_id).next_cursor
        bob_cursor = sync_journal.pull(test_db_session, bob.user_id).next_cursor

        store.move_folder(alice.user_id, projects.folder_id, gid)

        for item in (projects, docs, file):
            assert item.owner_id is None
            assert item.group_folder_id == gid
        assert projects.parent_id is None
        assert docs.parent_id == projects.folder_id
        assert file.folder_id == docs.folder_id

        bob_page = sync_journal.pull(test_db_session, bob.user_id, bob_cursor)
        assert _actions(bob_page, file.file_id) == ["create"]
        assert _actions(bob_page, projects.folder_id) == ["create", "move"]
        file_event = next(e for e in bob_page.events if e.entity_id == file.file_id)
        assert file_event.data["path"] == "/Design/Projects/docs/x.txt"

        alice_page = sync_journal.pull(test_db_session, alice.user_id, alice_cursor)
        # Personal-scope view: the subtree disappears; group view: it reappears
        assert _actions(alice_page, file.file_id) == ["delete", "create"]
        deletes = [e for e in alice_page.events if e.action == "delete"]
        assert {e.entity_id for e in deletes} == {projects.folder_id, docs.folder_id, file.file_id}
        assert all(e.data is None for e in deletes)

    def test_owner_outside_group_only_sees_delete(self, test_db_session, store, alice, bob, design_folder):
        """Once the subtree leaves, a user who lost access only sees it disappear."""
        gid = design_folder.group_folder_id
        projects = store.create_folder(alice.user_id, "Projects")
        file = store.create_file(alice.user_id, "x.txt", b"x", folder_id=projects.folder_id)
        cursor = sync_journal.pull(test_db_session, alice.user_id).next_cursor

        store.move_folder(alice.user_id, projects.folder_id, gid)
        group = next(g for g in test_db_session.query(Group).all() if g.name == "design")
        groups.remove_member(test_db_session, group.group_id, alice.user_id)

        page = sync_journal.pull(test_db_session, alice.user_id, cursor)
        assert _actions(page, file.file_id) == ["delete"]
        assert _actions(page, projects.folder_id) == ["delete"]

    def test_file_move_into_group(self, test_db_session, store, alice, bob, design_folder):
        """A single file crossing scopes is deleted in one and created in the other."""
        file = store.create_file(alice.user_id, "x.txt", b"x")
        cursor = sync_journal.pull(test_db_session, bob.user_id).next_cursor

        store.move_file(alice.user_id, file.file_id, design_folder.group_folder_id)
        assert file.owner_id is None
        assert file.folder_id is None
        page = sync_journal.pull(test_db_session, bob.user_id, cursor)
        assert _actions(page, file.file_id) == ["create", "move"]
        assert store.read_content(bob.user_id, file.file_id) == b"x"

    def test_vault_items_cannot_enter_group(self, store, vault, alice, envelope, design_folder):
        """Subtrees holding vault files stay out of group folders."""
        vault.save_envelope(alice.user_id, **envelope)
        folder = store.create_folder(alice.user_id, "Secret")
        vault.upload(alice.user_id, "s.bin", b"\x01" * 32, "v" * 16, folder_id=folder.folder_id)

        with pytest.raises(InvalidArgument):
            store.move_folder(alice.user_id, folder.folder_id, design_folder.group_folder_id)
        with pytest.raises(InvalidArgument):
            store.copy_folder(alice.user_id, folder.folder_id, design_folder.group_folder_id)
        assert folder.owner_id == alice.user_id

    def test_trashed_vault_file_blocks_folder_move(self, store, vault, alice, envelope, design_folder):
        """Vault files in the trash still travel with their folder, so they block the move."""
        vault.save_envelope(alice.user_id, **envelope)
        folder = store.create_folder(alice.user_id, "Docs")
        secret = vault.upload(alice.user_id, "s.bin", b"\x01" * 32, "v" * 16, folder_id=folder.folder_id)
        store.soft_delete_file(alice.user_id, secret.file_id)

        with pytest.raises(InvalidArgument):
            store.move_folder(alice.user_id, folder.folder_id, design_folder.group_folder_id)

        restored = store.restore_file(alice.user_id, secret.file_id)
        assert restored.owner_id == alice.user_id
        assert restored.group_folder_id is None

    def test_copy_skips_trashed_vault_file(self, test_db_session, store, vault, alice, envelope, design_folder):
        """Copies only take live items, so a trashed vault file does not block them."""
        vault.save_envelope(alice.user_id, **envelope)
        folder = store.create_folder(alice.user_id, "Docs")
        store.create_file(alice.user_id, "plain.txt", b"plain", folder_id=folder.folder_id)
        secret = vault.upload(alice.user_id, "s.bin", b"\x01" * 32, "v" * 16, folder_id=folder.folder_id)
        store.soft_delete_file(alice.user_id, secret.file_id)

        clone = store.copy_folder(alice.user_id, folder.folder_id, design_folder.group_folder_id)
        _, files = store.list_children(alice.user_id, clone.folder_id)
        assert [f.path for f in files] == ["plain.txt"]
        assert not any(f.is_vault for f in files)

    def test_group_vault_file_is_not_restored(self, test_db_session, store, alice, design_folder):
        """A vault row that ended up in group scope stays in the trash."""
        file = store.create_file(alice.user_id, "s.bin", b"\x01" * 32, folder_id=design_folder.group_folder_id)
        store.soft_delete_file(alice.user_id, file.file_id)
        file.is_vault = True
        file.iv = "v" * 16
        test_db_session.commit()

        with pytest.raises(InvalidArgument):
            store.restore_file(alice.user_id, file.file_id)
        test_db_session.refresh(file)
        assert file.is_deleted

    def test_group_folder_with_vault_item_is_not_restored(self, test_db_session, store, alice, design_folder):
        """Restoring a group subtree refuses when any item in it is a vault item."""
        folder = store.create_folder(alice.user_id, "Shared", parent_id=design_folder.group_folder_id)
        file = store.create_file(alice.user_id, "s.bin", b"\x01" * 32, folder_id=folder.folder_id)
        store.soft_delete_folder(alice.user_id, folder.folder_id)
        file.is_vault = True
        file.iv = "v" * 16
        test_db_session.commit()

        with pytest.raises(InvalidArgument):
            store.restore_folder(alice.user_id, folder.folder_id)
        test_db_session.refresh(folder)
        test_db_session.refresh(file)
        assert folder.is_deleted
        assert file.is_deleted
