"""
Tests for database models - ownership constraints and derived keys.
"""
import pytest
import uuid
from sqlalchemy.exc import IntegrityError

from lakesync.db.models import User, Folder, File, GroupFolder, SyncJournalEntry, ROOT_PARENT_KEY


class TestUserModel:
    """Test User model constraints."""

    def test_create_user_success(self, test_db_session):
        """Test successful user creation."""
        user = User(username="alice")
        test_db_session.add(user)
        test_db_session.commit()
        test_db_session.refresh(user)

        assert isinstance(user.user_id, uuid.UUID)
        assert user.created_at is not None

    def test_user_username_uniqueness(self, test_db_session):
        """Test that usernames must be unique."""
        test_db_session.add(User(username="alice"))
        test_db_session.commit()
        test_db_session.add(User(username="alice"))

        with pytest.raises(IntegrityError):
            test_db_session.commit()


class TestScopeColumns:
    """Test the exactly-one-scope rule and the derived key columns."""

    def test_folder_requires_exactly_one_scope(self, test_db_session, alice):
        """A folder with neither owner nor group folder is rejected."""
        test_db_session.add(Folder(name="orphan"))
        with pytest.raises(IntegrityError):
            test_db_session.commit()

    def test_file_rejects_both_scopes(self, test_db_session, alice):
        """A file may not belong to a user and a group folder at once."""
        group_folder = GroupFolder(name="Team")
        test_db_session.add(group_folder)
        test_db_session.commit()

        test_db_session.add(File(path="x", owner_id=alice.user_id, group_folder_id=group_folder.group_folder_id))
        with pytest.raises(IntegrityError):
            test_db_session.commit()

    def test_scope_and_parent_keys_are_derived(self, test_db_session, alice):
        """scope_key and parent_key follow owner/group and parent on insert and update."""
        parent = Folder(name="Projects", owner_id=alice.user_id)
        test_db_session.add(parent)
        test_db_session.commit()

        assert parent.scope_key == f"u:{alice.user_id}"
        assert parent.parent_key == ROOT_PARENT_KEY

        group_folder = GroupFolder(name="Team")
        test_db_session.add(group_folder)
        test_db_session.commit()

        child = Folder(name="docs", owner_id=alice.user_id, parent_id=parent.folder_id)
        test_db_session.add(child)
        test_db_session.commit()
        assert child.parent_key == str(parent.folder_id)

        child.owner_id = None
        child.group_folder_id = group_folder.group_folder_id
        child.parent_id = None
        test_db_session.commit()
        assert child.scope_key == f"g:{group_folder.group_folder_id}"
        assert child.parent_key == ROOT_PARENT_KEY


class TestSiblingUniqueness:
    """Test the partial unique index on live siblings."""

    def test_live_siblings_must_differ(self, test_db_session, alice):
        """Two live files with the same name in the same folder violate the index."""
        test_db_session.add(File(path="a.txt", owner_id=alice.user_id))
        test_db_session.commit()
        test_db_session.add(File(path="a.txt", owner_id=alice.user_id))

        with pytest.raises(IntegrityError):
            test_db_session.commit()

    def test_deleted_rows_do_not_collide(self, test_db_session, alice):
        """Soft-deleted rows are outside the uniqueness index."""
        test_db_session.add(File(path="a.txt", owner_id=alice.user_id, is_deleted=True))
        test_db_session.add(File(path="a.txt", owner_id=alice.user_id, is_deleted=True))
        test_db_session.add(File(path="a.txt", owner_id=alice.user_id))
        test_db_session.commit()

    def test_same_name_in_other_scope_is_allowed(self, test_db_session, alice, bob):
        """Uniqueness is per scope."""
        test_db_session.add(Folder(name="Projects", owner_id=alice.user_id))
        test_db_session.add(Folder(name="Projects", owner_id=bob.user_id))
        test_db_session.commit()


class TestJournalModel:
    """Test journal id generation."""

    def test_ids_increase_in_insert_order(self, test_db_session, alice):
        """Journal ids are assigned monotonically."""
        entries = [
            SyncJournalEntry(owner_id=alice.user_id, entity_type="file", entity_id=uuid.uuid4(), action="create")
            for _ in range(3)
        ]
        for entry in entries:
            test_db_session.add(entry)
        test_db_session.commit()

        ids = [e.id for e in entries]
        assert ids == sorted(ids)
        assert len(set(ids)) == 3
