"""
Tests for the version chain: snapshot/delta selection, reconstruction and diffs.
"""
import random
import string

import pytest
from sqlalchemy.exc import OperationalError

from lakesync.core.exceptions import Internal, NotFound, UnsupportedMediaType
from lakesync.db.models import ContentBlob, FileVersion, SyncJournalEntry
from lakesync.services.versioning import VersionManager, content_hash

BASE_100 = (string.ascii_letters + string.digits + string.punctuation + "ABCDEF").encode()


def _versions(db, file):
    return db.query(FileVersion).filter(FileVersion.file_id == file.file_id).order_by(FileVersion.version).all()


class TestSnapshotOrDelta:
    """Test how each write is stored."""

    def test_first_version_is_snapshot(self, test_db_session, store, alice):
        """v1 is always a full snapshot."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        (v1,) = _versions(test_db_session, file)
        assert v1.version == 1
        assert v1.is_snapshot
        assert v1.blob_id is not None
        assert v1.hash == content_hash(BASE_100)

    def test_small_change_is_stored_as_delta(self, test_db_session, store, alice):
        """100 -> 105 bytes with a three-byte change becomes a delta on v1."""
        assert len(BASE_100) == 100
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        changed = BASE_100[:40] + b"~~~" + BASE_100[43:] + b"12345"
        assert len(changed) == 105

        _, written = store.update_content(alice.user_id, file.file_id, changed)
        v1, v2 = _versions(test_db_session, file)
        assert written.created
        assert v2.version == 2
        assert not v2.is_snapshot
        assert v2.base_version_id == v1.version_id
        assert v2.delta_size < 0.6 * 105
        assert store.read_content(alice.user_id, file.file_id) == changed
        assert store.read_content(alice.user_id, file.file_id, v1.version_id) == BASE_100

    def test_unrelated_content_is_snapshot(self, test_db_session, store, alice):
        """Replacing content with 500 unrelated bytes stores a snapshot."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        unrelated = random.Random(7).randbytes(500)

        store.update_content(alice.user_id, file.file_id, unrelated)
        v1, v2 = _versions(test_db_session, file)
        assert v2.is_snapshot
        assert v2.base_version_id is None
        assert v2.blob_id is not None
        assert store.read_content(alice.user_id, file.file_id) == unrelated

    def test_delta_then_unrelated_content(self, test_db_session, store, alice):
        """A delta v2 followed by unrelated content gives a snapshot v3, and every version reads back."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        changed = BASE_100[:40] + b"~~~" + BASE_100[43:] + b"12345"
        unrelated = random.Random(7).randbytes(500)
        store.update_content(alice.user_id, file.file_id, changed)
        store.update_content(alice.user_id, file.file_id, unrelated)

        v1, v2, v3 = _versions(test_db_session, file)
        assert not v2.is_snapshot
        assert v2.base_version_id == v1.version_id
        assert v3.is_snapshot
        assert v3.base_version_id is None
        assert v3.blob_id is not None
        for version, expected in ((v1, BASE_100), (v2, changed), (v3, unrelated)):
            assert store.read_content(alice.user_id, file.file_id, version.version_id) == expected

    def test_unchanged_content_creates_no_version(self, test_db_session, store, alice):
        """Writing identical bytes keeps the latest version and journals nothing."""
        file = store.create_file(alice.user_id, "a.txt", b"same")
        journal_before = test_db_session.query(SyncJournalEntry).count()

        _, written = store.update_content(alice.user_id, file.file_id, b"same")
        assert not written.created
        assert written.version.version == 1
        assert len(_versions(test_db_session, file)) == 1
        assert test_db_session.query(SyncJournalEntry).count() == journal_before

    def test_periodic_checkpoint(self, test_db_session, store, alice):
        """Every tenth version is a snapshot and long chains still reconstruct."""
        body = b"".join(f"line {i}\n".encode() for i in range(100))
        file = store.create_file(alice.user_id, "log.txt", body)
        contents = [body]
        for i in range(2, 12):
            contents.append(contents[-1] + f"edit {i}\n".encode())
            store.update_content(alice.user_id, file.file_id, contents[-1])

        versions = _versions(test_db_session, file)
        assert [v.version for v in versions] == list(range(1, 12))
        assert versions[9].is_snapshot
        assert all(not v.is_snapshot for v in versions[1:9])
        assert not versions[10].is_snapshot
        assert versions[10].base_version_id == versions[9].version_id

        for version, expected in zip(versions, contents):
            assert store.versions.reconstruct(version) == expected

    def test_savings_ratio_zero_disables_deltas(self, test_db_session, store, storage, alice):
        """A ratio of zero forces snapshots."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        manager = VersionManager(test_db_session, storage, savings_ratio=0.0)
        written = manager.write(file, BASE_100 + b"x")
        test_db_session.commit()
        assert written.version.is_snapshot


class TestReconstruction:
    """Test integrity checks on reconstruction."""

    def test_hash_mismatch_is_internal_error(self, test_db_session, store, alice):
        """Tampered history is reported as corruption."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        store.update_content(alice.user_id, file.file_id, BASE_100 + b"tail")
        v2 = _versions(test_db_session, file)[1]
        v2.hash = content_hash(b"something else")
        test_db_session.commit()

        with pytest.raises(Internal):
            store.versions.reconstruct(v2)

    def test_unknown_version(self, store, alice):
        """A version of another file is NotFound."""
        a = store.create_file(alice.user_id, "a.txt", b"a")
        b = store.create_file(alice.user_id, "b.txt", b"b")
        foreign = store.list_versions(alice.user_id, b.file_id)[0]
        with pytest.raises(NotFound):
            store.read_content(alice.user_id, a.file_id, foreign.version_id)


class TestDiffAndRestore:
    """Test the diff view and restoring old versions."""

    def test_unified_diff(self, store, alice):
        """Diffs between text versions are unified diffs."""
        file = store.create_file(alice.user_id, "notes.txt", b"alpha\nbeta\n")
        store.update_content(alice.user_id, file.file_id, b"alpha\ngamma\n")
        v2, v1 = store.list_versions(alice.user_id, file.file_id)

        result = store.diff_versions(alice.user_id, file.file_id, v1.version_id, v2.version_id)
        assert "-beta" in result.diff
        assert "+gamma" in result.diff
        assert result.from_content == "alpha\nbeta\n"
        assert result.to_content == "alpha\ngamma\n"

    def test_binary_diff_rejected(self, store, alice):
        """Diffs of binary content are UnsupportedMediaType."""
        file = store.create_file(alice.user_id, "blob.bin", b"\x00\x01", mime="application/octet-stream")
        store.update_content(alice.user_id, file.file_id, b"\x00\x02")
        v2, v1 = store.list_versions(alice.user_id, file.file_id)
        with pytest.raises(UnsupportedMediaType):
            store.diff_versions(alice.user_id, file.file_id, v1.version_id, v2.version_id)

    def test_restore_version_appends(self, store, alice):
        """Restoring an old version writes it as a new latest version."""
        file = store.create_file(alice.user_id, "notes.txt", b"first\n")
        store.update_content(alice.user_id, file.file_id, b"second\n")
        v1 = store.list_versions(alice.user_id, file.file_id)[-1]

        _, written = store.restore_version(alice.user_id, file.file_id, v1.version_id)
        assert written.version.version == 3
        assert store.read_content(alice.user_id, file.file_id) == b"first\n"

    def test_restore_of_current_content_is_noop(self, test_db_session, store, alice):
        """Restoring a version equal to the latest content creates nothing and journals nothing."""
        file = store.create_file(alice.user_id, "notes.txt", b"first\n")
        store.update_content(alice.user_id, file.file_id, b"second\n")
        store.update_content(alice.user_id, file.file_id, b"first\n")
        v1 = store.list_versions(alice.user_id, file.file_id)[-1]
        journal_before = test_db_session.query(SyncJournalEntry).count()

        _, written = store.restore_version(alice.user_id, file.file_id, v1.version_id)
        assert not written.created
        assert written.version.version == 3
        assert test_db_session.query(SyncJournalEntry).count() == journal_before


class TestBlobSharing:
    """Test content-addressed snapshot storage."""

    def test_identical_content_shares_blob(self, test_db_session, store, storage, alice):
        """Two files with equal content share one blob until both are gone."""
        a = store.create_file(alice.user_id, "a.bin", BASE_100)
        b = store.create_file(alice.user_id, "b.bin", BASE_100)

        blob = test_db_session.query(ContentBlob).one()
        assert blob.ref_count == 2
        ref = blob.storage_ref

        store.permanent_delete_file(alice.user_id, a.file_id)
        test_db_session.refresh(blob)
        assert blob.ref_count == 1
        assert storage.exists(ref)

        store.permanent_delete_file(alice.user_id, b.file_id)
        assert test_db_session.query(ContentBlob).count() == 0
        assert not storage.exists(ref)

    def test_copy_references_source_blob(self, test_db_session, store, alice):
        """A copy's first version points at the source snapshot blob."""
        source = store.create_file(alice.user_id, "a.bin", BASE_100)
        copy = store.copy_file(alice.user_id, source.file_id, None, "b.bin")

        (version,) = _versions(test_db_session, copy)
        assert version.is_snapshot
        assert test_db_session.query(ContentBlob).one().ref_count == 2
        assert store.read_content(alice.user_id, copy.file_id) == BASE_100


class TestOrphanSweep:
    """Test collection of snapshot content nothing references."""

    def test_sweep_removes_stray_objects_and_dead_blobs(self, test_db_session, store, storage, alice):
        """Objects without a blob row and blobs without versions are deleted; live content stays."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        live = test_db_session.query(ContentBlob).one()

        # Saved by a transaction that rolled back before its blob row was committed
        stray = storage.save(b"never committed")
        dead_ref = storage.save(b"dead")
        test_db_session.add(ContentBlob(hash=content_hash(b"dead"), size=4, storage_ref=dead_ref, ref_count=0))
        test_db_session.commit()

        assert store.sweep_orphaned_content() == 2
        assert not storage.exists(stray)
        assert not storage.exists(dead_ref)
        assert test_db_session.query(ContentBlob).all() == [live]
        assert storage.exists(live.storage_ref)
        assert store.read_content(alice.user_id, file.file_id) == BASE_100

    def test_sweep_repairs_miscounted_blob(self, test_db_session, store, storage, alice):
        """A zero count on a blob that versions still use is corrected, not deleted."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        blob = test_db_session.query(ContentBlob).one()
        blob.ref_count = 0
        test_db_session.commit()

        assert store.sweep_orphaned_content() == 0
        test_db_session.refresh(blob)
        assert blob.ref_count == 1
        assert storage.exists(blob.storage_ref)
        assert store.read_content(alice.user_id, file.file_id) == BASE_100

    def test_sweep_respects_grace_period(self, store, storage):
        """Objects written after the cutoff may still be claimed by an open transaction."""
        stray = storage.save(b"in flight")

        assert store.sweep_orphaned_content(older_than=0) == 0
        assert storage.exists(stray)

    def test_sweep_after_failed_write(self, test_db_session, store, storage, alice, monkeypatch):
        """Content saved by a write that failed to commit is reclaimed."""
        file = store.create_file(alice.user_id, "a.bin", BASE_100)
        unrelated = random.Random(11).randbytes(400)

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(test_db_session, "commit", failing_commit)
        with pytest.raises(Internal):
            store.update_content(alice.user_id, file.file_id, unrelated)
        monkeypatch.undo()

        stray = storage.content_ref(unrelated)
        assert storage.exists(stray)
        assert store.sweep_orphaned_content() == 1
        assert not storage.exists(stray)
        assert store.read_content(alice.user_id, file.file_id) == BASE_100
