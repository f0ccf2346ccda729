"""
Version Manager

Keeps the ordered version chain of a file. Every content write becomes either a
full snapshot (stored once per distinct content as a ContentBlob) or a delta
against the previous latest version. Reconstruction walks base links back to a
snapshot and replays the deltas forward.
"""
import difflib
import hashlib
import logging
from collections import Counter
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from lakesync.core.config import (
    CHECKPOINT_INTERVAL, DELTA_SAVINGS_RATIO, MAX_DELTA_SOURCE_BYTES, TEXT_MIME_PREFIXES
)
from lakesync.core.exceptions import Internal, InvalidArgument, NotFound, UnsupportedMediaType
from lakesync.db import crud
from lakesync.db.models import ContentBlob, File, FileVersion
from lakesync.services.delta import DeltaError, apply_delta, encode_delta
from lakesync.storage.base import BaseStorage, StorageError

logger = logging.getLogger(__name__)


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def is_text_mime(mime: Optional[str]) -> bool:
    return bool(mime) and mime.lower().startswith(TEXT_MIME_PREFIXES)


@dataclass
class VersionWrite:
    version: FileVersion
    created: bool


@dataclass
class VersionDiff:
    from_version: FileVersion
    to_version: FileVersion
    diff: str
    from_content: str
    to_content: str


class VersionManager:
    """Version chain operations for one database session. Never commits."""

    def __init__(self, db: Session, storage: BaseStorage,
                 savings_ratio: float = DELTA_SAVINGS_RATIO,
                 checkpoint_interval: int = CHECKPOINT_INTERVAL):
        self.db = db
        self.storage = storage
        self.savings_ratio = savings_ratio
        self.checkpoint_interval = checkpoint_interval

    # Writing

    def write(self, file: File, data: bytes, mime: Optional[str] = None) -> VersionWrite:
        """Record `data` as the new latest content of `file`."""
        if file.is_vault:
            raise InvalidArgument("Encrypted files are not versioned")

        new_hash = content_hash(data)
        latest = crud.get_latest_version(self.db, file.file_id)
        if latest is not None and latest.hash == new_hash:
            logger.debug(f"Content of file {file.file_id} unchanged, keeping v{latest.version}")
            return VersionWrite(version=latest, created=False)

        number = latest.version + 1 if latest is not None else 1
        version = FileVersion(
            file_id=file.file_id,
            version=number,
            size=len(data),
            mime=mime or file.mime,
            hash=new_hash,
            is_snapshot=True
        )

        if self._delta_allowed(latest, number, data):
            base = self.reconstruct(latest)
            delta = encode_delta(base, data)
            if len(delta) < self.savings_ratio * len(data):
                version.is_snapshot = False
                version.base_version_id = latest.version_id
                version.delta = delta
                version.delta_size = len(delta)

        if version.is_snapshot:
            version.blob_id = self._acquire_blob(data, new_hash).blob_id

        self.db.add(version)
        self.db.flush()

        file.size = len(data)
        file.hash = new_hash
        if mime:
            file.mime = mime

        logger.info(
            f"File {file.file_id} v{number} stored as "
            f"{'snapshot' if version.is_snapshot else f'delta ({version.delta_size} bytes) on v{latest.version}'}"
        )
        return VersionWrite(version=version, created=True)

    def _delta_allowed(self, latest: Optional[FileVersion], number: int, data: bytes) -> bool:
        if latest is None:
            return False
        # Periodic checkpoints bound the reconstruction depth
        if self.checkpoint_interval and number % self.checkpoint_interval == 0:
            return False
        return len(data) <= MAX_DELTA_SOURCE_BYTES and latest.size <= MAX_DELTA_SOURCE_BYTES

    def _acquire_blob(self, data: bytes, blob_hash: str) -> ContentBlob:
        blob = crud.get_blob_by_hash(self.db, blob_hash)
        if blob is None:
            try:
                ref = self.storage.save(data)
            except StorageError as e:
                raise Internal("Failed to store file content", internal_detail=str(e)) from e
            blob = ContentBlob(hash=blob_hash, size=len(data), storage_ref=ref, ref_count=0)
            self.db.add(blob)
            self.db.flush()
        blob.ref_count += 1
        return blob

    def seed_copy(self, target: File, source: File) -> Optional[FileVersion]:
        """
        Give `target` a fresh v1 holding the latest content of `source`.
        Snapshot content is shared by reference, nothing is re-stored.
        """
        latest = crud.get_latest_version(self.db, source.file_id)
        if latest is None:
            return None
        if latest.is_snapshot:
            blob = crud.get_blob(self.db, latest.blob_id)
            if blob is None:
                raise Internal("File content is missing", internal_detail=f"blob {latest.blob_id} of version {latest.version_id}")
            blob.ref_count += 1
        else:
            blob = self._acquire_blob(self.reconstruct(latest), latest.hash)

        version = FileVersion(
            file_id=target.file_id,
            version=1,
            size=latest.size,
            mime=latest.mime,
            hash=latest.hash,
            is_snapshot=True,
            blob_id=blob.blob_id
        )
        self.db.add(version)
        self.db.flush()
        return version

    # Reading

    def reconstruct(self, version: FileVersion) -> bytes:
        """Rebuild the exact bytes of `version`."""
        chain: List[FileVersion] = []
        seen = set()
        current = version
        while not current.is_snapshot:
            if current.version_id in seen or current.base_version_id is None:
                raise Internal(
                    "File history is corrupted",
                    internal_detail=f"broken delta chain at version {current.version_id}"
                )
            seen.add(current.version_id)
            chain.append(current)
            base = crud.get_version(self.db, current.base_version_id)
            if base is None:
                raise Internal(
                    "File history is corrupted",
                    internal_detail=f"missing base {current.base_version_id} of version {current.version_id}"
                )
            current = base

        data = self._read_blob(current)
        try:
            for step in reversed(chain):
                data = apply_delta(data, step.delta)
        except DeltaError as e:
            raise Internal("File history is corrupted", internal_detail=f"version {version.version_id}: {e}") from e

        if content_hash(data) != version.hash:
            raise Internal(
                "File history is corrupted",
                internal_detail=f"hash mismatch reconstructing version {version.version_id}"
            )
        return data

    def _read_blob(self, version: FileVersion) -> bytes:
        blob = crud.get_blob(self.db, version.blob_id) if version.blob_id else None
        if blob is None:
            raise Internal("File content is missing", internal_detail=f"no blob for snapshot {version.version_id}")
        try:
            return self.storage.read(blob.storage_ref)
        except StorageError as e:
            raise Internal("Failed to read file content", internal_detail=str(e)) from e

    def get_version(self, file: File, version_id: UUID) -> FileVersion:
        version = crud.get_version(self.db, version_id)
        if version is None or version.file_id != file.file_id:
            raise NotFound("Version not found", internal_detail=f"version {version_id} of file {file.file_id}")
        return version

    def list_versions(self, file: File) -> List[FileVersion]:
        return crud.list_versions(self.db, file.file_id)

    def read_latest(self, file: File) -> bytes:
        latest = crud.get_latest_version(self.db, file.file_id)
        if latest is None:
            return b""
        return self.reconstruct(latest)

    def read_version(self, file: File, version_id: UUID) -> bytes:
        return self.reconstruct(self.get_version(file, version_id))

    def diff_versions(self, file: File, from_version_id: UUID, to_version_id: UUID) -> VersionDiff:
        """Unified diff between two arbitrary versions of a text file."""
        from_version = self.get_version(file, from_version_id)
        to_version = self.get_version(file, to_version_id)
        for version in (from_version, to_version):
            if not is_text_mime(version.mime or file.mime):
                raise UnsupportedMediaType(
                    "Diff view is only available for text files",
                    internal_detail=f"version {version.version_id} has mime {version.mime or file.mime}"
                )

        from_content = self.reconstruct(from_version).decode("utf-8", errors="replace")
        to_content = self.reconstruct(to_version).decode("utf-8", errors="replace")
        diff = difflib.unified_diff(
            from_content.splitlines(keepends=True),
            to_content.splitlines(keepends=True),
            fromfile=f"{file.path}@v{from_version.version}",
            tofile=f"{file.path}@v{to_version.version}"
        )
        return VersionDiff(
            from_version=from_version,
            to_version=to_version,
            diff="".join(diff),
            from_content=from_content,
            to_content=to_content
        )

    # Releasing

    def release_versions(self, file_id: UUID) -> List[str]:
        """
        Drop every version of a file and unreference its blobs.
        Returns the storage refs that became unreferenced; the caller deletes
        them once the transaction has committed.
        """
        versions = crud.list_versions(self.db, file_id)
        if not versions:
            return []
        released = Counter(v.blob_id for v in versions if v.blob_id is not None)

        # One statement, so self-referencing base links never dangle mid-delete
        self.db.query(FileVersion).filter(FileVersion.file_id == file_id).delete(synchronize_session="fetch")

        orphaned = []
        for blob_id, count in released.items():
            blob = crud.get_blob(self.db, blob_id)
            if blob is None:
                continue
            blob.ref_count -= count
            if blob.ref_count <= 0:
                orphaned.append(blob.storage_ref)
                self.db.delete(blob)
        logger.info(f"Released {len(versions)} versions of file {file_id}, {len(orphaned)} blobs unreferenced")
        return orphaned

    def sweep_orphans(self, older_than: Optional[float] = None) -> List[str]:
        """
        Collect snapshot content nothing points at: blob rows without versions
        and stored objects without a blob row. The latter are left behind by
        transactions that rolled back after saving. Rows are deleted in the
        session; the returned refs are for the caller to delete after commit.
        """
        orphaned = []
        for blob in crud.list_unreferenced_blobs(self.db):
            in_use = crud.count_blob_versions(self.db, blob.blob_id)
            if in_use:
                logger.warning(f"Blob {blob.blob_id} had ref_count {blob.ref_count} with {in_use} versions, repaired")
                blob.ref_count = in_use
                continue
            orphaned.append(blob.storage_ref)
            self.db.delete(blob)
        self.db.flush()

        known = set(crud.list_blob_refs(self.db))
        try:
            stored = self.storage.list_content_refs(older_than=older_than)
        except StorageError as e:
            raise Internal("Failed to list stored content", internal_detail=str(e)) from e
        stray = [ref for ref in stored if ref not in known and ref not in orphaned]
        logger.info(f"Sweep found {len(orphaned)} unreferenced blobs and {len(stray)} stray objects")
        return orphaned + stray
