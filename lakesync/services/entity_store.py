"""
Entity Store

Canonical hierarchy of folders and files across personal and group scopes.
Every mutation resolves its scope through the access resolver, changes rows,
writes its journal entries and commits them together. Background jobs and
physical object cleanup only run after a successful commit.
"""
import logging
import mimetypes
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from lakesync.core.config import MAX_UPLOAD_BYTES
from lakesync.core.exceptions import Conflict, Internal, InvalidArgument, NotFound
from lakesync.db import crud
from lakesync.db.models import File, FileVersion, Folder, utcnow
from lakesync.services import sync_journal
from lakesync.services.access_resolver import (
    GroupScope, PersonalScope, Scope, apply_scope, authorize_entity, authorize_scope, resolve_location
)
from lakesync.services.background import BackgroundQueue
from lakesync.services.folder_tree import Subtree, collect_subtree, load_arena
from lakesync.services.versioning import VersionManager, VersionWrite, content_hash
from lakesync.storage.base import BaseStorage, StorageError

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
RESERVED_NAMES = (".", "..")


def validate_name(name: Optional[str]) -> str:
    """Normalize a leaf name, rejecting anything that is not a single path segment."""
    if name is None:
        raise InvalidArgument("Name is required")
    name = name.strip()
    if not name:
        raise InvalidArgument("Name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidArgument(f"Name must be at most {MAX_NAME_LENGTH} characters")
    if name in RESERVED_NAMES or "/" in name or "\\" in name:
        raise InvalidArgument("Name must not contain path separators")
    return name


def vault_storage_path(owner_id: UUID, file_id: UUID, name: str, revision: Optional[str] = None) -> str:
    """Logical location of a vault file's ciphertext object."""
    if revision:
        return f"vault/{owner_id}/{file_id}/{revision}/{name}"
    return f"vault/{owner_id}/{file_id}/{name}"


def check_upload_size(data: bytes) -> None:
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidArgument(f"File exceeds the {MAX_UPLOAD_BYTES} byte upload limit")


def _has_vault_items(subtree: Subtree, include_deleted: bool = False) -> bool:
    folders = subtree.folders if include_deleted else [f for f in subtree.folders if not f.is_deleted]
    files = subtree.files if include_deleted else [f for f in subtree.files if not f.is_deleted]
    return any(f.is_vault for f in folders) or any(f.is_vault for f in files)


def _conflict_message(error: IntegrityError) -> str:
    """Tell the unique constraints apart so clients know what they raced on."""
    detail = str(error.orig).lower()
    if "unique_file_version" in detail or "file_versions.file_id" in detail:
        return "Another write created this version first, retry the write"
    if "content_blobs" in detail:
        return "The same content was stored concurrently, retry the write"
    return "An item with this name already exists here"


class EntityStore:
    def __init__(self, db: Session, storage: BaseStorage, background: Optional[BackgroundQueue] = None):
        self.db = db
        self.storage = storage
        self.background = background
        self.versions = VersionManager(db, storage)
        self._jobs: List[Tuple[str, Dict]] = []
        self._release_refs: List[str] = []
        self._compensations: List[Callable[[], None]] = []

    # Transaction plumbing

    @contextmanager
    def unit_of_work(self):
        """Commit everything done inside the block, or nothing at all."""
        try:
            yield
            self.db.commit()
        except IntegrityError as e:
            self._abort()
            raise Conflict(_conflict_message(e), internal_detail=str(e.orig)) from e
        except StorageError as e:
            self._abort()
            raise Internal("Storage operation failed", internal_detail=str(e)) from e
        except SQLAlchemyError as e:
            self._abort()
            raise Internal("Database operation failed", internal_detail=str(e)) from e
        except Exception:
            self._abort()
            raise
        self._after_commit()

    def _abort(self) -> None:
        self.db.rollback()
        for undo in reversed(self._compensations):
            try:
                undo()
            except Exception:
                logger.exception("Failed to undo storage change after rollback")
        self._compensations.clear()
        self._jobs.clear()
        self._release_refs.clear()

    def _after_commit(self) -> None:
        self._compensations.clear()
        for ref in self._release_refs:
            try:
                self.storage.delete(ref)
            except StorageError:
                logger.exception(f"Failed to delete released object {ref}")
        self._release_refs.clear()
        jobs, self._jobs = self._jobs, []
        if self.background is None:
            return
        for kind, payload in jobs:
            self.background.enqueue(kind, **payload)

    def defer(self, kind: str, **payload) -> None:
        """Queue a background job to run once the current unit of work commits."""
        self._jobs.append((kind, payload))

    def release_after_commit(self, refs: List[str]) -> None:
        self._release_refs.extend(refs)

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._compensations.append(undo)

    def journal(self, scope: Scope, entity_type: str, entity_id: UUID, action: str,
                version_id: Optional[UUID] = None, base_version_id: Optional[UUID] = None) -> None:
        sync_journal.record_change(self.db, scope, entity_type, entity_id, action, version_id, base_version_id)

    # Lookups

    def _live_folder(self, folder_id: UUID) -> Folder:
        folder = crud.get_folder(self.db, folder_id)
        if folder is None:
            raise NotFound("Folder not found", internal_detail=f"no live folder {folder_id}")
        return folder

    def _any_folder(self, folder_id: UUID) -> Folder:
        folder = crud.get_folder(self.db, folder_id, include_deleted=True)
        if folder is None:
            raise NotFound("Folder not found", internal_detail=f"no folder {folder_id}")
        return folder

    def live_file(self, file_id: UUID) -> File:
        file = crud.get_file(self.db, file_id)
        if file is None or file.is_deleted:
            raise NotFound("File not found", internal_detail=f"no live file {file_id}")
        return file

    def _any_file(self, file_id: UUID) -> File:
        file = crud.get_file(self.db, file_id)
        if file is None:
            raise NotFound("File not found", internal_detail=f"no file {file_id}")
        return file

    def get_folder(self, user_id: UUID, folder_id: UUID) -> Folder:
        folder = self._live_folder(folder_id)
        authorize_entity(self.db, user_id, folder)
        return folder

    def get_file(self, user_id: UUID, file_id: UUID) -> File:
        file = self.live_file(file_id)
        authorize_entity(self.db, user_id, file)
        return file

    def ensure_folder_name_free(self, scope: Scope, parent_id: Optional[UUID], name: str,
                                 exclude_id: Optional[UUID] = None) -> None:
        if crud.find_live_folder_sibling(self.db, scope.key, parent_id, name, exclude_id) is not None:
            raise Conflict(f"A folder named '{name}' already exists here")

    def ensure_file_name_free(self, scope: Scope, folder_id: Optional[UUID], name: str,
                               exclude_id: Optional[UUID] = None) -> None:
        if crud.find_live_file_sibling(self.db, scope.key, folder_id, name, exclude_id) is not None:
            raise Conflict(f"A file named '{name}' already exists here")

    @staticmethod
    def _is_vault_root(folder: Folder) -> bool:
        return folder.is_vault and folder.parent_id is None and folder.owner_id is not None

    def list_children(self, user_id: UUID, folder_id: Optional[UUID] = None) -> Tuple[List[Folder], List[File]]:
        location = resolve_location(self.db, user_id, folder_id)
        return (
            crud.list_child_folders(self.db, location.scope.key, location.folder_id),
            crud.list_child_files(self.db, location.scope.key, location.folder_id)
        )

    # Folders

    def create_folder(self, user_id: UUID, name: str, parent_id: Optional[UUID] = None) -> Folder:
        name = validate_name(name)
        with self.unit_of_work():
            location = resolve_location(self.db, user_id, parent_id)
            self.ensure_folder_name_free(location.scope, location.folder_id, name)
            folder = Folder(folder_id=uuid4(), name=name, parent_id=location.folder_id)
            apply_scope(folder, location.scope)
            self.db.add(folder)
            self.db.flush()
            self.journal(location.scope, "folder", folder.folder_id, "create")
            self.defer("index", entity_type="folder", entity_id=folder.folder_id)
        logger.info(f"Folder {folder.folder_id} created in {location.scope.key}")
        return folder

    def rename_folder(self, user_id: UUID, folder_id: UUID, new_name: str) -> Folder:
        new_name = validate_name(new_name)
        with self.unit_of_work():
            folder = self._live_folder(folder_id)
            scope = authorize_entity(self.db, user_id, folder)
            if folder.name != new_name:
                self.ensure_folder_name_free(scope, folder.parent_id, new_name, exclude_id=folder.folder_id)
                folder.name = new_name
                self.journal(scope, "folder", folder.folder_id, "update")
                self.defer("index", entity_type="folder", entity_id=folder.folder_id)
        logger.info(f"Folder {folder_id} renamed")
        return folder

    def move_folder(self, user_id: UUID, folder_id: UUID, target_id: Optional[UUID]) -> Folder:
        """
        Move a folder under `target_id` (folder id, group folder id, or None for
        the personal root). Crossing scopes re-scopes the whole subtree.
        """
        with self.unit_of_work():
            folder = self._live_folder(folder_id)
            source = authorize_entity(self.db, user_id, folder)
            location = resolve_location(self.db, user_id, target_id)
            dest = location.scope
            if self._is_vault_root(folder):
                raise InvalidArgument("The vault folder cannot be moved")
            if dest == source and location.folder_id == folder.parent_id:
                return folder

            subtree = collect_subtree(self.db, folder)
            if location.folder_id is not None and location.folder_id in set(subtree.folder_ids):
                raise InvalidArgument("Cannot move a folder into itself or one of its descendants")
            # Trashed items move with the subtree, so they count too
            if isinstance(dest, GroupScope) and _has_vault_items(subtree, include_deleted=True):
                raise InvalidArgument("Vault items cannot be moved into a group folder")
            self.ensure_folder_name_free(dest, location.folder_id, folder.name, exclude_id=folder.folder_id)

            crossing = dest != source
            live_folders = [f for f in subtree.folders if not f.is_deleted]
            live_files = [f for f in subtree.files if not f.is_deleted]
            if crossing:
                # Consumers of the old scope see the subtree disappear
                for item in live_folders:
                    self.journal(source, "folder", item.folder_id, "delete")
                for item in live_files:
                    self.journal(source, "file", item.file_id, "delete")
                for item in subtree.folders:
                    apply_scope(item, dest)
                for item in subtree.files:
                    apply_scope(item, dest)

            folder.parent_id = location.folder_id
            self.db.flush()

            if crossing:
                for item in live_folders:
                    self.journal(dest, "folder", item.folder_id, "create")
                for item in live_files:
                    self.journal(dest, "file", item.file_id, "create")
            self.journal(dest, "folder", folder.folder_id, "move")
            self.defer("index", entity_type="folder", entity_id=folder.folder_id)
        logger.info(
            f"Folder {folder_id} moved {source.key} -> {dest.key} "
            f"({len(subtree.folders)} folders, {len(subtree.files)} files)"
        )
        return folder

    def copy_folder(self, user_id: UUID, folder_id: UUID, target_id: Optional[UUID],
                    new_name: Optional[str] = None) -> Folder:
        """Clone the live part of a subtree under `target_id`."""
        name = validate_name(new_name) if new_name is not None else None
        with self.unit_of_work():
            source_root = self._live_folder(folder_id)
            authorize_entity(self.db, user_id, source_root)
            location = resolve_location(self.db, user_id, target_id)
            dest = location.scope
            name = name or source_root.name

            subtree = collect_subtree(self.db, source_root)
            if location.folder_id is not None and location.folder_id in set(subtree.folder_ids):
                raise InvalidArgument("Cannot copy a folder into itself or one of its descendants")
            if isinstance(dest, GroupScope) and _has_vault_items(subtree):
                raise InvalidArgument("Vault items cannot be copied into a group folder")
            self.ensure_folder_name_free(dest, location.folder_id, name)

            clones: Dict[UUID, UUID] = {}
            for item in subtree.folders:
                if item.is_deleted:
                    continue
                if item is source_root:
                    parent_id, item_name = location.folder_id, name
                elif item.parent_id in clones:
                    parent_id, item_name = clones[item.parent_id], item.name
                else:
                    continue
                clone = Folder(folder_id=uuid4(), name=item_name, parent_id=parent_id)
                apply_scope(clone, dest)
                self.db.add(clone)
                clones[item.folder_id] = clone.folder_id
                self.journal(dest, "folder", clone.folder_id, "create")
            self.db.flush()

            copied_files = 0
            for item in subtree.files:
                if item.is_deleted or item.folder_id not in clones:
                    continue
                self._clone_file(item, dest, clones[item.folder_id], item.path)
                copied_files += 1
            root_clone = crud.get_folder(self.db, clones[source_root.folder_id])
            self.defer("index", entity_type="folder", entity_id=root_clone.folder_id)
        logger.info(f"Folder {folder_id} copied to {root_clone.folder_id} ({len(clones)} folders, {copied_files} files)")
        return root_clone

    def soft_delete_folder(self, user_id: UUID, folder_id: UUID) -> Folder:
        with self.unit_of_work():
            folder = self._live_folder(folder_id)
            scope = authorize_entity(self.db, user_id, folder)
            if self._is_vault_root(folder):
                raise InvalidArgument("The vault folder cannot be deleted, reset the vault instead")
            subtree = collect_subtree(self.db, folder)
            # One timestamp for the whole subtree lets restore find what went together
            now = utcnow()
            for item in subtree.folders:
                if not item.is_deleted:
                    item.is_deleted = True
                    item.deleted_at = now
                    self.journal(scope, "folder", item.folder_id, "delete")
            for item in subtree.files:
                if not item.is_deleted:
                    item.is_deleted = True
                    item.deleted_at = now
                    self.journal(scope, "file", item.file_id, "delete")
                    self.defer("unindex", entity_type="file", entity_id=item.file_id)
            self.defer("unindex", entity_type="folder", entity_id=folder.folder_id)
        logger.info(f"Folder {folder_id} moved to trash")
        return folder

    def restore_folder(self, user_id: UUID, folder_id: UUID) -> Folder:
        with self.unit_of_work():
            folder = self._any_folder(folder_id)
            scope = authorize_entity(self.db, user_id, folder)
            if not folder.is_deleted:
                raise InvalidArgument("Folder is not in the trash")
            stamp = folder.deleted_at
            if folder.parent_id is not None and crud.get_folder(self.db, folder.parent_id) is None:
                # Former parent is gone, restore to the scope root
                folder.parent_id = None
            self.ensure_folder_name_free(scope, folder.parent_id, folder.name, exclude_id=folder.folder_id)

            subtree = collect_subtree(self.db, folder)
            if isinstance(scope, GroupScope) and _has_vault_items(subtree, include_deleted=True):
                raise InvalidArgument("Vault items cannot be restored into a group folder")
            restored = set()
            for item in subtree.folders:
                if item is folder or (item.is_deleted and item.deleted_at == stamp and item.parent_id in restored):
                    item.is_deleted = False
                    item.deleted_at = None
                    restored.add(item.folder_id)
                    self.journal(scope, "folder", item.folder_id, "create")
            for item in subtree.files:
                if item.is_deleted and item.deleted_at == stamp and item.folder_id in restored:
                    item.is_deleted = False
                    item.deleted_at = None
                    self.journal(scope, "file", item.file_id, "create")
                    self.defer("index", entity_type="file", entity_id=item.file_id)
            self.defer("index", entity_type="folder", entity_id=folder.folder_id)
        logger.info(f"Folder {folder_id} restored with {len(restored) - 1} subfolders")
        return folder

    def permanent_delete_folder(self, user_id: UUID, folder_id: UUID) -> None:
        with self.unit_of_work():
            folder = self._any_folder(folder_id)
            scope = authorize_entity(self.db, user_id, folder)
            if self._is_vault_root(folder):
                raise InvalidArgument("The vault folder cannot be deleted, reset the vault instead")
            subtree = collect_subtree(self.db, folder)
            # Items already in the trash were announced when they were trashed
            for item in subtree.folders:
                if not item.is_deleted:
                    self.journal(scope, "folder", item.folder_id, "delete")
            for item in subtree.files:
                if not item.is_deleted:
                    self.journal(scope, "file", item.file_id, "delete")
            self.purge(subtree.folder_ids, subtree.files)
        logger.info(f"Folder {folder_id} permanently deleted")

    # Files

    def create_file(self, user_id: UUID, name: str, data: bytes, mime: Optional[str] = None,
                    folder_id: Optional[UUID] = None, iv: Optional[str] = None) -> File:
        """Create a file with `data` as v1. `iv` marks client-encrypted content."""
        name = validate_name(name)
        check_upload_size(data)
        mime = mime or mimetypes.guess_type(name)[0] or "application/octet-stream"
        with self.unit_of_work():
            location = resolve_location(self.db, user_id, folder_id)
            self.ensure_file_name_free(location.scope, location.folder_id, name)
            file = File(
                file_id=uuid4(),
                path=name,
                folder_id=location.folder_id,
                size=len(data),
                mime=mime,
                hash=content_hash(data),
                iv=iv,
                original_name=name
            )
            apply_scope(file, location.scope)
            self.db.add(file)
            self.db.flush()
            written = self.versions.write(file, data, mime)
            self.journal(location.scope, "file", file.file_id, "create", written.version.version_id)
            self.defer("index", entity_type="file", entity_id=file.file_id)
            self.defer("thumbnail", file_id=file.file_id, mime=mime)
        logger.info(f"File {file.file_id} created in {location.scope.key} ({len(data)} bytes)")
        return file

    def update_content(self, user_id: UUID, file_id: UUID, data: bytes,
                       mime: Optional[str] = None) -> Tuple[File, VersionWrite]:
        check_upload_size(data)
        with self.unit_of_work():
            file = self.live_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            if file.is_vault:
                raise InvalidArgument("Encrypted files must be written through the vault")
            written = self.versions.write(file, data, mime)
            if not written.created:
                file.updated_at = utcnow()
            else:
                self.journal(scope, "file", file.file_id, "update",
                             written.version.version_id, written.version.base_version_id)
                self.defer("index", entity_type="file", entity_id=file.file_id)
                self.defer("thumbnail", file_id=file.file_id, mime=file.mime)
        return file, written

    def read_content(self, user_id: UUID, file_id: UUID, version_id: Optional[UUID] = None) -> bytes:
        file = self.get_file(user_id, file_id)
        if file.is_vault:
            if version_id is not None:
                raise InvalidArgument("Encrypted files have no version history")
            try:
                return self.storage.read(file.storage_path)
            except StorageError as e:
                raise Internal("Failed to read file content", internal_detail=str(e)) from e
        if version_id is not None:
            return self.versions.read_version(file, version_id)
        return self.versions.read_latest(file)

    def list_versions(self, user_id: UUID, file_id: UUID) -> List[FileVersion]:
        return self.versions.list_versions(self.get_file(user_id, file_id))

    def diff_versions(self, user_id: UUID, file_id: UUID, from_version_id: UUID, to_version_id: UUID):
        file = self.get_file(user_id, file_id)
        return self.versions.diff_versions(file, from_version_id, to_version_id)

    def restore_version(self, user_id: UUID, file_id: UUID, version_id: UUID) -> Tuple[File, VersionWrite]:
        """Write the content of an old version as the new latest version."""
        with self.unit_of_work():
            file = self.live_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            old = self.versions.get_version(file, version_id)
            written = self.versions.write(file, self.versions.reconstruct(old), old.mime)
            if not written.created:
                file.updated_at = utcnow()
            else:
                self.journal(scope, "file", file.file_id, "update",
                             written.version.version_id, written.version.base_version_id)
                self.defer("index", entity_type="file", entity_id=file.file_id)
        logger.info(f"File {file_id} restored to v{old.version} as v{written.version.version}")
        return file, written

    def rename_file(self, user_id: UUID, file_id: UUID, new_name: str) -> File:
        new_name = validate_name(new_name)
        with self.unit_of_work():
            file = self.live_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            if file.path != new_name:
                self.ensure_file_name_free(scope, file.folder_id, new_name, exclude_id=file.file_id)
                if file.is_vault and file.storage_path:
                    old_path = file.storage_path
                    new_path = vault_storage_path(file.owner_id, file.file_id, new_name)
                    self.storage.move(old_path, new_path)
                    self.on_rollback(lambda: self.storage.move(new_path, old_path))
                    file.storage_path = new_path
                file.path = new_name
                self.journal(scope, "file", file.file_id, "update")
                self.defer("index", entity_type="file", entity_id=file.file_id)
        logger.info(f"File {file_id} renamed")
        return file

    def move_file(self, user_id: UUID, file_id: UUID, target_id: Optional[UUID]) -> File:
        with self.unit_of_work():
            file = self.live_file(file_id)
            source = authorize_entity(self.db, user_id, file)
            location = resolve_location(self.db, user_id, target_id)
            dest = location.scope
            if dest == source and location.folder_id == file.folder_id:
                return file
            if file.is_vault and isinstance(dest, GroupScope):
                raise InvalidArgument("Vault files cannot be moved into a group folder")
            self.ensure_file_name_free(dest, location.folder_id, file.path, exclude_id=file.file_id)

            crossing = dest != source
            if crossing:
                self.journal(source, "file", file.file_id, "delete")
                apply_scope(file, dest)
            file.folder_id = location.folder_id
            self.db.flush()
            if crossing:
                self.journal(dest, "file", file.file_id, "create")
            self.journal(dest, "file", file.file_id, "move")
            self.defer("index", entity_type="file", entity_id=file.file_id)
        logger.info(f"File {file_id} moved {source.key} -> {dest.key}")
        return file

    def copy_file(self, user_id: UUID, file_id: UUID, target_id: Optional[UUID],
                  new_name: Optional[str] = None) -> File:
        name = validate_name(new_name) if new_name is not None else None
        with self.unit_of_work():
            source = self.live_file(file_id)
            authorize_entity(self.db, user_id, source)
            location = resolve_location(self.db, user_id, target_id)
            if source.is_vault and isinstance(location.scope, GroupScope):
                raise InvalidArgument("Vault files cannot be copied into a group folder")
            name = name or source.path
            self.ensure_file_name_free(location.scope, location.folder_id, name)
            clone = self._clone_file(source, location.scope, location.folder_id, name)
        logger.info(f"File {file_id} copied to {clone.file_id}")
        return clone

    def _clone_file(self, source: File, scope: Scope, folder_id: Optional[UUID], name: str) -> File:
        clone = File(
            file_id=uuid4(),
            path=name,
            folder_id=folder_id,
            size=source.size,
            mime=source.mime,
            hash=source.hash,
            is_vault=source.is_vault,
            iv=source.iv,
            original_name=source.original_name
        )
        apply_scope(clone, scope)
        version_id = None
        if source.is_vault:
            # Ciphertext is copied as-is; the client's key still opens it
            clone.storage_path = vault_storage_path(clone.owner_id, clone.file_id, name)
            self.storage.save(self.storage.read(source.storage_path), clone.storage_path)
            self.on_rollback(lambda: self.storage.delete(clone.storage_path))
            self.db.add(clone)
            self.db.flush()
        else:
            self.db.add(clone)
            self.db.flush()
            version = self.versions.seed_copy(clone, source)
            version_id = version.version_id if version is not None else None
        self.journal(scope, "file", clone.file_id, "create", version_id)
        self.defer("index", entity_type="file", entity_id=clone.file_id)
        return clone

    def soft_delete_file(self, user_id: UUID, file_id: UUID) -> File:
        with self.unit_of_work():
            file = self.live_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            file.is_deleted = True
            file.deleted_at = utcnow()
            self.journal(scope, "file", file.file_id, "delete")
            self.defer("unindex", entity_type="file", entity_id=file.file_id)
        logger.info(f"File {file_id} moved to trash")
        return file

    def restore_file(self, user_id: UUID, file_id: UUID) -> File:
        with self.unit_of_work():
            file = self._any_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            if not file.is_deleted:
                raise InvalidArgument("File is not in the trash")
            if file.is_vault and isinstance(scope, GroupScope):
                raise InvalidArgument("Vault items cannot be restored into a group folder")
            if file.folder_id is not None and crud.get_folder(self.db, file.folder_id) is None:
                file.folder_id = None
            self.ensure_file_name_free(scope, file.folder_id, file.path, exclude_id=file.file_id)
            file.is_deleted = False
            file.deleted_at = None
            self.journal(scope, "file", file.file_id, "create")
            self.defer("index", entity_type="file", entity_id=file.file_id)
        logger.info(f"File {file_id} restored")
        return file

    def permanent_delete_file(self, user_id: UUID, file_id: UUID) -> None:
        with self.unit_of_work():
            file = self._any_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            if not file.is_deleted:
                self.journal(scope, "file", file.file_id, "delete")
            self.purge([], [file])
        logger.info(f"File {file_id} permanently deleted")

    def purge(self, folder_ids: List[UUID], files: List[File]) -> None:
        """Hard-delete rows, releasing versions. Physical objects go after commit."""
        for file in files:
            self.release_after_commit(self.versions.release_versions(file.file_id))
            if file.is_vault and file.storage_path:
                self.release_after_commit([file.storage_path])
            self.defer("purge_thumbnails", file_id=file.file_id)
            self.defer("unindex", entity_type="file", entity_id=file.file_id)
        file_ids = [f.file_id for f in files]
        if file_ids:
            self.db.query(File).filter(File.file_id.in_(file_ids)).delete(synchronize_session="fetch")
        if folder_ids:
            self.db.query(Folder).filter(Folder.folder_id.in_(folder_ids)).delete(synchronize_session="fetch")

    # Trash

    def _trash_scope(self, user_id: UUID, group_folder_id: Optional[UUID]) -> Scope:
        if group_folder_id is None:
            return PersonalScope(user_id)
        if crud.get_group_folder(self.db, group_folder_id) is None:
            raise NotFound("Group folder not found")
        return authorize_scope(self.db, user_id, GroupScope(group_folder_id))

    def list_trash(self, user_id: UUID, group_folder_id: Optional[UUID] = None) -> Tuple[List[Folder], List[File]]:
        scope = self._trash_scope(user_id, group_folder_id)
        return crud.list_deleted(self.db, scope.key)

    def empty_trash(self, user_id: UUID, group_folder_id: Optional[UUID] = None) -> Dict[str, int]:
        with self.unit_of_work():
            scope = self._trash_scope(user_id, group_folder_id)
            deleted_folders, deleted_files = crud.list_deleted(self.db, scope.key)
            arena, _ = load_arena(self.db, scope.key)
            folder_ids = []
            for folder in deleted_folders:
                folder_ids.extend(arena.descendants(folder.folder_id))
            folder_ids = list(dict.fromkeys(folder_ids))
            files = {f.file_id: f for f in deleted_files}
            for file in crud.get_files_in_folders(self.db, folder_ids):
                files.setdefault(file.file_id, file)
            self.purge(folder_ids, list(files.values()))
        logger.info(f"Emptied trash of {scope.key}: {len(folder_ids)} folders, {len(files)} files")
        return {"folders": len(folder_ids), "files": len(files)}

    # Maintenance

    def sweep_orphaned_content(self, older_than: Optional[float] = None) -> int:
        """Delete stored snapshot content that no version references."""
        with self.unit_of_work():
            refs = self.versions.sweep_orphans(older_than=older_than)
            self.release_after_commit(refs)
        logger.info(f"Swept {len(refs)} orphaned content objects")
        return len(refs)
