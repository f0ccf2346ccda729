"""
Vault Envelope

Client-side encryption overlay. The server keeps the user's wrapped master
key (cipher, iv, salt) on a designated vault folder and stores vault file
ciphertext by path. It never sees a passphrase or plaintext, so a file that is
in the vault can never be taken back out of it by the server.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID, uuid4

from lakesync.core.config import (
    VAULT_FOLDER_NAME, VAULT_MIN_CIPHER_LENGTH, VAULT_MIN_ENVELOPE_IV_LENGTH,
    VAULT_MIN_FILE_IV_LENGTH, VAULT_MIN_SALT_LENGTH
)
from lakesync.core.exceptions import InvalidArgument, NotFound
from lakesync.db import crud
from lakesync.db.models import File, Folder
from lakesync.services.access_resolver import (
    GroupScope, Location, PersonalScope, apply_scope, authorize_entity, resolve_location
)
from lakesync.services.entity_store import (
    EntityStore, check_upload_size, validate_name, vault_storage_path
)
from lakesync.services.versioning import content_hash

logger = logging.getLogger(__name__)

CIPHERTEXT_MIME = "application/octet-stream"


@dataclass
class VaultStatus:
    has_envelope: bool
    folder_id: Optional[UUID] = None
    cipher: Optional[str] = None
    iv: Optional[str] = None
    salt: Optional[str] = None


def _has_envelope(folder: Optional[Folder]) -> bool:
    return folder is not None and bool(folder.envelope_cipher and folder.envelope_iv and folder.envelope_salt)


def _require_file_iv(iv: Optional[str]) -> str:
    iv = (iv or "").strip()
    if len(iv) < VAULT_MIN_FILE_IV_LENGTH:
        raise InvalidArgument("Encrypted content requires a valid IV")
    return iv


def ensure_shareable(file: File) -> None:
    """Gate for the share subsystem: encrypted files cannot be shared by link."""
    if file.is_vault:
        raise InvalidArgument("Vault files cannot be shared")


class VaultService:
    def __init__(self, store: EntityStore):
        self.store = store
        self.db = store.db
        self.storage = store.storage

    def _ensure_folder(self, user_id: UUID) -> Folder:
        """Return the user's vault folder, creating it inside the current unit of work."""
        folder = crud.get_vault_folder(self.db, user_id)
        if folder is not None:
            return folder
        scope = PersonalScope(user_id)
        self.store.ensure_folder_name_free(scope, None, VAULT_FOLDER_NAME)
        folder = Folder(folder_id=uuid4(), name=VAULT_FOLDER_NAME, is_vault=True)
        apply_scope(folder, scope)
        self.db.add(folder)
        self.db.flush()
        self.store.journal(scope, "folder", folder.folder_id, "create")
        logger.info(f"Vault folder {folder.folder_id} created for user {user_id}")
        return folder

    def _set_up_folder(self, user_id: UUID) -> Folder:
        folder = crud.get_vault_folder(self.db, user_id)
        if not _has_envelope(folder):
            raise InvalidArgument("Vault is not set up")
        return folder

    def get_status(self, user_id: UUID) -> VaultStatus:
        with self.store.unit_of_work():
            folder = self._ensure_folder(user_id)
        if not _has_envelope(folder):
            return VaultStatus(has_envelope=False, folder_id=folder.folder_id)
        return VaultStatus(
            has_envelope=True,
            folder_id=folder.folder_id,
            cipher=folder.envelope_cipher,
            iv=folder.envelope_iv,
            salt=folder.envelope_salt
        )

    def save_envelope(self, user_id: UUID, cipher: str, iv: str, salt: str) -> VaultStatus:
        """Upsert the wrapped master key. One envelope per user."""
        cipher, iv, salt = (cipher or "").strip(), (iv or "").strip(), (salt or "").strip()
        if len(cipher) < VAULT_MIN_CIPHER_LENGTH or len(iv) < VAULT_MIN_ENVELOPE_IV_LENGTH \
                or len(salt) < VAULT_MIN_SALT_LENGTH:
            raise InvalidArgument("Invalid vault envelope")
        with self.store.unit_of_work():
            folder = self._ensure_folder(user_id)
            folder.envelope_cipher = cipher
            folder.envelope_iv = iv
            folder.envelope_salt = salt
        logger.info(f"Vault envelope saved for user {user_id}")
        return self.get_status(user_id)

    def list_items(self, user_id: UUID) -> List[File]:
        return [f for f in crud.get_vault_files(self.db, user_id) if not f.is_deleted]

    def upload(self, user_id: UUID, name: str, data: bytes, iv: str,
               folder_id: Optional[UUID] = None, original_name: Optional[str] = None,
               mime: Optional[str] = None) -> File:
        """Store client-encrypted content as a new vault file."""
        name = validate_name(name)
        iv = _require_file_iv(iv)
        check_upload_size(data)
        with self.store.unit_of_work():
            vault_folder = self._set_up_folder(user_id)
            if folder_id is None:
                location = Location(PersonalScope(user_id), vault_folder)
            else:
                location = resolve_location(self.db, user_id, folder_id)
            if isinstance(location.scope, GroupScope):
                raise InvalidArgument("Vault files cannot be stored in a group folder")
            self.store.ensure_file_name_free(location.scope, location.folder_id, name)

            file = File(
                file_id=uuid4(),
                path=name,
                folder_id=location.folder_id,
                size=len(data),
                mime=mime or CIPHERTEXT_MIME,
                hash=content_hash(data),
                is_vault=True,
                iv=iv,
                original_name=original_name or name
            )
            apply_scope(file, location.scope)
            file.storage_path = vault_storage_path(user_id, file.file_id, name)
            self.db.add(file)
            self.db.flush()
            self.storage.save(data, file.storage_path)
            self.store.on_rollback(lambda: self.storage.delete(file.storage_path))
            self.store.journal(location.scope, "file", file.file_id, "create")
        logger.info(f"Vault file {file.file_id} uploaded ({len(data)} bytes)")
        return file

    def update_content(self, user_id: UUID, file_id: UUID, data: bytes, iv: Optional[str] = None) -> File:
        """Replace a vault file's ciphertext wholesale. No history is kept."""
        check_upload_size(data)
        new_iv = _require_file_iv(iv) if iv is not None else None
        with self.store.unit_of_work():
            file = self.store.live_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            if not file.is_vault:
                raise InvalidArgument("File is not in the vault")
            new_hash = content_hash(data)
            # New ciphertext goes beside the old object, which is only dropped after commit
            old_path = file.storage_path
            new_path = vault_storage_path(file.owner_id, file.file_id, file.path, revision=new_hash[:16])
            if new_path != old_path:
                self.storage.save(data, new_path)
                self.store.on_rollback(lambda: self.storage.delete(new_path))
                self.store.release_after_commit([old_path])
                file.storage_path = new_path
            if new_iv is not None:
                file.iv = new_iv
            file.size = len(data)
            file.hash = new_hash
            self.store.journal(scope, "file", file.file_id, "update")
            self.db.flush()
        logger.info(f"Vault file {file_id} overwritten ({len(data)} bytes)")
        return file

    def toggle_vault(self, user_id: UUID, file_id: UUID, enabled: bool) -> File:
        """
        Turn the vault on for a file uploaded through the encrypted path.
        Turning it off is never possible: the server cannot decrypt.
        """
        with self.store.unit_of_work():
            file = self.store.live_file(file_id)
            scope = authorize_entity(self.db, user_id, file)
            if file.is_vault:
                if not enabled:
                    raise InvalidArgument(
                        "Vault cannot be disabled for an encrypted file",
                        internal_detail=f"user {user_id} tried to disable vault on {file_id}"
                    )
                return file
            if not enabled:
                return file
            if isinstance(scope, GroupScope):
                raise InvalidArgument("Vault files cannot live in a group folder")
            if not file.iv or len(file.iv) < VAULT_MIN_FILE_IV_LENGTH:
                raise InvalidArgument("File has no encryption metadata, re-upload it through the vault")
            vault_folder = self._set_up_folder(user_id)

            # Content is already ciphertext; relocate it out of the version chain
            data = self.store.versions.read_latest(file)
            self.store.release_after_commit(self.store.versions.release_versions(file.file_id))
            file.is_vault = True
            file.storage_path = vault_storage_path(user_id, file.file_id, file.path)
            self.storage.save(data, file.storage_path)
            self.store.on_rollback(lambda: self.storage.delete(file.storage_path))

            moved = False
            if file.folder_id is None and crud.find_live_file_sibling(
                    self.db, scope.key, vault_folder.folder_id, file.path, file.file_id) is None:
                file.folder_id = vault_folder.folder_id
                moved = True
            self.db.flush()
            if moved:
                self.store.journal(scope, "file", file.file_id, "move")
            self.store.journal(scope, "file", file.file_id, "update")
            self.store.defer("unindex", entity_type="file", entity_id=file.file_id)
        logger.info(f"Vault enabled for file {file_id}")
        return file

    def reset(self, user_id: UUID) -> int:
        """Delete every vault file and clear the envelope."""
        with self.store.unit_of_work():
            folder = crud.get_vault_folder(self.db, user_id)
            if folder is None:
                raise NotFound("Vault not found")
            scope = PersonalScope(user_id)
            files = crud.get_vault_files(self.db, user_id)
            for file in files:
                if not file.is_deleted:
                    self.store.journal(scope, "file", file.file_id, "delete")
            self.store.purge([], files)
            folder.envelope_cipher = None
            folder.envelope_iv = None
            folder.envelope_salt = None
        logger.info(f"Vault reset for user {user_id}: {len(files)} files removed")
        return len(files)
