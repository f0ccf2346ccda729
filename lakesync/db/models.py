from sqlalchemy import (
    Column, String, Boolean, Text, LargeBinary, BigInteger, Integer, ForeignKey,
    UniqueConstraint, CheckConstraint, Index, DateTime, event, text
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator, CHAR
from datetime import datetime, timezone
import uuid

Base = declarative_base()

ROOT_PARENT_KEY = "root"

# Exactly one of owner_id / group_folder_id must be set
SCOPE_CHECK = (
    "(owner_id IS NOT NULL AND group_folder_id IS NULL) OR "
    "(owner_id IS NULL AND group_folder_id IS NOT NULL)"
)


class GUID(TypeDecorator):
    """Platform-independent GUID type.
    Uses PostgreSQL's UUID type when available, otherwise uses CHAR(36).
    """
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(UUID())
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return str(value)
        else:
            if not isinstance(value, uuid.UUID):
                return str(uuid.UUID(str(value)))
            else:
                return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        else:
            if not isinstance(value, uuid.UUID):
                return uuid.UUID(value)
            else:
                return value


def get_timestamp_type():
    """Returns appropriate timestamp type based on dialect"""
    return DateTime


# SQLite only autoincrements INTEGER PRIMARY KEY columns
JournalIdType = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what func.now() stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def scope_key_for(owner_id, group_folder_id) -> str:
    if group_folder_id is not None:
        return f"g:{group_folder_id}"
    return f"u:{owner_id}"


class User(Base):
    __tablename__ = "users"

    user_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    username = Column(String(255), unique=True, nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())


class Group(Base):
    __tablename__ = "groups"

    group_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())


class GroupMember(Base):
    __tablename__ = "group_members"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    group_id = Column(GUID(), ForeignKey("groups.group_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(GUID(), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())

    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='unique_group_member'),
        Index('idx_group_members_user', 'user_id'),
    )


class GroupFolder(Base):
    """Virtual, membership-gated root. Never stored as a `folders` row."""
    __tablename__ = "group_folders"

    group_folder_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())


class GroupFolderAccess(Base):
    __tablename__ = "group_folder_access"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    group_folder_id = Column(GUID(), ForeignKey("group_folders.group_folder_id", ondelete="CASCADE"), nullable=False)
    group_id = Column(GUID(), ForeignKey("groups.group_id", ondelete="CASCADE"), nullable=False)
    can_write = Column(Boolean, default=True, nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())

    __table_args__ = (
        UniqueConstraint('group_folder_id', 'group_id', name='unique_group_folder_group'),
    )


class Folder(Base):
    __tablename__ = "folders"

    folder_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    owner_id = Column(GUID(), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=True)
    group_folder_id = Column(GUID(), ForeignKey("group_folders.group_folder_id", ondelete="CASCADE"), nullable=True)
    parent_id = Column(GUID(), ForeignKey("folders.folder_id"), nullable=True)
    is_vault = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(get_timestamp_type(), nullable=True)
    # Vault envelope - opaque client-side key material, only set on the vault folder
    envelope_cipher = Column(Text, nullable=True)
    envelope_iv = Column(Text, nullable=True)
    envelope_salt = Column(String(64), nullable=True)
    # Derived columns backing the sibling-name uniqueness index
    scope_key = Column(String(64), nullable=False)
    parent_key = Column(String(64), nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())
    updated_at = Column(get_timestamp_type(), default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(SCOPE_CHECK, name='ck_folders_single_scope'),
        Index('uq_folders_live_sibling_name', 'scope_key', 'parent_key', 'name', unique=True,
              sqlite_where=text('is_deleted = 0'), postgresql_where=text('is_deleted = false')),
        Index('idx_folders_parent', 'parent_id'),
        Index('idx_folders_scope', 'scope_key'),
    )


class File(Base):
    __tablename__ = "files"

    file_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    path = Column(String(1024), nullable=False)  # leaf name only
    owner_id = Column(GUID(), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=True)
    group_folder_id = Column(GUID(), ForeignKey("group_folders.group_folder_id", ondelete="CASCADE"), nullable=True)
    folder_id = Column(GUID(), ForeignKey("folders.folder_id"), nullable=True)
    size = Column(BigInteger, default=0, nullable=False)
    mime = Column(String(128), default="application/octet-stream", nullable=False)
    hash = Column(String(128), nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(get_timestamp_type(), nullable=True)
    is_vault = Column(Boolean, default=False, nullable=False)
    # Vault files only: logical location of the ciphertext object and its IV
    storage_path = Column(Text, nullable=True)
    iv = Column(Text, nullable=True)
    original_name = Column(Text, nullable=True)
    scope_key = Column(String(64), nullable=False)
    parent_key = Column(String(64), nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())
    updated_at = Column(get_timestamp_type(), default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(SCOPE_CHECK, name='ck_files_single_scope'),
        Index('uq_files_live_sibling_path', 'scope_key', 'parent_key', 'path', unique=True,
              sqlite_where=text('is_deleted = 0'), postgresql_where=text('is_deleted = false')),
        Index('idx_files_folder', 'folder_id'),
        Index('idx_files_scope', 'scope_key'),
    )


class ContentBlob(Base):
    """Content-addressed object in the storage collaborator, shared by snapshots."""
    __tablename__ = "content_blobs"

    blob_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    hash = Column(String(128), unique=True, nullable=False)
    size = Column(BigInteger, nullable=False)
    storage_ref = Column(Text, nullable=False)
    ref_count = Column(Integer, default=0, nullable=False)
    created_at = Column(get_timestamp_type(), default=func.now())


class FileVersion(Base):
    __tablename__ = "file_versions"

    version_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    file_id = Column(GUID(), ForeignKey("files.file_id", ondelete="CASCADE"), nullable=False)
    version = Column(Integer, nullable=False)
    size = Column(BigInteger, nullable=False)
    mime = Column(String(128), nullable=True)
    hash = Column(String(128), nullable=False)
    is_snapshot = Column(Boolean, default=True, nullable=False)
    blob_id = Column(GUID(), ForeignKey("content_blobs.blob_id"), nullable=True)
    base_version_id = Column(GUID(), ForeignKey("file_versions.version_id"), nullable=True)
    delta = Column(LargeBinary, nullable=True)
    delta_size = Column(Integer, nullable=True)
    created_at = Column(get_timestamp_type(), default=func.now())

    __table_args__ = (
        UniqueConstraint('file_id', 'version', name='unique_file_version'),
        Index('idx_file_versions_file', 'file_id', 'version'),
    )


class SyncJournalEntry(Base):
    """Append-only change feed. `id` is the client cursor."""
    __tablename__ = "sync_journal"

    id = Column(JournalIdType, primary_key=True, autoincrement=True)
    owner_id = Column(GUID(), nullable=True)  # null for group-scoped rows
    group_folder_id = Column(GUID(), nullable=True)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(GUID(), nullable=False)
    action = Column(String(32), nullable=False)
    version_id = Column(GUID(), nullable=True)
    base_version_id = Column(GUID(), nullable=True)
    created_at = Column(get_timestamp_type(), default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_journal_owner_cursor', 'owner_id', 'id'),
        Index('idx_journal_group_cursor', 'group_folder_id', 'id'),
    )


@event.listens_for(Folder, "before_insert")
@event.listens_for(Folder, "before_update")
def _folder_keys(mapper, connection, target):
    target.scope_key = scope_key_for(target.owner_id, target.group_folder_id)
    target.parent_key = str(target.parent_id) if target.parent_id is not None else ROOT_PARENT_KEY


@event.listens_for(File, "before_insert")
@event.listens_for(File, "before_update")
def _file_keys(mapper, connection, target):
    target.scope_key = scope_key_for(target.owner_id, target.group_folder_id)
    target.parent_key = str(target.folder_id) if target.folder_id is not None else ROOT_PARENT_KEY
