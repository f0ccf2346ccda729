from sqlalchemy.orm import Session
from sqlalchemy import and_, or_, select
from uuid import UUID
from typing import List, Optional, Iterable

from lakesync.db.models import (
    User, Group, GroupMember, GroupFolder, GroupFolderAccess,
    Folder, File, FileVersion, ContentBlob, ROOT_PARENT_KEY
)

# Query helpers. None of these commit - the calling service owns the transaction.

# Users and groups

def get_user_by_id(db: Session, user_id: UUID) -> Optional[User]:
    """Get user by ID"""
    return db.query(User).filter(User.user_id == user_id).first()


def get_group_folder(db: Session, group_folder_id: UUID) -> Optional[GroupFolder]:
    return db.query(GroupFolder).filter(GroupFolder.group_folder_id == group_folder_id).first()


def get_group_folders(db: Session, group_folder_ids: Iterable[UUID]) -> List[GroupFolder]:
    ids = list(group_folder_ids)
    if not ids:
        return []
    return db.query(GroupFolder).filter(GroupFolder.group_folder_id.in_(ids)).all()


def accessible_group_folder_ids_query(user_id: UUID):
    """Group folders reachable through GroupFolderAccess -> Group -> GroupMember."""
    return (
        select(GroupFolderAccess.group_folder_id)
        .join(GroupMember, GroupMember.group_id == GroupFolderAccess.group_id)
        .where(GroupMember.user_id == user_id)
    )


def has_group_folder_access(db: Session, user_id: UUID, group_folder_id: UUID) -> bool:
    return db.query(GroupFolderAccess.id).join(
        GroupMember, GroupMember.group_id == GroupFolderAccess.group_id
    ).filter(
        and_(
            GroupFolderAccess.group_folder_id == group_folder_id,
            GroupMember.user_id == user_id
        )
    ).first() is not None


def get_accessible_group_folder_ids(db: Session, user_id: UUID) -> List[UUID]:
    rows = db.execute(accessible_group_folder_ids_query(user_id)).scalars().all()
    return list(dict.fromkeys(rows))


def get_group_member(db: Session, group_id: UUID, user_id: UUID) -> Optional[GroupMember]:
    return db.query(GroupMember).filter(
        and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
    ).first()


def get_group(db: Session, group_id: UUID) -> Optional[Group]:
    return db.query(Group).filter(Group.group_id == group_id).first()

# Folders

def get_folder(db: Session, folder_id: UUID, include_deleted: bool = False) -> Optional[Folder]:
    query = db.query(Folder).filter(Folder.folder_id == folder_id)
    if not include_deleted:
        query = query.filter(Folder.is_deleted == False)
    return query.first()


def find_live_folder_sibling(
    db: Session,
    scope_key: str,
    parent_id: Optional[UUID],
    name: str,
    exclude_id: Optional[UUID] = None
) -> Optional[Folder]:
    parent_key = str(parent_id) if parent_id is not None else ROOT_PARENT_KEY
    query = db.query(Folder).filter(
        and_(
            Folder.scope_key == scope_key,
            Folder.parent_key == parent_key,
            Folder.name == name,
            Folder.is_deleted == False
        )
    )
    if exclude_id is not None:
        query = query.filter(Folder.folder_id != exclude_id)
    return query.first()


def get_scope_folders(db: Session, scope_key: str) -> List[Folder]:
    """Every folder row of one scope, deleted ones included."""
    return db.query(Folder).filter(Folder.scope_key == scope_key).all()


def list_child_folders(db: Session, scope_key: str, parent_id: Optional[UUID]) -> List[Folder]:
    parent_key = str(parent_id) if parent_id is not None else ROOT_PARENT_KEY
    return db.query(Folder).filter(
        and_(Folder.scope_key == scope_key, Folder.parent_key == parent_key, Folder.is_deleted == False)
    ).order_by(Folder.name).all()


def get_vault_folder(db: Session, owner_id: UUID) -> Optional[Folder]:
    return db.query(Folder).filter(
        and_(Folder.owner_id == owner_id, Folder.is_vault == True, Folder.parent_id.is_(None))
    ).order_by(Folder.created_at).first()

# Files

def get_file(db: Session, file_id: UUID) -> Optional[File]:
    """Get file by ID, soft-deleted ones included"""
    return db.query(File).filter(File.file_id == file_id).first()


def find_live_file_sibling(
    db: Session,
    scope_key: str,
    folder_id: Optional[UUID],
    path: str,
    exclude_id: Optional[UUID] = None
) -> Optional[File]:
    parent_key = str(folder_id) if folder_id is not None else ROOT_PARENT_KEY
    query = db.query(File).filter(
        and_(
            File.scope_key == scope_key,
            File.parent_key == parent_key,
            File.path == path,
            File.is_deleted == False
        )
    )
    if exclude_id is not None:
        query = query.filter(File.file_id != exclude_id)
    return query.first()


def get_files_in_folders(db: Session, folder_ids: Iterable[UUID]) -> List[File]:
    ids = list(folder_ids)
    if not ids:
        return []
    return db.query(File).filter(File.folder_id.in_(ids)).all()


def list_child_files(db: Session, scope_key: str, folder_id: Optional[UUID]) -> List[File]:
    parent_key = str(folder_id) if folder_id is not None else ROOT_PARENT_KEY
    return db.query(File).filter(
        and_(File.scope_key == scope_key, File.parent_key == parent_key, File.is_deleted == False)
    ).order_by(File.path).all()


def list_deleted(db: Session, scope_key: str):
    folders = db.query(Folder).filter(
        and_(Folder.scope_key == scope_key, Folder.is_deleted == True)
    ).order_by(Folder.deleted_at.desc()).all()
    files = db.query(File).filter(
        and_(File.scope_key == scope_key, File.is_deleted == True)
    ).order_by(File.deleted_at.desc()).all()
    return folders, files


def get_vault_files(db: Session, owner_id: UUID) -> List[File]:
    return db.query(File).filter(
        and_(File.owner_id == owner_id, File.is_vault == True)
    ).order_by(File.path).all()


# Versions and blobs

def get_version(db: Session, version_id: UUID) -> Optional[FileVersion]:
    return db.query(FileVersion).filter(FileVersion.version_id == version_id).first()


def get_latest_version(db: Session, file_id: UUID) -> Optional[FileVersion]:
    return db.query(FileVersion).filter(
        FileVersion.file_id == file_id
    ).order_by(FileVersion.version.desc()).first()


def list_versions(db: Session, file_id: UUID) -> List[FileVersion]:
    return db.query(FileVersion).filter(
        FileVersion.file_id == file_id
    ).order_by(FileVersion.version.desc()).all()


def get_blob(db: Session, blob_id: UUID) -> Optional[ContentBlob]:
    return db.query(ContentBlob).filter(ContentBlob.blob_id == blob_id).first()


def get_blob_by_hash(db: Session, content_hash: str) -> Optional[ContentBlob]:
    return db.query(ContentBlob).filter(ContentBlob.hash == content_hash).first()


def list_unreferenced_blobs(db: Session) -> List[ContentBlob]:
    """Blobs whose count dropped to zero or that no version points at any more."""
    referenced = select(FileVersion.blob_id).where(FileVersion.blob_id.isnot(None))
    return db.query(ContentBlob).filter(
        or_(ContentBlob.ref_count <= 0, ContentBlob.blob_id.notin_(referenced))
    ).all()


def list_blob_refs(db: Session) -> List[str]:
    return [ref for (ref,) in db.query(ContentBlob.storage_ref).all()]


def count_blob_versions(db: Session, blob_id: UUID) -> int:
    return db.query(FileVersion).filter(FileVersion.blob_id == blob_id).count()
