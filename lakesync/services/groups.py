"""Group administration primitives backing group-folder access."""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lakesync.core.exceptions import Conflict, Forbidden, NotFound
from lakesync.db import crud
from lakesync.db.models import Group, GroupFolder, GroupFolderAccess, GroupMember
from lakesync.services import sync_journal
from lakesync.services.access_resolver import GroupScope
from lakesync.services.entity_store import validate_name

logger = logging.getLogger(__name__)


def _commit(db: Session, conflict_message: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict(conflict_message, internal_detail=str(e.orig)) from e


def create_group(db: Session, name: str) -> Group:
    group = Group(name=validate_name(name))
    db.add(group)
    _commit(db, "Group could not be created")
    db.refresh(group)
    logger.info(f"Created group {group.group_id}")
    return group


def add_member(db: Session, group_id: UUID, user_id: UUID) -> GroupMember:
    if crud.get_group(db, group_id) is None:
        raise NotFound("Group not found")
    if crud.get_user_by_id(db, user_id) is None:
        raise NotFound("User not found")
    existing = crud.get_group_member(db, group_id, user_id)
    if existing is not None:
        return existing
    member = GroupMember(group_id=group_id, user_id=user_id)
    db.add(member)
    _commit(db, "User is already a member of this group")
    db.refresh(member)
    logger.info(f"Added user {user_id} to group {group_id}")
    return member


def remove_member(db: Session, group_id: UUID, user_id: UUID) -> None:
    member = crud.get_group_member(db, group_id, user_id)
    if member is None:
        raise NotFound("Membership not found")
    db.delete(member)
    db.commit()
    logger.info(f"Removed user {user_id} from group {group_id}")


def create_group_folder(db: Session, name: str) -> GroupFolder:
    """Create a group folder and announce it in its own scope."""
    group_folder = GroupFolder(name=validate_name(name))
    db.add(group_folder)
    db.flush()
    sync_journal.record_change(
        db, GroupScope(group_folder.group_folder_id), "group_folder", group_folder.group_folder_id, "create"
    )
    _commit(db, "Group folder could not be created")
    db.refresh(group_folder)
    logger.info(f"Created group folder {group_folder.group_folder_id}")
    return group_folder


def require_member(db: Session, group_id: UUID, user_id: UUID) -> None:
    if crud.get_group(db, group_id) is None:
        raise NotFound("Group not found")
    if crud.get_group_member(db, group_id, user_id) is None:
        raise Forbidden("Access denied", internal_detail=f"user {user_id} is not a member of group {group_id}")


def grant_access(
    db: Session,
    group_folder_id: UUID,
    group_id: UUID,
    can_write: bool = True,
    acting_user_id: Optional[UUID] = None
) -> GroupFolderAccess:
    """
    Give a group access to a group folder. When `acting_user_id` is set, the
    caller must belong to the group and, unless the folder has no grants yet,
    already reach the folder.
    """
    if crud.get_group_folder(db, group_folder_id) is None:
        raise NotFound("Group folder not found")
    if crud.get_group(db, group_id) is None:
        raise NotFound("Group not found")
    if acting_user_id is not None:
        require_member(db, group_id, acting_user_id)
        has_grants = db.query(GroupFolderAccess.id).filter(
            GroupFolderAccess.group_folder_id == group_folder_id
        ).first() is not None
        if has_grants and not crud.has_group_folder_access(db, acting_user_id, group_folder_id):
            raise Forbidden(
                "Access denied",
                internal_detail=f"user {acting_user_id} cannot share group folder {group_folder_id}"
            )
    access = db.query(GroupFolderAccess).filter(
        GroupFolderAccess.group_folder_id == group_folder_id,
        GroupFolderAccess.group_id == group_id
    ).first()
    if access is None:
        access = GroupFolderAccess(group_folder_id=group_folder_id, group_id=group_id)
        db.add(access)
    access.can_write = can_write
    _commit(db, "Access already granted")
    db.refresh(access)
    logger.info(f"Granted group {group_id} access to group folder {group_folder_id}")
    return access


def list_accessible_group_folders(db: Session, user_id: UUID) -> List[GroupFolder]:
    ids = crud.get_accessible_group_folder_ids(db, user_id)
    return sorted(crud.get_group_folders(db, ids), key=lambda gf: gf.name)
