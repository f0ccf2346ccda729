from fastapi import APIRouter, HTTPException, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List

from lakesync.schemas.groups import (
    GroupCreateRequest, GroupMemberRequest, GroupFolderCreateRequest, GroupFolderAccessRequest,
    GroupResponse, GroupFolderResponse, GroupFolderAccessResponse
)
from lakesync.db.database import get_db
from lakesync.db.models import User
from lakesync.core.jwt_auth import get_current_user
from lakesync.core.exceptions import LakeError, to_http_exception, handle_database_error
from lakesync.services import groups

router = APIRouter()


@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    request: GroupCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a group with the caller as its first member"""
    try:
        group = groups.create_group(db, request.name)
        groups.add_member(db, group.group_id, current_user.user_id)
        return group
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/groups/{group_id}/members", status_code=status.HTTP_201_CREATED)
async def add_group_member(
    group_id: UUID,
    request: GroupMemberRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        groups.require_member(db, group_id, current_user.user_id)
        member = groups.add_member(db, group_id, request.user_id)
        return {"status": "success", "group_id": str(member.group_id), "user_id": str(member.user_id)}
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.get("/group-folders", response_model=List[GroupFolderResponse])
async def list_group_folders(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Group folders the caller can reach through group membership"""
    try:
        return groups.list_accessible_group_folders(db, current_user.user_id)
    except LakeError as e:
        raise to_http_exception(e)


@router.post("/group-folders", response_model=GroupFolderResponse, status_code=status.HTTP_201_CREATED)
async def create_group_folder(
    request: GroupFolderCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return groups.create_group_folder(db, request.name)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/group-folders/{group_folder_id}/access", response_model=GroupFolderAccessResponse)
async def grant_group_folder_access(
    group_folder_id: UUID,
    request: GroupFolderAccessRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Give every member of a group access to a group folder"""
    try:
        return groups.grant_access(
            db, group_folder_id, request.group_id, request.can_write, acting_user_id=current_user.user_id
        )
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)
