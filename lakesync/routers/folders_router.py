from fastapi import APIRouter, HTTPException, Depends, status, Query
from fastapi.responses import Response
from uuid import UUID
from typing import Optional

from lakesync.schemas.files import RenameRequest, MoveRequest, CopyRequest, FileResponse
from lakesync.schemas.folders import (
    FolderCreateRequest, FolderResponse, FolderListingResponse, EmptyTrashResponse
)
from lakesync.db.models import User
from lakesync.core.jwt_auth import get_current_user
from lakesync.core.exceptions import LakeError, to_http_exception, handle_database_error
from lakesync.routers.dependencies import get_entity_store
from lakesync.services.entity_store import EntityStore

router = APIRouter()


def _listing(folders, files) -> FolderListingResponse:
    return FolderListingResponse(
        folders=[FolderResponse.model_validate(f) for f in folders],
        files=[FileResponse.model_validate(f) for f in files]
    )


@router.post("", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    request: FolderCreateRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.create_folder(current_user.user_id, request.name, request.parent_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.get("/children", response_model=FolderListingResponse)
async def list_children(
    folder_id: Optional[UUID] = Query(None, description="Folder or group folder id; personal root when omitted"),
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        folders, files = store.list_children(current_user.user_id, folder_id)
        return _listing(folders, files)
    except LakeError as e:
        raise to_http_exception(e)


@router.get("/trash", response_model=FolderListingResponse)
async def list_trash(
    group_folder_id: Optional[UUID] = Query(None),
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        folders, files = store.list_trash(current_user.user_id, group_folder_id)
        return _listing(folders, files)
    except LakeError as e:
        raise to_http_exception(e)


@router.delete("/trash", response_model=EmptyTrashResponse)
async def empty_trash(
    group_folder_id: Optional[UUID] = Query(None),
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Permanently delete everything in the trash of one scope"""
    try:
        return store.empty_trash(current_user.user_id, group_folder_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.get("/{folder_id}", response_model=FolderResponse)
async def get_folder(
    folder_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.get_folder(current_user.user_id, folder_id)
    except LakeError as e:
        raise to_http_exception(e)


@router.patch("/{folder_id}/rename", response_model=FolderResponse)
async def rename_folder(
    folder_id: UUID,
    request: RenameRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.rename_folder(current_user.user_id, folder_id, request.name)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/{folder_id}/move", response_model=FolderResponse)
async def move_folder(
    folder_id: UUID,
    request: MoveRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Move a folder with its whole subtree, possibly into another scope"""
    try:
        return store.move_folder(current_user.user_id, folder_id, request.target_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/{folder_id}/copy", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def copy_folder(
    folder_id: UUID,
    request: CopyRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.copy_folder(current_user.user_id, folder_id, request.target_id, request.new_name)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.delete("/{folder_id}", response_model=FolderResponse)
async def delete_folder(
    folder_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Move a folder and its contents to the trash"""
    try:
        return store.soft_delete_folder(current_user.user_id, folder_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/{folder_id}/restore", response_model=FolderResponse)
async def restore_folder(
    folder_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.restore_folder(current_user.user_id, folder_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.delete("/{folder_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
async def permanently_delete_folder(
    folder_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        store.permanent_delete_folder(current_user.user_id, folder_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)
