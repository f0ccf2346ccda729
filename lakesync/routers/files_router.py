from fastapi import APIRouter, HTTPException, Depends, status, UploadFile, File as FastAPIFile, Form, Query
from fastapi.responses import Response
from uuid import UUID
from typing import Optional

from lakesync.schemas.files import (
    RenameRequest, MoveRequest, CopyRequest, RestoreVersionRequest,
    FileResponse, VersionResponse, VersionWriteResponse, VersionDiffResponse, VersionListResponse
)
from lakesync.db.models import User
from lakesync.core.jwt_auth import get_current_user
from lakesync.core.exceptions import LakeError, to_http_exception, handle_database_error
from lakesync.routers.dependencies import get_entity_store
from lakesync.services.entity_store import EntityStore

router = APIRouter()


def _write_response(file, written) -> VersionWriteResponse:
    return VersionWriteResponse(
        file=FileResponse.model_validate(file),
        version=VersionResponse.model_validate(written.version),
        created=written.created
    )


@router.post("/upload", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    name: Optional[str] = Form(None),
    folder_id: Optional[UUID] = Form(None),
    iv: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Create a file; its content becomes version 1"""
    try:
        content = await file.read()
        return store.create_file(
            current_user.user_id,
            name or file.filename,
            content,
            mime=file.content_type,
            folder_id=folder_id,
            iv=iv
        )
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.get("/{file_id}", response_model=FileResponse)
async def get_file(
    file_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.get_file(current_user.user_id, file_id)
    except LakeError as e:
        raise to_http_exception(e)


@router.get("/{file_id}/content")
async def download_file(
    file_id: UUID,
    version_id: Optional[UUID] = Query(None),
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Latest content, or the content of one version. Vault files return ciphertext."""
    try:
        record = store.get_file(current_user.user_id, file_id)
        content = store.read_content(current_user.user_id, file_id, version_id)
        return Response(
            content=content,
            media_type=record.mime,
            headers={"X-Content-Hash": record.hash or ""}
        )
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.put("/{file_id}/content", response_model=VersionWriteResponse)
async def write_file_content(
    file_id: UUID,
    file: UploadFile = FastAPIFile(...),
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Write new content; a new version is created unless the content is unchanged"""
    try:
        content = await file.read()
        mime = file.content_type if file.content_type != "application/octet-stream" else None
        record, written = store.update_content(current_user.user_id, file_id, content, mime)
        return _write_response(record, written)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.patch("/{file_id}/rename", response_model=FileResponse)
async def rename_file(
    file_id: UUID,
    request: RenameRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.rename_file(current_user.user_id, file_id, request.name)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/{file_id}/move", response_model=FileResponse)
async def move_file(
    file_id: UUID,
    request: MoveRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.move_file(current_user.user_id, file_id, request.target_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/{file_id}/copy", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def copy_file(
    file_id: UUID,
    request: CopyRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.copy_file(current_user.user_id, file_id, request.target_id, request.new_name)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.delete("/{file_id}", response_model=FileResponse)
async def delete_file(
    file_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Move a file to the trash"""
    try:
        return store.soft_delete_file(current_user.user_id, file_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/{file_id}/restore", response_model=FileResponse)
async def restore_file(
    file_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        return store.restore_file(current_user.user_id, file_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.delete("/{file_id}/permanent", status_code=status.HTTP_204_NO_CONTENT)
async def permanently_delete_file(
    file_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Remove a file and release all of its versions"""
    try:
        store.permanent_delete_file(current_user.user_id, file_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.get("/{file_id}/versions", response_model=VersionListResponse)
async def list_versions(
    file_id: UUID,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        versions = store.list_versions(current_user.user_id, file_id)
        return VersionListResponse(
            file_id=file_id,
            versions=[VersionResponse.model_validate(v) for v in versions]
        )
    except LakeError as e:
        raise to_http_exception(e)


@router.get("/{file_id}/diff", response_model=VersionDiffResponse)
async def diff_versions(
    file_id: UUID,
    from_version_id: UUID = Query(...),
    to_version_id: UUID = Query(...),
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    """Unified diff between two versions of a text file"""
    try:
        diff = store.diff_versions(current_user.user_id, file_id, from_version_id, to_version_id)
        return VersionDiffResponse.model_validate(diff)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/{file_id}/versions/restore", response_model=VersionWriteResponse)
async def restore_version(
    file_id: UUID,
    request: RestoreVersionRequest,
    current_user: User = Depends(get_current_user),
    store: EntityStore = Depends(get_entity_store)
):
    try:
        record, written = store.restore_version(current_user.user_id, file_id, request.version_id)
        return _write_response(record, written)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)
