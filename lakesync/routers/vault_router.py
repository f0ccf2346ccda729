from fastapi import APIRouter, HTTPException, Depends, status, UploadFile, File as FastAPIFile, Form
from uuid import UUID
from typing import Optional

from lakesync.schemas.files import FileResponse
from lakesync.schemas.vault import (
    VaultEnvelopeRequest, VaultToggleRequest, VaultStatusResponse, VaultItemsResponse, VaultResetResponse
)
from lakesync.db.models import User
from lakesync.core.jwt_auth import get_current_user
from lakesync.core.exceptions import LakeError, to_http_exception, handle_database_error
from lakesync.routers.dependencies import get_vault_service
from lakesync.services.vault import VaultService

router = APIRouter()


@router.get("/status", response_model=VaultStatusResponse)
async def vault_status(
    current_user: User = Depends(get_current_user),
    vault: VaultService = Depends(get_vault_service)
):
    """Envelope state of the caller's vault; creates the vault folder on first use"""
    try:
        return vault.get_status(current_user.user_id)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.put("/envelope", response_model=VaultStatusResponse)
async def save_envelope(
    request: VaultEnvelopeRequest,
    current_user: User = Depends(get_current_user),
    vault: VaultService = Depends(get_vault_service)
):
    try:
        return vault.save_envelope(current_user.user_id, request.cipher, request.iv, request.salt)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.get("/items", response_model=VaultItemsResponse)
async def vault_items(
    current_user: User = Depends(get_current_user),
    vault: VaultService = Depends(get_vault_service)
):
    try:
        items = vault.list_items(current_user.user_id)
        return VaultItemsResponse(items=[FileResponse.model_validate(f) for f in items])
    except LakeError as e:
        raise to_http_exception(e)


@router.post("/upload", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
async def upload_vault_file(
    file: UploadFile = FastAPIFile(...),
    iv: str = Form(...),
    name: Optional[str] = Form(None),
    original_name: Optional[str] = Form(None),
    folder_id: Optional[UUID] = Form(None),
    current_user: User = Depends(get_current_user),
    vault: VaultService = Depends(get_vault_service)
):
    """Store client-encrypted content in the vault"""
    try:
        content = await file.read()
        return vault.upload(
            current_user.user_id,
            name or file.filename,
            content,
            iv,
            folder_id=folder_id,
            original_name=original_name
        )
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.put("/files/{file_id}/content", response_model=FileResponse)
async def overwrite_vault_file(
    file_id: UUID,
    file: UploadFile = FastAPIFile(...),
    iv: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    vault: VaultService = Depends(get_vault_service)
):
    try:
        content = await file.read()
        return vault.update_content(current_user.user_id, file_id, content, iv)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/files/{file_id}/toggle", response_model=FileResponse)
async def toggle_vault(
    file_id: UUID,
    request: VaultToggleRequest,
    current_user: User = Depends(get_current_user),
    vault: VaultService = Depends(get_vault_service)
):
    """Enable the vault for a file. Disabling is rejected."""
    try:
        return vault.toggle_vault(current_user.user_id, file_id, request.enabled)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)


@router.post("/reset", response_model=VaultResetResponse)
async def reset_vault(
    current_user: User = Depends(get_current_user),
    vault: VaultService = Depends(get_vault_service)
):
    """Delete all vault files and clear the envelope"""
    try:
        return VaultResetResponse(deleted_files=vault.reset(current_user.user_id))
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)
