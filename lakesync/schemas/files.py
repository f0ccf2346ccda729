from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime


# Request schemas
class RenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class MoveRequest(BaseModel):
    # Folder id, group folder id, or null for the personal root
    target_id: Optional[UUID] = None


class CopyRequest(BaseModel):
    target_id: Optional[UUID] = None
    new_name: Optional[str] = Field(None, max_length=255)


class RestoreVersionRequest(BaseModel):
    version_id: UUID


# Response schemas
class FileResponse(BaseModel):
    file_id: UUID
    path: str
    folder_id: Optional[UUID] = None
    owner_id: Optional[UUID] = None
    group_folder_id: Optional[UUID] = None
    size: int
    mime: str
    hash: Optional[str] = None
    is_vault: bool
    iv: Optional[str] = None
    original_name: Optional[str] = None
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VersionResponse(BaseModel):
    version_id: UUID
    file_id: UUID
    version: int
    size: int
    mime: Optional[str] = None
    hash: str
    is_snapshot: bool
    base_version_id: Optional[UUID] = None
    delta_size: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VersionWriteResponse(BaseModel):
    file: FileResponse
    version: VersionResponse
    created: bool


class VersionDiffResponse(BaseModel):
    from_version: VersionResponse
    to_version: VersionResponse
    diff: str
    from_content: str
    to_content: str

    class Config:
        from_attributes = True


class VersionListResponse(BaseModel):
    file_id: UUID
    versions: List[VersionResponse]
