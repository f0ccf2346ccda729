from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from .files import FileResponse


# Request schemas
class FolderCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    # Folder id, group folder id, or null for the personal root
    parent_id: Optional[UUID] = None


# Response schemas
class FolderResponse(BaseModel):
    folder_id: UUID
    name: str
    parent_id: Optional[UUID] = None
    owner_id: Optional[UUID] = None
    group_folder_id: Optional[UUID] = None
    is_vault: bool
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FolderListingResponse(BaseModel):
    folders: List[FolderResponse]
    files: List[FileResponse]


class EmptyTrashResponse(BaseModel):
    folders: int
    files: int
