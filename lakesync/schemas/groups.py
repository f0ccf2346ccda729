from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime


# Request schemas
class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class GroupMemberRequest(BaseModel):
    user_id: UUID


class GroupFolderCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class GroupFolderAccessRequest(BaseModel):
    group_id: UUID
    can_write: bool = True


# Response schemas
class GroupResponse(BaseModel):
    group_id: UUID
    name: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupFolderResponse(BaseModel):
    group_folder_id: UUID
    name: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GroupFolderAccessResponse(BaseModel):
    group_folder_id: UUID
    group_id: UUID
    can_write: bool

    class Config:
        from_attributes = True
