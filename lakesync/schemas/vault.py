from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID

from .files import FileResponse


# Request schemas
class VaultEnvelopeRequest(BaseModel):
    """Wrapped master key produced client-side. Opaque to the server."""
    cipher: str = Field(..., max_length=4096)
    iv: str = Field(..., max_length=256)
    salt: str = Field(..., max_length=64)


class VaultToggleRequest(BaseModel):
    enabled: bool


# Response schemas
class VaultStatusResponse(BaseModel):
    has_envelope: bool
    folder_id: Optional[UUID] = None
    cipher: Optional[str] = None
    iv: Optional[str] = None
    salt: Optional[str] = None

    class Config:
        from_attributes = True


class VaultItemsResponse(BaseModel):
    items: List[FileResponse]


class VaultResetResponse(BaseModel):
    deleted_files: int
