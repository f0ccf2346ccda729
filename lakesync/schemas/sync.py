from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime


class JournalEventResponse(BaseModel):
    id: int
    entity_type: str
    entity_id: UUID
    action: str
    version_id: Optional[UUID] = None
    base_version_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    # Current state of the entity; absent for deletes and inaccessible entities
    data: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class JournalPullResponse(BaseModel):
    events: List[JournalEventResponse]
    next_cursor: int

    class Config:
        from_attributes = True
