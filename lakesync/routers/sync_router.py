from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from lakesync.schemas.sync import JournalPullResponse
from lakesync.db.database import get_db
from lakesync.db.models import User
from lakesync.core.config import JOURNAL_PAGE_SIZE
from lakesync.core.jwt_auth import get_current_user
from lakesync.core.exceptions import LakeError, to_http_exception, handle_database_error
from lakesync.services import sync_journal

router = APIRouter()


@router.get("/pull", response_model=JournalPullResponse)
async def pull_changes(
    cursor: int = Query(0, ge=0, description="Id of the last consumed entry; 0 starts from the beginning"),
    limit: Optional[int] = Query(None, ge=1, le=JOURNAL_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Incremental change feed of the caller's personal and group scopes"""
    try:
        page = sync_journal.pull(db, current_user.user_id, cursor, limit)
        return JournalPullResponse.model_validate(page)
    except LakeError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        raise handle_database_error(e)
