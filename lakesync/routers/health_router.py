from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from lakesync.core.config import PROJECT_NAME
from lakesync.db.database import get_db, ping

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("")
async def health(db: Session = Depends(get_db)):
    """Report service and database reachability"""
    try:
        ping(db)
        database = "ok"
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        database = "unreachable"
    return {"service": PROJECT_NAME, "database": database, "status": "ok" if database == "ok" else "degraded"}
