"""
Delete stored snapshot content that no file version references.

Run periodically: python -m lakesync.sweep
"""
import logging
import time

from lakesync.core.config import LOG_LEVEL, ORPHAN_SWEEP_GRACE_SECONDS
from lakesync.db.database import SessionLocal
from lakesync.services.entity_store import EntityStore
from lakesync.storage.local_storage import get_storage

logger = logging.getLogger(__name__)


def run_sweep(grace_seconds: int = ORPHAN_SWEEP_GRACE_SECONDS) -> int:
    db = SessionLocal()
    try:
        store = EntityStore(db, get_storage())
        return store.sweep_orphaned_content(older_than=time.time() - grace_seconds)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    removed = run_sweep()
    logger.info(f"Removed {removed} orphaned objects")
