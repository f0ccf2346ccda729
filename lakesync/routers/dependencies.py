from fastapi import Depends
from sqlalchemy.orm import Session

from lakesync.db.database import get_db
from lakesync.services.background import BackgroundQueue, get_background_queue
from lakesync.services.entity_store import EntityStore
from lakesync.services.vault import VaultService
from lakesync.storage.base import BaseStorage
from lakesync.storage.local_storage import get_storage


def get_entity_store(
    db: Session = Depends(get_db),
    storage: BaseStorage = Depends(get_storage),
    background: BackgroundQueue = Depends(get_background_queue)
) -> EntityStore:
    return EntityStore(db, storage, background)


def get_vault_service(store: EntityStore = Depends(get_entity_store)) -> VaultService:
    return VaultService(store)
