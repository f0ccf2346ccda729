"""
Sync Journal

Append-only change feed. Personal changes are written once with `owner_id`;
group changes are written once with `group_folder_id` and a null owner and
fanned out to every current member at read time by joining through group
membership.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from lakesync.core.config import JOURNAL_PAGE_SIZE
from lakesync.core.exceptions import InvalidArgument
from lakesync.db import crud
from lakesync.db.models import Folder, GroupFolder, SyncJournalEntry
from lakesync.services.access_resolver import PersonalScope, Scope
from lakesync.services.entity_registry import ENTITY_KINDS, get_kind

logger = logging.getLogger(__name__)

ACTIONS = ("create", "update", "move", "delete")


def record_change(
    db: Session,
    scope: Scope,
    entity_type: str,
    entity_id: UUID,
    action: str,
    version_id: Optional[UUID] = None,
    base_version_id: Optional[UUID] = None
) -> SyncJournalEntry:
    """Queue a journal row in the caller's transaction."""
    get_kind(entity_type)
    if action not in ACTIONS:
        raise InvalidArgument(f"Unknown journal action: {action}")

    entry = SyncJournalEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        version_id=version_id,
        base_version_id=base_version_id
    )
    if isinstance(scope, PersonalScope):
        entry.owner_id = scope.owner_id
    else:
        entry.group_folder_id = scope.group_folder_id
    db.add(entry)
    logger.debug(f"Journal {entity_type}/{entity_id} {action} in {scope.key}")
    return entry


@dataclass
class JournalEvent:
    id: int
    entity_type: str
    entity_id: UUID
    action: str
    version_id: Optional[UUID] = None
    base_version_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    data: Optional[Dict[str, Any]] = None


@dataclass
class JournalPage:
    events: List[JournalEvent] = field(default_factory=list)
    next_cursor: int = 0


class PathResolver:
    """Builds display paths ("/Team/Projects/x.txt") with per-pull caching."""

    def __init__(self, db: Session):
        self.db = db
        self._folders: Dict[UUID, Optional[Folder]] = {}
        self._group_names: Dict[UUID, str] = {}

    def _folder(self, folder_id: UUID) -> Optional[Folder]:
        if folder_id not in self._folders:
            self._folders[folder_id] = crud.get_folder(self.db, folder_id, include_deleted=True)
        return self._folders[folder_id]

    def _scope_prefix(self, group_folder_id: Optional[UUID]) -> str:
        if group_folder_id is None:
            return ""
        if group_folder_id not in self._group_names:
            group_folder = crud.get_group_folder(self.db, group_folder_id)
            self._group_names[group_folder_id] = group_folder.name if group_folder else str(group_folder_id)
        return "/" + self._group_names[group_folder_id]

    def _folder_names(self, folder_id: Optional[UUID]) -> List[str]:
        names = []
        seen = set()
        while folder_id is not None and folder_id not in seen:
            seen.add(folder_id)
            folder = self._folder(folder_id)
            if folder is None:
                break
            names.append(folder.name)
            folder_id = folder.parent_id
        return list(reversed(names))

    def path_of(self, entity) -> str:
        if isinstance(entity, GroupFolder):
            return self._scope_prefix(entity.group_folder_id)
        if isinstance(entity, Folder):
            names = self._folder_names(entity.folder_id)
        else:
            names = self._folder_names(entity.folder_id) + [entity.path]
        return self._scope_prefix(entity.group_folder_id) + "/" + "/".join(names)


def _can_see(entity, user_id: UUID, group_folder_ids: Set[UUID]) -> bool:
    if isinstance(entity, GroupFolder):
        return entity.group_folder_id in group_folder_ids
    if entity.group_folder_id is not None:
        return entity.group_folder_id in group_folder_ids
    return entity.owner_id == user_id


def pull(db: Session, user_id: UUID, cursor: int = 0, limit: Optional[int] = None) -> JournalPage:
    """
    Return up to one page of entries with id > cursor, oldest first.

    Entries of group scopes are included while the user is a member of a group
    with access to that group folder. Non-delete entries carry the current
    state of their entity when the user can still see it.
    """
    if cursor is None or cursor < 0:
        raise InvalidArgument("Cursor must be a non-negative integer")
    page_size = JOURNAL_PAGE_SIZE if not limit else max(1, min(limit, JOURNAL_PAGE_SIZE))

    rows = db.query(SyncJournalEntry).filter(
        SyncJournalEntry.id > cursor
    ).filter(
        or_(
            SyncJournalEntry.owner_id == user_id,
            SyncJournalEntry.group_folder_id.in_(crud.accessible_group_folder_ids_query(user_id))
        )
    ).order_by(SyncJournalEntry.id.asc()).limit(page_size).all()

    if not rows:
        return JournalPage(events=[], next_cursor=cursor)

    # Batch-load the current state of everything the page mentions
    wanted: Dict[str, Set[UUID]] = {name: set() for name in ENTITY_KINDS}
    for row in rows:
        if row.action != "delete":
            wanted[row.entity_type].add(row.entity_id)
    current = {name: ENTITY_KINDS[name].load_many(db, ids) for name, ids in wanted.items()}

    group_folder_ids = set(crud.get_accessible_group_folder_ids(db, user_id))
    paths = PathResolver(db)

    events = []
    for row in rows:
        event = JournalEvent(
            id=row.id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            action=row.action,
            version_id=row.version_id,
            base_version_id=row.base_version_id,
            created_at=row.created_at
        )
        if row.action != "delete":
            entity = current[row.entity_type].get(row.entity_id)
            if entity is not None and _can_see(entity, user_id, group_folder_ids):
                data = ENTITY_KINDS[row.entity_type].serialize(entity)
                data["path"] = paths.path_of(entity)
                event.data = data
        events.append(event)

    logger.debug(f"Pulled {len(events)} journal entries for user {user_id} after cursor {cursor}")
    return JournalPage(events=events, next_cursor=rows[-1].id)
