"""
Static registry of the entity types the journal and sharing layers address
generically. Each entry knows its model, how to load rows by id and how to
render the current state of a row.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from lakesync.core.exceptions import InvalidArgument
from lakesync.db.models import File, Folder, GroupFolder


def _iso(value):
    return value.isoformat() if value is not None else None


def _str(value):
    return str(value) if value is not None else None


def _file_data(file: File) -> Dict[str, Any]:
    return {
        "name": file.path,
        "folder_id": _str(file.folder_id),
        "owner_id": _str(file.owner_id),
        "group_folder_id": _str(file.group_folder_id),
        "size": file.size,
        "mime": file.mime,
        "hash": file.hash,
        "is_vault": file.is_vault,
        "iv": file.iv,
        "is_deleted": file.is_deleted,
        "updated_at": _iso(file.updated_at),
    }


def _folder_data(folder: Folder) -> Dict[str, Any]:
    return {
        "name": folder.name,
        "parent_id": _str(folder.parent_id),
        "owner_id": _str(folder.owner_id),
        "group_folder_id": _str(folder.group_folder_id),
        "is_vault": folder.is_vault,
        "is_deleted": folder.is_deleted,
        "updated_at": _iso(folder.updated_at),
    }


def _group_folder_data(group_folder: GroupFolder) -> Dict[str, Any]:
    return {
        "name": group_folder.name,
        "group_folder_id": _str(group_folder.group_folder_id),
        "created_at": _iso(group_folder.created_at),
    }


@dataclass(frozen=True)
class EntityKind:
    name: str
    model: type
    id_attr: str
    serialize: Callable[[Any], Dict[str, Any]]

    def load_many(self, db: Session, ids: Iterable[UUID]) -> Dict[UUID, Any]:
        ids = list(set(ids))
        if not ids:
            return {}
        column = getattr(self.model, self.id_attr)
        rows = db.query(self.model).filter(column.in_(ids)).all()
        return {getattr(row, self.id_attr): row for row in rows}


ENTITY_KINDS: Dict[str, EntityKind] = {
    "file": EntityKind("file", File, "file_id", _file_data),
    "folder": EntityKind("folder", Folder, "folder_id", _folder_data),
    "group_folder": EntityKind("group_folder", GroupFolder, "group_folder_id", _group_folder_data),
}


def get_kind(entity_type: str) -> EntityKind:
    try:
        return ENTITY_KINDS[entity_type]
    except KeyError:
        raise InvalidArgument(f"Unknown entity type: {entity_type}")
