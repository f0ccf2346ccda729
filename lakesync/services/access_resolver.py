"""
Ownership resolution.

Every entity lives in exactly one scope: a user's personal tree or a group
folder. In memory the scope is a tagged union (`PersonalScope` |
`GroupScope`); in the database it is the `owner_id` / `group_folder_id`
column pair, of which exactly one is set.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from lakesync.core.exceptions import Forbidden, Internal, NotFound
from lakesync.db import crud
from lakesync.db.models import Folder, GroupFolder, scope_key_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersonalScope:
    owner_id: UUID

    @property
    def key(self) -> str:
        return scope_key_for(self.owner_id, None)


@dataclass(frozen=True)
class GroupScope:
    group_folder_id: UUID

    @property
    def key(self) -> str:
        return scope_key_for(None, self.group_folder_id)


Scope = Union[PersonalScope, GroupScope]


@dataclass(frozen=True)
class Location:
    """A resolved place in a scope: a real folder, or the scope root."""
    scope: Scope
    folder: Optional[Folder] = None

    @property
    def folder_id(self) -> Optional[UUID]:
        return self.folder.folder_id if self.folder is not None else None


def scope_of(entity) -> Scope:
    """Read the scope of a Folder/File/GroupFolder row."""
    if isinstance(entity, GroupFolder):
        return GroupScope(entity.group_folder_id)
    owner_id = entity.owner_id
    group_folder_id = entity.group_folder_id
    if (owner_id is None) == (group_folder_id is None):
        raise Internal(
            "Entity has an invalid ownership state",
            internal_detail=f"owner_id={owner_id} group_folder_id={group_folder_id} on {entity!r}"
        )
    if owner_id is not None:
        return PersonalScope(owner_id)
    return GroupScope(group_folder_id)


def apply_scope(entity, scope: Scope) -> None:
    """Write `scope` to the column pair, clearing the other side."""
    if isinstance(scope, PersonalScope):
        entity.owner_id = scope.owner_id
        entity.group_folder_id = None
    else:
        entity.owner_id = None
        entity.group_folder_id = scope.group_folder_id


def can_access_scope(db: Session, user_id: UUID, scope: Scope) -> bool:
    if isinstance(scope, PersonalScope):
        return scope.owner_id == user_id
    return crud.has_group_folder_access(db, user_id, scope.group_folder_id)


def authorize_scope(db: Session, user_id: UUID, scope: Scope) -> Scope:
    if not can_access_scope(db, user_id, scope):
        raise Forbidden(
            "Access denied",
            internal_detail=f"user {user_id} has no access to scope {scope.key}"
        )
    return scope


def authorize_entity(db: Session, user_id: UUID, entity) -> Scope:
    """Resolve the scope of an existing entity and check the user may act in it."""
    return authorize_scope(db, user_id, scope_of(entity))


def resolve_location(db: Session, user_id: UUID, target_id: Optional[UUID]) -> Location:
    """
    Resolve a client-supplied target into an ownership context.

    `target_id` may be absent (personal root), a real folder id, or a group
    folder id (its virtual root; entities created there get folder_id=None).
    """
    if target_id is None:
        return Location(PersonalScope(user_id))

    folder = crud.get_folder(db, target_id)
    if folder is not None:
        if folder.owner_id is not None:
            if folder.owner_id != user_id:
                raise Forbidden(
                    "Access denied",
                    internal_detail=f"user {user_id} targeted folder {target_id} owned by {folder.owner_id}"
                )
            return Location(PersonalScope(user_id), folder)
        scope = authorize_scope(db, user_id, scope_of(folder))
        return Location(scope, folder)

    group_folder = crud.get_group_folder(db, target_id)
    if group_folder is not None:
        scope = authorize_scope(db, user_id, GroupScope(group_folder.group_folder_id))
        return Location(scope)

    raise NotFound("Folder not found", internal_detail=f"no folder or group folder {target_id}")
