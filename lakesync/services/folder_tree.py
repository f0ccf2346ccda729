"""Subtree traversal over an in-memory arena of folder nodes."""
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from lakesync.db import crud
from lakesync.db.models import File, Folder


class FolderArena:
    """Folder nodes indexed by id with a parent -> children index."""

    def __init__(self, edges: Iterable[Tuple[UUID, Optional[UUID]]]):
        self.parent_of: Dict[UUID, Optional[UUID]] = {}
        self.children_of: Dict[Optional[UUID], List[UUID]] = defaultdict(list)
        for node_id, parent_id in edges:
            self.parent_of[node_id] = parent_id
            self.children_of[parent_id].append(node_id)

    def __contains__(self, node_id) -> bool:
        return node_id in self.parent_of

    def descendants(self, root_id: UUID, include_root: bool = True) -> List[UUID]:
        """Pre-order walk (parents before children) using an explicit stack."""
        order: List[UUID] = []
        seen = set()
        stack = [root_id]
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                # A cycle in stored data must not hang the walk
                continue
            seen.add(node_id)
            order.append(node_id)
            # reversed keeps siblings in insertion order when popped
            stack.extend(reversed(self.children_of.get(node_id, [])))
        if not include_root:
            order = order[1:]
        return order

    def is_descendant(self, node_id: Optional[UUID], ancestor_id: UUID) -> bool:
        """True if `node_id` is `ancestor_id` or lies below it."""
        seen = set()
        while node_id is not None and node_id not in seen:
            if node_id == ancestor_id:
                return True
            seen.add(node_id)
            node_id = self.parent_of.get(node_id)
        return False


@dataclass
class Subtree:
    root: Folder
    folders: List[Folder] = field(default_factory=list)  # root first, parents before children
    files: List[File] = field(default_factory=list)

    @property
    def folder_ids(self) -> List[UUID]:
        return [f.folder_id for f in self.folders]


def load_arena(db: Session, scope_key: str) -> Tuple[FolderArena, Dict[UUID, Folder]]:
    rows = crud.get_scope_folders(db, scope_key)
    by_id = {row.folder_id: row for row in rows}
    return FolderArena((row.folder_id, row.parent_id) for row in rows), by_id


def collect_subtree(db: Session, root: Folder) -> Subtree:
    """Load `root` with every descendant folder and file, deleted ones included."""
    arena, by_id = load_arena(db, root.scope_key)
    by_id.setdefault(root.folder_id, root)
    ids = arena.descendants(root.folder_id) if root.folder_id in arena else [root.folder_id]
    folders = [by_id[i] for i in ids]
    files = crud.get_files_in_folders(db, ids)
    return Subtree(root=root, folders=folders, files=files)
