import hashlib
import logging
import os
from pathlib import Path
from typing import List, Optional

from lakesync.core.config import STORAGE_ROOT
from lakesync.storage.base import BaseStorage, StorageError

logger = logging.getLogger(__name__)

CONTENT_DIR = "blobs"


class LocalStorage(BaseStorage):
    """Stores objects below a local root directory."""

    def __init__(self, root: str):
        self.base_path = Path(root).resolve()
        os.makedirs(self.base_path, exist_ok=True)

    def _resolve(self, ref: str) -> Path:
        target = (self.base_path / ref).resolve()
        if self.base_path not in target.parents:
            raise StorageError(f"Reference escapes storage root: {ref}")
        return target

    @staticmethod
    def content_ref(data: bytes) -> str:
        digest = hashlib.sha256(data).hexdigest()
        return f"{CONTENT_DIR}/{digest[:2]}/{digest}"

    def save(self, data: bytes, path: Optional[str] = None) -> str:
        ref = path or self.content_ref(data)
        target = self._resolve(ref)
        if path is None and target.exists():
            # Same content, same object. Touch it so the orphan sweep's grace period restarts
            try:
                os.utime(target)
            except OSError as e:
                raise StorageError(f"Failed to refresh {ref}: {e}") from e
            return ref
        try:
            os.makedirs(target.parent, exist_ok=True)
            tmp = target.with_name(target.name + ".part")
            with open(tmp, "wb") as buffer:
                buffer.write(data)
            os.replace(tmp, target)
        except OSError as e:
            raise StorageError(f"Failed to write {ref}: {e}") from e
        return ref

    def read(self, ref: str) -> bytes:
        target = self._resolve(ref)
        try:
            with open(target, "rb") as f:
                return f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {ref}: {e}") from e

    def move(self, old_path: str, new_path: str) -> None:
        source = self._resolve(old_path)
        target = self._resolve(new_path)
        try:
            os.makedirs(target.parent, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            raise StorageError(f"Failed to move {old_path} -> {new_path}: {e}") from e

    def delete(self, ref: str) -> None:
        target = self._resolve(ref)
        try:
            if target.exists():
                os.remove(target)
        except OSError as e:
            raise StorageError(f"Failed to delete {ref}: {e}") from e

    def exists(self, ref: str) -> bool:
        return self._resolve(ref).exists()

    def list_content_refs(self, older_than: Optional[float] = None) -> List[str]:
        blob_root = self.base_path / CONTENT_DIR
        if not blob_root.exists():
            return []
        refs = []
        try:
            for path in blob_root.rglob("*"):
                if not path.is_file() or path.name.endswith(".part"):
                    continue
                if older_than is not None and path.stat().st_mtime >= older_than:
                    continue
                refs.append(path.relative_to(self.base_path).as_posix())
        except OSError as e:
            raise StorageError(f"Failed to list stored content: {e}") from e
        return refs


_storage: Optional[LocalStorage] = None


def get_storage() -> BaseStorage:
    """Process-wide storage collaborator, used as a FastAPI dependency"""
    global _storage
    if _storage is None:
        _storage = LocalStorage(STORAGE_ROOT)
        logger.info(f"Local storage rooted at {_storage.base_path}")
    return _storage
