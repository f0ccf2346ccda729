from abc import ABC, abstractmethod
from typing import List, Optional


class StorageError(Exception):
    """Raised by storage collaborators on any I/O failure."""


class BaseStorage(ABC):
    """
    Contract of the physical storage collaborator.
    The core only orchestrates these calls; layout is up to the implementation.
    """

    @abstractmethod
    def save(self, data: bytes, path: Optional[str] = None) -> str:
        """
        Store `data` and return its reference.
        Without `path` the object is stored content-addressed.
        """

    @abstractmethod
    def read(self, ref: str) -> bytes:
        """Return the raw bytes behind `ref`."""

    @abstractmethod
    def move(self, old_path: str, new_path: str) -> None:
        """Relocate an object stored under an explicit path."""

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Remove an object. Missing objects are not an error."""

    @abstractmethod
    def exists(self, ref: str) -> bool:
        pass

    @abstractmethod
    def list_content_refs(self, older_than: Optional[float] = None) -> List[str]:
        """
        References of every content-addressed object, optionally only those
        last written before the `older_than` epoch timestamp.
        """
