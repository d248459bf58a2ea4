# fileledger/storage/__init__.py
"""
Storage backends for the registry, ACL, administrator and audit log.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Dict, List, Optional
from pathlib import Path

from fileledger.core.types import AuditEvent, FileRecord


class StorageBackend(ABC):
    """
    Abstract base for persistent ledger state.
    Every write must happen inside transaction(); the block commits on exit
    and rolls back entirely if it raises.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        pass

    # administrator / notary metadata
    @abstractmethod
    def get_administrator(self) -> Optional[str]:
        pass

    @abstractmethod
    def set_administrator(self, identity: str) -> None:
        pass

    @abstractmethod
    def add_notary_key(self, public_b64url: str) -> None:
        pass

    @abstractmethod
    def notary_keys(self) -> List[str]:
        """Every notary public key that has signed for this ledger, oldest first."""
        pass

    # registry
    @abstractmethod
    def get_file(self, file_id: int) -> Optional[FileRecord]:
        pass

    @abstractmethod
    def put_file(self, record: FileRecord) -> None:
        pass

    # acl
    @abstractmethod
    def is_granted(self, file_id: int, identity: str) -> bool:
        pass

    @abstractmethod
    def grant(self, file_id: int, identity: str) -> None:
        pass

    # audit log
    @abstractmethod
    def append_event(self, event: AuditEvent) -> None:
        pass

    @abstractmethod
    def load_events(self, file_id: Optional[int] = None) -> List[AuditEvent]:
        pass

    @abstractmethod
    def stored_hashes(self) -> Dict[int, str]:
        pass

    @abstractmethod
    def last_event_hash(self) -> Optional[str]:
        pass

    @abstractmethod
    def event_count(self) -> int:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def create_storage(uri: str) -> StorageBackend:
    """
    sqlite://<path>   SQLite file (parents created)
    memory:           SQLite in-memory, gone on close
    <path>            plain file path, treated as sqlite://<path>
    """
    from .sqlite import SQLiteStorage

    stripped = uri.strip()
    if stripped in ("memory:", "sqlite://:memory:"):
        return SQLiteStorage(":memory:")
    if stripped.startswith("sqlite://"):
        raw_path = stripped[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in storage URI: {uri}")
        return SQLiteStorage(Path(raw_path).resolve())
    if "://" in stripped or stripped.endswith(":"):
        raise ValueError(f"Unsupported storage URI: {uri}")
    if not stripped:
        raise ValueError("Empty storage URI")
    return SQLiteStorage(Path(stripped).resolve())


from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "SQLiteStorage"]
