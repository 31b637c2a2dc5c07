"""
Storage client protocol.

The ledgers and workflows only talk to object storage through this
capability surface, so they can run against an in-memory fake in tests
and against S3 in production.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain"


@dataclass(frozen=True)
class StoredObject:
    """Bytes and attributes of one object version."""

    content: bytes
    version_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    content_type: str = ""


@dataclass(frozen=True)
class ObjectVersion:
    """One entry from the store's native version listing."""

    version_id: str
    timestamp: datetime
    size: int
    is_latest: bool = False
    metadata: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class StorageClient(Protocol):
    """Minimal object-store surface used by tfvarenv."""

    def get_object(self, bucket: str, key: str, version_id: str | None = None) -> StoredObject:
        """Fetch an object; raises ObjectNotFoundError when absent."""
        ...

    def put_object(
        self,
        bucket: str,
        key: str,
        content: bytes,
        metadata: dict[str, str] | None = None,
        content_type: str = TEXT_CONTENT_TYPE,
    ) -> str | None:
        """Write an object and return the version id the store assigned."""
        ...

    def check_versioning_enabled(self, bucket: str) -> None:
        """Raise StorageError unless bucket versioning is enabled."""
        ...

    def list_versions(self, bucket: str, key: str, limit: int = 0) -> list[ObjectVersion]:
        """List native versions of one key, newest first."""
        ...

    def get_caller_account_id(self) -> str:
        """Account id of the active credentials."""
        ...
