"""
Version ledger.

One JSON object per environment, stored next to the variable file, that
catalogues every uploaded version of that file. The store's native
version id identifies each entry and a sha256 of the uploaded bytes lets
uploads short-circuit when nothing changed.

Ordering is append order: new entries are prepended, so the head of
``versions`` is the latest upload regardless of its timestamp. Sorting by
timestamp is a presentation concern applied only on request.
"""

from __future__ import annotations

import difflib
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .errors import LedgerCorruptError, NotFoundError, ObjectNotFoundError
from .models import Environment, Version
from .storage.client import JSON_CONTENT_TYPE, StorageClient
from .util import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"
MAX_VERSIONS = 100
MIN_ID_PREFIX = 8

SIZE_BUCKETS: list[tuple[str, int]] = [
    ("<1KB", 1024),
    ("1KB-10KB", 10 * 1024),
    ("10KB-100KB", 100 * 1024),
    ("100KB-1MB", 1024 * 1024),
]
SIZE_BUCKET_MAX = ">1MB"


def check_format_version(value: Any, key: str) -> None:
    """Reject ledgers written by an incompatible major format."""
    text = str(value or FORMAT_VERSION)
    major = text.split(".", 1)[0]
    if major != FORMAT_VERSION.split(".", 1)[0]:
        raise LedgerCorruptError(f"Unsupported ledger format_version {text!r} at {key}")


@dataclass
class VersionLedgerDocument:
    """In-memory form of the version ledger object."""

    env_name: str
    s3_path: str
    versions: list[Version] = field(default_factory=list)
    last_updated: datetime | None = None
    latest_version_id: str = ""
    format_version: str = FORMAT_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": self.format_version,
            "last_updated": format_timestamp(self.last_updated or utc_now()),
            "environment": {"name": self.env_name, "s3_path": self.s3_path},
            "versions": [v.to_dict() for v in self.versions],
            "latest_version_id": self.latest_version_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionLedgerDocument:
        env = data.get("environment") or {}
        last_updated = data.get("last_updated")
        return cls(
            env_name=str(env.get("name", "")),
            s3_path=str(env.get("s3_path", "")),
            versions=[Version.from_dict(v) for v in data.get("versions") or []],
            last_updated=parse_timestamp(last_updated) if last_updated else None,
            latest_version_id=str(data.get("latest_version_id", "")),
            format_version=str(data.get("format_version", FORMAT_VERSION)),
        )


@dataclass(frozen=True)
class VersionStats:
    total_versions: int
    average_size: float
    most_active_user: str
    last_updated: datetime | None
    versions_by_user: dict[str, int]
    size_distribution: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_versions": self.total_versions,
            "average_size": self.average_size,
            "most_active_user": self.most_active_user,
            "last_updated": format_timestamp(self.last_updated) if self.last_updated else None,
            "versions_by_user": dict(self.versions_by_user),
            "size_distribution": dict(self.size_distribution),
        }


def _size_bucket(size: int) -> str:
    for label, upper in SIZE_BUCKETS:
        if size < upper:
            return label
    return SIZE_BUCKET_MAX


class VersionLedger:
    """Read/append access to one environment's version ledger."""

    def __init__(self, storage: StorageClient, env: Environment):
        self.storage = storage
        self.env = env
        self.bucket = env.s3.bucket
        self.key = env.version_metadata_key()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> VersionLedgerDocument:
        try:
            obj = self.storage.get_object(self.bucket, self.key)
        except ObjectNotFoundError:
            return VersionLedgerDocument(env_name=self.env.name, s3_path=self.env.s3_path())

        try:
            data = json.loads(obj.content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LedgerCorruptError(f"Malformed version ledger at s3://{self.bucket}/{self.key}: {e}") from e
        if not isinstance(data, dict):
            raise LedgerCorruptError(f"Malformed version ledger at s3://{self.bucket}/{self.key}: not an object")
        check_format_version(data.get("format_version"), self.key)
        try:
            return VersionLedgerDocument.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerCorruptError(f"Malformed version ledger at s3://{self.bucket}/{self.key}: {e}") from e

    def _save(self, doc: VersionLedgerDocument) -> None:
        payload = json.dumps(doc.to_dict(), indent=2).encode("utf-8")
        self.storage.put_object(self.bucket, self.key, payload, content_type=JSON_CONTENT_TYPE)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def add_version(self, version: Version) -> None:
        """Prepend a version, making it the latest, and persist the ledger."""
        doc = self._load()
        doc.versions.insert(0, version)
        if len(doc.versions) > MAX_VERSIONS:
            dropped = len(doc.versions) - MAX_VERSIONS
            doc.versions = doc.versions[:MAX_VERSIONS]
            logger.debug(f"dropped {dropped} oldest version(s) from {self.key}")
        doc.latest_version_id = version.version_id
        doc.last_updated = utc_now()
        doc.env_name = self.env.name
        doc.s3_path = self.env.s3_path()
        doc.format_version = FORMAT_VERSION
        self._save(doc)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_versions(
        self,
        *,
        since: datetime | None = None,
        before: datetime | None = None,
        search_text: str | None = None,
        latest_only: bool = False,
        sort_by_date: bool = False,
        limit: int | None = None,
    ) -> list[Version]:
        """
        Query versions.

        Filters (since, before, search_text, latest_only) are applied in
        append order, then the optional timestamp sort, then the limit.
        ``latest_only`` keeps the most recently appended match.
        """
        versions = self._load().versions

        if since is not None:
            versions = [v for v in versions if v.timestamp >= since]
        if before is not None:
            versions = [v for v in versions if v.timestamp <= before]
        if search_text:
            needle = search_text.lower()
            versions = [v for v in versions if needle in v.description.lower()]
        if latest_only:
            versions = versions[:1]

        if sort_by_date:
            versions = sorted(versions, key=lambda v: v.timestamp, reverse=True)

        if limit is not None and limit > 0:
            versions = versions[:limit]
        return versions

    def get_latest_version(self) -> Version:
        versions = self.get_versions(latest_only=True)
        if not versions:
            raise NotFoundError(f"No versions found for environment {self.env.name}")
        return versions[0]

    def get_version(self, version_id: str) -> Version:
        """
        Look up one version by id.

        An unambiguous prefix of at least MIN_ID_PREFIX characters also
        matches, since listings show shortened ids.
        """
        versions = self._load().versions
        for v in versions:
            if v.version_id == version_id:
                return v

        if len(version_id) >= MIN_ID_PREFIX:
            matches = [v for v in versions if v.version_id.startswith(version_id)]
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                raise NotFoundError(f"Version id prefix {version_id} is ambiguous in {self.env.name}")
        raise NotFoundError(f"Version {version_id} not found in environment {self.env.name}")

    def get_stats(self) -> VersionStats:
        doc = self._load()
        versions = doc.versions
        by_user = Counter(v.uploaded_by for v in versions)
        distribution = Counter(_size_bucket(v.size) for v in versions)
        most_active = by_user.most_common(1)[0][0] if by_user else ""
        average = sum(v.size for v in versions) / len(versions) if versions else 0.0
        return VersionStats(
            total_versions=len(versions),
            average_size=average,
            most_active_user=most_active,
            last_updated=doc.last_updated,
            versions_by_user=dict(by_user),
            size_distribution=dict(distribution),
        )

    def compare_versions(self, version_id_a: str, version_id_b: str) -> list[str]:
        """
        Line-level diff between two versions' contents.

        Returns an empty list when both versions have the same hash,
        without downloading either blob.
        """
        a = self.get_version(version_id_a)
        b = self.get_version(version_id_b)
        if a.hash == b.hash:
            return []

        content_a = self.download(a.version_id).decode("utf-8", errors="replace")
        content_b = self.download(b.version_id).decode("utf-8", errors="replace")
        return list(
            difflib.unified_diff(
                content_a.splitlines(),
                content_b.splitlines(),
                fromfile=a.version_id,
                tofile=b.version_id,
                lineterm="",
            )
        )

    def download(self, version_id: str) -> bytes:
        """Bytes of the variable file at one version."""
        obj = self.storage.get_object(self.bucket, self.env.s3_path(), version_id)
        return obj.content
