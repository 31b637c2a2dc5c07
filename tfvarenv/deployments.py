"""
Deployment ledger.

Chronological record of apply/destroy attempts for one environment plus a
separate "latest deployment" pointer whose status (active or destroyed)
answers whether the environment is currently live.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .errors import LedgerCorruptError, ObjectNotFoundError
from .models import (
    LIVE_ACTIVE,
    LIVE_DESTROYED,
    STATUS_FAILURE,
    STATUS_SUCCESS,
    DeploymentCommand,
    DeploymentRecord,
    DeploymentStatus,
    Environment,
    LiveStatus,
)
from .storage.client import JSON_CONTENT_TYPE, StorageClient
from .util import format_timestamp, parse_timestamp, utc_now
from .versions import FORMAT_VERSION, check_format_version

logger = logging.getLogger(__name__)


@dataclass
class LatestDeployment:
    """Pointer to the deployment that defines the environment's live state."""

    deployment: DeploymentRecord | None
    status: LiveStatus
    modified_time: datetime

    @property
    def is_active(self) -> bool:
        return self.status == LIVE_ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "deployment": self.deployment.to_dict() if self.deployment else None,
            "status": self.status,
            "modified_time": format_timestamp(self.modified_time),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LatestDeployment:
        record = data.get("deployment")
        status = data.get("status", LIVE_ACTIVE)
        if status not in (LIVE_ACTIVE, LIVE_DESTROYED):
            raise ValueError(f"Unknown live status: {status}")
        return cls(
            deployment=DeploymentRecord.from_dict(record) if record else None,
            status=status,
            modified_time=parse_timestamp(data["modified_time"]),
        )


@dataclass
class DeploymentHistory:
    """In-memory form of the deployment ledger object."""

    environment: str
    deployments: list[DeploymentRecord] = field(default_factory=list)
    latest: LatestDeployment | None = None
    format_version: str = FORMAT_VERSION

    def sort(self) -> None:
        self.deployments.sort(key=lambda r: r.timestamp, reverse=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": self.format_version,
            "environment": self.environment,
            "latest_deployment": self.latest.to_dict() if self.latest else None,
            "deployments": [r.to_dict() for r in self.deployments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeploymentHistory:
        latest = data.get("latest_deployment")
        return cls(
            environment=str(data.get("environment", "")),
            deployments=[DeploymentRecord.from_dict(r) for r in data.get("deployments") or []],
            latest=LatestDeployment.from_dict(latest) if latest else None,
            format_version=str(data.get("format_version", FORMAT_VERSION)),
        )


@dataclass(frozen=True)
class DeploymentStats:
    total_deployments: int
    successful_deployments: int
    failed_deployments: int
    average_duration: float
    common_errors: dict[str, int]
    deployments_by_user: dict[str, int]
    last_deployment: DeploymentRecord | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_deployments": self.total_deployments,
            "successful_deployments": self.successful_deployments,
            "failed_deployments": self.failed_deployments,
            "average_duration": self.average_duration,
            "common_errors": dict(self.common_errors),
            "deployments_by_user": dict(self.deployments_by_user),
            "last_deployment": self.last_deployment.to_dict() if self.last_deployment else None,
        }


class DeploymentLedger:
    """Read/append access to one environment's deployment ledger."""

    def __init__(self, storage: StorageClient, env: Environment):
        self.storage = storage
        self.env = env
        self.bucket = env.s3.bucket
        self.key = env.deployment_history_key()

    def _load(self) -> DeploymentHistory:
        try:
            obj = self.storage.get_object(self.bucket, self.key)
        except ObjectNotFoundError:
            return DeploymentHistory(environment=self.env.name)

        where = f"s3://{self.bucket}/{self.key}"
        try:
            data = json.loads(obj.content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LedgerCorruptError(f"Malformed deployment ledger at {where}: {e}") from e
        if not isinstance(data, dict):
            raise LedgerCorruptError(f"Malformed deployment ledger at {where}: not an object")
        check_format_version(data.get("format_version"), self.key)
        try:
            return DeploymentHistory.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerCorruptError(f"Malformed deployment ledger at {where}: {e}") from e

    def _save(self, history: DeploymentHistory) -> None:
        history.format_version = FORMAT_VERSION
        history.environment = self.env.name
        payload = json.dumps(history.to_dict(), indent=2).encode("utf-8")
        self.storage.put_object(self.bucket, self.key, payload, content_type=JSON_CONTENT_TYPE)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def add_record(self, record: DeploymentRecord) -> None:
        """Append a record and point the live state at it."""
        history = self._load()
        history.deployments.append(record)
        history.latest = LatestDeployment(deployment=record, status=LIVE_ACTIVE, modified_time=utc_now())
        history.sort()
        self._save(history)
        logger.debug(f"recorded {record.command} {record.status} for {self.env.name}")

    def mark_as_destroyed(self) -> None:
        """
        Flip the live-state pointer to destroyed without adding history.

        The pointer keeps the record it already embeds; without a pointer the
        new one embeds no record, even when history exists.
        """
        history = self._load()
        record = history.latest.deployment if history.latest else None
        history.latest = LatestDeployment(deployment=record, status=LIVE_DESTROYED, modified_time=utc_now())
        self._save(history)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_latest(self) -> LatestDeployment | None:
        return self._load().latest

    def get_latest_deployment(self) -> DeploymentRecord | None:
        """The pointer's record, else the newest history entry, else None."""
        history = self._load()
        if history.latest is not None and history.latest.deployment is not None:
            return history.latest.deployment
        if history.deployments:
            return history.deployments[0]
        return None

    def is_active(self) -> bool:
        latest = self._load().latest
        return latest is not None and latest.is_active

    def get_last_successful_deployment(self, command: DeploymentCommand = "apply") -> DeploymentRecord | None:
        records = self.query_deployments(status=STATUS_SUCCESS, command=command, limit=1)
        return records[0] if records else None

    def query_deployments(
        self,
        *,
        since: datetime | None = None,
        before: datetime | None = None,
        status: DeploymentStatus | None = None,
        deployed_by: str | None = None,
        version_id: str | None = None,
        command: DeploymentCommand | None = None,
        limit: int | None = None,
    ) -> list[DeploymentRecord]:
        """Filter history (newest first), then apply the limit."""
        records = self._load().deployments

        if since is not None:
            records = [r for r in records if r.timestamp >= since]
        if before is not None:
            records = [r for r in records if r.timestamp <= before]
        if status is not None:
            records = [r for r in records if r.status == status]
        if deployed_by:
            records = [r for r in records if r.deployed_by == deployed_by]
        if version_id:
            records = [r for r in records if r.version_id == version_id]
        if command is not None:
            records = [r for r in records if r.command == command]

        if limit is not None and limit > 0:
            records = records[:limit]
        return records

    def get_history(self, limit: int | None = None) -> list[DeploymentRecord]:
        return self.query_deployments(limit=limit)

    def get_stats(self) -> DeploymentStats:
        history = self._load()
        records = history.deployments
        successes = sum(1 for r in records if r.status == STATUS_SUCCESS)
        failures = sum(1 for r in records if r.status == STATUS_FAILURE)
        durations = [r.duration for r in records if r.duration > 0]
        errors = Counter(r.error_message for r in records if r.error_message)
        by_user = Counter(r.deployed_by for r in records)

        last = history.latest.deployment if history.latest and history.latest.deployment else None
        if last is None and records:
            last = records[0]

        return DeploymentStats(
            total_deployments=len(records),
            successful_deployments=successes,
            failed_deployments=failures,
            average_duration=sum(durations) / len(durations) if durations else 0.0,
            common_errors=dict(errors),
            deployments_by_user=dict(by_user),
            last_deployment=last,
        )
