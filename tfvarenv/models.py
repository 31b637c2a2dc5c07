"""
Core data model: environments, versions and deployment records.

All records serialize to the JSON layout used in the registry file and in
the ledger objects stored next to each variable file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from .storage import keys
from .util import format_timestamp, parse_timestamp

DEFAULT_TFVARS_KEY = "terraform.tfvars"

DeploymentCommand = Literal["apply", "plan", "destroy"]
DeploymentStatus = Literal["success", "failure"]
LiveStatus = Literal["active", "destroyed"]

COMMAND_APPLY: DeploymentCommand = "apply"
COMMAND_PLAN: DeploymentCommand = "plan"
COMMAND_DESTROY: DeploymentCommand = "destroy"
STATUS_SUCCESS: DeploymentStatus = "success"
STATUS_FAILURE: DeploymentStatus = "failure"
LIVE_ACTIVE: LiveStatus = "active"
LIVE_DESTROYED: LiveStatus = "destroyed"


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@dataclass
class S3Config:
    bucket: str = ""
    prefix: str = ""
    tfvars_key: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"bucket": self.bucket, "prefix": self.prefix, "tfvars_key": self.tfvars_key}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> S3Config:
        return cls(
            bucket=str(data.get("bucket", "")),
            prefix=str(data.get("prefix", "")),
            tfvars_key=str(data.get("tfvars_key", "")),
        )


@dataclass
class AWSConfig:
    account_id: str = ""
    region: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"account_id": self.account_id, "region": self.region}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AWSConfig:
        return cls(account_id=str(data.get("account_id", "")), region=str(data.get("region", "")))


@dataclass
class LocalConfig:
    tfvars_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"tfvars_path": self.tfvars_path}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalConfig:
        return cls(tfvars_path=str(data.get("tfvars_path", "")))


@dataclass
class DeploymentConfig:
    auto_backup: bool = True
    require_approval: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"auto_backup": self.auto_backup, "require_approval": self.require_approval}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeploymentConfig:
        return cls(
            auto_backup=bool(data.get("auto_backup", True)),
            require_approval=bool(data.get("require_approval", False)),
        )


@dataclass
class BackendConfig:
    """Inline S3 backend settings passed to ``terraform init``."""

    bucket: str = ""
    key: str = ""
    region: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"bucket": self.bucket, "key": self.key, "region": self.region}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackendConfig:
        return cls(
            bucket=str(data.get("bucket", "")),
            key=str(data.get("key", "")),
            region=str(data.get("region", "")),
        )

    def to_init_args(self) -> dict[str, str]:
        return {"bucket": self.bucket, "key": self.key, "region": self.region}


@dataclass
class Environment:
    """A named provisioning target."""

    name: str
    description: str = ""
    s3: S3Config = field(default_factory=S3Config)
    aws: AWSConfig = field(default_factory=AWSConfig)
    local: LocalConfig = field(default_factory=LocalConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)

    def s3_path(self) -> str:
        return keys.tfvars_key(self.s3.prefix, self.s3.tfvars_key)

    def full_s3_path(self) -> str:
        return keys.s3_uri(self.s3.bucket, self.s3_path())

    def version_metadata_key(self) -> str:
        return keys.version_metadata_key(self.s3.prefix, self.s3.tfvars_key)

    def deployment_history_key(self) -> str:
        return keys.deployment_history_key(self.s3.prefix, self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "s3": self.s3.to_dict(),
            "aws": self.aws.to_dict(),
            "local": self.local.to_dict(),
            "deployment": self.deployment.to_dict(),
            "backend": self.backend.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Environment:
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            s3=S3Config.from_dict(data.get("s3") or {}),
            aws=AWSConfig.from_dict(data.get("aws") or {}),
            local=LocalConfig.from_dict(data.get("local") or {}),
            deployment=DeploymentConfig.from_dict(data.get("deployment") or {}),
            backend=BackendConfig.from_dict(data.get("backend") or {}),
        )


# ---------------------------------------------------------------------------
# Ledger records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Version:
    """One immutable upload of variable-file content."""

    version_id: str
    hash: str
    timestamp: datetime
    uploaded_by: str
    size: int
    description: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version_id": self.version_id,
            "hash": self.hash,
            "timestamp": format_timestamp(self.timestamp),
            "description": self.description,
            "uploaded_by": self.uploaded_by,
            "size": self.size,
        }
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Version:
        return cls(
            version_id=str(data["version_id"]),
            hash=str(data.get("hash", "")),
            timestamp=parse_timestamp(data["timestamp"]),
            description=str(data.get("description", "")),
            uploaded_by=str(data.get("uploaded_by", "")),
            size=int(data.get("size", 0)),
            metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
        )


@dataclass(frozen=True)
class DeploymentRecord:
    """One apply/plan/destroy attempt against an environment."""

    timestamp: datetime
    version_id: str
    deployed_by: str
    command: DeploymentCommand
    status: DeploymentStatus
    environment: str
    parameters: dict[str, str] = field(default_factory=dict)
    duration: float = 0.0
    error_message: str = ""

    def __post_init__(self) -> None:
        if self.command not in (COMMAND_APPLY, COMMAND_PLAN, COMMAND_DESTROY):
            raise ValueError(f"Unknown deployment command: {self.command}")
        if self.status not in (STATUS_SUCCESS, STATUS_FAILURE):
            raise ValueError(f"Unknown deployment status: {self.status}")
        if self.status == STATUS_FAILURE and not self.error_message:
            raise ValueError("Failure records require an error_message")
        if self.status == STATUS_SUCCESS and self.error_message:
            raise ValueError("Success records cannot carry an error_message")

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": format_timestamp(self.timestamp),
            "version_id": self.version_id,
            "deployed_by": self.deployed_by,
            "command": self.command,
            "status": self.status,
            "environment": self.environment,
        }
        if self.parameters:
            data["parameters"] = dict(self.parameters)
        if self.duration:
            # Stored as integer nanoseconds
            data["duration"] = int(round(self.duration * 1_000_000_000))
        if self.error_message:
            data["error_message"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeploymentRecord:
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            version_id=str(data.get("version_id", "")),
            deployed_by=str(data.get("deployed_by", "")),
            command=data.get("command", COMMAND_APPLY),
            status=data.get("status", STATUS_SUCCESS),
            environment=str(data.get("environment", "")),
            parameters={str(k): str(v) for k, v in (data.get("parameters") or {}).items()},
            duration=int(data.get("duration", 0) or 0) / 1_000_000_000,
            error_message=str(data.get("error_message", "")),
        )
