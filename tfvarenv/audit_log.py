"""
Local audit log of state-changing commands.

The ledgers in S3 record versions and deployments; this log records what
was done from this working copy (registry edits, uploads, downloads,
applies, destroys) as JSON Lines in ``.tfvarenv/audit.log``.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .util import current_user

logger = logging.getLogger(__name__)

AUDIT_DIR = ".tfvarenv"
AUDIT_FILENAME = "audit.log"


@dataclass
class AuditEntry:
    """A single audit log entry."""
    timestamp: str
    operation: str
    environment: str = ""
    user: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "environment": self.environment,
            "user": self.user,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        return cls(
            timestamp=data["timestamp"],
            operation=data["operation"],
            environment=data.get("environment", ""),
            user=data.get("user", ""),
            metadata=data.get("metadata", {}),
        )


def get_audit_log_path(root: Path) -> Path:
    return root / AUDIT_DIR / AUDIT_FILENAME


def log_operation(
    root: Path,
    operation: str,
    environment: str = "",
    metadata: dict[str, Any] | None = None,
) -> AuditEntry:
    """
    Append an operation to the audit log.

    Args:
        root: Working directory holding the registry file
        operation: Name of the operation (e.g., "upload", "destroy")
        environment: Environment the operation touched, if any
        metadata: Additional context (e.g., version id, backup path)

    Returns:
        The created audit entry
    """
    entry = AuditEntry(
        timestamp=datetime.now(timezone.utc).isoformat(),
        operation=operation,
        environment=environment,
        user=current_user(),
        metadata=metadata or {},
    )

    log_path = get_audit_log_path(root)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    with log_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry.to_dict()) + "\n")

    return entry


def read_audit_log(
    root: Path,
    last_n: int | None = None,
    environment: str | None = None,
) -> list[AuditEntry]:
    """
    Read entries from the audit log, oldest first.

    Malformed lines are skipped with a warning.
    """
    log_path = get_audit_log_path(root)
    if not log_path.exists():
        return []

    entries = []
    with log_path.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(AuditEntry.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError) as e:
                logger.warning(f"Skipping malformed audit entry at line {lineno}: {e}")

    if environment:
        entries = [e for e in entries if e.environment == environment]
    if last_n is not None:
        return entries[-last_n:]
    return entries


def format_audit_entry(entry: AuditEntry) -> str:
    """Format an audit entry for human-readable display."""
    head = f"[{entry.timestamp}] {entry.operation}"
    if entry.environment:
        head += f" {entry.environment}"
    if entry.user:
        head += f" by {entry.user}"
    lines = [head]
    for key, value in entry.metadata.items():
        lines.append(f"  {key}: {value}")
    return "\n".join(lines)
