"""
Error taxonomy.

Every error raised by tfvarenv derives from TfvarenvError so the command
layer can report it uniformly. Absence of a ledger object is never an
error; it is the empty-history case.
"""

from __future__ import annotations


class TfvarenvError(Exception):
    """Base class for all tfvarenv errors."""


class NotFoundError(TfvarenvError):
    """An environment, version or deployment does not exist."""


class ObjectNotFoundError(NotFoundError):
    """The storage backend has no object (or object version) at a key."""

    def __init__(self, bucket: str, key: str, version_id: str | None = None):
        self.bucket = bucket
        self.key = key
        self.version_id = version_id
        where = f"s3://{bucket}/{key}"
        if version_id:
            where += f" (version {version_id})"
        super().__init__(f"Object not found: {where}")


class AlreadyExistsError(TfvarenvError):
    """A duplicate environment name was rejected."""


class ValidationError(TfvarenvError):
    """Required fields are missing or malformed."""


class ConflictError(TfvarenvError):
    """Local and remote content diverged and need an explicit choice."""


class CancelledError(TfvarenvError):
    """The operator declined a confirmation."""


class ConfigError(TfvarenvError):
    """The local registry file cannot be read or parsed."""


class ExternalToolError(TfvarenvError):
    """The terraform subprocess failed to start or exited non-zero."""

    def __init__(self, message: str, *, exit_code: int | None = None, stderr: str = ""):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class StorageError(TfvarenvError):
    """Network, permission or backend failure."""


class LedgerCorruptError(StorageError):
    """A ledger object exists but its content cannot be used."""
