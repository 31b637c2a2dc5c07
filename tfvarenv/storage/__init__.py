"""Object storage for variable files and their ledgers."""

from .client import ObjectVersion, StorageClient, StoredObject

__all__ = ["ObjectVersion", "StorageClient", "StoredObject"]
