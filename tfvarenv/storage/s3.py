"""S3 storage client backed by boto3."""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ObjectNotFoundError, StorageError
from .client import TEXT_CONTENT_TYPE, ObjectVersion, StoredObject

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30
_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchVersion", "404", "NotFound"}


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


class S3StorageClient:
    """StorageClient implementation for AWS S3 with native versioning."""

    def __init__(
        self,
        region: str,
        *,
        s3_client: Any = None,
        sts_client: Any = None,
        endpoint_url: str | None = None,
        timeout_s: int = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.region = region
        if s3_client is None or sts_client is None:
            session = boto3.Session(region_name=region)
            config = BotoConfig(
                connect_timeout=timeout_s,
                read_timeout=timeout_s,
                retries={"max_attempts": 5, "mode": "standard"},
            )
            if s3_client is None:
                s3_client = session.client("s3", region_name=region, endpoint_url=endpoint_url, config=config)
            if sts_client is None:
                sts_client = session.client("sts", region_name=region, config=config)
        self._s3 = s3_client
        self._sts = sts_client

    def get_object(self, bucket: str, key: str, version_id: str | None = None) -> StoredObject:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        try:
            resp = self._s3.get_object(**params)
            body = resp["Body"].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(bucket, key, version_id) from e
            raise StorageError(f"Failed to get s3://{bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to get s3://{bucket}/{key}: {e}") from e

        return StoredObject(
            content=body,
            version_id=resp.get("VersionId"),
            metadata=dict(resp.get("Metadata") or {}),
            content_type=str(resp.get("ContentType", "")),
        )

    def put_object(
        self,
        bucket: str,
        key: str,
        content: bytes,
        metadata: dict[str, str] | None = None,
        content_type: str = TEXT_CONTENT_TYPE,
    ) -> str | None:
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": content,
            "ContentType": content_type,
        }
        if metadata:
            params["Metadata"] = metadata
        try:
            resp = self._s3.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to put s3://{bucket}/{key}: {e}") from e

        version_id = resp.get("VersionId")
        logger.debug(f"put s3://{bucket}/{key} version={version_id}")
        return version_id

    def check_versioning_enabled(self, bucket: str) -> None:
        try:
            resp = self._s3.get_bucket_versioning(Bucket=bucket)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to check versioning for bucket {bucket}: {e}") from e
        if resp.get("Status") != "Enabled":
            raise StorageError(f"Versioning is not enabled for bucket {bucket}")

    def list_versions(self, bucket: str, key: str, limit: int = 0) -> list[ObjectVersion]:
        versions: list[ObjectVersion] = []
        params: dict[str, Any] = {"Bucket": bucket, "Prefix": key}
        try:
            while True:
                resp = self._s3.list_object_versions(**params)
                for item in resp.get("Versions", []):
                    # Prefix listing also matches longer keys
                    if item.get("Key") != key:
                        continue
                    versions.append(
                        ObjectVersion(
                            version_id=str(item["VersionId"]),
                            timestamp=item["LastModified"],
                            size=int(item.get("Size", 0)),
                            is_latest=bool(item.get("IsLatest", False)),
                            metadata=self._head_metadata(bucket, key, str(item["VersionId"])),
                        )
                    )
                    if limit and len(versions) >= limit:
                        return versions
                if not resp.get("IsTruncated"):
                    break
                params["KeyMarker"] = resp.get("NextKeyMarker")
                params["VersionIdMarker"] = resp.get("NextVersionIdMarker")
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list versions of s3://{bucket}/{key}: {e}") from e
        return versions

    def _head_metadata(self, bucket: str, key: str, version_id: str) -> dict[str, str]:
        resp = self._s3.head_object(Bucket=bucket, Key=key, VersionId=version_id)
        return dict(resp.get("Metadata") or {})

    def get_caller_account_id(self) -> str:
        try:
            resp = self._sts.get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to get caller identity: {e}") from e
        return str(resp["Account"])
