"""S3 client for s3lambo."""

from __future__ import annotations

import hashlib
import io
import json
import logging
import re
import threading
from typing import IO, Any

import boto3
from botocore.client import BaseClient
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import config
from .exceptions import S3LamboError
from .utils import DEFAULT_MAX_POOL_CONNECTIONS, DEFAULT_REGION, detect_content_type

logger = logging.getLogger(__name__)

# Error codes S3-compatible services use for a missing object
NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


def _error_code(exc: Exception) -> str | None:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


class S3Client:
    """Client for an S3-compatible object storage service.

    The boto3 client is created lazily and shared by every thread using this
    instance (boto3 clients are thread-safe, sessions are not).
    """

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
        profile: str | None = None,
        force_path_style: bool | None = None,
        max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
        client: BaseClient | None = None,
    ):
        """Initialize the S3 client.

        Args:
            region: AWS region (uses config if not provided)
            endpoint_url: Custom S3-compatible endpoint (uses config if not provided)
            profile: AWS profile name (uses config if not provided)
            force_path_style: Use path-style addressing (uses config if not provided)
            max_pool_connections: Size of the HTTP connection pool
            client: Pre-built boto3 S3 client (mainly for tests)
        """
        self.region = region or config.region or DEFAULT_REGION
        self.endpoint_url = endpoint_url or config.endpoint_url
        self.profile = profile or config.profile
        self.force_path_style = (
            config.force_path_style if force_path_style is None else force_path_style
        )
        self.max_pool_connections = max_pool_connections

        self._client: BaseClient | None = client
        self._lock = threading.Lock()

    def _get_client(self) -> BaseClient:
        """Get or create the boto3 client."""
        with self._lock:
            if self._client is None:
                boto_config = BotoConfig(
                    signature_version="s3v4",
                    max_pool_connections=self.max_pool_connections,
                    s3={"addressing_style": "path" if self.force_path_style else "auto"},
                )
                session = boto3.session.Session(profile_name=self.profile)
                client_kwargs: dict[str, Any] = {
                    "region_name": self.region,
                    "config": boto_config,
                }
                if self.endpoint_url:
                    client_kwargs["endpoint_url"] = self.endpoint_url
                self._client = session.client("s3", **client_kwargs)
                logger.debug(
                    "Created S3 client (region=%s, endpoint=%s)",
                    self.region,
                    self.endpoint_url,
                )
            return self._client

    def close(self) -> None:
        """Close the underlying client and release its connections."""
        with self._lock:
            if self._client is not None:
                close = getattr(self._client, "close", None)
                if close is not None:
                    close()
                self._client = None

    def _read_error(
        self, exc: Exception, action: str, bucket: str | None, key: str | None
    ) -> S3LamboError:
        """Classify a failed read into a not-found or backend error."""
        message = f"unable to {action} object {key} in bucket {bucket}, {exc}"
        if _error_code(exc) in NOT_FOUND_CODES:
            return S3LamboError.not_found(message, bucket=bucket, key=key)
        return S3LamboError.backend(message, bucket=bucket, key=key)

    def _get_object(self, bucket: str, key: str, params: dict[str, Any]) -> dict:
        return self._get_client().get_object(Bucket=bucket, Key=key, **params)

    # =========================
    # Read Operations
    # =========================

    def get_object_content(self, bucket: str, key: str, **params: Any) -> Any:
        """Return the content of an object, decoded according to its type.

        ``application/json`` objects are parsed, ``text/*`` objects are decoded
        as UTF-8, anything else is returned as raw bytes.

        Args:
            bucket: Bucket name
            key: Object key
            **params: Extra ``GetObject`` parameters (e.g. ``VersionId``)

        Returns:
            Parsed JSON, string or bytes

        Raises:
            S3LamboError: NOT_FOUND if the key does not exist, BACKEND otherwise
        """
        try:
            response = self._get_object(bucket, key, params)
            body = response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            error = self._read_error(e, "get", bucket, key)
            logger.debug("%r", error)
            raise error from e

        content_type = response.get("ContentType")
        logger.debug("got %s (%s) in bucket %s", key, content_type, bucket)

        if content_type == "application/json":
            try:
                return json.loads(body.decode("utf-8"))
            except ValueError as e:
                raise S3LamboError.backend(
                    f"unable to get object {key}, invalid JSON content: {e}",
                    bucket=bucket,
                    key=key,
                ) from e
        if content_type and content_type.startswith("text"):
            return body.decode("utf-8")
        return body

    def get_object_hash(self, bucket: str, key: str, **params: Any) -> str:
        """Return the MD5 hex digest of an object's content.

        Raises:
            S3LamboError: NOT_FOUND if the key does not exist, BACKEND otherwise
        """
        try:
            response = self._get_object(bucket, key, params)
            digest = hashlib.md5()
            for chunk in iter(lambda: response["Body"].read(1024 * 1024), b""):
                digest.update(chunk)
        except (ClientError, BotoCoreError) as e:
            error = self._read_error(e, "hash", bucket, key)
            logger.debug("%r", error)
            raise error from e

        logger.debug("generated %s hash from bucket %s", key, bucket)
        return digest.hexdigest()

    def list_keys(
        self,
        bucket: str,
        prefix: str | None = None,
        ignore_keys: list[str] | None = None,
        ignore_pattern: str | re.Pattern[str] | None = None,
        start_slash: bool = False,
    ) -> list[str]:
        """List every key of a bucket.

        Args:
            bucket: Bucket name
            prefix: Only list keys starting with this prefix
            ignore_keys: Exact keys to leave out
            ignore_pattern: Regular expression; matching keys are left out
            start_slash: Prefix each returned key with "/"

        Returns:
            List of keys, in listing order

        Raises:
            S3LamboError: BACKEND if the listing fails
        """
        ignored = set(ignore_keys or [])
        pattern = re.compile(ignore_pattern) if ignore_pattern is not None else None
        params: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix

        keys: list[str] = []
        try:
            paginator = self._get_client().get_paginator("list_objects_v2")
            for page in paginator.paginate(**params):
                for obj in page.get("Contents", []):
                    key = obj.get("Key")
                    if not isinstance(key, str) or key in ignored:
                        continue
                    if pattern is not None and pattern.search(key):
                        continue
                    keys.append(f"/{key}" if start_slash else key)
        except (ClientError, BotoCoreError) as e:
            raise S3LamboError.backend(
                f"unable to list objects in bucket {bucket}, {e}", bucket=bucket
            ) from e

        logger.debug("got %d key(s) in bucket %s", len(keys), bucket)
        return keys

    # =========================
    # Write Operations
    # =========================

    def put_object(
        self,
        bucket: str | None,
        key: str | None,
        body: IO[bytes],
        content_type: str,
        extra_args: dict[str, Any] | None = None,
    ) -> None:
        """Store a byte stream at ``bucket/key`` with a managed transfer.

        Args:
            bucket: Bucket name
            key: Object key
            body: Readable binary stream
            content_type: Media type stored as the object's Content-Type
            extra_args: Extra upload arguments (ACL, CacheControl, Metadata, ...)

        Raises:
            S3LamboError: BACKEND if the bucket or key is missing or the
                transfer fails
        """
        if not bucket or not key:
            raise S3LamboError.backend(
                f"unable to upload {key} in bucket {bucket}, "
                "bucket and key are required",
                bucket=bucket,
                key=key,
            )

        args = dict(extra_args or {})
        args["ContentType"] = content_type
        try:
            self._get_client().upload_fileobj(body, bucket, key, ExtraArgs=args)
        except (ClientError, BotoCoreError, ValueError) as e:
            raise S3LamboError.backend(
                f"unable to upload {key} in bucket {bucket}, {e}",
                bucket=bucket,
                key=key,
            ) from e

        logger.debug("%s (%s) uploaded in bucket %s", key, content_type, bucket)

    def upload(
        self,
        bucket: str | None,
        key: str | None,
        body: str | bytes,
        extra_args: dict[str, Any] | None = None,
    ) -> bool:
        """Upload in-memory content; the content type follows the key's extension.

        Args:
            bucket: Bucket name
            key: Object key
            body: Content (strings are encoded as UTF-8)
            extra_args: Extra upload arguments

        Returns:
            True once the object is stored

        Raises:
            S3LamboError: BACKEND if the upload fails
        """
        data = body.encode("utf-8") if isinstance(body, str) else body
        self.put_object(
            bucket,
            key,
            io.BytesIO(data),
            detect_content_type(key or ""),
            extra_args,
        )
        return True
