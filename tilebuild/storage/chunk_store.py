"""Object storage clients for source chunks and built tilesets."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any, Protocol

import boto3
import botocore.exceptions

from tilebuild.core import exceptions

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tilebuild.core import config

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
_AUTH_CODES = frozenset(
    {
        "AccessDenied",
        "InvalidAccessKeyId",
        "SignatureDoesNotMatch",
        "ExpiredToken",
        "InvalidToken",
        "AllAccessDisabled",
        "403",
    }
)


class ChunkStoreProtocol(Protocol):
    """Protocol interface for fetching chunks and publishing tilesets.

    Implementations provide GET and overwrite-by-key PUT against object
    storage, supporting both in-memory (testing) and S3 (production)
    backends. Failures are reported as StorageError; no retrying happens
    behind this interface.
    """

    def download(self, source_key: str) -> bytes: ...

    def upload(
        self,
        destination_key: str,
        data: bytes,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> None: ...


@dataclasses.dataclass
class StoredObject:
    data: bytes
    content_type: str
    metadata: dict[str, str] = dataclasses.field(default_factory=dict)


class InMemoryChunkStore(ChunkStoreProtocol):
    """Simple in-memory store for tests and local development.

    Stores objects in a dictionary keyed by object key. Data is lost when
    the process exits. Every call is appended to ``calls`` as a
    ``(operation, key)`` pair so tests can assert on ordering.
    """

    def __init__(self, objects: Mapping[str, bytes] | None = None) -> None:
        """Initialize the store, optionally pre-seeded with raw objects.

        Args:
            objects: Mapping of key to bytes to store up front.
        """
        self._objects: dict[str, StoredObject] = {
            key: StoredObject(data, "application/octet-stream")
            for key, data in (objects or {}).items()
        }
        self.calls: list[tuple[str, str]] = []

    def download(self, source_key: str) -> bytes:
        """Return the bytes stored under a key.

        Raises:
            StorageError: NOT_FOUND if nothing is stored under the key.
        """
        self.calls.append(("download", source_key))
        stored = self._objects.get(source_key)
        if stored is None:
            raise exceptions.StorageError(
                exceptions.StorageErrorKind.NOT_FOUND,
                source_key,
                "no such object",
            )
        return stored.data

    def upload(
        self,
        destination_key: str,
        data: bytes,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        """Store bytes under a key, replacing any previous object."""
        self.calls.append(("upload", destination_key))
        self._objects[destination_key] = StoredObject(
            bytes(data), content_type, dict(metadata or {})
        )

    def get(self, key: str) -> StoredObject | None:
        return self._objects.get(key)

    def keys(self) -> list[str]:
        return sorted(self._objects)


def classify_client_error(
    error: botocore.exceptions.ClientError,
) -> exceptions.StorageErrorKind:
    """Map an S3 error response onto the storage error taxonomy."""
    response: dict[str, Any] = error.response or {}
    code = str(response.get("Error", {}).get("Code", ""))
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    if code in _NOT_FOUND_CODES or status == 404:
        return exceptions.StorageErrorKind.NOT_FOUND
    if code in _AUTH_CODES or status in (401, 403):
        return exceptions.StorageErrorKind.AUTH
    return exceptions.StorageErrorKind.TRANSIENT


class S3ChunkStore(ChunkStoreProtocol):
    """S3-backed chunk store.

    Reads source chunks with GetObject and publishes tilesets with
    PutObject. A PUT to an existing key replaces the object, so republishing
    a chunk never leaves duplicates behind.
    """

    def __init__(self, bucket: str, client: Any) -> None:
        """Initialize the store.

        Args:
            bucket: Bucket holding both source chunks and tilesets.
            client: A boto3 S3 client.
        """
        self.bucket = bucket
        self.client = client

    def download(self, source_key: str) -> bytes:
        """Fetch an object's body.

        Raises:
            StorageError: classified from the S3 error response, or
                TRANSIENT for connection-level failures.
        """
        logger.debug("GET s3://%s/%s", self.bucket, source_key)
        try:
            response = self.client.get_object(
                Bucket=self.bucket, Key=source_key
            )
            return response["Body"].read()
        except botocore.exceptions.ClientError as e:
            raise exceptions.StorageError(
                classify_client_error(e), source_key, str(e)
            ) from e
        except botocore.exceptions.BotoCoreError as e:
            raise exceptions.StorageError(
                exceptions.StorageErrorKind.TRANSIENT, source_key, str(e)
            ) from e

    def upload(
        self,
        destination_key: str,
        data: bytes,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
    ) -> None:
        """Write an object, replacing whatever is stored under the key.

        Raises:
            StorageError: classified from the S3 error response, or
                TRANSIENT for connection-level failures.
        """
        logger.debug(
            "PUT s3://%s/%s (%d bytes)",
            self.bucket,
            destination_key,
            len(data),
        )
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": destination_key,
            "Body": data,
            "ContentType": content_type,
        }
        if metadata:
            params["Metadata"] = dict(metadata)
        try:
            self.client.put_object(**params)
        except botocore.exceptions.ClientError as e:
            raise exceptions.StorageError(
                classify_client_error(e), destination_key, str(e)
            ) from e
        except botocore.exceptions.BotoCoreError as e:
            raise exceptions.StorageError(
                exceptions.StorageErrorKind.TRANSIENT, destination_key, str(e)
            ) from e


def get_chunk_store(settings: config.Settings) -> ChunkStoreProtocol:
    """Factory returning the production chunk store.

    Args:
        settings: Pipeline settings with bucket, region and credentials.

    Returns:
        S3ChunkStore bound to the configured bucket.
    """
    secret = settings.aws_secret_access_key
    client = boto3.client(
        "s3",
        region_name=settings.aws_region,
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=secret.get_secret_value() if secret else None,
    )
    return S3ChunkStore(settings.bucket, client)
