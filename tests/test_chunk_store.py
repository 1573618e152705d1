"""Tests for chunk store implementations.

InMemoryChunkStore is tested directly. S3ChunkStore is tested against a real
boto3 client wired to botocore's Stubber, so request parameters and error
responses are validated against the S3 service model without network
access.

See Also:
    - tilebuild/storage/chunk_store.py for the implementation.
"""

from __future__ import annotations

import io
from collections.abc import Iterator
from typing import Any

import boto3
import botocore.exceptions
import pytest
from botocore import stub
from botocore.response import StreamingBody

from tilebuild.core import exceptions
from tilebuild.storage import chunk_store

BUCKET = "cec-geo-data"
KEY = "epa-ira-disadvantaged-communities/chunk1.geojson"
DEST = "epa-ira-disadvantaged-communities/vector-tiles/chunk1.mbtiles"


@pytest.fixture
def s3_client() -> Any:
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client: Any) -> Iterator[stub.Stubber]:
    with stub.Stubber(s3_client) as stubbed:
        yield stubbed
        stubbed.assert_no_pending_responses()


def test_in_memory_download_missing() -> None:
    store = chunk_store.InMemoryChunkStore()
    with pytest.raises(exceptions.StorageError) as excinfo:
        store.download(KEY)
    assert excinfo.value.kind is exceptions.StorageErrorKind.NOT_FOUND
    assert excinfo.value.key == KEY


def test_in_memory_upload_overwrites() -> None:
    """Uploading twice to one key keeps only the second payload."""
    store = chunk_store.InMemoryChunkStore()
    store.upload(DEST, b"first", "application/x-mbtiles")
    store.upload(DEST, b"second", "application/x-mbtiles", {"profile": "x"})
    assert store.keys() == [DEST]
    stored = store.get(DEST)
    assert stored is not None
    assert stored.data == b"second"
    assert stored.metadata == {"profile": "x"}
    assert store.calls == [("upload", DEST), ("upload", DEST)]


def test_s3_download(s3_client: Any, stubber: stub.Stubber) -> None:
    body = b'{"type":"FeatureCollection"}'
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(body), len(body))},
        {"Bucket": BUCKET, "Key": KEY},
    )
    store = chunk_store.S3ChunkStore(BUCKET, s3_client)
    assert store.download(KEY) == body


@pytest.mark.parametrize(
    ("code", "status", "kind"),
    [
        ("NoSuchKey", 404, exceptions.StorageErrorKind.NOT_FOUND),
        ("AccessDenied", 403, exceptions.StorageErrorKind.AUTH),
        ("InvalidAccessKeyId", 403, exceptions.StorageErrorKind.AUTH),
        ("SlowDown", 503, exceptions.StorageErrorKind.TRANSIENT),
        ("InternalError", 500, exceptions.StorageErrorKind.TRANSIENT),
    ],
)
def test_s3_download_errors(
    s3_client: Any,
    stubber: stub.Stubber,
    code: str,
    status: int,
    kind: exceptions.StorageErrorKind,
) -> None:
    stubber.add_client_error(
        "get_object",
        service_error_code=code,
        http_status_code=status,
        expected_params={"Bucket": BUCKET, "Key": KEY},
    )
    store = chunk_store.S3ChunkStore(BUCKET, s3_client)
    with pytest.raises(exceptions.StorageError) as excinfo:
        store.download(KEY)
    assert excinfo.value.kind is kind


def test_s3_upload(s3_client: Any, stubber: stub.Stubber) -> None:
    """Upload sends content type and profile metadata with the archive."""
    stubber.add_response(
        "put_object",
        {},
        {
            "Bucket": BUCKET,
            "Key": DEST,
            "Body": b"mbtiles",
            "ContentType": "application/x-mbtiles",
            "Metadata": {"profile": "fallback", "max-zoom": "8"},
        },
    )
    store = chunk_store.S3ChunkStore(BUCKET, s3_client)
    store.upload(
        DEST,
        b"mbtiles",
        "application/x-mbtiles",
        metadata={"profile": "fallback", "max-zoom": "8"},
    )


def test_s3_upload_error(s3_client: Any, stubber: stub.Stubber) -> None:
    stubber.add_client_error(
        "put_object",
        service_error_code="ExpiredToken",
        http_status_code=400,
    )
    store = chunk_store.S3ChunkStore(BUCKET, s3_client)
    with pytest.raises(exceptions.StorageError) as excinfo:
        store.upload(DEST, b"mbtiles", "application/x-mbtiles")
    assert excinfo.value.kind is exceptions.StorageErrorKind.AUTH


def test_s3_connection_error_is_transient() -> None:
    class FailingClient:
        def get_object(self, **kwargs: Any) -> Any:
            raise botocore.exceptions.EndpointConnectionError(
                endpoint_url="https://s3.amazonaws.com"
            )

    store = chunk_store.S3ChunkStore(BUCKET, FailingClient())
    with pytest.raises(exceptions.StorageError) as excinfo:
        store.download(KEY)
    assert excinfo.value.kind is exceptions.StorageErrorKind.TRANSIENT


def test_get_chunk_store_builds_s3_store(monkeypatch: pytest.MonkeyPatch) -> None:
    from tilebuild.core import config

    captured: dict[str, Any] = {}

    def fake_client(service: str, **kwargs: Any) -> object:
        captured["service"] = service
        captured.update(kwargs)
        return object()

    monkeypatch.setattr(chunk_store.boto3, "client", fake_client)
    settings = config.Settings(
        _env_file=None,
        bucket="geo",
        aws_region="us-west-2",
        aws_access_key_id="AKIA",
        aws_secret_access_key="secret",
    )
    store = chunk_store.get_chunk_store(settings)
    assert isinstance(store, chunk_store.S3ChunkStore)
    assert store.bucket == "geo"
    assert captured["service"] == "s3"
    assert captured["region_name"] == "us-west-2"
    assert captured["aws_secret_access_key"] == "secret"
