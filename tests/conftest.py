"""
Pytest configuration and fixtures for the coldcopy unit tests.

This module provides in-memory stand-ins for the external collaborators:
- A fake Swift source serving containers, marker-paginated listings and
  chunked object bodies, while recording how many reads are in flight.
- A fake aiobotocore S3 client keeping buckets, committed objects and open
  multipart uploads in dictionaries, with per-operation failure injection.
- A recording notifier and a ready-made `Config`.
"""

import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Union

import pytest
from botocore.exceptions import ClientError

from coldcopy.config import (
    AppConfig,
    Config,
    DestinationConfig,
    SwiftConfig,
    WebhookConfig,
)
from coldcopy.exceptions import NotificationError, SourceFetchError
from coldcopy.swift import SwiftCredential


class PartialBody:
    """An object body that yields `data` and then fails with `error`."""

    def __init__(self, data: bytes, error: Exception) -> None:
        self.data: bytes = data
        self.error: Exception = error


BodySpec = Union[bytes, Exception, PartialBody]


class FakeSwiftSource:
    """An in-memory Swift account with marker-based listing."""

    def __init__(
        self,
        containers: Dict[str, Dict[str, BodySpec]],
        page_size: int = 10_000,
        delay_s: float = 0.0,
    ) -> None:
        self.containers: Dict[str, Dict[str, BodySpec]] = containers
        self.page_size: int = page_size
        self.delay_s: float = delay_s
        self.page_requests: List[Tuple[str, Optional[str]]] = []
        self.fetched: List[Tuple[str, str]] = []
        self.in_flight: int = 0
        self.max_in_flight: int = 0

    async def authenticate(self) -> SwiftCredential:
        return SwiftCredential(token="token", storage_url="http://swift.test/v1/nc_t")

    async def list_containers(self, credential: SwiftCredential) -> List[str]:
        return list(self.containers)

    async def list_object_page(
        self,
        credential: SwiftCredential,
        container: str,
        marker: Optional[str] = None,
    ) -> Tuple[List[str], int]:
        self.page_requests.append((container, marker))
        names: List[str] = sorted(self.containers[container])
        if marker is not None:
            names = [name for name in names if name > marker]
        return names[: self.page_size], len(self.containers[container])

    async def iter_object(
        self,
        credential: SwiftCredential,
        container: str,
        name: str,
        chunk_size: int = 64 * 1024,
    ) -> AsyncIterator[bytes]:
        self.fetched.append((container, name))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            body: BodySpec = self.containers[container][name]
            if isinstance(body, Exception):
                raise body
            data: bytes = body.data if isinstance(body, PartialBody) else body
            for start in range(0, len(data), chunk_size):
                yield data[start : start + chunk_size]
                await asyncio.sleep(0)
            if isinstance(body, PartialBody):
                raise body.error
        finally:
            self.in_flight -= 1


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3Client:
    """
    The subset of the aiobotocore S3 client used by `DestinationStore`.

    Objects become visible in `objects` only through `put_object` or
    `complete_multipart_upload`, mirroring S3's commit semantics.
    """

    def __init__(self) -> None:
        self.buckets: Dict[str, Dict[str, Any]] = {}
        self.objects: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.uploads: Dict[str, Dict[str, Any]] = {}
        self.aborted: List[str] = []
        self.calls: List[str] = []
        self._failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        self._next_upload: int = 0

    # --- test helpers ---
    def fail(self, operation: str, key: Optional[str] = None, error: Optional[Exception] = None) -> None:
        """Makes `operation` (optionally only for `key`) raise `error`."""
        self._failures[(operation, key)] = error or client_error(
            "InternalError", operation
        )

    def recover(self, operation: str, key: Optional[str] = None) -> None:
        """Removes a failure injected with `fail`."""
        self._failures.pop((operation, key), None)

    def add_bucket(
        self,
        name: str,
        storage_class: Optional[str] = None,
        versioning: Optional[str] = None,
        region: Optional[str] = None,
    ) -> None:
        self.buckets[name] = {
            "region": region,
            "versioning": versioning,
            "tags": (
                [{"Key": "storage-class", "Value": storage_class}]
                if storage_class
                else None
            ),
            "lifecycle": None,
        }

    def _call(self, operation: str, key: Optional[str] = None) -> None:
        self.calls.append(operation)
        error: Optional[Exception] = self._failures.get(
            (operation, key)
        ) or self._failures.get((operation, None))
        if error is not None:
            raise error

    def _bucket(self, name: str, operation: str) -> Dict[str, Any]:
        if name not in self.buckets:
            raise client_error("NoSuchBucket", operation)
        return self.buckets[name]

    # --- bucket operations ---
    async def head_bucket(self, Bucket: str) -> Dict[str, Any]:
        self._call("head_bucket")
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")
        return {}

    async def create_bucket(self, Bucket: str, **kwargs: Any) -> Dict[str, Any]:
        self._call("create_bucket")
        if Bucket in self.buckets:
            raise client_error("BucketAlreadyOwnedByYou", "CreateBucket")
        region: Optional[str] = kwargs.get("CreateBucketConfiguration", {}).get(
            "LocationConstraint"
        )
        self.add_bucket(Bucket, region=region)
        return {}

    async def delete_bucket(self, Bucket: str) -> None:
        self._call("delete_bucket")
        self._bucket(Bucket, "DeleteBucket")
        if any(bucket == Bucket for bucket, _ in self.objects):
            raise client_error("BucketNotEmpty", "DeleteBucket")
        del self.buckets[Bucket]

    async def put_bucket_tagging(self, Bucket: str, Tagging: Dict[str, Any]) -> None:
        self._call("put_bucket_tagging")
        self._bucket(Bucket, "PutBucketTagging")["tags"] = Tagging["TagSet"]

    async def get_bucket_tagging(self, Bucket: str) -> Dict[str, Any]:
        self._call("get_bucket_tagging")
        tags = self._bucket(Bucket, "GetBucketTagging")["tags"]
        if tags is None:
            raise client_error("NoSuchTagSet", "GetBucketTagging")
        return {"TagSet": tags}

    async def put_bucket_versioning(
        self, Bucket: str, VersioningConfiguration: Dict[str, str]
    ) -> None:
        self._call("put_bucket_versioning")
        bucket = self._bucket(Bucket, "PutBucketVersioning")
        bucket["versioning"] = VersioningConfiguration["Status"]

    async def get_bucket_versioning(self, Bucket: str) -> Dict[str, Any]:
        self._call("get_bucket_versioning")
        status = self._bucket(Bucket, "GetBucketVersioning")["versioning"]
        return {"Status": status} if status else {}

    async def get_bucket_location(self, Bucket: str) -> Dict[str, Any]:
        self._call("get_bucket_location")
        return {"LocationConstraint": self._bucket(Bucket, "GetBucketLocation")["region"]}

    async def put_bucket_lifecycle_configuration(
        self, Bucket: str, LifecycleConfiguration: Dict[str, Any]
    ) -> None:
        self._call("put_bucket_lifecycle_configuration")
        self._bucket(Bucket, "PutBucketLifecycleConfiguration")[
            "lifecycle"
        ] = LifecycleConfiguration

    async def get_bucket_lifecycle_configuration(self, Bucket: str) -> Dict[str, Any]:
        self._call("get_bucket_lifecycle_configuration")
        lifecycle = self._bucket(Bucket, "GetBucketLifecycleConfiguration")["lifecycle"]
        if lifecycle is None:
            raise client_error(
                "NoSuchLifecycleConfiguration", "GetBucketLifecycleConfiguration"
            )
        return lifecycle

    # --- object operations ---
    async def put_object(self, Bucket: str, Key: str, Body: bytes, **kwargs: Any) -> Dict[str, Any]:
        self._call("put_object", Key)
        self._bucket(Bucket, "PutObject")
        self.objects[(Bucket, Key)] = {"Body": bytes(Body), **kwargs}
        return {"ETag": '"etag"'}

    async def create_multipart_upload(self, Bucket: str, Key: str, **kwargs: Any) -> Dict[str, Any]:
        self._call("create_multipart_upload", Key)
        self._bucket(Bucket, "CreateMultipartUpload")
        self._next_upload += 1
        upload_id: str = f"upload-{self._next_upload}"
        self.uploads[upload_id] = {"Bucket": Bucket, "Key": Key, "parts": {}, "extra": kwargs}
        return {"UploadId": upload_id}

    async def upload_part(
        self, Bucket: str, Key: str, UploadId: str, PartNumber: int, Body: bytes
    ) -> Dict[str, Any]:
        self._call("upload_part", Key)
        self.uploads[UploadId]["parts"][PartNumber] = bytes(Body)
        return {"ETag": f'"etag-{PartNumber}"'}

    async def complete_multipart_upload(
        self, Bucket: str, Key: str, UploadId: str, MultipartUpload: Dict[str, Any]
    ) -> Dict[str, Any]:
        self._call("complete_multipart_upload", Key)
        upload = self.uploads[UploadId]
        body: bytes = b"".join(
            upload["parts"][part["PartNumber"]] for part in MultipartUpload["Parts"]
        )
        del self.uploads[UploadId]
        self.objects[(Bucket, Key)] = {"Body": body, **upload["extra"]}
        return {}

    async def abort_multipart_upload(self, Bucket: str, Key: str, UploadId: str) -> None:
        self._call("abort_multipart_upload", Key)
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)


class RecordingNotifier:
    """Collects posted messages; optionally fails every delivery."""

    def __init__(self, fail: bool = False) -> None:
        self.messages: List[str] = []
        self._fail: bool = fail

    async def post_message(self, message: str) -> int:
        self.messages.append(message)
        if self._fail:
            raise NotificationError("Webhook returned HTTP 503: unavailable")
        return 204


@pytest.fixture(scope="function")
def fake_s3() -> FakeS3Client:
    """Provide an empty fake S3 client."""
    return FakeS3Client()


@pytest.fixture(scope="function")
def server_error() -> SourceFetchError:
    """Provide the error a Swift GET raises on HTTP 500."""
    return SourceFetchError("GET 'photos/a.png' returned HTTP 500.")


@pytest.fixture(scope="function")
def test_config() -> Config:
    """
    Provide a fully explicit Config that does not touch the environment.

    Returns:
        Config: A Config instance for use in tests.
    """
    return Config(
        source=SwiftConfig(
            username="user",
            password="secret",
            tenant_id="tenant",
            identity_url="http://identity.test/v2.0/tokens",
            storage_url="http://swift.test/v1/nc_{tenant_id}",
        ),
        destination=DestinationConfig(
            endpoint_url="http://s3.test",
            access_key_id="key",
            secret_access_key="secret",
            region="asia-northeast1",
            storage_class="COLDLINE",
            retention_days=90,
        ),
        webhook=WebhookConfig(),
        app=AppConfig(concurrency=3, progress_interval=10),
    )
