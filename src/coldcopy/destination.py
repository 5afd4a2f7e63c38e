"""
S3-compatible destination store.

Wraps an aiobotocore S3 client with the operations the backup needs: bucket
inspection and creation, and commit-on-close object write streams built on
multipart uploads.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from coldcopy.buckets import BucketDescriptor, BucketPolicy
from coldcopy.exceptions import DestinationCommitError, DestinationError

if TYPE_CHECKING:
    from types_aiobotocore_s3.client import S3Client

logger: logging.Logger = logging.getLogger(__name__)

STORAGE_CLASS_TAG: str = "storage-class"
DEFAULT_STORAGE_CLASS: str = "STANDARD"
DEFAULT_REGION: str = "us-east-1"

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}
_S3_ERRORS = (ClientError, BotoCoreError)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class MultipartObjectWriter:
    """
    A writable object stream that becomes visible only on `close()`.

    Data is buffered up to one part. Objects that never fill a part are
    committed with a single `put_object` when closed; larger objects are
    uploaded as a multipart upload that is completed on close. `abort()`
    discards everything written so far.
    """

    def __init__(
        self,
        client: "S3Client",
        bucket: str,
        key: str,
        part_size: int,
        storage_class: Optional[str] = None,
        content_encoding: Optional[str] = None,
    ) -> None:
        self._client: "S3Client" = client
        self._bucket: str = bucket
        self._key: str = key
        self._part_size: int = part_size
        self._extra_args: Dict[str, str] = {}
        if storage_class:
            self._extra_args["StorageClass"] = storage_class
        if content_encoding:
            self._extra_args["ContentEncoding"] = content_encoding
        self._buffer: bytearray = bytearray()
        self._upload_id: Optional[str] = None
        self._parts: List[Dict[str, Any]] = []
        self._finished: bool = False
        self.bytes_written: int = 0

    @property
    def key(self) -> str:
        return self._key

    async def write(self, data: bytes) -> None:
        """
        Appends data to the object, uploading full parts as they accumulate.

        Raises:
            DestinationCommitError: If a part upload fails or the stream is closed.
        """
        if self._finished:
            raise DestinationCommitError(f"Write to finished stream '{self._key}'.")
        self._buffer.extend(data)
        self.bytes_written += len(data)
        while len(self._buffer) >= self._part_size:
            part: bytes = bytes(self._buffer[: self._part_size])
            del self._buffer[: self._part_size]
            await self._upload_part(part)

    async def close(self) -> None:
        """
        Commits the object.

        Raises:
            DestinationCommitError: If the final upload or the completion fails.
        """
        if self._finished:
            return
        self._finished = True
        try:
            if self._upload_id is None:
                await self._client.put_object(
                    Bucket=self._bucket,
                    Key=self._key,
                    Body=bytes(self._buffer),
                    **self._extra_args,
                )
            else:
                if self._buffer or not self._parts:
                    await self._upload_part(bytes(self._buffer))
                await self._client.complete_multipart_upload(
                    Bucket=self._bucket,
                    Key=self._key,
                    UploadId=self._upload_id,
                    MultipartUpload={"Parts": self._parts},
                )
        except _S3_ERRORS as e:
            raise DestinationCommitError(
                f"Committing '{self._bucket}/{self._key}' failed: {e}"
            ) from e
        finally:
            self._buffer.clear()

    async def abort(self) -> None:
        """Discards the object. Safe to call more than once."""
        self._finished = True
        self._buffer.clear()
        if self._upload_id is None:
            return
        upload_id: str = self._upload_id
        self._upload_id = None
        await self._client.abort_multipart_upload(
            Bucket=self._bucket, Key=self._key, UploadId=upload_id
        )
        logger.debug(f"Aborted multipart upload of '{self._bucket}/{self._key}'.")

    async def _upload_part(self, data: bytes) -> None:
        try:
            if self._upload_id is None:
                response = await self._client.create_multipart_upload(
                    Bucket=self._bucket, Key=self._key, **self._extra_args
                )
                self._upload_id = response["UploadId"]
            part_number: int = len(self._parts) + 1
            response = await self._client.upload_part(
                Bucket=self._bucket,
                Key=self._key,
                UploadId=self._upload_id,
                PartNumber=part_number,
                Body=data,
            )
        except _S3_ERRORS as e:
            raise DestinationCommitError(
                f"Uploading part of '{self._bucket}/{self._key}' failed: {e}"
            ) from e
        self._parts.append({"ETag": response["ETag"], "PartNumber": part_number})


class DestinationStore:
    """Destination-side operations over an S3-compatible client."""

    def __init__(
        self,
        client: "S3Client",
        part_size: int = 8 * 1024**2,
        storage_class: Optional[str] = None,
        content_encoding: Optional[str] = "gzip",
    ) -> None:
        """
        Args:
            client (S3Client): An open aiobotocore S3 client.
            part_size (int): Multipart part size for object write streams.
            storage_class (str, optional): Storage class applied to written objects.
            content_encoding (str, optional): Content-Encoding of written objects.
        """
        self._client: "S3Client" = client
        self._part_size: int = part_size
        self._storage_class: Optional[str] = storage_class
        self._content_encoding: Optional[str] = content_encoding

    async def get_bucket(self, name: str) -> Optional[BucketDescriptor]:
        """
        Reads the state of a bucket.

        Returns:
            Optional[BucketDescriptor]: The bucket's state, or None if it does
                not exist.
        """
        try:
            await self._client.head_bucket(Bucket=name)
        except ClientError as e:
            if _error_code(e) in _MISSING_BUCKET_CODES:
                return None
            raise DestinationError(f"Failed to inspect bucket '{name}': {e}") from e
        except BotoCoreError as e:
            raise DestinationError(f"Failed to inspect bucket '{name}': {e}") from e

        try:
            versioning = await self._client.get_bucket_versioning(Bucket=name)
            location = await self._client.get_bucket_location(Bucket=name)
            tags: Dict[str, str] = await self._get_tags(name)
            retention_days: Optional[int] = await self._get_retention_days(name)
        except _S3_ERRORS as e:
            raise DestinationError(f"Failed to inspect bucket '{name}': {e}") from e

        return BucketDescriptor(
            name=name,
            storage_class=tags.get(STORAGE_CLASS_TAG, DEFAULT_STORAGE_CLASS),
            region=location.get("LocationConstraint") or DEFAULT_REGION,
            versioning_enabled=versioning.get("Status") == "Enabled",
            retention_days=retention_days,
        )

    async def create_bucket(self, name: str, policy: BucketPolicy) -> BucketDescriptor:
        """
        Creates a bucket configured according to the policy.

        Returns:
            BucketDescriptor: The state of the new bucket.
        """
        create_args: Dict[str, Any] = {"Bucket": name}
        if policy.region != DEFAULT_REGION:
            create_args["CreateBucketConfiguration"] = {
                "LocationConstraint": policy.region
            }
        try:
            await self._client.create_bucket(**create_args)
        except _S3_ERRORS as e:
            raise DestinationError(f"Failed to create bucket '{name}': {e}") from e

        try:
            await self._client.put_bucket_tagging(
                Bucket=name,
                Tagging={
                    "TagSet": [{"Key": STORAGE_CLASS_TAG, "Value": policy.storage_class}]
                },
            )
            if policy.versioning:
                await self._client.put_bucket_versioning(
                    Bucket=name, VersioningConfiguration={"Status": "Enabled"}
                )
            await self._client.put_bucket_lifecycle_configuration(
                Bucket=name,
                LifecycleConfiguration={
                    "Rules": [
                        {
                            "ID": "expire-backups",
                            "Status": "Enabled",
                            "Filter": {"Prefix": ""},
                            "Expiration": {"Days": policy.retention_days},
                            "NoncurrentVersionExpiration": {
                                "NoncurrentDays": policy.retention_days
                            },
                            "AbortIncompleteMultipartUpload": {
                                "DaysAfterInitiation": 1
                            },
                        }
                    ]
                },
            )
        except _S3_ERRORS as e:
            # A half-configured bucket would fail validation on every later run.
            await self._delete_empty_bucket(name)
            raise DestinationError(
                f"Failed to configure bucket '{name}': {e}"
            ) from e

        return BucketDescriptor(
            name=name,
            storage_class=policy.storage_class,
            region=policy.region,
            versioning_enabled=policy.versioning,
            retention_days=policy.retention_days,
        )

    def open_object_write_stream(self, bucket: str, key: str) -> MultipartObjectWriter:
        """Opens a commit-on-close write stream for one object."""
        return MultipartObjectWriter(
            self._client,
            bucket,
            key,
            part_size=self._part_size,
            storage_class=self._storage_class,
            content_encoding=self._content_encoding,
        )

    async def _delete_empty_bucket(self, name: str) -> None:
        try:
            await self._client.delete_bucket(Bucket=name)
        except _S3_ERRORS as e:
            logger.error(f"Failed to remove partially configured bucket '{name}': {e}")
            return
        logger.warning(f"Removed partially configured bucket '{name}'.")

    async def _get_tags(self, name: str) -> Dict[str, str]:
        try:
            response = await self._client.get_bucket_tagging(Bucket=name)
        except ClientError as e:
            if _error_code(e) == "NoSuchTagSet":
                return {}
            raise
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    async def _get_retention_days(self, name: str) -> Optional[int]:
        try:
            response = await self._client.get_bucket_lifecycle_configuration(
                Bucket=name
            )
        except ClientError as e:
            if _error_code(e) == "NoSuchLifecycleConfiguration":
                return None
            raise
        for rule in response.get("Rules", []):
            days: Optional[int] = rule.get("Expiration", {}).get("Days")
            if rule.get("Status") == "Enabled" and days is not None:
                return days
        return None
