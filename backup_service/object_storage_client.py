import logging
from typing import Any, Optional

import boto3
import botocore.exceptions
from botocore.config import Config

from .config import MultiCloudConfig
from .exceptions import BackendError, ConfigurationError
from .models.part_manifest import PartManifest

logger = logging.getLogger("backup_service")

API_VERSION = "v1"
NO_SUCH_UPLOAD = "NoSuchUpload"

_BACKEND_ERRORS = (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError)
# KeyError: reply without the expected field
_REPLY_ERRORS = _BACKEND_ERRORS + (KeyError,)


def _error_code(exception: Exception) -> Optional[str]:
    if isinstance(exception, botocore.exceptions.ClientError):
        return exception.response.get("Error", {}).get("Code")
    return None


def build_endpoint_url(config: MultiCloudConfig) -> str:
    return f"{config.endpoint.rstrip('/')}/{API_VERSION}/{config.tenant_id}/s3"


class ObjectStorageClient:
    """Thin wrapper over the multipart part of the S3 API.

    Every method is a single request. Nothing is retried here, the botocore
    retry handler is switched off as well.
    """

    client: Any = None

    def __init__(self, config: MultiCloudConfig) -> None:
        endpoint_url = build_endpoint_url(config)
        try:
            self.client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=config.access_key,
                aws_secret_access_key=config.secret_key,
                region_name=config.region_name,
                config=Config(
                    connect_timeout=config.timeout,
                    read_timeout=config.upload_timeout,
                    retries={"total_max_attempts": 1},
                    s3={"addressing_style": "path"},
                ),
            )
        except (ValueError, botocore.exceptions.BotoCoreError) as exception:
            logger.exception(
                "Failed to initiate client", extra={"endpoint_url": endpoint_url}
            )
            raise ConfigurationError(
                f"Cannot create storage client for {endpoint_url!r}"
            ) from exception
        logger.info("Initiated client", extra={"endpoint_url": endpoint_url})

    def initiate_upload(self, bucket: str, key: str) -> str:
        """Open a multipart upload and return the backend upload id."""
        try:
            logger.debug("Initiating upload", extra={"bucket": bucket, "key": key})
            response = self.client.create_multipart_upload(Bucket=bucket, Key=key)
            upload_id: str = response["UploadId"]
        except _REPLY_ERRORS as exception:
            logger.exception(
                "Failed to initiate upload", extra={"bucket": bucket, "key": key}
            )
            raise BackendError(
                f"Cannot initiate upload of {key!r} to {bucket!r}",
                operation="initiate",
                bucket=bucket,
                key=key,
                code=_error_code(exception),
            ) from exception

        logger.debug(
            "Upload initiated",
            extra={"bucket": bucket, "key": key, "upload_id": upload_id},
        )
        return upload_id

    def upload_part(
        self,
        bucket: str,
        key: str,
        part_number: int,
        upload_id: str,
        data: bytes,
        length: int,
    ) -> str:
        """Upload one part and return the ETag the backend assigned to it."""
        if part_number < 1:
            raise ValueError("Invalid part number")
        if length != len(data):
            raise ValueError("Part length does not match data size")

        try:
            logger.debug(
                "Uploading part",
                extra={"key": key, "part_number": part_number, "length": length},
            )
            response = self.client.upload_part(
                Bucket=bucket,
                Key=key,
                PartNumber=part_number,
                UploadId=upload_id,
                Body=data,
                ContentLength=length,
            )
            etag: str = response["ETag"]
        except _REPLY_ERRORS as exception:
            logger.exception(
                "Failed to upload part",
                extra={
                    "key": key,
                    "part_number": part_number,
                    "upload_id": upload_id,
                },
            )
            raise BackendError(
                f"Cannot upload part {part_number} of {key!r}",
                operation="upload_part",
                bucket=bucket,
                key=key,
                code=_error_code(exception),
            ) from exception

        logger.debug(
            "Uploaded part",
            extra={"key": key, "part_number": part_number, "upload_id": upload_id},
        )
        return etag

    def complete_upload(
        self, bucket: str, key: str, upload_id: str, manifest: PartManifest
    ) -> dict[str, Any]:
        """Assemble the object from the parts listed in the manifest."""
        if len(manifest) == 0:
            logger.error(
                "Refusing to complete upload without parts",
                extra={"bucket": bucket, "key": key, "upload_id": upload_id},
            )
            raise BackendError(
                f"Cannot complete upload of {key!r} without parts",
                operation="complete",
                bucket=bucket,
                key=key,
            )

        try:
            logger.debug(
                "Completing upload",
                extra={
                    "bucket": bucket,
                    "key": key,
                    "upload_id": upload_id,
                    "parts": len(manifest),
                },
            )
            response: dict[str, Any] = self.client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload=manifest.to_request(),
            )
        except _BACKEND_ERRORS as exception:
            logger.exception(
                "Failed to complete upload",
                extra={"bucket": bucket, "key": key, "upload_id": upload_id},
            )
            raise BackendError(
                f"Cannot complete upload of {key!r}",
                operation="complete",
                bucket=bucket,
                key=key,
                code=_error_code(exception),
            ) from exception

        logger.debug(
            "Upload completed",
            extra={"bucket": bucket, "key": key, "upload_id": upload_id},
        )
        return response

    def abort_upload(self, bucket: str, key: str, upload_id: str) -> None:
        """Release an open upload.

        Aborting an upload the backend no longer knows about, because it was
        completed or aborted already, is not an error.
        """
        try:
            logger.debug(
                "Aborting upload",
                extra={"bucket": bucket, "key": key, "upload_id": upload_id},
            )
            self.client.abort_multipart_upload(
                Bucket=bucket, Key=key, UploadId=upload_id
            )
        except _BACKEND_ERRORS as exception:
            code = _error_code(exception)
            if code == NO_SUCH_UPLOAD:
                logger.debug(
                    "Upload already released",
                    extra={"bucket": bucket, "key": key, "upload_id": upload_id},
                )
                return
            raise BackendError(
                f"Cannot abort upload of {key!r}",
                operation="abort",
                bucket=bucket,
                key=key,
                code=code,
            ) from exception

        logger.info(
            "Upload aborted",
            extra={"bucket": bucket, "key": key, "upload_id": upload_id},
        )

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
