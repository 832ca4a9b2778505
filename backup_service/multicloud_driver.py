import logging
from typing import Optional

from .backup_driver import BackupDriver
from .chunked_source import ChunkedSource
from .config import DEFAULT_CONFIG_FILE, MultiCloudConfig, load_config
from .exceptions import ConfigurationError
from .models.backup_descriptor import BackupDescriptor
from .models.transfer_state import TransferState
from .models.upload_session_dto import UploadSessionDto
from .object_storage_client import ObjectStorageClient

logger = logging.getLogger("backup_service")

DRIVER_NAME = "multi-cloud"


class MultiCloudBackupDriver(BackupDriver):
    """Backs volumes up to the multi-cloud service with multipart uploads.

    A backup either ends with one completed object under the backup key or
    with the upload aborted. Once an upload is open, exactly one abort request
    is sent before ``backup`` returns, including after a successful
    completion, and its outcome never changes the result.
    """

    def __init__(
        self,
        config: Optional[MultiCloudConfig] = None,
        client: Optional[ObjectStorageClient] = None,
    ) -> None:
        self.config = config
        self.client = client
        self._owns_client = False

    def set_up(self, config_path: str = DEFAULT_CONFIG_FILE) -> None:
        if self.config is None:
            self.config = load_config(config_path)
        if self.client is None:
            self.client = ObjectStorageClient(self.config)
            self._owns_client = True
        logger.info(
            "Driver set up",
            extra={"driver": DRIVER_NAME, "endpoint": self.config.endpoint},
        )

    def clean_up(self) -> None:
        if self._owns_client and self.client is not None:
            self.client.close()
        self.client = None
        self._owns_client = False

    def backup(self, descriptor: BackupDescriptor) -> None:
        config, client = self._require_set_up()
        source = ChunkedSource(descriptor.source, chunk_size=config.chunk_size)
        self._transfer(client, descriptor.bucket, descriptor.key, source)

    def backup_file(self, bucket: str, key: str, path: str) -> None:
        """Back up the file at ``path``, closing it when the transfer ends."""
        config, client = self._require_set_up()
        with ChunkedSource.open(path, chunk_size=config.chunk_size) as source:
            self._transfer(client, bucket, key, source)

    def _require_set_up(self) -> tuple[MultiCloudConfig, ObjectStorageClient]:
        if self.config is None or self.client is None:
            raise ConfigurationError("Driver is not set up, call set_up() first")
        return self.config, self.client

    def _transfer(
        self,
        client: ObjectStorageClient,
        bucket: str,
        key: str,
        source: ChunkedSource,
    ) -> None:
        session = UploadSessionDto(bucket=bucket, key=key)

        session.state = TransferState.INITIATING
        try:
            session.upload_id = client.initiate_upload(bucket, key)
        except Exception:
            session.state = TransferState.FAILED
            logger.error("Backup failed", extra={"bucket": bucket, "key": key})
            raise

        try:
            session.state = TransferState.UPLOADING
            self._upload_parts(client, session, source)

            session.state = TransferState.COMPLETING
            client.complete_upload(bucket, key, session.upload_id, session.manifest)
            session.state = TransferState.SUCCEEDED
        except Exception:
            session.state = TransferState.FAILED
            logger.error(
                "Backup failed",
                extra={
                    "bucket": bucket,
                    "key": key,
                    "upload_id": session.upload_id,
                    "parts": len(session.manifest),
                },
            )
            raise
        finally:
            self._release(client, session)

        logger.info(
            "Backup complete",
            extra={
                "bucket": bucket,
                "key": key,
                "parts": len(session.manifest),
                "bytes": session.bytes_uploaded,
            },
        )

    @staticmethod
    def _upload_parts(
        client: ObjectStorageClient, session: UploadSessionDto, source: ChunkedSource
    ) -> None:
        for chunk in source:
            part_number = session.manifest.next_part_number
            etag = client.upload_part(
                session.bucket,
                session.key,
                part_number,
                session.upload_id,
                chunk,
                len(chunk),
            )
            session.manifest.append(part_number, etag)
            session.bytes_uploaded += len(chunk)

    @staticmethod
    def _release(client: ObjectStorageClient, session: UploadSessionDto) -> None:
        """Abort the session unconditionally, never raising."""
        try:
            client.abort_upload(session.bucket, session.key, session.upload_id)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.warning(
                "Failed to abort upload",
                exc_info=True,
                extra={
                    "bucket": session.bucket,
                    "key": session.key,
                    "upload_id": session.upload_id,
                    "state": session.state.value,
                },
            )
