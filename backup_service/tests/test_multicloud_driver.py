import io
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from faker import Faker
from backup_service.chunked_source import ChunkedSource
from backup_service.config import MultiCloudConfig
from backup_service.exceptions import (
    BackendError,
    BackupServiceError,
    ConfigurationError,
    SourceReadError,
)
from backup_service.models.backup_descriptor import BackupDescriptor
from backup_service.multicloud_driver import MultiCloudBackupDriver
from backup_service.object_storage_client import ObjectStorageClient
from backup_service.tests.fakes import FailingReader, GappedReader, InMemoryObjectStorage

fake = Faker()

KIB = 1024


@pytest.fixture(name="driver")
def fixture_driver(object_storage: InMemoryObjectStorage) -> MultiCloudBackupDriver:
    driver = MultiCloudBackupDriver(
        config=MultiCloudConfig(chunk_size=50 * KIB), client=object_storage
    )
    driver.set_up()
    return driver


def make_descriptor(data: bytes) -> BackupDescriptor:
    return BackupDescriptor(
        bucket=fake.user_name(), key=str(fake.uuid4()), source=io.BytesIO(data)
    )


def test_backup_uploads_parts_in_order(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    data = fake.binary(length=120 * KIB)
    descriptor = make_descriptor(data)

    driver.backup(descriptor)

    assert object_storage.calls[1:4] == [
        ("upload_part", (1, 50 * KIB)),
        ("upload_part", (2, 50 * KIB)),
        ("upload_part", (3, 20 * KIB)),
    ]
    assert object_storage.operations() == [
        "initiate",
        "upload_part",
        "upload_part",
        "upload_part",
        "complete",
        "abort",
    ]
    assert object_storage.calls[4] == ("complete", [1, 2, 3])
    assert object_storage.objects == {(descriptor.bucket, descriptor.key): data}
    assert object_storage.uploads == {}


def test_backup_single_small_chunk(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    data = fake.binary(length=10)
    descriptor = make_descriptor(data)

    driver.backup(descriptor)

    assert object_storage.calls[1] == ("upload_part", (1, 10))
    assert object_storage.objects[(descriptor.bucket, descriptor.key)] == data


def test_backup_part_failure_aborts(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    object_storage.fail_part_number = 2
    descriptor = make_descriptor(fake.binary(length=120 * KIB))

    with pytest.raises(BackendError):
        driver.backup(descriptor)

    assert object_storage.operations() == [
        "initiate",
        "upload_part",
        "upload_part",
        "abort",
    ]
    assert object_storage.objects == {}
    assert object_storage.uploads == {}


def test_backup_complete_failure_aborts(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    object_storage.fail_complete = True

    with pytest.raises(BackendError):
        driver.backup(make_descriptor(fake.binary(length=60 * KIB)))

    assert object_storage.operations()[-2:] == ["complete", "abort"]
    assert object_storage.operations().count("abort") == 1
    assert object_storage.objects == {}


def test_backup_empty_source_fails(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    with pytest.raises(BackendError):
        driver.backup(make_descriptor(b""))

    assert object_storage.calls[1] == ("complete", [])
    assert object_storage.operations() == ["initiate", "complete", "abort"]
    assert object_storage.objects == {}


def test_backup_initiate_failure_skips_abort(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    object_storage.fail_initiate = True

    with pytest.raises(BackendError):
        driver.backup(make_descriptor(fake.binary(length=KIB)))

    assert object_storage.operations() == ["initiate"]


def test_backup_abort_failure_after_success_is_ignored(
    driver: MultiCloudBackupDriver,
    object_storage: InMemoryObjectStorage,
    caplog: pytest.LogCaptureFixture,
) -> None:
    object_storage.fail_abort = True
    data = fake.binary(length=KIB)
    descriptor = make_descriptor(data)

    driver.backup(descriptor)

    assert object_storage.operations()[-1] == "abort"
    assert object_storage.objects[(descriptor.bucket, descriptor.key)] == data
    warnings = [r for r in caplog.records if r.getMessage() == "Failed to abort upload"]
    assert len(warnings) == 1
    assert warnings[0].state == "succeeded"


def test_backup_abort_failure_keeps_original_error(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    object_storage.fail_part_number = 1
    object_storage.fail_abort = True

    with pytest.raises(BackendError) as exc_info:
        driver.backup(make_descriptor(fake.binary(length=KIB)))

    assert exc_info.value.operation == "upload_part"
    assert object_storage.operations().count("abort") == 1


def test_backup_source_read_error_aborts(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    descriptor = BackupDescriptor(
        bucket=fake.user_name(), key=str(fake.uuid4()), source=FailingReader(1)
    )

    with pytest.raises(SourceReadError):
        driver.backup(descriptor)

    assert object_storage.operations() == ["initiate", "upload_part", "abort"]
    assert object_storage.objects == {}


def test_backup_closed_source_aborts(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    handle = io.BytesIO(b"data")
    handle.close()
    descriptor = BackupDescriptor(
        bucket=fake.user_name(), key=str(fake.uuid4()), source=handle
    )

    with pytest.raises(SourceReadError) as exc_info:
        driver.backup(descriptor)

    assert isinstance(exc_info.value, BackupServiceError)
    assert object_storage.operations() == ["initiate", "abort"]
    assert object_storage.objects == {}


def test_backup_stops_at_empty_read(
    driver: MultiCloudBackupDriver, object_storage: InMemoryObjectStorage
) -> None:
    first = fake.binary(length=50 * KIB)
    descriptor = BackupDescriptor(
        bucket=fake.user_name(),
        key=str(fake.uuid4()),
        source=GappedReader([first, b"abcd", b"", b"efgh"]),
    )

    driver.backup(descriptor)

    assert object_storage.calls[1:3] == [
        ("upload_part", (1, 50 * KIB)),
        ("upload_part", (2, 4)),
    ]
    assert object_storage.operations()[3:] == ["complete", "abort"]
    assert object_storage.objects == {
        (descriptor.bucket, descriptor.key): first + b"abcd"
    }


def test_backup_requires_set_up(object_storage: InMemoryObjectStorage) -> None:
    driver = MultiCloudBackupDriver(client=object_storage)

    with pytest.raises(ConfigurationError):
        driver.backup(make_descriptor(b"data"))

    assert object_storage.calls == []


def test_clean_up_releases_client(driver: MultiCloudBackupDriver) -> None:
    driver.clean_up()
    driver.clean_up()

    with pytest.raises(ConfigurationError):
        driver.backup(make_descriptor(b"data"))


@patch("boto3.client")
def test_set_up_loads_config_file(boto_client: MagicMock, tmp_path: Path) -> None:
    path = tmp_path / "multi-cloud.yaml"
    path.write_text("Endpoint: http://10.0.0.9:8088\nTenantId: t1\n", encoding="utf-8")
    driver = MultiCloudBackupDriver()

    driver.set_up(str(path))

    assert isinstance(driver.client, ObjectStorageClient)
    assert driver.config is not None
    assert driver.config.tenant_id == "t1"
    assert (
        boto_client.call_args.kwargs["endpoint_url"] == "http://10.0.0.9:8088/v1/t1/s3"
    )


def test_set_up_missing_config_file(tmp_path: Path) -> None:
    driver = MultiCloudBackupDriver()

    with pytest.raises(ConfigurationError):
        driver.set_up(str(tmp_path / "missing.yaml"))


@pytest.mark.parametrize("fail", [False, True])
def test_backup_file_closes_source(
    driver: MultiCloudBackupDriver,
    object_storage: InMemoryObjectStorage,
    tmp_path: Path,
    fail: bool,
) -> None:
    data = fake.binary(length=70 * KIB)
    path = tmp_path / "volume.img"
    path.write_bytes(data)
    object_storage.fail_complete = fail
    bucket, key = fake.user_name(), str(fake.uuid4())

    with patch.object(
        ChunkedSource, "close", autospec=True, side_effect=ChunkedSource.close
    ) as close_spy:
        if fail:
            with pytest.raises(BackendError):
                driver.backup_file(bucket, key, str(path))
        else:
            driver.backup_file(bucket, key, str(path))

    close_spy.assert_called_once()
    assert object_storage.objects.get((bucket, key)) == (None if fail else data)


def test_descriptor_from_backup() -> None:
    source = io.BytesIO(b"data")
    backup_id = str(fake.uuid4())

    descriptor = BackupDescriptor.from_backup(backup_id, {"bucket": "vols"}, source)

    assert descriptor == BackupDescriptor(bucket="vols", key=backup_id, source=source)
    assert BackupDescriptor.from_backup(backup_id, {}, source).bucket == ""


@patch("boto3.client")
def test_clean_up_closes_owned_client(
    boto_client: MagicMock, multicloud_config: MultiCloudConfig
) -> None:
    driver = MultiCloudBackupDriver(config=multicloud_config)
    driver.set_up()

    driver.clean_up()

    boto_client.return_value.close.assert_called_once()
    assert driver.client is None
