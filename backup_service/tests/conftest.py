import pytest
from faker import Faker
from backup_service.config import MultiCloudConfig
from backup_service.tests.fakes import InMemoryObjectStorage

fake = Faker()


@pytest.fixture
def multicloud_config() -> MultiCloudConfig:
    return MultiCloudConfig(
        endpoint=fake.url(),
        tenant_id=str(fake.uuid4()),
        access_key=fake.password(),
        secret_key=fake.password(),
    )


@pytest.fixture
def object_storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()
