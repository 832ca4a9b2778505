import logging
from typing import Any, Optional

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = logging.getLogger("backup_service")

DEFAULT_CONFIG_FILE = "/etc/opensds/driver/multi-cloud.yaml"
DEFAULT_ENDPOINT = "http://127.0.0.1:8088"
DEFAULT_TENANT_ID = "adminTenantId"
DEFAULT_TIMEOUT = 60
DEFAULT_UPLOAD_TIMEOUT = 30
DEFAULT_CHUNK_SIZE = 1024 * 1024 * 50

# keys used by the driver's yaml file on deployed hosts
_YAML_KEYS = {
    "Endpoint": "endpoint",
    "TenantId": "tenant_id",
    "Timeout": "timeout",
    "UploadTimeout": "upload_timeout",
    "ChunkSize": "chunk_size",
    "Region": "region_name",
    "AccessKey": "access_key",
    "SecretKey": "secret_key",
}


class MultiCloudConfig(BaseSettings):
    """
    Settings for the multi-cloud backup driver.
    """

    endpoint: str = Field(
        default=DEFAULT_ENDPOINT,
        description="Base URL of the multi-cloud object storage service.",
    )
    tenant_id: str = Field(
        default=DEFAULT_TENANT_ID,
        description="Tenant the backups are stored under. It becomes part of the API path.",
    )
    timeout: int = Field(
        default=DEFAULT_TIMEOUT, gt=0, description="Connect timeout in seconds."
    )
    upload_timeout: int = Field(
        default=DEFAULT_UPLOAD_TIMEOUT,
        gt=0,
        description="Read timeout in seconds applied to every multipart request.",
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        gt=0,
        description="Maximum number of bytes sent per uploaded part.",
    )
    region_name: str = "us-east-1"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="MULTICLOUD_", env_file=".env", extra="ignore"
    )


def _normalize_keys(data: dict[str, Any]) -> dict[str, Any]:
    fields = MultiCloudConfig.model_fields
    normalized = {}
    for name, value in data.items():
        field_name = _YAML_KEYS.get(name, name)
        if field_name in fields:
            normalized[field_name] = value
    return normalized


def load_config(path: str = DEFAULT_CONFIG_FILE) -> MultiCloudConfig:
    """Read driver settings from a yaml file.

    Values found in the file take precedence over ``MULTICLOUD_*``
    environment variables, which take precedence over built-in defaults.
    """
    try:
        with open(path, "r", encoding="utf-8") as config_file:
            data = yaml.safe_load(config_file) or {}
    except OSError as exception:
        logger.exception("Failed to read config file", extra={"path": path})
        raise ConfigurationError(f"Cannot read config file {path!r}") from exception
    except yaml.YAMLError as exception:
        logger.exception("Failed to parse config file", extra={"path": path})
        raise ConfigurationError(f"Malformed config file {path!r}") from exception

    if not isinstance(data, dict):
        logger.error("Config file is not a mapping", extra={"path": path})
        raise ConfigurationError(f"Config file {path!r} must contain a mapping")

    try:
        config = MultiCloudConfig(**_normalize_keys(data))
    except ValidationError as exception:
        logger.exception("Invalid config values", extra={"path": path})
        raise ConfigurationError(f"Invalid config in {path!r}: {exception}") from exception

    logger.info(
        "Loaded config",
        extra={"path": path, "endpoint": config.endpoint, "tenant_id": config.tenant_id},
    )
    return config
