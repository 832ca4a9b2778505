from typing import Optional


class BackupServiceError(Exception):
    """Base exception for all backup transfer failures."""


class ConfigurationError(BackupServiceError):
    """Driver or client settings are missing or invalid."""


class SourceReadError(BackupServiceError):
    """The local backup source could not be read."""


class BackendError(BackupServiceError):
    """A multipart API call against the object storage backend failed."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.bucket = bucket
        self.key = key
        self.code = code
