from dataclasses import dataclass
from typing import Any, BinaryIO, Mapping


@dataclass(frozen=True)
class BackupDescriptor:
    bucket: str
    key: str
    source: BinaryIO

    @classmethod
    def from_backup(
        cls, backup_id: str, metadata: Mapping[str, Any], source: BinaryIO
    ) -> "BackupDescriptor":
        """Build a descriptor from a backup record.

        The destination bucket travels in the record's metadata and the
        backup id becomes the object key. A missing bucket is passed through
        as an empty string and rejected by the backend.
        """
        return cls(bucket=metadata.get("bucket", ""), key=backup_id, source=source)
