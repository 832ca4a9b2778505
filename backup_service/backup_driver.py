from abc import ABC, abstractmethod

from .models.backup_descriptor import BackupDescriptor


class BackupDriver(ABC):
    """Capabilities a backup backend has to offer to the backup service."""

    @abstractmethod
    def set_up(self) -> None:
        """Prepare clients and settings before the first backup."""

    @abstractmethod
    def clean_up(self) -> None:
        """Release whatever set_up acquired."""

    @abstractmethod
    def backup(self, descriptor: BackupDescriptor) -> None:
        """Store the descriptor's source under its bucket and key."""
