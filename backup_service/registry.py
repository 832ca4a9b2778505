import logging
from typing import Callable

from .backup_driver import BackupDriver
from .exceptions import ConfigurationError
from .multicloud_driver import DRIVER_NAME, MultiCloudBackupDriver

logger = logging.getLogger("backup_service")

DriverFactory = Callable[[], BackupDriver]


class BackupDriverRegistry:
    """Maps backend names to driver factories.

    Built once at process start and handed to whatever needs to pick a
    backup backend by name.
    """

    def __init__(self) -> None:
        self._factories: dict[str, DriverFactory] = {}

    def register(self, name: str, factory: DriverFactory) -> None:
        if name in self._factories:
            raise ValueError(f"Backup driver {name!r} is already registered")
        self._factories[name] = factory
        logger.debug("Registered backup driver", extra={"driver": name})

    def create(self, name: str) -> BackupDriver:
        try:
            factory = self._factories[name]
        except KeyError as exception:
            logger.error(
                "Unknown backup driver",
                extra={"driver": name, "available": self.names()},
            )
            raise ConfigurationError(f"Unknown backup driver {name!r}") from exception
        return factory()

    def names(self) -> list[str]:
        return sorted(self._factories)


def default_registry() -> BackupDriverRegistry:
    registry = BackupDriverRegistry()
    registry.register(DRIVER_NAME, MultiCloudBackupDriver)
    return registry
