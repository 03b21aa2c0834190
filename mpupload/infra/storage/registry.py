"""Named storage backend registry.

The registry is an ordinary object: the application builds one during
startup and passes it to whatever needs to construct a backend.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from mpupload.infra.storage.client import ConfigurationError, ObjectStorage
from mpupload.infra.storage.multipart import MultipartObjectStorage
from mpupload.infra.storage.s3_client import S3ObjectStorage

if TYPE_CHECKING:
    from mpupload.common.config import Settings

StorageFactory = Callable[["Settings"], ObjectStorage]


class StorageRegistry:
    """Maps storage type names to backend factories."""

    def __init__(self) -> None:
        self._factories: dict[str, StorageFactory] = {}

    def register(self, name: str, factory: StorageFactory) -> None:
        key = name.strip().lower()
        if not key:
            raise ValueError("Storage type name must not be empty")
        if key in self._factories:
            raise ValueError(f"Storage type '{key}' is already registered")
        self._factories[key] = factory

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._factories

    def create(self, name: str, settings: "Settings") -> ObjectStorage:
        """Build the backend registered under ``name``.

        Raises:
            ConfigurationError: If no backend is registered under ``name`` or
                the backend rejects the settings.
        """
        key = (name or "").strip().lower()
        factory = self._factories.get(key)
        if factory is None:
            raise ConfigurationError(
                f"Unsupported storage type: {name!r}. "
                f"Known types: {', '.join(self.names()) or '<none>'}"
            )
        return factory(settings)


def build_default_registry() -> StorageRegistry:
    registry = StorageRegistry()
    registry.register("minio", S3ObjectStorage.from_settings)
    registry.register("hwcloud", MultipartObjectStorage.from_settings)
    return registry
