"""Package registry adapters."""

from .adapters import CargoRegistry, CommandRegistry, DirectoryRegistry, PackageRegistry, build_registry
from .models import DuplicateVersion, RegistryError, RegistryUpload

__all__ = [
    "CargoRegistry",
    "CommandRegistry",
    "DirectoryRegistry",
    "DuplicateVersion",
    "PackageRegistry",
    "RegistryError",
    "RegistryUpload",
    "build_registry",
]
