"""VM backends and the capability contract they share."""

from virald.providers.base import PortAllocator, VMProvider
from virald.providers.docker import DockerProvider
from virald.providers.utm import UTMProvider

__all__ = [
    "DockerProvider",
    "PortAllocator",
    "UTMProvider",
    "VMProvider",
]
