"""virald: provision VMs through interchangeable local backends.

One lifecycle API over two backends:
    - docker: qemu-docker containers driven by docker compose
    - utm:    UTM virtual machines driven by the utmctl CLI

Quick Start:
    ```python
    from virald import VMConfig, VmManager

    async with VmManager() as manager:
        vm = await manager.create_vm(VMConfig(iso_url="https://example/image.iso"))
        print(vm.connection_url)
        await manager.get_vm_status(vm.id)
        await manager.delete_vm(vm.id)
    ```

Running a node (management API + control-plane registration):
    virald serve --port 9090
"""

from virald.exceptions import (
    BackendUnavailableError,
    CreationFailedError,
    ExternalToolError,
    NotFoundError,
    ProviderNotFoundError,
    ViraldError,
    VmNotFoundError,
)
from virald.models import VMConfig, VMInfo
from virald.settings import Settings
from virald.vm_manager import VmManager

__all__ = [
    "BackendUnavailableError",
    "CreationFailedError",
    "ExternalToolError",
    "NotFoundError",
    "ProviderNotFoundError",
    "Settings",
    "VMConfig",
    "VMInfo",
    "ViraldError",
    "VmManager",
    "VmNotFoundError",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("virald")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
