"""Provider capability contract shared by every VM backend.

A provider owns a private registry (vm_id -> VMInfo) that only its own
methods mutate.  Registry lookups (get_vm, list_vms) never touch the
backend; lifecycle calls do.  The registry is not locked: two concurrent
calls for the same VM id against the same provider may interleave.
"""

from __future__ import annotations

import abc
from uuid import uuid4

from virald import constants
from virald._logging import get_logger
from virald.exceptions import BackendUnavailableError, ExternalToolError, VmNotFoundError
from virald.models import VMConfig, VMInfo

logger = get_logger(__name__)


def generate_vm_id() -> str:
    """Synthesize a short unique VM identifier, e.g. ``vm-1a2b3c4d``."""
    return f"{constants.VM_ID_PREFIX}{uuid4().hex[: constants.VM_ID_RANDOM_CHARS]}"


class PortAllocator:
    """Monotonic host port allocator.

    Hands out ``base_port + n`` for n = 0, 1, 2, ...  Ports are never
    reclaimed within the allocator's lifetime, so a deleted VM's port is
    not re-issued while other VMs may still hold neighbouring ones.  After
    a process restart the count starts over, and containers left running
    from an earlier process can still occupy those ports.
    """

    __slots__ = ("_issued", "base_port")

    def __init__(self, base_port: int) -> None:
        self.base_port = base_port
        self._issued = 0

    def allocate(self) -> int:
        port = self.base_port + self._issued
        self._issued += 1
        return port

    def reset(self) -> None:
        """Start again from base_port (used by full registry resyncs)."""
        self._issued = 0


class VMProvider(abc.ABC):
    """Base interface for VM backends.

    Subclasses implement the backend I/O; this class implements the
    registry bookkeeping and the advisory status refresh.
    """

    name: str = ""

    def __init__(self, base_port: int) -> None:
        self._vms: dict[str, VMInfo] = {}
        self._ports = PortAllocator(base_port)

    # ------------------------------------------------------------------
    # Backend operations
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def is_available(self) -> bool:
        """Probe the backend.  Never raises; any failure means False."""

    @abc.abstractmethod
    async def create_vm(self, config: VMConfig) -> VMInfo:
        """Provision a VM and add it to the registry.

        Raises:
            CreationFailedError: Backend produced no identity for the VM
            ExternalToolError: Backend invocation failed
        """

    @abc.abstractmethod
    async def stop_vm(self, vm_id: str) -> None:
        """Stop a VM.

        Raises:
            VmNotFoundError: vm_id unknown to this provider
            ExternalToolError: Backend invocation failed (registry unchanged)
        """

    @abc.abstractmethod
    async def delete_vm(self, vm_id: str) -> None:
        """Stop if needed, remove backend artifacts and drop the record.

        Raises:
            VmNotFoundError: vm_id unknown to this provider
            ExternalToolError: Backend invocation failed (record kept)
        """

    @abc.abstractmethod
    async def _fetch_status(self, vm: VMInfo) -> str:
        """Ask the backend for the VM's current status.

        Raises:
            ExternalToolError: Backend could not be queried
            BackendUnavailableError: Backend tool disappeared since the probe
        """

    async def sync_vms(self) -> None:
        """Rebuild the registry from the backend.

        Default is a no-op: backends that cannot enumerate VMs they did not
        create in this process keep the add-on-create registry.
        """

    async def close(self) -> None:
        """Release backend resources (clients, connections)."""

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def get_vm(self, vm_id: str) -> VMInfo | None:
        return self._vms.get(vm_id)

    def list_vms(self) -> list[VMInfo]:
        """Snapshot of known VMs in insertion order."""
        return list(self._vms.values())

    def _require_vm(self, vm_id: str) -> VMInfo:
        vm = self._vms.get(vm_id)
        if vm is None:
            raise VmNotFoundError(vm_id, provider=self.name)
        return vm

    async def get_vm_status(self, vm_id: str) -> str:
        """Refresh and return the VM's status from the backend.

        Status is advisory: when the backend cannot be queried the stored
        status is left as the last successful refresh set it and
        ``"unknown"`` is returned instead of raising.

        Raises:
            VmNotFoundError: vm_id unknown to this provider
        """
        vm = self._require_vm(vm_id)

        try:
            status = await self._fetch_status(vm)
        except (ExternalToolError, BackendUnavailableError) as e:
            logger.warning(
                "Error getting VM status",
                extra={"vm_id": vm_id, "provider": self.name, "error": e.message},
            )
            return constants.STATUS_UNKNOWN

        vm.status = status
        return status
