"""UTM provider: VMs managed through the ``utmctl`` command-line tool.

utmctl is the authority on which VMs exist, so the registry is rebuilt
from ``utmctl list`` by sync_vms().  Identity and status are recovered by
parsing utmctl's text output; the parsers are plain functions so they can
be tested without the tool installed.
"""

from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

import aiofiles.os

from virald import constants
from virald._logging import get_logger
from virald.exceptions import BackendUnavailableError, CreationFailedError
from virald.models import VMConfig, VMInfo
from virald.platform_utils import detect_host_arch
from virald.providers.base import VMProvider, generate_vm_id
from virald.subprocess_utils import run_command

logger = get_logger(__name__)

# "Ubuntu (running) [5D419106-2824-4FED-BFE1-24A7F7E253D8]"
_LIST_LINE_PATTERN = re.compile(r"^(.+?) \((.*?)\) \[(.*?)\]")
_BRACKETED_ID_PATTERN = re.compile(r"\[(.*?)\]")


@dataclass(frozen=True)
class ListedVM:
    """One VM as reported by ``utmctl list``."""

    name: str
    status: str
    id: str


def parse_vm_list_line(line: str) -> ListedVM | None:
    """Parse a ``utmctl list`` line of the form ``<name> (<status>) [<id>]``.

    Returns:
        ListedVM, or None for lines that do not match (headers, blanks,
        anything a newer utmctl may print)
    """
    match = _LIST_LINE_PATTERN.match(line)
    if match is None:
        return None
    name, status, vm_id = match.groups()
    return ListedVM(name=name, status=status, id=vm_id)


def parse_vm_list(output: str) -> list[ListedVM]:
    """Parse full ``utmctl list`` output, skipping blank and unrecognized lines."""
    listed = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parsed = parse_vm_list_line(line)
        if parsed is not None:
            listed.append(parsed)
    return listed


def extract_vm_id(output: str) -> str | None:
    """Return the first bracketed token in ``utmctl create`` output."""
    match = _BRACKETED_ID_PATTERN.search(output)
    return match.group(1) if match else None


class UTMProvider(VMProvider):
    """VM backend for UTM on macOS.

    utmctl is looked up on PATH first, then at the UTM.app bundle path.
    The resolved path is cached for the provider's lifetime.
    """

    name = constants.PROVIDER_UTM

    def __init__(
        self,
        *,
        app_path: Path = Path(constants.UTMCTL_APP_PATH),
        base_port: int = constants.UTM_BASE_PORT,
    ) -> None:
        super().__init__(base_port)
        self.app_path = app_path
        self._utmctl: str | None = None

    async def is_available(self) -> bool:
        if shutil.which(constants.UTMCTL_BINARY):
            self._utmctl = constants.UTMCTL_BINARY
            return True
        if await aiofiles.os.access(self.app_path, os.X_OK):
            self._utmctl = str(self.app_path)
            return True
        logger.debug("utmctl not found", extra={"app_path": str(self.app_path)})
        return False

    async def _ensure_utmctl(self) -> str:
        """Return the cached utmctl path, probing again once if unset.

        Raises:
            BackendUnavailableError: utmctl cannot be found
        """
        if self._utmctl is None and not await self.is_available():
            raise BackendUnavailableError("UTM is not available", context={"app_path": str(self.app_path)})
        if self._utmctl is None:
            raise BackendUnavailableError("Failed to locate utmctl")
        return self._utmctl

    def _connection_url(self, port: int) -> str:
        return f"vnc://localhost:{port}"

    async def sync_vms(self) -> None:
        """Clear the registry and rebuild it from ``utmctl list``."""
        utmctl = await self._ensure_utmctl()
        result = await run_command(utmctl, "list")

        self._vms.clear()
        self._ports.reset()

        for listed in parse_vm_list(result.stdout):
            port = self._ports.allocate()
            self._vms[listed.id] = VMInfo(
                id=listed.id,
                name=listed.name,
                status=listed.status,
                port=port,
                # utmctl does not expose the boot source
                config=VMConfig(name=listed.name, iso_url=""),
                connection_url=self._connection_url(port),
            )

        logger.info("UTM registry synced", extra={"vm_count": len(self._vms)})

    async def create_vm(self, config: VMConfig) -> VMInfo:
        utmctl = await self._ensure_utmctl()
        name = config.name or generate_vm_id()

        result = await run_command(
            utmctl,
            "create",
            "--name",
            name,
            "--arch",
            detect_host_arch(),
            "--memory",
            config.memory_size or constants.UTM_DEFAULT_MEMORY,
            "--disk-size",
            config.disk_size or constants.UTM_DEFAULT_DISK_SIZE,
            "--iso",
            config.iso_url,
        )

        vm_id = extract_vm_id(result.stdout)
        if not vm_id:
            raise CreationFailedError("Failed to create VM: Could not get VM ID", output=result.stdout)

        port = self._ports.allocate()
        vm = VMInfo(
            id=vm_id,
            name=name,
            status=constants.STATUS_STOPPED,  # utmctl create does not start the VM
            port=port,
            config=config,
            connection_url=self._connection_url(port),
        )
        self._vms[vm_id] = vm
        logger.info("VM created", extra={"vm_id": vm_id, "provider": self.name, "port": port})
        return vm

    async def stop_vm(self, vm_id: str) -> None:
        vm = self._require_vm(vm_id)
        utmctl = await self._ensure_utmctl()
        result = await run_command(utmctl, "stop", vm_id, context_id=vm_id)
        vm.status = result.stdout.strip() or constants.STATUS_STOPPED
        logger.info("VM stopped", extra={"vm_id": vm_id, "provider": self.name})

    async def delete_vm(self, vm_id: str) -> None:
        vm = self._require_vm(vm_id)
        utmctl = await self._ensure_utmctl()

        if vm.status == constants.STATUS_RUNNING:
            await self.stop_vm(vm_id)

        await run_command(utmctl, "delete", vm_id, context_id=vm_id)
        self._vms.pop(vm_id, None)
        logger.info("VM deleted", extra={"vm_id": vm_id, "provider": self.name})

    async def _fetch_status(self, vm: VMInfo) -> str:
        utmctl = await self._ensure_utmctl()
        result = await run_command(utmctl, "status", vm.id, context_id=vm.id)
        return result.stdout.strip()
