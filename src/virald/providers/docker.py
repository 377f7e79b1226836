"""Docker provider: VMs as qemu-docker containers managed by docker compose.

Each VM gets its own compose file ``<data_dir>/<vm_id>-compose.yml`` and a
storage directory ``<data_dir>/<vm_id>`` mounted at /storage.  Lifecycle
goes through the ``docker compose`` CLI; status is read back from the
daemon with the Docker SDK.

The registry is filled only by create_vm: compose projects left over from
an earlier process are not rediscovered.

All compose files share data_dir, so compose treats every VM as one
project named after that directory.  ``up`` warns about the other VMs as
orphan containers and ``down`` tries to remove the shared default network,
which fails harmlessly while other VMs still use it.
"""

from __future__ import annotations

import asyncio
import contextlib
import shutil
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import docker
import yaml
from docker.errors import DockerException

from virald import constants
from virald._logging import get_logger
from virald.exceptions import ExternalToolError
from virald.models import VMConfig, VMInfo
from virald.providers.base import VMProvider, generate_vm_id
from virald.subprocess_utils import run_command

logger = get_logger(__name__)


def build_compose_document(
    vm_id: str,
    config: VMConfig,
    port: int,
    data_dir: Path,
    image: str = constants.DOCKER_IMAGE,
) -> dict[str, Any]:
    """Build the compose document for one VM.

    Args:
        vm_id: Service and container name
        config: Caller's VM configuration
        port: Host port mapped to the container's control port
        data_dir: Parent of the per-VM storage directory
        image: qemu-docker image reference

    Returns:
        Compose document as a plain dict (ready for yaml.safe_dump)
    """
    return {
        "services": {
            vm_id: {
                "container_name": vm_id,
                "image": image,
                "environment": {
                    "BOOT": config.iso_url,
                    "RAM_SIZE": config.memory_size or constants.DOCKER_DEFAULT_MEMORY,
                    "CPU_CORES": config.cpu_cores or constants.DOCKER_DEFAULT_CPU_CORES,
                    "DISK_SIZE": config.disk_size or constants.DOCKER_DEFAULT_DISK_SIZE,
                },
                "devices": list(constants.DOCKER_DEVICES),
                "cap_add": list(constants.DOCKER_CAPABILITIES),
                "ports": [f"{port}:{constants.DOCKER_CONTROL_PORT}"],
                "volumes": [f"{data_dir / vm_id}:{constants.DOCKER_STORAGE_MOUNT}"],
                "stop_grace_period": constants.DOCKER_STOP_GRACE_PERIOD,
            }
        }
    }


class DockerProvider(VMProvider):
    """VM backend driving qemu-docker containers through docker compose.

    Usage:
        provider = DockerProvider(Path("vm-data"))
        if await provider.is_available():
            vm = await provider.create_vm(VMConfig(iso_url="https://example/image.iso"))
    """

    name = constants.PROVIDER_DOCKER

    def __init__(
        self,
        data_dir: Path | None = None,
        *,
        image: str = constants.DOCKER_IMAGE,
        base_port: int = constants.DOCKER_BASE_PORT,
        client: docker.DockerClient | None = None,
    ) -> None:
        super().__init__(base_port)
        # Absolute: compose reads a bare relative source as a named volume
        self.data_dir = (data_dir if data_dir is not None else Path.cwd() / "vm-data").resolve()
        self.image = image
        self._docker = client

    @property
    def docker(self) -> docker.DockerClient:
        """Lazy-initialize Docker client from the environment (DOCKER_HOST etc.)."""
        if self._docker is None:
            self._docker = docker.from_env()
        return self._docker

    def compose_path(self, vm_id: str) -> Path:
        return self.data_dir / f"{vm_id}{constants.COMPOSE_FILE_SUFFIX}"

    def storage_path(self, vm_id: str) -> Path:
        return self.data_dir / vm_id

    async def is_available(self) -> bool:
        try:
            await asyncio.to_thread(lambda: self.docker.ping())
        except (DockerException, OSError) as e:
            logger.debug("Docker daemon not reachable", extra={"error": str(e)})
            return False
        return True

    async def close(self) -> None:
        if self._docker is not None:
            await asyncio.to_thread(self._docker.close)
            self._docker = None

    async def _write_compose_file(self, vm_id: str, config: VMConfig, port: int) -> Path:
        document = build_compose_document(vm_id, config, port, self.data_dir, self.image)
        compose_path = self.compose_path(vm_id)
        try:
            await aiofiles.os.makedirs(self.data_dir, exist_ok=True)
            async with aiofiles.open(compose_path, "w") as f:
                await f.write(yaml.safe_dump(document, default_flow_style=False, sort_keys=False))
        except OSError as e:
            raise ExternalToolError(
                f"Failed to write compose file {compose_path}: {e}",
                context={"vm_id": vm_id},
            ) from e
        return compose_path

    async def _inspect_status(self, vm_id: str) -> str:
        try:
            container = await asyncio.to_thread(self.docker.containers.get, vm_id)
        except (DockerException, OSError) as e:
            raise ExternalToolError(
                f"Failed to inspect container {vm_id}: {e}",
                context={"vm_id": vm_id},
            ) from e
        return container.status

    async def create_vm(self, config: VMConfig) -> VMInfo:
        vm_id = generate_vm_id()
        port = self._ports.allocate()

        compose_path = await self._write_compose_file(vm_id, config, port)
        try:
            await run_command("docker", "compose", "-f", str(compose_path), "up", "-d", context_id=vm_id)
        except ExternalToolError:
            with contextlib.suppress(FileNotFoundError):
                await aiofiles.os.remove(compose_path)
            raise

        vm = VMInfo(
            id=vm_id,
            name=config.name or vm_id,
            status=constants.STATUS_STARTING,
            port=port,
            config=config,
            connection_url=f"http://localhost:{port}",
        )

        # Seed the status once; the container may not be inspectable yet
        try:
            vm.status = await self._inspect_status(vm_id)
        except ExternalToolError as e:
            logger.warning("Error inspecting container", extra={"vm_id": vm_id, "error": e.message})

        self._vms[vm_id] = vm
        logger.info("VM created", extra={"vm_id": vm_id, "provider": self.name, "port": port})
        return vm

    async def stop_vm(self, vm_id: str) -> None:
        vm = self._require_vm(vm_id)
        await run_command("docker", "compose", "-f", str(self.compose_path(vm_id)), "down", context_id=vm_id)
        vm.status = constants.STATUS_STOPPED
        logger.info("VM stopped", extra={"vm_id": vm_id, "provider": self.name})

    async def delete_vm(self, vm_id: str) -> None:
        await self.stop_vm(vm_id)

        try:
            with contextlib.suppress(FileNotFoundError):
                await asyncio.to_thread(shutil.rmtree, self.storage_path(vm_id))
            with contextlib.suppress(FileNotFoundError):
                await aiofiles.os.remove(self.compose_path(vm_id))
        except OSError as e:
            raise ExternalToolError(
                f"Failed to remove data for VM {vm_id}: {e}",
                context={"vm_id": vm_id},
            ) from e

        self._vms.pop(vm_id, None)
        logger.info("VM deleted", extra={"vm_id": vm_id, "provider": self.name})

    async def _fetch_status(self, vm: VMInfo) -> str:
        return await self._inspect_status(vm.id)
