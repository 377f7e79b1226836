"""VM orchestration across backends.

Architecture:
- Every known provider is probed once at start(); the ones that answer
  are registered under their name, in declaration order
- One registered provider is active at a time, chosen by PROVIDER_PREFERENCE
  (utm before docker) and switchable with set_provider()
- Lifecycle calls are delegated to the active provider unchanged; the
  manager itself holds no VM state
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from types import TracebackType
from typing import Self

from virald import constants
from virald._logging import get_logger
from virald.exceptions import BackendUnavailableError, ExternalToolError, ProviderNotFoundError
from virald.models import VMConfig, VMInfo
from virald.platform_utils import detect_host_arch, detect_host_os
from virald.providers import DockerProvider, UTMProvider, VMProvider
from virald.settings import Settings

logger = get_logger(__name__)


def default_providers(settings: Settings) -> dict[str, VMProvider]:
    """Build the known providers from settings, in registration order."""
    return {
        constants.PROVIDER_DOCKER: DockerProvider(
            settings.data_dir,
            image=settings.docker_image,
            base_port=settings.docker_base_port,
        ),
        constants.PROVIDER_UTM: UTMProvider(
            app_path=settings.utmctl_path,
            base_port=settings.utm_base_port,
        ),
    }


class VmManager:
    """Backend-agnostic VM lifecycle manager.

    Usage:
        async with VmManager(settings) as manager:
            vm = await manager.create_vm(VMConfig(iso_url="https://example/image.iso"))
            await manager.get_vm_status(vm.id)
            await manager.delete_vm(vm.id)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        providers: Mapping[str, VMProvider] | None = None,
    ) -> None:
        """Initialize manager (sync part only).

        Args:
            settings: Runtime configuration used to build the default providers
            providers: Ordered name -> provider mapping overriding the defaults

        Note: Call `await start()` after construction to probe the backends.
        """
        self.settings = settings or Settings()
        self._known: dict[str, VMProvider] = dict(
            providers if providers is not None else default_providers(self.settings)
        )
        self._providers: dict[str, VMProvider] = {}
        self._active_name: str | None = None
        self._initialized = False

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def start(self) -> None:
        """Probe every known provider and select the active one.

        Probes run concurrently.  Available providers are registered in
        declaration order and their registries resynced (a no-op for
        providers that only track what they create).
        """
        if self._initialized:
            return

        names = list(self._known)
        results = await asyncio.gather(*(self._known[name].is_available() for name in names))

        for name, available in zip(names, results, strict=True):
            if not available:
                logger.info("Provider not available", extra={"provider": name})
                continue
            provider = self._known[name]
            try:
                await provider.sync_vms()
            except (ExternalToolError, BackendUnavailableError) as e:
                logger.warning("Provider registry sync failed", extra={"provider": name, "error": e.message})
            self._providers[name] = provider

        for name in constants.PROVIDER_PREFERENCE:
            if name in self._providers:
                self._active_name = name
                break

        self._initialized = True

        logger.info(
            "VM manager started",
            extra={
                "available_providers": list(self._providers),
                "active_provider": self._active_name,
                "host_os": detect_host_os().name,
                "host_arch": detect_host_arch(),
            },
        )

    async def stop(self) -> None:
        """Release resources held by every known provider."""
        for provider in self._known.values():
            await provider.close()
        self._providers.clear()
        self._active_name = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Provider selection
    # ------------------------------------------------------------------

    @property
    def active_provider_name(self) -> str | None:
        return self._active_name

    def get_available_providers(self) -> list[str]:
        """Registered provider names in registration order."""
        return list(self._providers)

    def set_provider(self, name: str) -> None:
        """Switch the active provider.  Never re-probes.

        Raises:
            ProviderNotFoundError: name was never registered; the active
                provider is left unchanged
        """
        if name not in self._providers:
            raise ProviderNotFoundError(name, available=self.get_available_providers())
        self._active_name = name
        logger.info("Active provider changed", extra={"provider": name})

    def _ensure_provider(self) -> VMProvider:
        if self._active_name is None:
            raise BackendUnavailableError("No VM provider available")
        return self._providers[self._active_name]

    # ------------------------------------------------------------------
    # Lifecycle (delegated)
    # ------------------------------------------------------------------

    async def create_vm(self, config: VMConfig) -> VMInfo:
        return await self._ensure_provider().create_vm(config)

    async def stop_vm(self, vm_id: str) -> None:
        await self._ensure_provider().stop_vm(vm_id)

    async def delete_vm(self, vm_id: str) -> None:
        await self._ensure_provider().delete_vm(vm_id)

    def get_vm(self, vm_id: str) -> VMInfo | None:
        return self._ensure_provider().get_vm(vm_id)

    def list_vms(self) -> list[VMInfo]:
        return self._ensure_provider().list_vms()

    async def get_vm_status(self, vm_id: str) -> str:
        return await self._ensure_provider().get_vm_status(vm_id)
