"""HTTP management API for a virald node.

Exposes the VmManager lifecycle over JSON.  Request and response bodies
mirror VMConfig / VMInfo field for field, using camelCase names.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from virald import __version__
from virald._logging import get_logger
from virald.exceptions import (
    BackendUnavailableError,
    CreationFailedError,
    ExternalToolError,
    NotFoundError,
    ViraldError,
    VmNotFoundError,
)
from virald.models import VMConfig, VMInfo
from virald.registration import register_with_server
from virald.settings import Settings
from virald.subprocess_utils import log_task_exception
from virald.vm_manager import VmManager

logger = get_logger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(_CamelModel):
    status: str
    version: str
    active_provider: str | None


class ProvidersResponse(_CamelModel):
    available: list[str]
    active: str | None


class ProviderSelection(_CamelModel):
    name: str


class VMStatusResponse(_CamelModel):
    id: str
    status: str


_ERROR_STATUS: tuple[tuple[type[ViraldError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (BackendUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (CreationFailedError, status.HTTP_502_BAD_GATEWAY),
    (ExternalToolError, status.HTTP_502_BAD_GATEWAY),
)


def _status_for(exc: ViraldError) -> int:
    # First match wins: ProviderNotFoundError is reported as a lookup failure
    for exc_type, code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _handle_virald_error(request: Request, exc: ViraldError) -> JSONResponse:
    code = _status_for(exc)
    if code >= 500:
        logger.warning(
            "Request failed",
            extra={"path": request.url.path, "error": exc.message, "error_type": type(exc).__name__},
        )
    return JSONResponse(
        status_code=code,
        content={"error": type(exc).__name__, "detail": exc.message},
    )


def create_app(settings: Settings | None = None, manager: VmManager | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Runtime configuration (defaults to environment)
        manager: Pre-built manager (tests inject one with fake providers)
    """
    settings = settings or Settings()
    manager = manager or VmManager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await manager.start()

        registration: asyncio.Task[object] | None = None
        if settings.register_on_startup:
            registration = asyncio.create_task(
                register_with_server(
                    settings.api_url,
                    settings.node_address,
                    timeout=settings.registration_timeout_seconds,
                ),
                name="register-node",
            )
            registration.add_done_callback(log_task_exception)

        logger.info("virald node running", extra={"host": settings.host, "port": settings.port})
        try:
            yield
        finally:
            if registration is not None and not registration.done():
                registration.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await registration
            await manager.stop()

    app = FastAPI(title="virald", version=__version__, lifespan=lifespan)
    app.state.manager = manager
    app.add_exception_handler(ViraldError, _handle_virald_error)  # type: ignore[arg-type]

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__, active_provider=manager.active_provider_name)

    @app.get("/providers", response_model=ProvidersResponse)
    async def get_providers() -> ProvidersResponse:
        return ProvidersResponse(available=manager.get_available_providers(), active=manager.active_provider_name)

    @app.put("/providers/active", response_model=ProvidersResponse)
    async def set_active_provider(selection: ProviderSelection) -> ProvidersResponse:
        manager.set_provider(selection.name)
        return ProvidersResponse(available=manager.get_available_providers(), active=manager.active_provider_name)

    @app.get("/vms", response_model=list[VMInfo])
    async def list_vms() -> list[VMInfo]:
        return manager.list_vms()

    @app.post("/vms", response_model=VMInfo, status_code=status.HTTP_201_CREATED)
    async def create_vm(config: VMConfig) -> VMInfo:
        return await manager.create_vm(config)

    @app.get("/vms/{vm_id}", response_model=VMInfo)
    async def get_vm(vm_id: str) -> VMInfo:
        vm = manager.get_vm(vm_id)
        if vm is None:
            raise VmNotFoundError(vm_id, provider=manager.active_provider_name)
        return vm

    @app.get("/vms/{vm_id}/status", response_model=VMStatusResponse)
    async def get_vm_status(vm_id: str) -> VMStatusResponse:
        vm_status = await manager.get_vm_status(vm_id)
        return VMStatusResponse(id=vm_id, status=vm_status)

    @app.post("/vms/{vm_id}/stop", status_code=status.HTTP_204_NO_CONTENT)
    async def stop_vm(vm_id: str) -> Response:
        await manager.stop_vm(vm_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/vms/{vm_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_vm(vm_id: str) -> Response:
        await manager.delete_vm(vm_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


def run_server(settings: Settings) -> None:
    """Serve the management API with uvicorn until interrupted."""
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
