"""Command-line interface for virald.

Usage:
    virald serve                                  # Run the node API
    virald providers                              # Show usable backends
    virald create --iso https://example/image.iso --name ubuntu
    virald list --provider utm --json
    virald status 5D419106-2824-4FED-BFE1-24A7F7E253D8
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click

from virald import (
    BackendUnavailableError,
    NotFoundError,
    Settings,
    ViraldError,
    VMConfig,
    VMInfo,
    VmManager,
    __version__,
)
from virald._logging import configure_logging
from virald.platform_utils import detect_host_arch, detect_host_os

# Exit codes (click itself exits 2 on usage errors)
EXIT_NOT_FOUND = 3
EXIT_UNAVAILABLE = 4
EXIT_BACKEND_ERROR = 5

T = TypeVar("T")


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern.

    Args:
        title: Short error title
        message: Detailed explanation
        suggestions: Optional list of suggestions to fix the issue

    Returns:
        Formatted error string
    """
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def format_vm(vm: VMInfo) -> str:
    """One-line human-readable VM summary."""
    return f"{vm.id}  {vm.name}  {vm.status}  {vm.connection_url}"


def format_vms_json(vms: list[VMInfo]) -> str:
    return json.dumps([vm.model_dump(mode="json", by_alias=True) for vm in vms], indent=2)


async def run_with_manager(
    settings: Settings,
    provider: str | None,
    action: Callable[[VmManager], Awaitable[T]],
) -> T:
    """Start a manager, optionally pin the provider, run action, stop."""
    async with VmManager(settings) as manager:
        if provider:
            manager.set_provider(provider)
        return await action(manager)


def run_action(
    settings: Settings,
    provider: str | None,
    action: Callable[[VmManager], Awaitable[T]],
) -> T:
    """Run a manager action and turn virald errors into CLI exit codes."""
    try:
        return asyncio.run(run_with_manager(settings, provider, action))
    except NotFoundError as e:
        click.echo(format_error("Not found", e.message), err=True)
        sys.exit(EXIT_NOT_FOUND)
    except BackendUnavailableError as e:
        click.echo(
            format_error(
                "No VM provider available",
                e.message,
                [
                    "Check that the Docker daemon is running: docker info",
                    "Install UTM and make sure utmctl is on PATH",
                    "Run `virald providers` to see what was detected",
                ],
            ),
            err=True,
        )
        sys.exit(EXIT_UNAVAILABLE)
    except ViraldError as e:
        click.echo(format_error("Backend error", e.message), err=True)
        sys.exit(EXIT_BACKEND_ERROR)


provider_option = click.option(
    "-P",
    "--provider",
    help="Backend to use instead of the preferred one (docker, utm)",
)
json_option = click.option("--json", "json_output", is_flag=True, help="Output as JSON")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.option("-q", "--quiet", is_flag=True, help="Only log errors")
@click.version_option(__version__, "-V", "--version", prog_name="virald")
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool) -> None:
    """Provision and manage VMs through Docker or UTM."""
    configure_logging(level=logging.DEBUG if verbose else None, quiet=quiet)
    if ctx.obj is None:
        ctx.obj = Settings()


@main.command()
@click.option("--host", help="Bind address (default: VIRALD_HOST or 0.0.0.0)")
@click.option("--port", type=int, help="Bind port (default: VIRALD_PORT / PORT or 9090)")
@click.option("--no-register", is_flag=True, help="Skip control-plane registration")
@click.pass_obj
def serve(settings: Settings, host: str | None, port: int | None, no_register: bool) -> None:
    """Run the node: management API plus control-plane registration."""
    from virald.server import run_server  # noqa: PLC0415

    updates: dict[str, object] = {}
    if host:
        updates["host"] = host
    if port:
        updates["port"] = port
    if no_register:
        updates["register_on_startup"] = False
    run_server(settings.model_copy(update=updates))


@main.command()
@json_option
@click.pass_obj
def providers(settings: Settings, json_output: bool) -> None:
    """Probe backends and show which ones are usable."""

    async def action(manager: VmManager) -> tuple[list[str], str | None]:
        return manager.get_available_providers(), manager.active_provider_name

    available, active = run_action(settings, None, action)

    if json_output:
        click.echo(json.dumps({"available": available, "active": active}, indent=2))
        return

    click.echo(f"Host: {detect_host_os().name.lower()} ({detect_host_arch()})")
    click.echo(f"Available: {', '.join(available) if available else 'none'}")
    click.echo(f"Active: {active or 'none'}")


@main.command("list")
@provider_option
@json_option
@click.pass_obj
def list_command(settings: Settings, provider: str | None, json_output: bool) -> None:
    """List VMs known to the backend."""

    async def action(manager: VmManager) -> list[VMInfo]:
        return manager.list_vms()

    vms = run_action(settings, provider, action)

    if json_output:
        click.echo(format_vms_json(vms))
        return
    for vm in vms:
        click.echo(format_vm(vm))


@main.command()
@click.option("--iso", "iso_url", required=True, help="Boot ISO URL or path")
@click.option("-n", "--name", help="Display name")
@click.option("-m", "--memory", "memory_size", help="Memory size (docker: 1G, utm: MiB)")
@click.option("-c", "--cpus", "cpu_cores", help="CPU cores")
@click.option("-d", "--disk", "disk_size", help="Disk size (docker: 16G, utm: MiB)")
@provider_option
@json_option
@click.pass_obj
def create(
    settings: Settings,
    iso_url: str,
    name: str | None,
    memory_size: str | None,
    cpu_cores: str | None,
    disk_size: str | None,
    provider: str | None,
    json_output: bool,
) -> None:
    """Create a VM."""
    config = VMConfig(
        iso_url=iso_url,
        name=name,
        memory_size=memory_size,
        cpu_cores=cpu_cores,
        disk_size=disk_size,
    )

    async def action(manager: VmManager) -> VMInfo:
        return await manager.create_vm(config)

    vm = run_action(settings, provider, action)

    if json_output:
        click.echo(vm.model_dump_json(by_alias=True, indent=2))
    else:
        click.echo(format_vm(vm))


@main.command()
@click.argument("vm_id")
@provider_option
@click.pass_obj
def status(settings: Settings, vm_id: str, provider: str | None) -> None:
    """Query a VM's current status."""

    async def action(manager: VmManager) -> str:
        return await manager.get_vm_status(vm_id)

    click.echo(run_action(settings, provider, action))


@main.command()
@click.argument("vm_id")
@provider_option
@click.pass_obj
def stop(settings: Settings, vm_id: str, provider: str | None) -> None:
    """Stop a VM."""

    async def action(manager: VmManager) -> None:
        await manager.stop_vm(vm_id)

    run_action(settings, provider, action)
    click.echo(f"Stopped {vm_id}")


@main.command()
@click.argument("vm_id")
@provider_option
@click.pass_obj
def delete(settings: Settings, vm_id: str, provider: str | None) -> None:
    """Delete a VM and its backend data."""

    async def action(manager: VmManager) -> None:
        await manager.delete_vm(vm_id)

    run_action(settings, provider, action)
    click.echo(f"Deleted {vm_id}")


if __name__ == "__main__":
    main()
