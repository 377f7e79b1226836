"""Shared pytest fixtures for virald tests.

No test here talks to a real Docker daemon or a real utmctl: provider
modules get a scripted ``run_command`` and a mocked Docker SDK client.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from virald import constants
from virald.exceptions import ExternalToolError
from virald.models import VMConfig, VMInfo
from virald.providers.base import VMProvider, generate_vm_id
from virald.subprocess_utils import CommandResult

ISO_URL = "https://example/image.iso"


# ============================================================================
# Scripted external commands
# ============================================================================


class FakeCommands:
    """Stand-in for ``run_command`` that records argv and replays scripted output.

    Outputs and failures are keyed by the first argument after the program
    that names an action ("up", "down", "list", "create", "stop", ...).
    """

    ACTIONS = frozenset({"up", "down", "list", "create", "stop", "delete", "status"})

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self.outputs: dict[str, str] = {}
        self.failures: dict[str, ExternalToolError] = {}

    def _action(self, argv: tuple[str, ...]) -> str | None:
        for word in argv[1:]:
            if word in self.ACTIONS:
                return word
        return None

    async def __call__(self, *argv: str, context_id: str | None = None) -> CommandResult:
        self.calls.append(argv)
        action = self._action(argv)
        if action in self.failures:
            raise self.failures[action]
        stdout = self.outputs.get(action, "") if action else ""
        return CommandResult(argv=argv, returncode=0, stdout=stdout, stderr="")

    def fail(self, action: str, stderr: str = "boom") -> None:
        self.failures[action] = ExternalToolError(
            f"tool exited with status 1: {stderr}", argv=("tool", action), returncode=1, stderr=stderr
        )

    def actions(self) -> list[str | None]:
        return [self._action(argv) for argv in self.calls]


@pytest.fixture
def fake_commands(monkeypatch: pytest.MonkeyPatch) -> FakeCommands:
    """Patch run_command in both provider modules."""
    commands = FakeCommands()
    monkeypatch.setattr("virald.providers.docker.run_command", commands)
    monkeypatch.setattr("virald.providers.utm.run_command", commands)
    return commands


@pytest.fixture
def docker_client() -> MagicMock:
    """Docker SDK client whose containers report "running"."""
    client = MagicMock()
    client.ping.return_value = True
    client.containers.get.return_value = MagicMock(status="running")
    return client


# ============================================================================
# In-memory provider
# ============================================================================


class FakeProvider(VMProvider):
    """In-memory provider for manager, server and CLI tests."""

    def __init__(self, name: str, *, available: bool = True, base_port: int = 7000) -> None:
        super().__init__(base_port)
        self.name = name
        self.available = available
        self.statuses: list[str] = []
        self.status_error: ExternalToolError | None = None
        self.sync_error: ExternalToolError | None = None
        self.sync_calls = 0
        self.closed = False

    async def is_available(self) -> bool:
        return self.available

    async def sync_vms(self) -> None:
        self.sync_calls += 1
        if self.sync_error is not None:
            raise self.sync_error

    async def close(self) -> None:
        self.closed = True

    async def create_vm(self, config: VMConfig) -> VMInfo:
        vm_id = generate_vm_id()
        port = self._ports.allocate()
        vm = VMInfo(
            id=vm_id,
            name=config.name or vm_id,
            status=constants.STATUS_STARTING,
            port=port,
            config=config,
            connection_url=f"fake://localhost:{port}",
        )
        self._vms[vm_id] = vm
        return vm

    async def stop_vm(self, vm_id: str) -> None:
        vm = self._require_vm(vm_id)
        vm.status = constants.STATUS_STOPPED

    async def delete_vm(self, vm_id: str) -> None:
        self._require_vm(vm_id)
        self._vms.pop(vm_id)

    async def _fetch_status(self, vm: VMInfo) -> str:
        if self.status_error is not None:
            raise self.status_error
        return self.statuses.pop(0) if self.statuses else constants.STATUS_RUNNING


@pytest.fixture
def iso_config() -> VMConfig:
    return VMConfig(iso_url=ISO_URL)
