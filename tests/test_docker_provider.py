"""Tests for DockerProvider with a scripted docker CLI and a mocked SDK client."""

from pathlib import Path
from unittest.mock import MagicMock

import docker.errors
import pytest
import yaml

from tests.conftest import FakeCommands
from virald import constants
from virald.exceptions import ExternalToolError, VmNotFoundError
from virald.models import VMConfig
from virald.providers.docker import DockerProvider, build_compose_document


@pytest.fixture
def provider(tmp_path: Path, docker_client: MagicMock, fake_commands: FakeCommands) -> DockerProvider:
    return DockerProvider(tmp_path / "vm-data", client=docker_client)


# ============================================================================
# Compose document
# ============================================================================


class TestBuildComposeDocument:
    """The generated compose document for one VM."""

    def test_defaults_applied(self, tmp_path: Path) -> None:
        doc = build_compose_document("vm-1", VMConfig(iso_url="https://example/a.iso"), 8006, tmp_path)
        service = doc["services"]["vm-1"]
        assert service["container_name"] == "vm-1"
        assert service["image"] == constants.DOCKER_IMAGE
        assert service["environment"] == {
            "BOOT": "https://example/a.iso",
            "RAM_SIZE": "1G",
            "CPU_CORES": "1",
            "DISK_SIZE": "16G",
        }
        assert service["ports"] == ["8006:8006"]
        assert service["volumes"] == [f"{tmp_path / 'vm-1'}:/storage"]
        assert service["devices"] == ["/dev/kvm", "/dev/net/tun"]
        assert service["cap_add"] == ["NET_ADMIN"]
        assert service["stop_grace_period"] == "2m"

    def test_config_overrides_defaults(self, tmp_path: Path) -> None:
        config = VMConfig(iso_url="a.iso", memory_size="4G", cpu_cores="4", disk_size="64G")
        env = build_compose_document("vm-1", config, 8010, tmp_path)["services"]["vm-1"]["environment"]
        assert env["RAM_SIZE"] == "4G"
        assert env["CPU_CORES"] == "4"
        assert env["DISK_SIZE"] == "64G"

    def test_no_legacy_version_key(self, tmp_path: Path) -> None:
        assert "version" not in build_compose_document("vm-1", VMConfig(iso_url="a.iso"), 8006, tmp_path)


# ============================================================================
# Availability
# ============================================================================


class TestAvailability:
    async def test_daemon_reachable(self, docker_client: MagicMock) -> None:
        assert await DockerProvider(client=docker_client).is_available()

    async def test_daemon_unreachable(self, docker_client: MagicMock) -> None:
        docker_client.ping.side_effect = docker.errors.DockerException("connection refused")
        assert not await DockerProvider(client=docker_client).is_available()

    async def test_close_releases_client(self, docker_client: MagicMock) -> None:
        provider = DockerProvider(client=docker_client)
        await provider.close()
        docker_client.close.assert_called_once()


# ============================================================================
# Lifecycle
# ============================================================================


class TestCreateVm:
    async def test_writes_compose_and_starts(
        self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig
    ) -> None:
        vm = await provider.create_vm(iso_config)

        compose_path = provider.compose_path(vm.id)
        assert compose_path.name == f"{vm.id}-compose.yml"
        document = yaml.safe_load(compose_path.read_text())
        assert document["services"][vm.id]["environment"]["BOOT"] == iso_config.iso_url

        assert fake_commands.calls == [("docker", "compose", "-f", str(compose_path), "up", "-d")]
        assert vm.port == constants.DOCKER_BASE_PORT
        assert vm.connection_url == f"http://localhost:{vm.port}"
        assert vm.name == vm.id
        assert vm.status == "running"
        assert provider.get_vm(vm.id) is vm

    async def test_uses_configured_name(
        self, provider: DockerProvider, fake_commands: FakeCommands
    ) -> None:
        vm = await provider.create_vm(VMConfig(iso_url="a.iso", name="web"))
        assert vm.name == "web"
        assert vm.id.startswith(constants.VM_ID_PREFIX)

    async def test_inspect_failure_keeps_starting(
        self, provider: DockerProvider, docker_client: MagicMock, iso_config: VMConfig
    ) -> None:
        docker_client.containers.get.side_effect = docker.errors.NotFound("no such container")
        vm = await provider.create_vm(iso_config)
        assert vm.status == constants.STATUS_STARTING
        assert provider.get_vm(vm.id) is not None

    async def test_up_failure_leaves_registry_unchanged(
        self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig
    ) -> None:
        fake_commands.fail("up")
        with pytest.raises(ExternalToolError):
            await provider.create_vm(iso_config)
        assert provider.list_vms() == []
        assert list(provider.data_dir.glob("*-compose.yml")) == []

    async def test_relative_data_dir_mounts_absolute_path(
        self,
        tmp_path: Path,
        docker_client: MagicMock,
        fake_commands: FakeCommands,
        iso_config: VMConfig,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A bare relative source would be read by compose as a named volume."""
        monkeypatch.chdir(tmp_path)
        provider = DockerProvider(Path("vm-data"), client=docker_client)
        vm = await provider.create_vm(iso_config)

        document = yaml.safe_load(provider.compose_path(vm.id).read_text())
        source, _, target = document["services"][vm.id]["volumes"][0].rpartition(":")
        assert Path(source).is_absolute()
        assert Path(source) == (tmp_path / "vm-data" / vm.id).resolve()
        assert target == "/storage"

    async def test_ports_strictly_increase(
        self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig
    ) -> None:
        first = await provider.create_vm(iso_config)
        second = await provider.create_vm(iso_config)
        await provider.delete_vm(first.id)
        third = await provider.create_vm(iso_config)
        assert first.port < second.port < third.port


class TestStopDelete:
    async def test_stop(self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig) -> None:
        vm = await provider.create_vm(iso_config)
        await provider.stop_vm(vm.id)
        assert fake_commands.calls[-1] == ("docker", "compose", "-f", str(provider.compose_path(vm.id)), "down")
        assert vm.status == constants.STATUS_STOPPED

    async def test_stop_failure_keeps_status(
        self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig
    ) -> None:
        vm = await provider.create_vm(iso_config)
        fake_commands.fail("down")
        with pytest.raises(ExternalToolError):
            await provider.stop_vm(vm.id)
        assert vm.status == "running"

    async def test_delete_removes_artifacts(
        self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig
    ) -> None:
        vm = await provider.create_vm(iso_config)
        storage = provider.storage_path(vm.id)
        storage.mkdir(parents=True)
        (storage / "data.img").write_bytes(b"\0")

        await provider.delete_vm(vm.id)

        assert fake_commands.actions() == ["up", "down"]
        assert not storage.exists()
        assert not provider.compose_path(vm.id).exists()
        assert provider.get_vm(vm.id) is None

    async def test_delete_tolerates_missing_artifacts(
        self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig
    ) -> None:
        vm = await provider.create_vm(iso_config)
        provider.compose_path(vm.id).unlink()
        await provider.delete_vm(vm.id)
        assert provider.list_vms() == []

    async def test_second_delete_not_found(
        self, provider: DockerProvider, fake_commands: FakeCommands, iso_config: VMConfig
    ) -> None:
        vm = await provider.create_vm(iso_config)
        await provider.delete_vm(vm.id)
        with pytest.raises(VmNotFoundError):
            await provider.delete_vm(vm.id)

    async def test_unknown_vm_runs_nothing(self, provider: DockerProvider, fake_commands: FakeCommands) -> None:
        with pytest.raises(VmNotFoundError):
            await provider.stop_vm("vm-missing")
        assert fake_commands.calls == []


class TestStatus:
    async def test_status_from_daemon(
        self, provider: DockerProvider, docker_client: MagicMock, iso_config: VMConfig
    ) -> None:
        vm = await provider.create_vm(iso_config)
        docker_client.containers.get.return_value = MagicMock(status="exited")
        assert await provider.get_vm_status(vm.id) == "exited"
        assert vm.status == "exited"

    async def test_missing_container_unknown(
        self, provider: DockerProvider, docker_client: MagicMock, iso_config: VMConfig
    ) -> None:
        vm = await provider.create_vm(iso_config)
        docker_client.containers.get.side_effect = docker.errors.NotFound("gone")
        assert await provider.get_vm_status(vm.id) == constants.STATUS_UNKNOWN
        assert vm.status == "running"
