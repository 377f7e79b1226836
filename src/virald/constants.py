"""Constants for virald providers and defaults."""

from typing import Final

# ============================================================================
# Status vocabulary
# ============================================================================
# Status is free-form text mirrored from each backend.  These are only the
# values virald itself writes.

STATUS_STARTING: Final[str] = "starting"
STATUS_RUNNING: Final[str] = "running"
STATUS_STOPPED: Final[str] = "stopped"
STATUS_UNKNOWN: Final[str] = "unknown"

# ============================================================================
# Provider names and selection
# ============================================================================

PROVIDER_DOCKER: Final[str] = "docker"
PROVIDER_UTM: Final[str] = "utm"

PROVIDER_PREFERENCE: Final[tuple[str, ...]] = (PROVIDER_UTM, PROVIDER_DOCKER)
"""Selection order for the default active provider.
UTM first: a host that has it installed is a macOS workstation where the
native hypervisor is the expected backend."""

# ============================================================================
# Container (Docker) backend
# ============================================================================

DOCKER_BASE_PORT: Final[int] = 8006
"""First host port handed out; the qemu-docker web viewer listens on 8006."""

DOCKER_CONTROL_PORT: Final[int] = 8006
"""Fixed port inside the container that host ports map onto."""

DOCKER_IMAGE: Final[str] = "qemux/qemu-docker"

DOCKER_DEVICES: Final[tuple[str, ...]] = ("/dev/kvm", "/dev/net/tun")
DOCKER_CAPABILITIES: Final[tuple[str, ...]] = ("NET_ADMIN",)
DOCKER_STORAGE_MOUNT: Final[str] = "/storage"
DOCKER_STOP_GRACE_PERIOD: Final[str] = "2m"
COMPOSE_FILE_SUFFIX: Final[str] = "-compose.yml"

DOCKER_DEFAULT_MEMORY: Final[str] = "1G"
DOCKER_DEFAULT_CPU_CORES: Final[str] = "1"
DOCKER_DEFAULT_DISK_SIZE: Final[str] = "16G"

# ============================================================================
# Hypervisor (UTM) backend
# ============================================================================

UTM_BASE_PORT: Final[int] = 5900
"""Conventional VNC display :0 port."""

UTMCTL_BINARY: Final[str] = "utmctl"
UTMCTL_APP_PATH: Final[str] = "/Applications/UTM.app/Contents/MacOS/utmctl"

UTM_DEFAULT_MEMORY: Final[str] = "1024"
"""Memory in MiB (utmctl units)."""

UTM_DEFAULT_DISK_SIZE: Final[str] = "16384"
"""Disk size in MiB (utmctl units)."""

# ============================================================================
# Identifiers
# ============================================================================

VM_ID_PREFIX: Final[str] = "vm-"
VM_ID_RANDOM_CHARS: Final[int] = 8
