"""Host OS and architecture detection.

Uses psutil's built-in OS detection constants for platform identification.
"""

import platform
from enum import Enum, auto
from functools import cache

import psutil


class HostOS(Enum):
    """Supported host operating systems."""

    LINUX = auto()
    """Linux (Docker provider with /dev/kvm)."""

    MACOS = auto()
    """macOS (UTM provider, or Docker Desktop)."""

    UNKNOWN = auto()
    """Unsupported or unrecognized OS."""


@cache
def detect_host_os() -> HostOS:
    """Detect current host operating system using psutil constants.

    Returns:
        HostOS enum indicating current platform
    """
    if psutil.LINUX:
        return HostOS.LINUX
    if psutil.MACOS:
        return HostOS.MACOS
    return HostOS.UNKNOWN


@cache
def detect_host_arch() -> str:
    """Machine hardware name as ``uname -m`` reports it (e.g. "arm64", "x86_64")."""
    return platform.machine()
