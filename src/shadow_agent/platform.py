"""
Platform Detection

Detect OS platform and CPU architecture.
"""

import platform
import socket
from dataclasses import dataclass


# Machine strings reported by platform.machine() on supported hosts
_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}


@dataclass
class PlatformInfo:
    """Platform information"""
    platform: str  # 'darwin', 'windows', 'linux'
    hostname: str
    version: str
    architecture: str
    processor: str


def normalize_arch(machine: str) -> str:
    """Map a machine string to the release naming ('x86_64' or 'aarch64')."""
    return _ARCH_ALIASES.get(machine.lower(), machine.lower())


def detect_platform() -> PlatformInfo:
    """Detect current platform"""
    system = platform.system().lower()
    
    return PlatformInfo(
        platform=system,
        hostname=socket.gethostname(),
        version=platform.version(),
        architecture=normalize_arch(platform.machine()),
        processor=platform.processor(),
    )
