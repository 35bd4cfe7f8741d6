"""
osquery Releases

Pinned osquery release table: one download per supported (OS, architecture)
pair, with the SHA-256 digest published for that release.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, Optional, Tuple

from .errors import UnsupportedPlatformError
from .platform import detect_platform, normalize_arch

# Current osquery version to download
OSQUERY_VERSION = "5.20.0"

# GitHub release URL prefix
RELEASE_URL = "https://github.com/osquery/osquery/releases/download"


class ArchiveKind(str, Enum):
    """Archive format of a release download."""
    TAR_GZIP = "tar.gz"
    INSTALLER_PACKAGE = "pkg"  # macOS .pkg, expanded with pkgutil
    ZIP = "zip"


@dataclass(frozen=True)
class PlatformDescriptor:
    """Download, verification and extraction parameters for one platform."""
    download_filename: str
    sha256: str
    archive_kind: ArchiveKind
    binary_path: str  # path of osqueryd inside the archive

    @property
    def binary_name(self) -> str:
        return PurePosixPath(self.binary_path).name


_MACOS_PKG = PlatformDescriptor(
    download_filename="osquery-5.20.0.pkg",
    sha256="569751a8bc4fdd3aba94071a4b840003066b2cff8e1b0ef9abf46c7a482173c0",
    archive_kind=ArchiveKind.INSTALLER_PACKAGE,
    binary_path="opt/osquery/lib/osquery.app/Contents/MacOS/osqueryd",
)

# Hashes from https://github.com/osquery/osquery/releases/tag/5.20.0
PLATFORM_RELEASES: Dict[Tuple[str, str], PlatformDescriptor] = {
    ("linux", "x86_64"): PlatformDescriptor(
        download_filename="osquery-5.20.0_1.linux_x86_64.tar.gz",
        sha256="4f0e4e23c864a72dcb20bf4661ea0d2719358c938ec342105a633cc732dc03c3",
        archive_kind=ArchiveKind.TAR_GZIP,
        binary_path="opt/osquery/bin/osqueryd",
    ),
    ("linux", "aarch64"): PlatformDescriptor(
        download_filename="osquery-5.20.0_1.linux_aarch64.tar.gz",
        sha256="cb8d942943c765ebd87c5a3b01fc09988c8ad31acf094207fc49e7acf88ec573",
        archive_kind=ArchiveKind.TAR_GZIP,
        binary_path="opt/osquery/bin/osqueryd",
    ),
    # The macOS package is universal
    ("darwin", "x86_64"): _MACOS_PKG,
    ("darwin", "aarch64"): _MACOS_PKG,
    ("windows", "x86_64"): PlatformDescriptor(
        download_filename="osquery-5.20.0.windows_x86_64.zip",
        sha256="af66cb90537c52459539141f183ae8abb3073f29089b5d1f68245381d80967e1",
        archive_kind=ArchiveKind.ZIP,
        binary_path="osqueryd/osqueryd.exe",
    ),
}


def resolve_descriptor(
    os_name: Optional[str] = None,
    arch: Optional[str] = None,
) -> PlatformDescriptor:
    """
    Get the release descriptor for a platform.
    
    Args:
        os_name: 'linux', 'darwin' or 'windows' (default: detected)
        arch: Machine architecture (default: detected)
        
    Returns:
        The pinned descriptor for the platform
        
    Raises:
        UnsupportedPlatformError: If no release exists for the platform
    """
    if os_name is None or arch is None:
        info = detect_platform()
        os_name = os_name or info.platform
        arch = arch or info.architecture
    
    key = (os_name.lower(), normalize_arch(arch))
    try:
        return PLATFORM_RELEASES[key]
    except KeyError:
        raise UnsupportedPlatformError(*key) from None


def download_url(
    descriptor: PlatformDescriptor,
    release_url: str = RELEASE_URL,
    version: str = OSQUERY_VERSION,
) -> str:
    """Build the release download URL for a descriptor."""
    return f"{release_url.rstrip('/')}/{version}/{descriptor.download_filename}"
